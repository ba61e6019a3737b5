from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .validators import ensure_utf8_encodable, normalize_username


class UserRegister(BaseModel):
    """Registration request"""

    username: str = Field(..., min_length=3, max_length=50)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("username", mode="before")
    @classmethod
    def clean_username(cls, value: str) -> str:
        return normalize_username(value)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        return ensure_utf8_encodable(value)


class UserLogin(BaseModel):
    """Login request"""

    username: str = Field(..., min_length=1, max_length=50)
    # No length policy here: a login never reveals which rule a stored password follows
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("username", mode="before")
    @classmethod
    def strip_username(cls, value: str) -> str:
        if isinstance(value, str):
            return value.strip()
        return value


class UserResponse(BaseModel):
    """User info response"""

    id: int
    username: str
    roles: List[str]
    has_pin: bool
    created_at: Optional[datetime] = None
    last_login: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenPairResponse(BaseModel):
    """Response containing both access and refresh tokens."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token expiration in seconds")
    user: UserResponse


class RefreshTokenRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1, max_length=512)


class LogoutRequest(BaseModel):
    """Logout request. The bearer header, if present, is revoked as well."""

    refresh_token: Optional[str] = Field(None, max_length=512)


class ValidateTokenRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=4096)


class TokenValidationResponse(BaseModel):
    valid: bool
    username: Optional[str] = None
    user_id: Optional[int] = None
    roles: List[str] = []
    expires_in: int = 0
    reason: Optional[str] = None


class SetPinRequest(BaseModel):
    """Set or change the secondary PIN. Requires the primary password."""

    pin: str = Field(..., max_length=32)
    password: str = Field(..., min_length=1, max_length=128)


class ActivityLogResponse(BaseModel):
    id: int
    action: str
    description: Optional[str] = None
    ip_address: Optional[str] = None
    success: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
