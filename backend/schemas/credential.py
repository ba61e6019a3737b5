from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from .validators import ensure_utf8_encodable, normalize_optional_text, normalize_required_text


class CredentialCreate(BaseModel):
    account_name: str = Field(..., min_length=1, max_length=200)
    password: str = Field(..., min_length=1, max_length=1000)
    service_url: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = Field(None, max_length=5000)

    @field_validator("account_name", mode="before")
    @classmethod
    def normalize_account_name(cls, value: str) -> str:
        return normalize_required_text(value, field_name="Account name", strip_invisible=True)

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        # Stored as given; only reject what cannot be encrypted
        return ensure_utf8_encodable(value)

    @field_validator("service_url", mode="before")
    @classmethod
    def normalize_service_url(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value)

    @field_validator("notes", mode="before")
    @classmethod
    def normalize_notes(cls, value: Optional[str]) -> Optional[str]:
        return normalize_optional_text(value, strip_html=True)


class CredentialResponse(BaseModel):
    """Credential metadata. The secret is only available through the reveal endpoint."""

    id: int
    account_name: str
    service_url: Optional[str] = None
    notes: Optional[str] = None
    is_shared: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RevealRequest(BaseModel):
    pin: Optional[str] = Field(None, max_length=32)


class RevealResponse(BaseModel):
    id: int
    password: str


class CredentialDeleteResponse(BaseModel):
    id: int
    deleted: bool = True
    revoked_shares: int = 0
