from .common import ErrorResponse
from .credential import (
    CredentialCreate,
    CredentialDeleteResponse,
    CredentialResponse,
    RevealRequest,
    RevealResponse,
)
from .sharing import SharingCountResponse, SharingCreate, SharingPinRequest, SharingResponse
from .user import (
    ActivityLogResponse,
    LogoutRequest,
    RefreshTokenRequest,
    SetPinRequest,
    TokenPairResponse,
    TokenValidationResponse,
    UserLogin,
    UserRegister,
    UserResponse,
    ValidateTokenRequest,
)

__all__ = [
    # Common
    "ErrorResponse",
    # Credential
    "CredentialCreate",
    "CredentialDeleteResponse",
    "CredentialResponse",
    "RevealRequest",
    "RevealResponse",
    # Sharing
    "SharingCountResponse",
    "SharingCreate",
    "SharingPinRequest",
    "SharingResponse",
    # User / auth
    "ActivityLogResponse",
    "LogoutRequest",
    "RefreshTokenRequest",
    "SetPinRequest",
    "TokenPairResponse",
    "TokenValidationResponse",
    "UserLogin",
    "UserRegister",
    "UserResponse",
    "ValidateTokenRequest",
]
