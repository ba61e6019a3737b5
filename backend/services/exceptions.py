"""
Access-layer exceptions.

Services raise these instead of HTTPException so they can be used (and
tested) without a request. main.py renders every AccessError as
{"detail": ..., "code": ...} with the status carried by the class.
"""

from typing import Any, Dict, Optional

from fastapi import status


class AccessError(Exception):
    """Base class for every trust/access failure."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "ACCESS_ERROR"
    default_detail: str = "Access denied"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.detail, "code": self.code}
        body.update(self.extra)
        return body


class InvalidCredentials(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    default_detail = "Invalid username or password"


class InvalidRefreshToken(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_REFRESH_TOKEN"
    default_detail = "Invalid or expired refresh token"


class TokenExpired(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_EXPIRED"
    default_detail = "Token has expired"


class TokenRevoked(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_REVOKED"
    default_detail = "Token has been revoked"


class MissingPin(AccessError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "MISSING_PIN"
    default_detail = "PIN is required"


class PinNotConfigured(AccessError):
    """The caller has never set a PIN; clients should route to PIN setup."""

    status_code = status.HTTP_403_FORBIDDEN
    code = "PIN_NOT_CONFIGURED"
    default_detail = "PIN is not set. Set a PIN before accessing secrets."

    def __init__(self, detail: Optional[str] = None):
        super().__init__(detail, needs_pin=True)


class InvalidPin(AccessError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_PIN"
    default_detail = "Invalid PIN"


class InvalidPinFormat(AccessError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_PIN_FORMAT"
    default_detail = "PIN must be 4 to 6 digits"


class NotFound(AccessError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"
    default_detail = "Resource not found"


class NotAuthorized(AccessError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "NOT_AUTHORIZED"
    default_detail = "You are not allowed to perform this action"


class AlreadyAccepted(AccessError):
    status_code = status.HTTP_409_CONFLICT
    code = "ALREADY_ACCEPTED"
    default_detail = "Sharing has already been accepted"


class SelfShareRejected(AccessError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "SELF_SHARE_REJECTED"
    default_detail = "You cannot share a credential with yourself"


class InvalidShareExpiration(AccessError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "INVALID_SHARE_EXPIRATION"
    default_detail = "Expiration date must be in the future"


class UsernameTaken(AccessError):
    status_code = status.HTTP_409_CONFLICT
    code = "USERNAME_TAKEN"
    default_detail = "Username is already taken"


class ConfirmationRequired(AccessError):
    """Deleting a shared credential needs an explicit confirm=true."""

    status_code = status.HTTP_409_CONFLICT
    code = "CONFIRMATION_REQUIRED"
    default_detail = (
        "This credential is shared with other users. "
        "Deleting it will revoke all shares. Confirm to continue."
    )

    def __init__(self, detail: Optional[str] = None, share_count: int = 0):
        super().__init__(detail, requires_confirmation=True, share_count=share_count)


class DecryptionError(AccessError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "DECRYPTION_ERROR"
    default_detail = "Stored secret could not be decrypted"
