from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class SharingCreate(BaseModel):
    credential_id: int = Field(..., ge=1)
    recipient_id: int = Field(..., ge=1)
    pin: Optional[str] = Field(None, max_length=32)
    # Defaults to SHARE_DEFAULT_EXPIRATION_DAYS from now; naive values are read as UTC
    expires_at: Optional[datetime] = None


class SharingPinRequest(BaseModel):
    """Body for accept and revoke"""

    pin: Optional[str] = Field(None, max_length=32)


class SharingResponse(BaseModel):
    id: int
    credential_id: int
    account_name: Optional[str] = None
    service_url: Optional[str] = None
    owner_id: int
    owner_username: Optional[str] = None
    recipient_id: int
    recipient_username: Optional[str] = None
    expires_at: datetime
    accepted: bool
    created_at: Optional[datetime] = None

    @classmethod
    def from_sharing(cls, sharing) -> "SharingResponse":
        credential = sharing.credential
        return cls(
            id=sharing.id,
            credential_id=sharing.credential_id,
            account_name=credential.account_name if credential else None,
            service_url=credential.service_url if credential else None,
            owner_id=sharing.owner_id,
            owner_username=sharing.owner.username if sharing.owner else None,
            recipient_id=sharing.recipient_id,
            recipient_username=sharing.recipient.username if sharing.recipient else None,
            expires_at=sharing.expires_at,
            accepted=sharing.accepted,
            created_at=sharing.created_at,
        )


class SharingCountResponse(BaseModel):
    active_shares: int
