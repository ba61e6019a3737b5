from datetime import datetime, timezone
from typing import Optional

from db.database import Base
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes even for timezone-aware columns; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Sharing(Base):
    """
    A grant giving one user (the recipient) visibility of another user's credential.

    A grant is active while `expires_at` is in the future. It starts pending
    and becomes accepted once the recipient confirms it with their PIN.
    """

    __tablename__ = "sharings"

    id = Column(Integer, primary_key=True, index=True)
    # No ondelete cascade: grants are removed one by one before their credential goes.
    credential_id = Column(Integer, ForeignKey("credentials.id"), nullable=False, index=True)
    owner_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipient_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    access_token = Column(String(64), nullable=False, unique=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    accepted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    credential = relationship("Credential", back_populates="sharings")
    owner = relationship("User", foreign_keys=[owner_id])
    recipient = relationship("User", foreign_keys=[recipient_id])

    __table_args__ = (
        Index("ix_sharings_owner_expires", "owner_id", "expires_at"),
        Index("ix_sharings_recipient_expires", "recipient_id", "expires_at"),
    )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return as_utc(self.expires_at) > now

    def __repr__(self):
        return (
            f"<Sharing(id={self.id}, credential_id={self.credential_id}, "
            f"owner_id={self.owner_id}, recipient_id={self.recipient_id}, accepted={self.accepted})>"
        )
