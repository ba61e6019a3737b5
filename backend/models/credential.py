from db.database import Base
from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


class Credential(Base):
    """
    A stored account credential.

    The secret itself lives only in `encrypted_secret`, produced by the
    SecretCipher. Everything else is metadata the owner may list freely.
    """

    __tablename__ = "credentials"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_name = Column(String(200), nullable=False)
    service_url = Column(String(500), nullable=True)
    notes = Column(Text, nullable=True)
    encrypted_secret = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    owner = relationship("User", back_populates="credentials")
    # No ORM cascade here: grants must be removed explicitly (and audited)
    # before the credential is deleted.
    sharings = relationship("Sharing", back_populates="credential", passive_deletes="all")

    __table_args__ = (Index("ix_credentials_user_account", "user_id", "account_name"),)

    def __repr__(self):
        return f"<Credential(id={self.id}, user_id={self.user_id}, account_name='{self.account_name}')>"
