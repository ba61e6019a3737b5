import enum

from db.database import Base
from sqlalchemy import Column, DateTime, Enum, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func


class Role(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), nullable=False, unique=True, index=True)
    # SECURITY: argon2id hash of the primary password. The password itself is never stored.
    password_hash = Column(String(255), nullable=False)
    role = Column(Enum(Role), nullable=False, default=Role.USER)
    # SECURITY: keyed HMAC-SHA256 digest of the secondary PIN (see services/secret_gate.py).
    # NULL means the user has not set a PIN yet and cannot reveal or share secrets.
    pin_hash = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    credentials = relationship(
        "Credential", back_populates="owner", cascade="all, delete-orphan"
    )
    activity_logs = relationship("ActivityLog", back_populates="user")

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role={self.role})>"

    @property
    def has_pin(self) -> bool:
        return bool(self.pin_hash)

    @property
    def roles(self) -> list[str]:
        role = self.role.value if isinstance(self.role, Role) else str(self.role or Role.USER.value)
        return [role]
