"""Activity log model for security event tracking."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from db.database import Base


class ActivityLog(Base):
    """
    Stores security-relevant actions for auditing.

    Tracks logins, PIN changes, secret reveals and every step of the
    sharing lifecycle, including each grant removed by a cascading delete.
    """

    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    action = Column(String(50), nullable=False, index=True)
    description = Column(Text, nullable=True)
    ip_address = Column(String(45), nullable=True)  # IPv4 or IPv6
    success = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    # May be null for failed logins against unknown usernames
    user = relationship("User", back_populates="activity_logs")

    __table_args__ = (Index("ix_activity_user_action", "user_id", "action"),)

    # Action constants
    ACTION_REGISTER = "register"
    ACTION_LOGIN = "login"
    ACTION_FAILED_LOGIN = "failed_login"
    ACTION_LOGOUT = "logout"
    ACTION_TOKEN_REFRESH = "token_refresh"
    ACTION_SET_PIN = "set_pin"
    ACTION_REVEAL = "reveal"
    ACTION_CREATE = "create"
    ACTION_DELETE = "delete"
    ACTION_SHARE = "share"
    ACTION_ACCEPT = "accept"
    ACTION_REVOKE_SHARE = "revoke_share"

    def __repr__(self):
        return f"<ActivityLog(id={self.id}, user_id={self.user_id}, action='{self.action}', success={self.success})>"
