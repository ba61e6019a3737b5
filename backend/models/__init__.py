from .activity_log import ActivityLog
from .credential import Credential
from .sharing import Sharing
from .user import Role, User

__all__ = [
    "ActivityLog",
    "Credential",
    "Role",
    "Sharing",
    "User",
]
