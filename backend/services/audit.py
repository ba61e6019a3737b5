"""Activity log writer."""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.activity_log import ActivityLog

logger = logging.getLogger(__name__)


class ActivityLogService:
    """Records security-relevant actions in the activity log."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def log(
        self,
        action: str,
        user_id: Optional[int] = None,
        description: Optional[str] = None,
        ip_address: Optional[str] = None,
        success: bool = True,
    ) -> ActivityLog:
        """Log an action. The caller owns the transaction."""
        log_entry = ActivityLog(
            user_id=user_id,
            action=action,
            description=description[:1000] if description else None,
            ip_address=ip_address[:45] if ip_address else None,
            success=success,
        )
        self.db.add(log_entry)
        await self.db.flush()
        return log_entry

    async def list_for_user(self, user_id: int, limit: int = 50) -> list[ActivityLog]:
        result = await self.db.execute(
            select(ActivityLog)
            .where(ActivityLog.user_id == user_id)
            .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
