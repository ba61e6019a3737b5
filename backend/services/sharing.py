"""
Sharing lifecycle: creating, accepting, listing and revoking credential grants.

A grant moves Pending -> Accepted, and from either state it can end by
revocation (hard delete) or by expiry. It never goes back to Pending.

Deleting a credential that has grants follows a two-step protocol driven
by services/credentials.py: is_shared() first, then, once the owner has
confirmed, every grant is removed through remove() before the credential.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from config import get_settings
from db.database import get_db
from models.activity_log import ActivityLog
from models.credential import Credential
from models.sharing import Sharing, as_utc
from models.user import User
from services.audit import ActivityLogService
from services.exceptions import (
    AlreadyAccepted,
    InvalidShareExpiration,
    NotAuthorized,
    NotFound,
    SelfShareRejected,
)
from services.secret_gate import CREDENTIAL_NOT_FOUND, SecretAccessGate, get_secret_gate

logger = logging.getLogger(__name__)

SHARING_NOT_FOUND = "Sharing not found"

Now = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SharingService:
    """Create/accept/query/revoke credential grants."""

    def __init__(
        self,
        db: AsyncSession,
        gate: SecretAccessGate,
        default_expiration_days: int = 30,
        now: Now = _utcnow,
    ):
        self.db = db
        self.gate = gate
        self.default_expiration_days = default_expiration_days
        self.now = now
        self.audit = ActivityLogService(db)

    def _with_relations(self, stmt):
        return stmt.options(
            selectinload(Sharing.credential),
            selectinload(Sharing.owner),
            selectinload(Sharing.recipient),
        )

    async def get(self, sharing_id: int) -> Optional[Sharing]:
        result = await self.db.execute(
            self._with_relations(select(Sharing).where(Sharing.id == sharing_id))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        owner: User,
        credential_id: int,
        recipient_id: int,
        pin: Optional[str],
        expires_at: Optional[datetime] = None,
        ip_address: Optional[str] = None,
    ) -> Sharing:
        """
        Grant recipient_id access to one of owner's credentials.

        Raises, in this order:
            SelfShareRejected: recipient is the owner.
            MissingPin, PinNotConfigured, InvalidPin: owner's PIN check.
            NotFound: credential missing or not owned, or recipient missing.
            InvalidShareExpiration: expires_at is not in the future.
        """
        if recipient_id == owner.id:
            raise SelfShareRejected()

        # No decryption happens here; the PIN only authorizes the grant
        self.gate.verify_pin(owner, pin)

        result = await self.db.execute(
            select(Credential).where(
                Credential.id == credential_id,
                Credential.user_id == owner.id,
            )
        )
        credential = result.scalar_one_or_none()
        if credential is None:
            raise NotFound(CREDENTIAL_NOT_FOUND)

        recipient = await self.db.get(User, recipient_id)
        if recipient is None:
            raise NotFound("Recipient user not found")

        now = self.now()
        if expires_at is None:
            expires_at = now + timedelta(days=self.default_expiration_days)
        else:
            # Stored without an offset on SQLite, so always persist UTC
            expires_at = as_utc(expires_at).astimezone(timezone.utc)
            if expires_at <= now:
                raise InvalidShareExpiration()

        sharing = Sharing(
            credential_id=credential.id,
            owner_id=owner.id,
            recipient_id=recipient.id,
            access_token=secrets.token_urlsafe(32),
            expires_at=expires_at,
            accepted=False,
        )
        self.db.add(sharing)
        await self.db.flush()

        await self.audit.log(
            action=ActivityLog.ACTION_SHARE,
            user_id=owner.id,
            description=f"Shared credential {credential.account_name} with {recipient.username}",
            ip_address=ip_address,
        )
        logger.info(
            "Credential %s shared by user %s with user %s", credential.id, owner.id, recipient.id
        )
        return await self.get(sharing.id)

    async def accept(
        self,
        sharing_id: int,
        recipient: User,
        pin: Optional[str],
        ip_address: Optional[str] = None,
    ) -> Sharing:
        """
        Accept a pending grant addressed to recipient.

        Raises, in this order:
            MissingPin, PinNotConfigured, InvalidPin: recipient's PIN check.
            NotFound: grant missing or expired.
            NotAuthorized: grant is addressed to someone else.
            AlreadyAccepted: grant was accepted before.
        """
        self.gate.verify_pin(recipient, pin)

        sharing = await self.get(sharing_id)
        if sharing is None or not sharing.is_active(self.now()):
            raise NotFound(SHARING_NOT_FOUND)
        if sharing.recipient_id != recipient.id:
            raise NotAuthorized("You are not the recipient of this sharing")
        if sharing.accepted:
            raise AlreadyAccepted()

        sharing.accepted = True
        await self.audit.log(
            action=ActivityLog.ACTION_ACCEPT,
            user_id=recipient.id,
            description=f"Accepted shared credential {sharing.credential.account_name}",
            ip_address=ip_address,
        )
        await self.db.flush()
        return sharing

    async def revoke(
        self,
        sharing_id: int,
        requester: User,
        pin: Optional[str],
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Delete a grant. Either side of the grant may do this.

        Raises, in this order:
            MissingPin, PinNotConfigured, InvalidPin: requester's PIN check.
            NotFound: grant missing.
            NotAuthorized: requester is neither owner nor recipient.
        """
        self.gate.verify_pin(requester, pin)

        sharing = await self.get(sharing_id)
        if sharing is None:
            raise NotFound(SHARING_NOT_FOUND)
        if requester.id not in (sharing.owner_id, sharing.recipient_id):
            raise NotAuthorized("You are not allowed to remove this sharing")

        await self.remove(sharing, actor_id=requester.id, ip_address=ip_address)

    async def remove(
        self,
        sharing: Sharing,
        actor_id: int,
        ip_address: Optional[str] = None,
    ) -> None:
        """Hard-delete a grant without a PIN check. The caller has already authorized the actor."""
        account_name = sharing.credential.account_name if sharing.credential else sharing.credential_id
        await self.audit.log(
            action=ActivityLog.ACTION_REVOKE_SHARE,
            user_id=actor_id,
            description=f"Removed sharing of {account_name}",
            ip_address=ip_address,
        )
        await self.db.delete(sharing)
        await self.db.flush()

    async def is_shared(self, credential_id: int) -> bool:
        """True iff the credential has at least one unexpired grant."""
        result = await self.db.execute(
            select(Sharing.id)
            .where(Sharing.credential_id == credential_id, Sharing.expires_at > self.now())
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def shared_credential_ids(self, credential_ids: list[int]) -> set[int]:
        """Subset of credential_ids that currently have an unexpired grant."""
        if not credential_ids:
            return set()
        result = await self.db.execute(
            select(Sharing.credential_id)
            .where(Sharing.credential_id.in_(credential_ids), Sharing.expires_at > self.now())
            .distinct()
        )
        return set(result.scalars().all())

    async def list_by_credential(self, credential_id: int, active_only: bool = False) -> list[Sharing]:
        stmt = select(Sharing).where(Sharing.credential_id == credential_id)
        if active_only:
            stmt = stmt.where(Sharing.expires_at > self.now())
        result = await self.db.execute(self._with_relations(stmt.order_by(Sharing.id)))
        return list(result.scalars().all())

    async def list_by_owner(self, owner_id: int, active_only: bool = True) -> list[Sharing]:
        stmt = select(Sharing).where(Sharing.owner_id == owner_id)
        if active_only:
            stmt = stmt.where(Sharing.expires_at > self.now())
        result = await self.db.execute(self._with_relations(stmt.order_by(Sharing.id)))
        return list(result.scalars().all())

    async def list_by_recipient(self, recipient_id: int, active_only: bool = True) -> list[Sharing]:
        stmt = select(Sharing).where(Sharing.recipient_id == recipient_id)
        if active_only:
            stmt = stmt.where(Sharing.expires_at > self.now())
        result = await self.db.execute(self._with_relations(stmt.order_by(Sharing.id)))
        return list(result.scalars().all())

    async def count_active_by_user(self, owner_id: int) -> int:
        """Number of unexpired grants the user has created."""
        result = await self.db.execute(
            select(func.count(Sharing.id)).where(
                Sharing.owner_id == owner_id,
                Sharing.expires_at > self.now(),
            )
        )
        return result.scalar_one()

    async def find_by_access_token(self, access_token: str) -> Optional[Sharing]:
        result = await self.db.execute(
            self._with_relations(select(Sharing).where(Sharing.access_token == access_token))
        )
        return result.scalar_one_or_none()


def get_sharing_service(
    db: AsyncSession = Depends(get_db),
    gate: SecretAccessGate = Depends(get_secret_gate),
) -> SharingService:
    return SharingService(db, gate, default_expiration_days=get_settings().SHARE_DEFAULT_EXPIRATION_DAYS)
