"""Credential storage: create, list and delete a user's own credentials."""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models.activity_log import ActivityLog
from models.credential import Credential
from models.user import User
from services.audit import ActivityLogService
from services.cipher import SecretCipher, get_secret_cipher
from services.exceptions import ConfirmationRequired, NotFound
from services.secret_gate import CREDENTIAL_NOT_FOUND
from services.sharing import SharingService, get_sharing_service

logger = logging.getLogger(__name__)


@dataclass
class CredentialSummary:
    """Credential metadata as shown to its owner. Never carries the secret."""
    credential: Credential
    is_shared: bool


class CredentialService:
    def __init__(self, db: AsyncSession, cipher: SecretCipher, sharing: SharingService):
        self.db = db
        self.cipher = cipher
        self.sharing = sharing
        self.audit = ActivityLogService(db)

    async def get_owned(self, owner: User, credential_id: int) -> Credential:
        result = await self.db.execute(
            select(Credential).where(
                Credential.id == credential_id,
                Credential.user_id == owner.id,
            )
        )
        credential = result.scalar_one_or_none()
        if credential is None:
            raise NotFound(CREDENTIAL_NOT_FOUND)
        return credential

    async def create(
        self,
        owner: User,
        account_name: str,
        password: str,
        service_url: Optional[str] = None,
        notes: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Credential:
        credential = Credential(
            user_id=owner.id,
            account_name=account_name,
            service_url=service_url,
            notes=notes,
            encrypted_secret=self.cipher.encrypt(password),
        )
        self.db.add(credential)
        await self.db.flush()
        await self.db.refresh(credential)

        await self.audit.log(
            action=ActivityLog.ACTION_CREATE,
            user_id=owner.id,
            description=f"Saved credential {account_name}",
            ip_address=ip_address,
        )
        return credential

    async def list_for_owner(self, owner: User) -> list[CredentialSummary]:
        result = await self.db.execute(
            select(Credential)
            .where(Credential.user_id == owner.id)
            .order_by(Credential.account_name, Credential.id)
        )
        credentials = list(result.scalars().all())
        shared_ids = await self.sharing.shared_credential_ids([c.id for c in credentials])
        return [CredentialSummary(credential=c, is_shared=c.id in shared_ids) for c in credentials]

    async def delete(
        self,
        owner: User,
        credential_id: int,
        confirm: bool = False,
        ip_address: Optional[str] = None,
    ) -> int:
        """
        Delete one of owner's credentials.

        A credential with active grants is only deleted when confirm is set;
        every grant (active or expired) is then removed and logged one by one
        before the credential row goes.

        Returns:
            Number of grants removed.

        Raises:
            NotFound: credential missing or not owned.
            ConfirmationRequired: credential is shared and confirm is not set.
        """
        credential = await self.get_owned(owner, credential_id)

        if await self.sharing.is_shared(credential.id) and not confirm:
            active = await self.sharing.list_by_credential(credential.id, active_only=True)
            raise ConfirmationRequired(share_count=len(active))

        grants = await self.sharing.list_by_credential(credential.id)
        for grant in grants:
            await self.sharing.remove(grant, actor_id=owner.id, ip_address=ip_address)

        account_name = credential.account_name
        await self.db.delete(credential)
        await self.db.flush()

        await self.audit.log(
            action=ActivityLog.ACTION_DELETE,
            user_id=owner.id,
            description=(
                f"Deleted credential {account_name}"
                + (f" and revoked {len(grants)} sharing(s)" if grants else "")
            ),
            ip_address=ip_address,
        )
        logger.info("Credential %s deleted by user %s", credential_id, owner.id)
        return len(grants)


def get_credential_service(
    sharing: SharingService = Depends(get_sharing_service),
) -> CredentialService:
    return CredentialService(sharing.db, get_secret_cipher(), sharing)
