"""Sharing routes: grant, accept, revoke and list credential shares."""

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.user import User
from schemas.sharing import SharingCountResponse, SharingCreate, SharingPinRequest, SharingResponse
from services.auth import get_client_info, get_current_user
from services.sharing import SharingService, get_sharing_service

router = APIRouter(prefix="/sharing", tags=["sharing"])


@router.post("", response_model=SharingResponse, status_code=status.HTTP_201_CREATED)
async def create_sharing(
    data: SharingCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    sharing: SharingService = Depends(get_sharing_service),
):
    """Share one of your credentials with another user. Requires your PIN."""
    ip_address, _ = get_client_info(request)
    grant = await sharing.create(
        current_user,
        credential_id=data.credential_id,
        recipient_id=data.recipient_id,
        pin=data.pin,
        expires_at=data.expires_at,
        ip_address=ip_address,
    )
    await db.commit()
    return SharingResponse.from_sharing(grant)


@router.post("/{sharing_id}/accept", response_model=SharingResponse)
async def accept_sharing(
    sharing_id: int,
    data: SharingPinRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    sharing: SharingService = Depends(get_sharing_service),
):
    ip_address, _ = get_client_info(request)
    grant = await sharing.accept(sharing_id, current_user, data.pin, ip_address=ip_address)
    await db.commit()
    return SharingResponse.from_sharing(grant)


@router.delete("/{sharing_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_sharing(
    sharing_id: int,
    data: SharingPinRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    sharing: SharingService = Depends(get_sharing_service),
):
    """Revoke a share. Owner or recipient only; requires the caller's PIN in the body."""
    ip_address, _ = get_client_info(request)
    await sharing.revoke(sharing_id, current_user, data.pin, ip_address=ip_address)
    await db.commit()


@router.get("/shared-by-me", response_model=list[SharingResponse])
async def shared_by_me(
    current_user: User = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
):
    grants = await sharing.list_by_owner(current_user.id)
    return [SharingResponse.from_sharing(g) for g in grants]


@router.get("/shared-with-me", response_model=list[SharingResponse])
async def shared_with_me(
    current_user: User = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
):
    grants = await sharing.list_by_recipient(current_user.id)
    return [SharingResponse.from_sharing(g) for g in grants]


@router.get("/count", response_model=SharingCountResponse)
async def count_active_shares(
    current_user: User = Depends(get_current_user),
    sharing: SharingService = Depends(get_sharing_service),
):
    return SharingCountResponse(active_shares=await sharing.count_active_by_user(current_user.id))
