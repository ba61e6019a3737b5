"""Current-user routes: profile, PIN setup and recent activity."""

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.user import User
from schemas.user import ActivityLogResponse, SetPinRequest, UserResponse
from services.audit import ActivityLogService
from services.auth import get_client_info, get_current_user
from services.secret_gate import SecretAccessGate, get_secret_gate

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.post("/me/pin", response_model=UserResponse)
async def set_pin(
    data: SetPinRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gate: SecretAccessGate = Depends(get_secret_gate),
):
    """
    Set or change the secondary PIN (4 to 6 digits).

    The primary password must be supplied again.
    """
    ip_address, _ = get_client_info(request)
    await gate.set_pin(current_user, data.pin, data.password, ip_address=ip_address)
    await db.commit()
    return UserResponse.model_validate(current_user)


@router.get("/me/activity", response_model=list[ActivityLogResponse])
async def get_recent_activity(
    limit: int = Query(5, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Most recent activity log entries of the current user, newest first."""
    entries = await ActivityLogService(db).list_for_user(current_user.id, limit=limit)
    return [ActivityLogResponse.model_validate(e) for e in entries]
