"""Credential routes. Secrets only leave the server through the PIN-gated reveal endpoint."""

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.user import User
from schemas.credential import (
    CredentialCreate,
    CredentialDeleteResponse,
    CredentialResponse,
    RevealRequest,
    RevealResponse,
)
from schemas.sharing import SharingResponse
from services.auth import get_client_info, get_current_user
from services.credentials import CredentialService, get_credential_service
from services.secret_gate import SecretAccessGate, get_secret_gate

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.post("", response_model=CredentialResponse, status_code=status.HTTP_201_CREATED)
async def create_credential(
    data: CredentialCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    ip_address, _ = get_client_info(request)
    credential = await credentials.create(
        current_user,
        account_name=data.account_name,
        password=data.password,
        service_url=data.service_url,
        notes=data.notes,
        ip_address=ip_address,
    )
    await db.commit()
    response = CredentialResponse.model_validate(credential)
    response.is_shared = False
    return response


@router.get("", response_model=list[CredentialResponse])
async def list_credentials(
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    summaries = await credentials.list_for_owner(current_user)
    out = []
    for summary in summaries:
        item = CredentialResponse.model_validate(summary.credential)
        item.is_shared = summary.is_shared
        out.append(item)
    return out


@router.post("/{credential_id}/reveal", response_model=RevealResponse)
async def reveal_secret(
    credential_id: int,
    data: RevealRequest,
    request: Request,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gate: SecretAccessGate = Depends(get_secret_gate),
):
    """Decrypt and return the stored password. Requires the caller's PIN."""
    ip_address, _ = get_client_info(request)
    password = await gate.reveal(current_user, credential_id, data.pin, ip_address=ip_address)
    await db.commit()
    return RevealResponse(id=credential_id, password=password)


@router.get("/{credential_id}/shares", response_model=list[SharingResponse])
async def list_credential_shares(
    credential_id: int,
    current_user: User = Depends(get_current_user),
    credentials: CredentialService = Depends(get_credential_service),
):
    """Active grants of one of the caller's credentials."""
    credential = await credentials.get_owned(current_user, credential_id)
    sharings = await credentials.sharing.list_by_credential(credential.id, active_only=True)
    return [SharingResponse.from_sharing(s) for s in sharings]


@router.delete("/{credential_id}", response_model=CredentialDeleteResponse)
async def delete_credential(
    credential_id: int,
    request: Request,
    confirm: bool = Query(False, description="Required when the credential is shared"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    credentials: CredentialService = Depends(get_credential_service),
):
    """
    Delete a credential.

    A shared credential is refused with 409 (requires_confirmation) until
    the request is repeated with confirm=true; all its shares are then
    revoked before the credential is removed.
    """
    ip_address, _ = get_client_info(request)
    revoked = await credentials.delete(
        current_user, credential_id, confirm=confirm, ip_address=ip_address
    )
    await db.commit()
    return CredentialDeleteResponse(id=credential_id, revoked_shares=revoked)
