"""Authentication routes: registration, login, refresh token rotation, validation and logout."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from schemas.user import (
    LogoutRequest,
    RefreshTokenRequest,
    TokenPairResponse,
    TokenValidationResponse,
    UserLogin,
    UserRegister,
    UserResponse,
    ValidateTokenRequest,
)
from services.auth import AuthService, TokenPair, get_auth_service, get_bearer_token, get_client_info
from services.exceptions import AccessError

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _pair_response(tokens: TokenPair) -> TokenPairResponse:
    return TokenPairResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(tokens.user),
    )


@router.post("/register", response_model=TokenPairResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: UserRegister,
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """Create an account and return a token pair."""
    ip_address, _ = get_client_info(request)
    tokens = await auth.register(data.username, data.password, ip_address=ip_address)
    await db.commit()
    return _pair_response(tokens)


@router.post("/login", response_model=TokenPairResponse)
async def login(
    data: UserLogin,
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Login with username and password.

    Unknown usernames and wrong passwords produce the same 401.
    """
    ip_address, _ = get_client_info(request)
    try:
        tokens = await auth.login(data.username, data.password, ip_address=ip_address)
    except AccessError:
        # Keep the failed_login audit row
        await db.commit()
        raise
    await db.commit()
    return _pair_response(tokens)


@router.post("/refresh", response_model=TokenPairResponse)
async def refresh_tokens(
    body: RefreshTokenRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    Exchange a refresh token for a new token pair.

    Implements token rotation: the presented refresh token is consumed and
    cannot be used again.
    """
    ip_address, _ = get_client_info(request)
    tokens = await auth.refresh(body.refresh_token, ip_address=ip_address)
    await db.commit()
    return _pair_response(tokens)


@router.post("/validate", response_model=TokenValidationResponse)
async def validate_token(
    body: ValidateTokenRequest,
    auth: AuthService = Depends(get_auth_service),
):
    """Report whether an access token is currently accepted, and why not if it isn't."""
    validation = await auth.validate(body.token)
    return TokenValidationResponse(
        valid=validation.valid,
        username=validation.subject if validation.valid else None,
        user_id=validation.user_id if validation.valid else None,
        roles=validation.roles,
        expires_in=validation.expires_in,
        reason=validation.reason,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    body: Optional[LogoutRequest] = None,
    access_token: Optional[str] = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
):
    """
    End the session.

    The refresh token in the body is invalidated and the bearer access
    token, if sent, is revoked until it would have expired. Always 204.
    """
    ip_address, _ = get_client_info(request)
    refresh_token = body.refresh_token if body else None
    await auth.logout(refresh_token, access_token=access_token, ip_address=ip_address)
    await db.commit()
