"""Authentication service: password hashing, login/registration and session token flows."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.low_level import Type
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.database import get_db
from models.activity_log import ActivityLog
from models.user import Role, User
from services.audit import ActivityLogService
from services.exceptions import (
    InvalidCredentials,
    InvalidRefreshToken,
    TokenExpired,
    TokenRevoked,
    UsernameTaken,
)
from services.tokens import (
    REASON_EXPIRED,
    REASON_REVOKED,
    TokenManager,
    TokenValidation,
    get_token_manager,
)

security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)

ph = PasswordHasher(time_cost=2, memory_cost=51200, parallelism=2, hash_len=32, salt_len=16, type=Type.ID)


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return ph.verify(password_hash, password)
    except (VerificationError, InvalidHashError):
        return False


@lru_cache()
def _dummy_password_hash() -> str:
    """Hash checked for unknown usernames so both login failures cost the same."""
    return ph.hash("credential-vault-dummy-password")


@dataclass
class TokenPair:
    """Represents a pair of access and refresh tokens."""
    access_token: str
    refresh_token: str
    access_token_expires_at: datetime
    expires_in: int
    user: User


class AuthService:
    """Register/login/refresh/logout on top of the TokenManager."""

    def __init__(self, db: AsyncSession, tokens: TokenManager):
        self.db = db
        self.tokens = tokens
        self.audit = ActivityLogService(db)

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def _issue_pair(self, user: User, refresh_token: Optional[str] = None) -> TokenPair:
        access = self.tokens.signer.issue(user.username, user.id, user.roles)
        if refresh_token is None:
            refresh_token = await self.tokens.refresh_tokens.issue(user.username)
        return TokenPair(
            access_token=access.token,
            refresh_token=refresh_token,
            access_token_expires_at=access.expires_at,
            expires_in=access.expires_in,
            user=user,
        )

    async def register(
        self, username: str, password: str, ip_address: Optional[str] = None
    ) -> TokenPair:
        """
        Create a USER account and sign it in.

        Raises:
            UsernameTaken: the username already exists.
        """
        if await self.get_by_username(username) is not None:
            raise UsernameTaken()

        user = User(username=username, password_hash=hash_password(password), role=Role.USER)
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError as e:
            # Lost a race with a concurrent registration of the same name
            await self.db.rollback()
            raise UsernameTaken() from e
        await self.db.refresh(user)

        await self.audit.log(
            action=ActivityLog.ACTION_REGISTER,
            user_id=user.id,
            description="Account created",
            ip_address=ip_address,
        )
        logger.info("Registered user %s", user.id)
        return await self._issue_pair(user)

    async def login(
        self, username: str, password: str, ip_address: Optional[str] = None
    ) -> TokenPair:
        """
        Check the primary password and issue a token pair.

        Raises:
            InvalidCredentials: unknown user or wrong password (indistinguishable).
        """
        user = await self.get_by_username(username)
        if user is None:
            verify_password(password, _dummy_password_hash())
            await self.audit.log(
                action=ActivityLog.ACTION_FAILED_LOGIN,
                description="Unknown username",
                ip_address=ip_address,
                success=False,
            )
            raise InvalidCredentials()

        if not verify_password(password, user.password_hash):
            await self.audit.log(
                action=ActivityLog.ACTION_FAILED_LOGIN,
                user_id=user.id,
                description="Wrong password",
                ip_address=ip_address,
                success=False,
            )
            raise InvalidCredentials()

        user.last_login = datetime.now(timezone.utc)
        await self.audit.log(
            action=ActivityLog.ACTION_LOGIN,
            user_id=user.id,
            ip_address=ip_address,
        )
        await self.db.flush()
        return await self._issue_pair(user)

    async def refresh(self, refresh_token: str, ip_address: Optional[str] = None) -> TokenPair:
        """
        Rotate a refresh token and issue a new access token.

        Raises:
            InvalidRefreshToken: unknown, expired or already consumed token,
                or its user no longer exists.
        """
        rotated = await self.tokens.refresh_tokens.rotate(refresh_token)
        user = await self.get_by_username(rotated.username)
        if user is None:
            await self.tokens.refresh_tokens.invalidate(rotated.refresh_token)
            raise InvalidRefreshToken()

        await self.audit.log(
            action=ActivityLog.ACTION_TOKEN_REFRESH,
            user_id=user.id,
            ip_address=ip_address,
        )
        return await self._issue_pair(user, refresh_token=rotated.refresh_token)

    async def validate(self, token: str) -> TokenValidation:
        return await self.tokens.verify(token)

    async def logout(
        self,
        refresh_token: Optional[str],
        access_token: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """
        End a session. Idempotent: unknown tokens are ignored.

        The refresh token is invalidated; a presented access token is
        revoked for the rest of its lifetime.
        """
        username = None
        if refresh_token:
            username = await self.tokens.refresh_tokens.lookup(refresh_token)
            await self.tokens.refresh_tokens.invalidate(refresh_token)

        if access_token:
            validation = await self.tokens.verify(access_token)
            if validation.valid:
                username = username or validation.subject
                await self.tokens.revoke_access_token(access_token)

        if username:
            user = await self.get_by_username(username)
            if user is not None:
                await self.audit.log(
                    action=ActivityLog.ACTION_LOGOUT,
                    user_id=user.id,
                    ip_address=ip_address,
                )


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
) -> AuthService:
    return AuthService(db, tokens)


def get_client_info(request: Request) -> tuple[str, str]:
    """Extract client IP and User-Agent from request."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        ip_address = forwarded_for.split(",")[0].strip()
    else:
        real_ip = request.headers.get("X-Real-IP")
        if real_ip:
            ip_address = real_ip.strip()
        elif request.client:
            ip_address = request.client.host
        else:
            ip_address = "unknown"

    user_agent = request.headers.get("User-Agent", "unknown")

    return ip_address, user_agent


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Dependency returning the raw bearer token, if any."""
    if credentials is None:
        return None
    token = credentials.credentials.strip()
    return token or None


async def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    db: AsyncSession = Depends(get_db),
    tokens: TokenManager = Depends(get_token_manager),
) -> User:
    """Dependency to get current authenticated user from the bearer token."""
    if token is None:
        raise InvalidCredentials("Not authenticated")

    validation = await tokens.verify(token)
    if not validation.valid:
        if validation.reason == REASON_REVOKED:
            raise TokenRevoked()
        if validation.reason == REASON_EXPIRED:
            raise TokenExpired()
        raise InvalidCredentials("Could not validate credentials")

    user = await db.get(User, validation.user_id)
    if user is None or user.username != validation.subject:
        raise InvalidCredentials("Could not validate credentials")

    return user
