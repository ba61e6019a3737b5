"""Refresh token store with single-use rotation."""

import hashlib
import logging
import secrets
import time
from dataclasses import dataclass

from services.exceptions import InvalidRefreshToken
from services.token_store import Clock, TokenStoreBackend

logger = logging.getLogger(__name__)


def _hash_token(token: str) -> str:
    """Create SHA-256 hash of token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


@dataclass
class RotatedRefreshToken:
    """Result of a successful rotation."""
    username: str
    refresh_token: str


class RefreshTokenStore:
    """
    Maps opaque refresh tokens to the username they were issued for.

    Tokens are single-use: rotate() consumes the presented token and issues
    a replacement, so a replayed token fails.
    """

    def __init__(self, backend: TokenStoreBackend, lifetime_seconds: float, clock: Clock = time.time):
        self._backend = backend
        self._lifetime = lifetime_seconds
        self._clock = clock

    async def issue(self, username: str) -> str:
        token = secrets.token_urlsafe(48)
        await self._backend.put(_hash_token(token), username, self._clock() + self._lifetime)
        return token

    async def rotate(self, old_token: str) -> RotatedRefreshToken:
        """
        Consume old_token and issue a new one for the same user.

        Raises:
            InvalidRefreshToken: unknown, expired or already used.
        """
        if not old_token:
            raise InvalidRefreshToken()
        entry = await self._backend.pop(_hash_token(old_token))
        if entry is None:
            logger.warning("Refresh rejected: unknown, expired or reused token")
            raise InvalidRefreshToken()
        new_token = await self.issue(entry.value)
        return RotatedRefreshToken(username=entry.value, refresh_token=new_token)

    async def lookup(self, token: str) -> str | None:
        """Return the username for a live token without consuming it."""
        entry = await self._backend.get(_hash_token(token))
        return entry.value if entry is not None else None

    async def invalidate(self, token: str) -> None:
        """Remove token. Unknown tokens are ignored."""
        if token:
            await self._backend.delete(_hash_token(token))

    async def purge_expired(self) -> int:
        return await self._backend.purge_expired()

    async def close(self) -> None:
        await self._backend.close()
