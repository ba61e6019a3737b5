"""Revocation list for access tokens that must stop working before they expire."""

import hashlib
import logging
import time

from services.token_store import Clock, TokenStoreBackend

logger = logging.getLogger(__name__)


def _hash_token(token: str) -> str:
    """Create SHA-256 hash of token for storage."""
    return hashlib.sha256(token.encode()).hexdigest()


class RevocationList:
    """
    Revoked access tokens, each kept only until the token would have expired anyway.

    An entry is authoritative until its expiry; after that it is treated as
    absent and removed either lazily (on lookup) or by the periodic sweep.
    """

    def __init__(self, backend: TokenStoreBackend, clock: Clock = time.time):
        self._backend = backend
        self._clock = clock

    async def revoke(self, token: str, ttl_seconds: float) -> None:
        """Revoke token for ttl_seconds. A non-positive ttl is a no-op."""
        if ttl_seconds <= 0:
            return
        expires_at = self._clock() + ttl_seconds
        await self._backend.put(_hash_token(token), str(expires_at), expires_at)
        logger.debug("Access token revoked for %.0f seconds", ttl_seconds)

    async def is_revoked(self, token: str) -> bool:
        return await self._backend.get(_hash_token(token)) is not None

    async def purge_expired(self) -> int:
        return await self._backend.purge_expired()

    async def close(self) -> None:
        await self._backend.close()
