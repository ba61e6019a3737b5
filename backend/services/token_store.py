"""Key/value storage backends for refresh tokens and revoked access tokens.

Both token stores (services/refresh_tokens.py and services/revocation.py)
sit on top of a TokenStoreBackend. Entries carry an absolute expiry in
epoch seconds; an entry past its expiry is never returned.

NOTES:
- The in-memory backend is lost on restart and is private to one worker
  process. For deployments with several workers set REDIS_URL.
- Keys handed to a backend are already SHA-256 digests of the raw token.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


@dataclass
class StoredEntry:
    """A stored value and its absolute expiry (None when the backend expires keys itself)."""

    value: str
    expires_at: Optional[float] = None


class TokenStoreBackend(ABC):
    """Abstract base class for token storage backends."""

    @abstractmethod
    async def put(self, key: str, value: str, expires_at: float) -> None:
        """Insert or overwrite an entry."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[StoredEntry]:
        """Return the live entry for key, or None. Stale entries are dropped on read."""
        pass

    @abstractmethod
    async def pop(self, key: str) -> Optional[StoredEntry]:
        """Atomically return and remove the live entry for key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove key. Returns True if something was removed."""
        pass

    @abstractmethod
    async def purge_expired(self) -> int:
        """Physically remove every expired entry. Returns the number removed."""
        pass

    async def close(self) -> None:
        """Release backend resources."""
        pass


class InMemoryTokenStoreBackend(TokenStoreBackend):
    """
    Dict-backed store guarded by an asyncio.Lock.

    WARNING - NOT PROCESS-SAFE:
    Each worker process holds its own dict, so a token issued by one
    worker is unknown to another and everything is lost on restart.
    """

    def __init__(self, clock: Clock = time.time):
        self._entries: Dict[str, StoredEntry] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _is_live(self, entry: StoredEntry, now: float) -> bool:
        return entry.expires_at is None or entry.expires_at > now

    async def put(self, key: str, value: str, expires_at: float) -> None:
        async with self._lock:
            self._entries[key] = StoredEntry(value=value, expires_at=expires_at)

    async def get(self, key: str) -> Optional[StoredEntry]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if not self._is_live(entry, self._clock()):
                # Lazy cleanup of a stale entry
                del self._entries[key]
                return None
            return entry

    async def pop(self, key: str) -> Optional[StoredEntry]:
        async with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None or not self._is_live(entry, self._clock()):
                return None
            return entry

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def purge_expired(self) -> int:
        async with self._lock:
            now = self._clock()
            stale = [k for k, e in self._entries.items() if not self._is_live(e, now)]
            for key in stale:
                del self._entries[key]
        return len(stale)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries


class RedisTokenStoreBackend(TokenStoreBackend):
    """
    Redis-based token store for multi-worker deployments.

    Redis expires keys natively (SET ... EXAT), so purge_expired() has
    nothing to do. GETDEL makes pop() atomic across workers.
    """

    def __init__(self, redis_url: str, namespace: str):
        self._redis_url = redis_url
        self._namespace = namespace
        self._redis = None
        self._initialized = False

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    async def _get_redis(self):
        """Lazy initialization of Redis connection."""
        if not self._initialized:
            try:
                import redis.asyncio as redis

                self._redis = redis.from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
                self._initialized = True
                logger.info("Redis token store initialized (namespace=%s)", self._namespace)
            except Exception as e:
                logger.error(f"Failed to connect to Redis: {e}")
                raise
        return self._redis

    async def put(self, key: str, value: str, expires_at: float) -> None:
        redis = await self._get_redis()
        await redis.set(self._key(key), value, exat=max(1, int(expires_at)))

    async def get(self, key: str) -> Optional[StoredEntry]:
        redis = await self._get_redis()
        value = await redis.get(self._key(key))
        return StoredEntry(value=value) if value is not None else None

    async def pop(self, key: str) -> Optional[StoredEntry]:
        redis = await self._get_redis()
        value = await redis.getdel(self._key(key))
        return StoredEntry(value=value) if value is not None else None

    async def delete(self, key: str) -> bool:
        redis = await self._get_redis()
        return bool(await redis.delete(self._key(key)))

    async def purge_expired(self) -> int:
        return 0

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
            self._initialized = False


def create_backend(namespace: str, redis_url: Optional[str] = None, clock: Clock = time.time) -> TokenStoreBackend:
    """Pick Redis when a URL is configured, otherwise process memory."""
    if redis_url:
        logger.info("Using Redis token store backend for %s", namespace)
        return RedisTokenStoreBackend(redis_url, namespace=namespace)
    logger.debug(
        "Using in-memory token store for %s. Tokens will be lost on restart.", namespace
    )
    return InMemoryTokenStoreBackend(clock=clock)
