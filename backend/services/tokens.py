"""Session token issuance/verification and the Token Manager that owns the token stores."""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from fastapi import Request
from jose import JWTError, jwt

from config import Settings
from services.refresh_tokens import RefreshTokenStore
from services.revocation import RevocationList
from services.token_store import Clock, create_backend

logger = logging.getLogger(__name__)

REASON_REVOKED = "revoked"
REASON_INVALID = "invalid"
REASON_EXPIRED = "expired"


@dataclass
class IssuedToken:
    """A freshly signed access token."""
    token: str
    expires_at: datetime
    expires_in: int


@dataclass
class TokenValidation:
    """Outcome of verifying an access token. Fails closed: valid is False unless every check passed."""
    valid: bool
    subject: Optional[str] = None
    user_id: Optional[int] = None
    roles: List[str] = field(default_factory=list)
    expires_in: int = 0
    reason: Optional[str] = None


class TokenSigner:
    """
    Signs and verifies short-lived HS256 access tokens.

    Expiry is checked against the injected clock rather than inside jose,
    so the same clock drives issuance, verification and revocation TTLs.
    """

    def __init__(
        self,
        secret_key: str,
        revocations: RevocationList,
        algorithm: str = "HS256",
        lifetime_seconds: int = 30 * 60,
        issuer: str = "credential-vault",
        audience: str = "credential-vault-users",
        clock: Clock = time.time,
    ):
        self._secret_key = secret_key
        self._revocations = revocations
        self._algorithm = algorithm
        self._lifetime = lifetime_seconds
        self._issuer = issuer
        self._audience = audience
        self._clock = clock

    def issue(self, username: str, user_id: int, roles: List[str]) -> IssuedToken:
        now = int(self._clock())
        expire = now + self._lifetime
        to_encode = {
            "sub": username,
            "uid": user_id,
            "roles": list(roles),
            "iat": now,
            "exp": expire,
            "iss": self._issuer,
            "aud": self._audience,
            "jti": str(uuid4()),
            "type": "access",
        }
        encoded_jwt = jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)
        return IssuedToken(
            token=encoded_jwt,
            expires_at=datetime.fromtimestamp(expire, tz=timezone.utc),
            expires_in=self._lifetime,
        )

    def _decode(self, token: str) -> Optional[dict]:
        """Check signature, issuer, audience and type. Expiry is left to the caller."""
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[self._algorithm],
                audience=self._audience,
                issuer=self._issuer,
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        if payload.get("type") != "access":
            return None
        if not isinstance(payload.get("exp"), (int, float)):
            return None
        return payload

    async def verify(self, token: str) -> TokenValidation:
        """
        Verify an access token.

        The revocation list is consulted before the signature, so a revoked
        token is rejected even when it is otherwise well-formed and unexpired.
        """
        if not token:
            return TokenValidation(valid=False, reason=REASON_INVALID)

        if await self._revocations.is_revoked(token):
            return TokenValidation(valid=False, reason=REASON_REVOKED)

        payload = self._decode(token)
        if payload is None:
            return TokenValidation(valid=False, reason=REASON_INVALID)

        subject = payload.get("sub")
        user_id = payload.get("uid")
        if not subject or not isinstance(user_id, int):
            return TokenValidation(valid=False, reason=REASON_INVALID)

        remaining = int(payload["exp"] - self._clock())
        if remaining <= 0:
            return TokenValidation(valid=False, subject=subject, user_id=user_id, reason=REASON_EXPIRED)

        roles = payload.get("roles") or []
        return TokenValidation(
            valid=True,
            subject=subject,
            user_id=user_id,
            roles=[str(r) for r in roles],
            expires_in=remaining,
        )

    def remaining_ttl(self, token: str) -> int:
        """Seconds left on a correctly signed token; 0 when expired or unverifiable."""
        payload = self._decode(token)
        if payload is None:
            return 0
        return max(0, int(payload["exp"] - self._clock()))


class TokenManager:
    """
    Owns the signer, the refresh store, the revocation list and the periodic sweep.

    Created by the application lifespan and kept on app.state; routes reach
    it through the get_token_manager dependency.
    """

    def __init__(
        self,
        signer: TokenSigner,
        refresh_tokens: RefreshTokenStore,
        revocations: RevocationList,
        sweep_interval_seconds: float = 900,
    ):
        self.signer = signer
        self.refresh_tokens = refresh_tokens
        self.revocations = revocations
        self.sweep_interval_seconds = sweep_interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.time) -> "TokenManager":
        revocations = RevocationList(
            create_backend("revoked-token", settings.REDIS_URL, clock=clock), clock=clock
        )
        refresh_tokens = RefreshTokenStore(
            create_backend("refresh-token", settings.REDIS_URL, clock=clock),
            lifetime_seconds=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
            clock=clock,
        )
        signer = TokenSigner(
            secret_key=settings.SECRET_KEY,
            revocations=revocations,
            algorithm=settings.ALGORITHM,
            lifetime_seconds=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            issuer=settings.JWT_ISSUER,
            audience=settings.JWT_AUDIENCE,
            clock=clock,
        )
        return cls(
            signer,
            refresh_tokens,
            revocations,
            sweep_interval_seconds=settings.REVOCATION_SWEEP_INTERVAL_SECONDS,
        )

    async def verify(self, token: str) -> TokenValidation:
        return await self.signer.verify(token)

    async def revoke_access_token(self, token: str) -> int:
        """Revoke token for whatever lifetime it has left. Returns that TTL in seconds."""
        ttl = self.signer.remaining_ttl(token)
        await self.revocations.revoke(token, ttl)
        return ttl

    async def sweep(self) -> tuple[int, int]:
        """Run one cleanup pass. Returns (refresh entries removed, revocation entries removed)."""
        refresh_count = await self.refresh_tokens.purge_expired()
        revoked_count = await self.revocations.purge_expired()
        return refresh_count, revoked_count

    async def _periodic_sweep(self):
        """Background task to periodically drop expired token entries."""
        while True:
            try:
                await asyncio.sleep(self.sweep_interval_seconds)
                refresh_count, revoked_count = await self.sweep()
                if refresh_count > 0 or revoked_count > 0:
                    logger.info(
                        f"Token sweep completed: {refresh_count} expired refresh tokens, "
                        f"{revoked_count} expired revocation entries removed"
                    )
            except asyncio.CancelledError:
                logger.info("Token sweep task cancelled")
                break
            except Exception as e:
                logger.error(f"Error in token sweep task: {e}")
                # Continue running despite errors

    async def start(self) -> None:
        """Start the periodic sweep task."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._periodic_sweep())
            logger.debug("Started periodic token sweep task")

    async def stop(self) -> None:
        """Stop the sweep task and release the store backends."""
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            logger.debug("Stopped periodic token sweep task")
        self._sweep_task = None
        await self.refresh_tokens.close()
        await self.revocations.close()

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()


def get_token_manager(request: Request) -> TokenManager:
    """Dependency returning the TokenManager created at startup."""
    return request.app.state.token_manager
