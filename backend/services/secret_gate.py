"""
Secret access gate.

A second factor (the user's PIN) must be presented before any stored
secret is decrypted, and before sharing operations. PINs are never stored
or logged in plaintext: the user row keeps an HMAC-SHA256 digest keyed
with SECRET_KEY, compared in constant time.

There is deliberately no attempt counter here; see DESIGN.md.
"""

import hashlib
import hmac
import logging
from typing import Optional

from fastapi import Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from db.database import get_db
from models.activity_log import ActivityLog
from models.credential import Credential
from models.user import User
from services.audit import ActivityLogService
from services.auth import verify_password
from services.cipher import SecretCipher, get_secret_cipher
from services.exceptions import (
    InvalidCredentials,
    InvalidPin,
    InvalidPinFormat,
    MissingPin,
    NotFound,
    PinNotConfigured,
)

logger = logging.getLogger(__name__)

PIN_MIN_LENGTH = 4
PIN_MAX_LENGTH = 6

# Shared by "does not exist" and "belongs to someone else"
CREDENTIAL_NOT_FOUND = "Credential not found"


def hash_pin(pin: str, key: str) -> str:
    """Keyed digest of a PIN, suitable for storage."""
    return hmac.new(key.encode("utf-8"), pin.encode("utf-8"), hashlib.sha256).hexdigest()


def _constant_time_compare(a: str, b: str) -> bool:
    """
    Constant-time string comparison to prevent timing attacks.
    Uses hmac.compare_digest for cryptographically secure comparison.
    """
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def is_valid_pin_format(pin: Optional[str]) -> bool:
    return (
        pin is not None
        and PIN_MIN_LENGTH <= len(pin) <= PIN_MAX_LENGTH
        and pin.isascii()
        and pin.isdigit()
    )


class SecretAccessGate:
    """Validates a user's PIN and, on success, decrypts their stored secret."""

    def __init__(self, db: AsyncSession, cipher: SecretCipher, pin_key: str):
        self.db = db
        self.cipher = cipher
        self.pin_key = pin_key
        self.audit = ActivityLogService(db)

    def verify_pin(self, user: User, supplied_pin: Optional[str]) -> None:
        """
        Check supplied_pin against the user's PIN.

        Raises, in this order:
            MissingPin: no PIN supplied.
            PinNotConfigured: the user has never set a PIN.
            InvalidPin: the PIN does not match.
        """
        if not supplied_pin:
            raise MissingPin()
        if not user.pin_hash:
            raise PinNotConfigured()
        if not _constant_time_compare(hash_pin(supplied_pin, self.pin_key), user.pin_hash):
            logger.warning("PIN verification failed for user %s", user.id)
            raise InvalidPin()

    async def reveal(
        self,
        user: User,
        credential_id: int,
        supplied_pin: Optional[str],
        ip_address: Optional[str] = None,
    ) -> str:
        """
        Return the plaintext secret of one of the user's own credentials.

        Raises:
            MissingPin, PinNotConfigured, InvalidPin: see verify_pin().
            NotFound: the credential does not exist or is not the user's.
            DecryptionError: the stored blob is corrupt.
        """
        self.verify_pin(user, supplied_pin)

        result = await self.db.execute(
            select(Credential).where(
                Credential.id == credential_id,
                Credential.user_id == user.id,
            )
        )
        credential = result.scalar_one_or_none()
        if credential is None:
            raise NotFound(CREDENTIAL_NOT_FOUND)

        plaintext = self.cipher.decrypt(credential.encrypted_secret)

        await self.audit.log(
            action=ActivityLog.ACTION_REVEAL,
            user_id=user.id,
            description=f"Viewed password for {credential.account_name}",
            ip_address=ip_address,
        )
        return plaintext

    async def set_pin(
        self,
        user: User,
        new_pin: str,
        password: str,
        ip_address: Optional[str] = None,
    ) -> None:
        """
        Set or replace the user's PIN after re-checking their primary password.

        Raises:
            InvalidCredentials: wrong password.
            InvalidPinFormat: PIN is not 4 to 6 digits.
        """
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid password")
        if not is_valid_pin_format(new_pin):
            raise InvalidPinFormat()

        had_pin = user.has_pin
        user.pin_hash = hash_pin(new_pin, self.pin_key)
        await self.audit.log(
            action=ActivityLog.ACTION_SET_PIN,
            user_id=user.id,
            description="PIN updated" if had_pin else "PIN set",
            ip_address=ip_address,
        )
        await self.db.flush()


def get_secret_gate(db: AsyncSession = Depends(get_db)) -> SecretAccessGate:
    return SecretAccessGate(db, get_secret_cipher(), get_settings().SECRET_KEY)
