"""
Reversible encryption of stored credential secrets.

AES-256-GCM with a key derived from ENCRYPTION_KEY via HKDF-SHA256.
Stored format: urlsafe base64 of [nonce 12B][ciphertext + GCM tag 16B].

Never log plaintext or ciphertext values.
"""

import base64
import binascii
import logging
import os
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from config import get_settings
from services.exceptions import DecryptionError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16
KEY_LENGTH = 32  # AES-256
KEY_CONTEXT = "credential-secret-v1"


def derive_key(seed: bytes, context: str = KEY_CONTEXT) -> bytes:
    """Derive a 32-byte AES key from arbitrary-length key material using HKDF-SHA256."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


class SecretCipher:
    """Encrypts and decrypts credential secrets with a single server-held key."""

    def __init__(self, key_material: str):
        if not key_material:
            raise ValueError("Encryption key material must not be empty")
        self._aead = AESGCM(derive_key(key_material.encode("utf-8")))

    def encrypt(self, plaintext: str) -> str:
        nonce = os.urandom(NONCE_SIZE)
        ct = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.urlsafe_b64encode(nonce + ct).decode("ascii")

    def decrypt(self, ciphertext: str) -> str:
        """
        Decrypt a value produced by encrypt().

        Raises:
            DecryptionError: malformed, truncated or tampered input.
                No partial output is ever returned.
        """
        try:
            raw = base64.urlsafe_b64decode(ciphertext.encode("ascii"))
        except (binascii.Error, ValueError, UnicodeEncodeError, AttributeError) as e:
            raise DecryptionError() from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError()

        try:
            plaintext = self._aead.decrypt(raw[:NONCE_SIZE], raw[NONCE_SIZE:], None)
        except InvalidTag as e:
            logger.warning("Rejected stored secret: authentication tag mismatch")
            raise DecryptionError() from e

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecryptionError() from e


@lru_cache()
def get_secret_cipher() -> SecretCipher:
    """Get the process-wide cipher built from settings (cached)."""
    return SecretCipher(get_settings().ENCRYPTION_KEY)
