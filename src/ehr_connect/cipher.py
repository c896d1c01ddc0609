"""Authenticated encryption for OAuth secrets at rest.

Secrets are sealed with AES-256-GCM. Every call draws a fresh 12-byte
nonce, which travels in front of the ciphertext inside a single base64
blob, so :meth:`Cipher.open` only needs the key:

    blob = base64( nonce[12] || ciphertext || tag[16] )

Local development without a key is supported through a clearly tagged
fallback (``UNENCRYPTED:`` + base64). It is refused outright when the app
runs with ``APP_ENV=production``.

Usage:
    cipher = Cipher(key=generate_key())
    blob = cipher.seal("access-token")
    cipher.open(blob)  # "access-token"
"""

from __future__ import annotations

import base64
import binascii
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ehr_connect.config import EHR_ENCRYPTION_KEY, IS_PRODUCTION
from ehr_connect.errors import ConfigurationError, DecryptionError

logger = logging.getLogger(__name__)

NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

# Marks the reversible development encoding so open() can tell it apart
# from real ciphertext (base64 never contains a colon).
FALLBACK_PREFIX = "UNENCRYPTED:"


def generate_key() -> str:
    """Return a new random 256-bit key, base64 encoded."""
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


def _decode_key(key: str) -> bytes:
    try:
        raw = base64.b64decode(key, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError("Encryption key is not valid base64") from exc
    if len(raw) != KEY_SIZE:
        raise ConfigurationError(
            f"Encryption key must be {KEY_SIZE} bytes, got {len(raw)}"
        )
    return raw


class Cipher:
    """Seal and open opaque secrets with a single symmetric key.

    Attributes:
        production: When True, the unencrypted fallback is never used.
    """

    def __init__(
        self,
        key: str | None = EHR_ENCRYPTION_KEY,
        production: bool = IS_PRODUCTION,
    ) -> None:
        self.production = production
        self._aead = AESGCM(_decode_key(key)) if key else None

    @property
    def is_configured(self) -> bool:
        return self._aead is not None

    def seal(self, plaintext: str) -> str:
        """Encrypt *plaintext* and return a self-describing base64 blob.

        Raises:
            ConfigurationError: If no key is configured in production.
        """
        if self._aead is None:
            if self.production:
                raise ConfigurationError(
                    "EHR_ENCRYPTION_KEY is required in production"
                )
            logger.warning(
                "No encryption key configured; storing secret with the "
                "development fallback (NOT SECURE)"
            )
            encoded = base64.b64encode(plaintext.encode("utf-8")).decode("ascii")
            return FALLBACK_PREFIX + encoded

        nonce = os.urandom(NONCE_SIZE)
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        return base64.b64encode(nonce + sealed).decode("ascii")

    def open(self, blob: str) -> str:
        """Decrypt a blob produced by :meth:`seal`.

        Raises:
            DecryptionError: On a bad tag, truncated input or wrong key, or
                when a fallback blob is presented in production.
            ConfigurationError: If a real blob arrives but no key is set.
        """
        if blob.startswith(FALLBACK_PREFIX):
            if self.production:
                raise DecryptionError(
                    "Refusing to open an unencrypted secret in production"
                )
            try:
                raw = base64.b64decode(blob[len(FALLBACK_PREFIX):], validate=True)
                return raw.decode("utf-8")
            except (binascii.Error, ValueError) as exc:
                raise DecryptionError("Fallback secret is corrupt") from exc

        if self._aead is None:
            raise ConfigurationError("No encryption key available for decryption")

        try:
            combined = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise DecryptionError("Sealed secret is not valid base64") from exc

        if len(combined) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Sealed secret is truncated")

        nonce, sealed = combined[:NONCE_SIZE], combined[NONCE_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, sealed, None)
        except InvalidTag as exc:
            raise DecryptionError(
                "Sealed secret failed authentication (tampered or wrong key)"
            ) from exc
        return plaintext.decode("utf-8")
