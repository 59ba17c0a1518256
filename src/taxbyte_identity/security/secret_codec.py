"""
Authenticated encryption for secrets stored at rest.

Envelope layout, base64 encoded as one string:

    nonce (12 bytes) | ciphertext | GCM tag (16 bytes)
"""

import base64
import binascii
import logging
import os
from typing import Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..utils import constants
from ..utils.errors import ConfigurationError, DecryptError

logger = logging.getLogger(__name__)


class SecretCodec:
    """AES-256-GCM encryption of OAuth tokens and other opaque secrets."""

    def __init__(self, key_base64: str) -> None:
        """
        Initialize the codec.

        Args:
            key_base64: Standard base64 encoding of exactly 32 random bytes.

        Raises:
            ConfigurationError: If the key is not valid base64 or has the wrong length.
        """
        try:
            key = base64.b64decode(key_base64, validate=True)
        except (binascii.Error, ValueError):
            raise ConfigurationError("Encryption key is not valid base64") from None

        if len(key) != constants.ENCRYPTION_KEY_BYTES:
            raise ConfigurationError(
                f"Encryption key must be exactly {constants.ENCRYPTION_KEY_BYTES} bytes"
            )
        self._aead = AESGCM(key)

    def __repr__(self) -> str:
        return "SecretCodec(key=***)"

    @staticmethod
    def generate_key() -> str:
        """Generate a new random key in the format the constructor expects."""
        return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")

    def encrypt(self, plaintext: Union[str, bytes]) -> str:
        """Encrypt under a fresh random nonce and return the envelope string."""
        if isinstance(plaintext, str):
            plaintext = plaintext.encode("utf-8")
        nonce = os.urandom(constants.NONCE_BYTES)
        ciphertext = self._aead.encrypt(nonce, plaintext, None)
        return base64.b64encode(nonce + ciphertext).decode("ascii")

    def decrypt_bytes(self, envelope: str) -> bytes:
        """
        Decrypt an envelope to raw bytes.

        Raises:
            DecryptError: On bad encoding, truncation, tampering or a wrong key.
        """
        try:
            combined = base64.b64decode(envelope, validate=True)
        except (binascii.Error, ValueError, TypeError):
            raise DecryptError("Envelope is not valid base64") from None

        if len(combined) < constants.NONCE_BYTES + constants.TAG_BYTES:
            raise DecryptError("Envelope is truncated")

        nonce, ciphertext = combined[: constants.NONCE_BYTES], combined[constants.NONCE_BYTES :]
        try:
            return self._aead.decrypt(nonce, ciphertext, None)
        except InvalidTag:
            logger.warning("Rejected envelope that failed authentication")
            raise DecryptError() from None

    def decrypt(self, envelope: str) -> str:
        """Decrypt an envelope that wraps UTF-8 text."""
        data = self.decrypt_bytes(envelope)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptError("Decrypted payload is not UTF-8 text") from None
