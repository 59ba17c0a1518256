"""Random token generation and keyed token hashing."""

import base64
import hashlib
import hmac
import secrets
from typing import Union

from ..utils import constants


class TokenGenerator:
    """
    Produces unguessable URL-safe tokens and the hashes stored in their place.

    Session, password-reset and verification tokens are handed to the caller
    in plaintext exactly once; only ``hash_token(token)`` is persisted. The
    hash is an HMAC keyed by a process-wide pepper, so a copy of the database
    alone is not enough to test guesses offline.
    """

    def __init__(
        self, pepper: Union[str, bytes], token_bytes: int = constants.TOKEN_BYTES
    ) -> None:
        if token_bytes < constants.MIN_TOKEN_BYTES:
            raise ValueError(f"Tokens must carry at least {constants.MIN_TOKEN_BYTES} bytes")
        if isinstance(pepper, str):
            pepper = pepper.encode("utf-8")
        if not pepper:
            raise ValueError("A non-empty pepper is required")
        self._pepper = pepper
        self._token_bytes = token_bytes

    def __repr__(self) -> str:
        return f"TokenGenerator(token_bytes={self._token_bytes})"

    def generate(self) -> str:
        """Return a fresh random token (unpadded URL-safe base64)."""
        return secrets.token_urlsafe(self._token_bytes)

    def hash_token(self, token: str) -> str:
        """Return the hex HMAC-SHA256 of a token."""
        return hmac.new(self._pepper, token.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def derive_pepper(encryption_key: str) -> bytes:
        """Derive a pepper from the encryption key when none is configured."""
        return hmac.new(
            encryption_key.encode("utf-8"), b"taxbyte-session-token-pepper", hashlib.sha256
        ).digest()


def pkce_code_challenge(code_verifier: str) -> str:
    """BASE64URL(SHA256(verifier)) without padding (RFC 7636, S256)."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")
