"""
Argon2id password hashing for TaxByte.

Hashes are PHC strings ("$argon2id$v=19$m=...,t=...,p=...$salt$hash") so the
parameters travel with every stored value.
"""

import logging
from typing import Optional, Union

from argon2 import PasswordHasher as Argon2Hasher, Type
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError

from ..utils import constants
from ..utils.errors import InvalidPasswordHash, PasswordHashError

logger = logging.getLogger(__name__)


class SecretBuffer:
    """
    Mutable holder for plaintext secret material.

    The bytes live in a bytearray that is overwritten with zeros when the
    ``with`` block exits, on success and on error alike::

        with SecretBuffer(password) as secret:
            hasher.hash(secret)
    """

    def __init__(self, value: Union[str, bytes, bytearray]) -> None:
        if isinstance(value, str):
            value = value.encode("utf-8")
        self._buffer: Optional[bytearray] = bytearray(value)

    def __enter__(self) -> "SecretBuffer":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    def __len__(self) -> int:
        return len(self._buffer) if self._buffer is not None else 0

    def __repr__(self) -> str:
        return "SecretBuffer(***)"

    def reveal(self) -> bytes:
        """Return the secret bytes. Raises if the buffer was already wiped."""
        if self._buffer is None:
            raise ValueError("Secret buffer has been wiped")
        return bytes(self._buffer)

    def char_length(self) -> int:
        """Length in characters, as seen by password policy checks."""
        return len(self.reveal().decode("utf-8", errors="replace"))

    def wipe(self) -> None:
        if self._buffer is None:
            return
        for i in range(len(self._buffer)):
            self._buffer[i] = 0
        self._buffer = None

    @property
    def wiped(self) -> bool:
        return self._buffer is None


def _as_secret_bytes(password: Union[str, bytes, SecretBuffer]) -> bytes:
    if isinstance(password, SecretBuffer):
        return password.reveal()
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


class PasswordHasher:
    """One-way, memory-hard hashing and constant-time verification of passwords."""

    def __init__(
        self,
        memory_cost: int = constants.ARGON2_MEMORY_COST_KIB,
        time_cost: int = constants.ARGON2_TIME_COST,
        parallelism: int = constants.ARGON2_PARALLELISM,
    ) -> None:
        self._argon2 = Argon2Hasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
            hash_len=constants.ARGON2_HASH_LENGTH,
            salt_len=constants.ARGON2_SALT_LENGTH,
            type=Type.ID,
        )

    def hash(self, password: Union[str, bytes, SecretBuffer]) -> str:
        """
        Hash a password with a fresh random salt.

        Args:
            password: Plaintext, preferably wrapped in a SecretBuffer.

        Returns:
            Self-describing Argon2id hash string.

        Raises:
            PasswordHashError: If the underlying library fails.
        """
        try:
            return self._argon2.hash(_as_secret_bytes(password))
        except HashingError as e:
            logger.error(f"Password hashing failed: {e}")
            raise PasswordHashError("Failed to hash password") from e

    def verify(self, password: Union[str, bytes, SecretBuffer], stored_hash: str) -> bool:
        """
        Check a password against a stored hash.

        Returns:
            True on match, False on mismatch.

        Raises:
            InvalidPasswordHash: If the stored hash cannot be parsed.
        """
        try:
            return self._argon2.verify(stored_hash, _as_secret_bytes(password))
        except VerifyMismatchError:
            return False
        except InvalidHashError as e:
            logger.error("Stored password hash could not be parsed")
            raise InvalidPasswordHash() from e
        except VerificationError as e:
            # Raised for hashes that parse but are internally inconsistent.
            logger.error(f"Password verification error: {e}")
            raise InvalidPasswordHash() from e

    def needs_rehash(self, stored_hash: str) -> bool:
        """Check whether a stored hash was produced with outdated parameters."""
        try:
            return self._argon2.check_needs_rehash(stored_hash)
        except InvalidHashError as e:
            raise InvalidPasswordHash() from e
