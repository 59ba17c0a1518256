"""
Cryptographic building blocks for the TaxByte identity core.

- Argon2id password hashing with zero-on-exit plaintext buffers
- Random token generation and keyed token hashing
- AES-256-GCM envelopes for secrets stored at rest
"""

from .password_hasher import PasswordHasher, SecretBuffer
from .secret_codec import SecretCodec
from .token_generator import TokenGenerator, pkce_code_challenge

__all__ = [
    "PasswordHasher",
    "SecretBuffer",
    "SecretCodec",
    "TokenGenerator",
    "pkce_code_challenge",
]
