"""
Authentication for the TaxByte identity core.

- User registration with Argon2id password hashes
- Opaque session tokens stored as keyed hashes
- Brute-force throttling by email and source IP
"""

from .credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    LocalDirectoryCredentialStore,
    TableCredentialStore,
)
from .models import LoginAttempt, NewSession, Session, User
from .rate_limiter import RateLimiter
from .service import AuthService, normalize_email

__all__ = [
    "AuthService",
    "CredentialStore",
    "InMemoryCredentialStore",
    "LocalDirectoryCredentialStore",
    "LoginAttempt",
    "NewSession",
    "RateLimiter",
    "Session",
    "TableCredentialStore",
    "User",
    "normalize_email",
]
