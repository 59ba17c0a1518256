"""
Authentication service: registration, login, sessions and account tokens.

Sessions are opaque bearer tokens. The plaintext token is returned to the
caller once; the store only ever sees its keyed hash.
"""

import ipaddress
import logging
import re
import secrets
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Callable, Optional, Union
from uuid import UUID

from ..core.config import SecuritySettings
from ..security.password_hasher import PasswordHasher, SecretBuffer
from ..security.token_generator import TokenGenerator
from ..utils import constants
from ..utils.errors import (
    EmailAlreadyExists,
    InvalidCredentials,
    SessionExpired,
    ValidationError,
)
from .credential_store import CredentialStore
from .models import NewSession, Session, User, utcnow
from .rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9_.+-]+@[a-zA-Z0-9-]+(\.[a-zA-Z0-9-]+)+$")

PasswordInput = Union[str, bytes, SecretBuffer]


def normalize_email(email: str) -> str:
    """
    Trim and lower-case an email address.

    Raises:
        ValidationError: If the address is not plausibly an email.
    """
    normalized = (email or "").strip().lower()
    if len(normalized) > 254 or not EMAIL_PATTERN.match(normalized):
        raise ValidationError("Invalid email format", field="email")
    return normalized


def normalize_ip(ip_address: Optional[str]) -> Optional[str]:
    if ip_address is None:
        return None
    try:
        return str(ipaddress.ip_address(ip_address.strip()))
    except ValueError:
        raise ValidationError("Invalid IP address", field="ip_address") from None


class AuthService:
    """Registers users and manages their login sessions."""

    def __init__(
        self,
        store: CredentialStore,
        hasher: PasswordHasher,
        tokens: TokenGenerator,
        rate_limiter: RateLimiter,
        settings: SecuritySettings,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._hasher = hasher
        self._tokens = tokens
        self._rate_limiter = rate_limiter
        self._settings = settings
        self._clock = clock
        self._dummy_hash: Optional[str] = None
        self._dummy_lock = threading.Lock()

    def _get_dummy_hash(self) -> str:
        # Verified against when the email is unknown.
        with self._dummy_lock:
            if self._dummy_hash is None:
                self._dummy_hash = self._hasher.hash(secrets.token_urlsafe(16))
            return self._dummy_hash

    def _check_password_policy(self, secret: SecretBuffer) -> None:
        length = secret.char_length()
        if length < self._settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {self._settings.password_min_length} characters",
                field="password",
            )
        if length > constants.PASSWORD_MAX_LENGTH:
            raise ValidationError(
                f"Password must be at most {constants.PASSWORD_MAX_LENGTH} characters",
                field="password",
            )

    def _hash_new_password(self, password: PasswordInput) -> str:
        with SecretBuffer(_reveal(password)) as secret:
            self._check_password_policy(secret)
            return self._hasher.hash(secret)

    def _upgrade_password_hash(self, user: User, secret: SecretBuffer) -> User:
        upgraded = replace(
            user, password_hash=self._hasher.hash(secret), updated_at=self._clock()
        )
        self._store.update_user(upgraded)
        logger.info(f"Upgraded password hash parameters for user {user.id}")
        return upgraded

    def register(self, email: str, password: PasswordInput, full_name: str) -> UUID:
        """
        Create a new account. No session is created.

        Args:
            email: Email address; stored lower-cased.
            password: Plaintext password.
            full_name: Display name.

        Returns:
            The new user's id.

        Raises:
            ValidationError: Bad email, name or password policy violation.
            EmailAlreadyExists: A non-deleted user already has the email.
        """
        normalized = normalize_email(email)
        full_name = (full_name or "").strip()
        if not full_name:
            raise ValidationError("Full name is required", field="full_name")
        if self._store.find_user_by_email(normalized) is not None:
            raise EmailAlreadyExists()

        password_hash = self._hash_new_password(password)

        now = self._clock()
        user = User(
            email=normalized,
            password_hash=password_hash,
            full_name=full_name,
            created_at=now,
            updated_at=now,
        )
        # Store re-checks uniqueness under its lock.
        self._store.create_user(user)
        logger.info(f"Registered user {user.id}")
        return user.id

    def login(
        self,
        email: str,
        password: PasswordInput,
        remember_me: bool = False,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> NewSession:
        """
        Authenticate and open a session.

        Returns:
            NewSession carrying the plaintext token (the only copy).

        Raises:
            RateLimited: Too many recent failures for the email or IP.
            InvalidCredentials: Unknown email or wrong password.
        """
        normalized = normalize_email(email)
        ip = normalize_ip(ip_address)

        self._rate_limiter.check(normalized, ip)

        user = self._store.find_user_by_email(normalized)
        with SecretBuffer(_reveal(password)) as secret:
            if user is None:
                self._hasher.verify(secret, self._get_dummy_hash())
                verified = False
            else:
                verified = self._hasher.verify(secret, user.password_hash)
                if verified and self._hasher.needs_rehash(user.password_hash):
                    user = self._upgrade_password_hash(user, secret)

        if not verified:
            self._rate_limiter.record(normalized, ip, success=False)
            logger.warning(f"Failed login attempt from {ip or 'unknown address'}")
            raise InvalidCredentials()

        self._rate_limiter.record(normalized, ip, success=True)

        now = self._clock()
        ttl = (
            self._settings.remember_me_ttl_seconds
            if remember_me
            else self._settings.session_ttl_seconds
        )
        token = self._tokens.generate()
        session = Session(
            user_id=user.id,
            token_hash=self._tokens.hash_token(token),
            expires_at=now + timedelta(seconds=ttl),
            created_at=now,
            ip_address=ip,
            user_agent=user_agent,
        )
        self._store.create_session(session)
        logger.info(f"User {user.id} logged in (session {session.id})")
        return NewSession(
            token=token,
            expires_at=session.expires_at,
            user_id=user.id,
            session_id=session.id,
        )

    def logout(self, token: str) -> None:
        """Revoke one session. Unknown tokens are ignored."""
        if not token:
            return
        if self._store.delete_session_by_token_hash(self._tokens.hash_token(token)):
            logger.info("Session revoked")

    def logout_all(self, user_id: UUID) -> int:
        """Revoke every session of a user and return how many were removed."""
        count = self._store.delete_sessions_for_user(user_id)
        logger.info(f"Revoked {count} sessions for user {user_id}")
        return count

    def validate_session(self, token: str) -> User:
        """
        Resolve a bearer token to its user.

        Raises:
            SessionExpired: Token unknown, revoked or expired, or the user
                was deleted. The cases are not distinguished.
        """
        if not token:
            raise SessionExpired()

        token_hash = self._tokens.hash_token(token)
        session = self._store.find_session_by_token_hash(token_hash)
        if session is None:
            raise SessionExpired()

        if session.is_expired(self._clock()):
            self._store.delete_session_by_token_hash(token_hash)
            logger.debug(f"Removed expired session {session.id}")
            raise SessionExpired()

        user = self._store.get_user(session.user_id)
        if user is None or user.is_deleted:
            raise SessionExpired()
        return user

    def purge_expired_sessions(self) -> int:
        return self._store.delete_expired_sessions(self._clock())

    # Password reset and email verification

    def request_password_reset(self, email: str) -> Optional[str]:
        """
        Issue a one-hour password reset token.

        Returns:
            The plaintext token, or None if no active user has the email.
            Callers must respond identically in both cases.
        """
        try:
            normalized = normalize_email(email)
        except ValidationError:
            return None

        user = self._store.find_user_by_email(normalized)
        if user is None:
            return None

        now = self._clock()
        token = self._tokens.generate()
        user.password_reset_token_hash = self._tokens.hash_token(token)
        user.password_reset_token_expires_at = now + timedelta(
            seconds=constants.PASSWORD_RESET_TTL_SECONDS
        )
        user.updated_at = now
        self._store.update_user(user)
        logger.info(f"Password reset requested for user {user.id}")
        return token

    def reset_password(self, token: str, new_password: PasswordInput) -> None:
        """
        Set a new password using a reset token and revoke all sessions.

        Raises:
            InvalidCredentials: Unknown or expired token.
            ValidationError: Password policy violation.
        """
        if not token:
            raise InvalidCredentials("Invalid or expired reset token")
        user = self._store.find_user_by_reset_token_hash(self._tokens.hash_token(token))
        now = self._clock()
        if (
            user is None
            or user.password_reset_token_expires_at is None
            or now >= user.password_reset_token_expires_at
        ):
            raise InvalidCredentials("Invalid or expired reset token")

        password_hash = self._hash_new_password(new_password)
        self._store.update_user(user.with_password(password_hash, now))
        revoked = self._store.delete_sessions_for_user(user.id)
        logger.info(f"Password reset for user {user.id}, revoked {revoked} sessions")

    def issue_email_verification(self, user_id: UUID) -> str:
        """
        Issue a 24-hour email verification token.

        Raises:
            ValidationError: If the user does not exist.
        """
        user = self._store.get_user(user_id)
        if user is None or user.is_deleted:
            raise ValidationError("Unknown user", field="user_id")

        now = self._clock()
        token = self._tokens.generate()
        user.email_verification_token_hash = self._tokens.hash_token(token)
        user.email_verification_token_expires_at = now + timedelta(
            seconds=constants.EMAIL_VERIFICATION_TTL_SECONDS
        )
        user.updated_at = now
        self._store.update_user(user)
        return token

    def verify_email(self, token: str) -> UUID:
        """
        Mark the token owner's email as verified.

        Raises:
            InvalidCredentials: Unknown or expired token.
        """
        if not token:
            raise InvalidCredentials("Invalid or expired verification token")
        user = self._store.find_user_by_verification_token_hash(
            self._tokens.hash_token(token)
        )
        now = self._clock()
        if (
            user is None
            or user.email_verification_token_expires_at is None
            or now >= user.email_verification_token_expires_at
        ):
            raise InvalidCredentials("Invalid or expired verification token")

        user.is_email_verified = True
        user.email_verification_token_hash = None
        user.email_verification_token_expires_at = None
        user.updated_at = now
        self._store.update_user(user)
        logger.info(f"Email verified for user {user.id}")
        return user.id


def _reveal(password: PasswordInput) -> Union[str, bytes]:
    if isinstance(password, SecretBuffer):
        return password.reveal()
    return password
