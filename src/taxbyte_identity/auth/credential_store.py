"""
Credential Store for TaxByte identity.

This module provides a standardized interface for durable storage of users,
sessions and login attempts, with an in-memory adapter for tests and a
local JSON-file adapter for single-node deployments.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ..utils.errors import EmailAlreadyExists
from ..utils.tables import DirectoryTables, MemoryTables, TableBackend
from .models import LoginAttempt, Session, User

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
SESSIONS_TABLE = "sessions"
LOGIN_ATTEMPTS_TABLE = "login_attempts"


class CredentialStore(ABC):
    """Abstract base class for user, session and login-attempt storage."""

    # Users

    @abstractmethod
    def create_user(self, user: User) -> User:
        """
        Insert a new user.

        Raises:
            EmailAlreadyExists: If a non-deleted user already has this email.
        """
        pass

    @abstractmethod
    def get_user(self, user_id: UUID) -> Optional[User]:
        """Get a user by id, including soft-deleted users."""
        pass

    @abstractmethod
    def find_user_by_email(self, email: str) -> Optional[User]:
        """Find the non-deleted user with this (normalized) email."""
        pass

    @abstractmethod
    def find_user_by_reset_token_hash(self, token_hash: str) -> Optional[User]:
        pass

    @abstractmethod
    def find_user_by_verification_token_hash(self, token_hash: str) -> Optional[User]:
        pass

    @abstractmethod
    def update_user(self, user: User) -> None:
        """Replace a stored user row."""
        pass

    @abstractmethod
    def soft_delete_user(self, user_id: UUID, now: datetime) -> bool:
        """Mark a user deleted. Returns False if no such active user exists."""
        pass

    # Sessions

    @abstractmethod
    def create_session(self, session: Session) -> None:
        pass

    @abstractmethod
    def find_session_by_token_hash(self, token_hash: str) -> Optional[Session]:
        pass

    @abstractmethod
    def delete_session_by_token_hash(self, token_hash: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        pass

    @abstractmethod
    def delete_sessions_for_user(self, user_id: UUID) -> int:
        """Delete every session of a user and return how many were removed."""
        pass

    @abstractmethod
    def list_sessions_for_user(self, user_id: UUID) -> List[Session]:
        pass

    @abstractmethod
    def delete_expired_sessions(self, now: datetime) -> int:
        pass

    # Login attempts

    @abstractmethod
    def add_login_attempt(self, attempt: LoginAttempt) -> None:
        """Append a login attempt. Attempts are never modified afterwards."""
        pass

    @abstractmethod
    def count_failed_attempts(
        self,
        since: datetime,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> int:
        """
        Count failed attempts at or after ``since``.

        Args:
            since: Start of the trailing window.
            email: Only count attempts for this email, if given.
            ip_address: Only count attempts from this address, if given.
        """
        pass


class TableCredentialStore(CredentialStore):
    """
    Credential store built on a table backend.

    Users are keyed by id, sessions by token hash and login attempts are kept
    as an append-only list. Every operation runs under the backend lock.
    """

    def __init__(self, backend: TableBackend) -> None:
        self._backend = backend

    def create_user(self, user: User) -> User:
        with self._backend.lock:
            users = self._backend.load(USERS_TABLE, {})
            for row in users.values():
                if row["email"] == user.email and not row.get("deleted_at"):
                    raise EmailAlreadyExists()
            users[str(user.id)] = user.to_dict()
            self._backend.save(USERS_TABLE, users)
        logger.info(f"Created user {user.id}")
        return user

    def get_user(self, user_id: UUID) -> Optional[User]:
        users = self._backend.load(USERS_TABLE, {})
        row = users.get(str(user_id))
        return User.from_dict(row) if row else None

    def _find_user(self, key: str, value: str) -> Optional[User]:
        users = self._backend.load(USERS_TABLE, {})
        for row in users.values():
            if row.get(key) == value and not row.get("deleted_at"):
                return User.from_dict(row)
        return None

    def find_user_by_email(self, email: str) -> Optional[User]:
        return self._find_user("email", email)

    def find_user_by_reset_token_hash(self, token_hash: str) -> Optional[User]:
        return self._find_user("password_reset_token_hash", token_hash)

    def find_user_by_verification_token_hash(self, token_hash: str) -> Optional[User]:
        return self._find_user("email_verification_token_hash", token_hash)

    def update_user(self, user: User) -> None:
        with self._backend.lock:
            users = self._backend.load(USERS_TABLE, {})
            users[str(user.id)] = user.to_dict()
            self._backend.save(USERS_TABLE, users)

    def soft_delete_user(self, user_id: UUID, now: datetime) -> bool:
        with self._backend.lock:
            users = self._backend.load(USERS_TABLE, {})
            row = users.get(str(user_id))
            if not row or row.get("deleted_at"):
                return False
            row["deleted_at"] = now.isoformat()
            row["updated_at"] = now.isoformat()
            self._backend.save(USERS_TABLE, users)
        logger.info(f"Soft-deleted user {user_id}")
        return True

    def create_session(self, session: Session) -> None:
        with self._backend.lock:
            sessions = self._backend.load(SESSIONS_TABLE, {})
            sessions[session.token_hash] = session.to_dict()
            self._backend.save(SESSIONS_TABLE, sessions)

    def find_session_by_token_hash(self, token_hash: str) -> Optional[Session]:
        sessions = self._backend.load(SESSIONS_TABLE, {})
        row = sessions.get(token_hash)
        return Session.from_dict(row) if row else None

    def delete_session_by_token_hash(self, token_hash: str) -> bool:
        with self._backend.lock:
            sessions = self._backend.load(SESSIONS_TABLE, {})
            if sessions.pop(token_hash, None) is None:
                return False
            self._backend.save(SESSIONS_TABLE, sessions)
            return True

    def delete_sessions_for_user(self, user_id: UUID) -> int:
        with self._backend.lock:
            sessions = self._backend.load(SESSIONS_TABLE, {})
            kept = {k: v for k, v in sessions.items() if v["user_id"] != str(user_id)}
            removed = len(sessions) - len(kept)
            if removed:
                self._backend.save(SESSIONS_TABLE, kept)
            return removed

    def list_sessions_for_user(self, user_id: UUID) -> List[Session]:
        sessions = self._backend.load(SESSIONS_TABLE, {})
        return [
            Session.from_dict(row)
            for row in sessions.values()
            if row["user_id"] == str(user_id)
        ]

    def delete_expired_sessions(self, now: datetime) -> int:
        with self._backend.lock:
            sessions = self._backend.load(SESSIONS_TABLE, {})
            kept = {
                k: v for k, v in sessions.items() if not Session.from_dict(v).is_expired(now)
            }
            removed = len(sessions) - len(kept)
            if removed:
                self._backend.save(SESSIONS_TABLE, kept)
                logger.info(f"Purged {removed} expired sessions")
            return removed

    def add_login_attempt(self, attempt: LoginAttempt) -> None:
        with self._backend.lock:
            attempts = self._backend.load(LOGIN_ATTEMPTS_TABLE, [])
            attempts.append(attempt.to_dict())
            self._backend.save(LOGIN_ATTEMPTS_TABLE, attempts)

    def count_failed_attempts(
        self,
        since: datetime,
        email: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> int:
        count = 0
        for row in self._backend.load(LOGIN_ATTEMPTS_TABLE, []):
            attempt = LoginAttempt.from_dict(row)
            if attempt.success or attempt.attempted_at < since:
                continue
            if email is not None and attempt.email != email:
                continue
            if ip_address is not None and attempt.ip_address != ip_address:
                continue
            count += 1
        return count


class InMemoryCredentialStore(TableCredentialStore):
    """Credential store that keeps everything in process memory."""

    def __init__(self) -> None:
        super().__init__(MemoryTables())


class LocalDirectoryCredentialStore(TableCredentialStore):
    """Credential store that uses local JSON files for storage."""

    def __init__(self, base_dir: str) -> None:
        """
        Initialize the local credential store.

        Args:
            base_dir: Directory holding users.json, sessions.json and
                     login_attempts.json.
        """
        super().__init__(DirectoryTables(base_dir))
        self.base_dir = base_dir
        logger.info(f"LocalDirectoryCredentialStore initialized: {base_dir}")
