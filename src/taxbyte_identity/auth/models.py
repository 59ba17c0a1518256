"""Users, sessions and login attempts."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from uuid import UUID, uuid4


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass
class User:
    """Registered account. Soft-deleted users keep their row with deleted_at set."""

    email: str
    password_hash: str = field(repr=False)
    full_name: str
    id: UUID = field(default_factory=uuid4)
    is_email_verified: bool = False
    email_verification_token_hash: Optional[str] = field(default=None, repr=False)
    email_verification_token_expires_at: Optional[datetime] = None
    password_reset_token_hash: Optional[str] = field(default=None, repr=False)
    password_reset_token_expires_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def with_password(self, password_hash: str, now: datetime) -> "User":
        return replace(
            self,
            password_hash=password_hash,
            password_reset_token_hash=None,
            password_reset_token_expires_at=None,
            updated_at=now,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "email": self.email,
            "password_hash": self.password_hash,
            "full_name": self.full_name,
            "is_email_verified": self.is_email_verified,
            "email_verification_token_hash": self.email_verification_token_hash,
            "email_verification_token_expires_at": _iso(self.email_verification_token_expires_at),
            "password_reset_token_hash": self.password_reset_token_hash,
            "password_reset_token_expires_at": _iso(self.password_reset_token_expires_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "deleted_at": _iso(self.deleted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=UUID(data["id"]),
            email=data["email"],
            password_hash=data["password_hash"],
            full_name=data["full_name"],
            is_email_verified=data.get("is_email_verified", False),
            email_verification_token_hash=data.get("email_verification_token_hash"),
            email_verification_token_expires_at=_parse(
                data.get("email_verification_token_expires_at")
            ),
            password_reset_token_hash=data.get("password_reset_token_hash"),
            password_reset_token_expires_at=_parse(data.get("password_reset_token_expires_at")),
            created_at=_parse(data["created_at"]),
            updated_at=_parse(data["updated_at"]),
            deleted_at=_parse(data.get("deleted_at")),
        )


@dataclass
class Session:
    """Server-side session. Only the hash of the bearer token is kept."""

    user_id: UUID
    token_hash: str = field(repr=False)
    expires_at: datetime
    id: UUID = field(default_factory=uuid4)
    created_at: datetime = field(default_factory=utcnow)
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "user_id": str(self.user_id),
            "token_hash": self.token_hash,
            "expires_at": _iso(self.expires_at),
            "created_at": _iso(self.created_at),
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Session":
        return cls(
            id=UUID(data["id"]),
            user_id=UUID(data["user_id"]),
            token_hash=data["token_hash"],
            expires_at=_parse(data["expires_at"]),
            created_at=_parse(data["created_at"]),
            ip_address=data.get("ip_address"),
            user_agent=data.get("user_agent"),
        )


@dataclass(frozen=True)
class LoginAttempt:
    """Append-only record feeding the rate limiter."""

    email: str
    ip_address: Optional[str]
    success: bool
    attempted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "email": self.email,
            "ip_address": self.ip_address,
            "success": self.success,
            "attempted_at": _iso(self.attempted_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LoginAttempt":
        return cls(
            email=data["email"],
            ip_address=data.get("ip_address"),
            success=data["success"],
            attempted_at=_parse(data["attempted_at"]),
        )


@dataclass(frozen=True)
class NewSession:
    """Result of a successful login. ``token`` is the only plaintext copy."""

    token: str = field(repr=False)
    expires_at: datetime
    user_id: UUID
    session_id: UUID
