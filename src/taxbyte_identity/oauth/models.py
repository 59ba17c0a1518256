"""Value types passed through the OAuth connection flow."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from ..auth.models import utcnow


@dataclass(frozen=True)
class OAuthPendingState:
    """
    An authorization attempt waiting for its callback.

    Consumed exactly once; the PKCE verifier never leaves the server.
    """

    state: str
    code_verifier: str = field(repr=False)
    company_id: UUID
    user_id: UUID
    expires_at: datetime
    created_at: datetime = field(default_factory=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) >= self.expires_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state,
            "code_verifier": self.code_verifier,
            "company_id": str(self.company_id),
            "user_id": str(self.user_id),
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OAuthPendingState":
        return cls(
            state=data["state"],
            code_verifier=data["code_verifier"],
            company_id=UUID(data["company_id"]),
            user_id=UUID(data["user_id"]),
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
        )


@dataclass(frozen=True)
class OAuthTokens:
    """Plaintext token response from the provider. Never persisted as-is."""

    access_token: str = field(repr=False)
    expires_in: int
    refresh_token: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class OAuthConnection:
    """
    Encrypted token payload ready to be written onto the company record.

    ``refresh_token`` holds the ciphertext to store; after a refresh without
    rotation it is the unchanged ciphertext that was passed in.
    """

    access_token: str = field(repr=False)
    refresh_token: str = field(repr=False)
    expires_at: datetime
    company_id: UUID
    connected_by: Optional[UUID] = None
