"""Company boundary records used by the Drive connection."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID, uuid4

from ..auth.models import _iso, _parse, utcnow
from ..utils import constants


class CompanyRole(str, Enum):
    OWNER = constants.ROLE_OWNER
    ADMIN = constants.ROLE_ADMIN
    MEMBER = constants.ROLE_MEMBER

    @property
    def can_manage(self) -> bool:
        """Owners and admins may connect and disconnect Google Drive."""
        return self.value in constants.MANAGING_ROLES


@dataclass
class Company:
    """
    A tenant with its Google Drive connection fields.

    The access token and its expiry are either both set or both empty.
    Tokens are stored as encrypted envelopes only.
    """

    name: str
    id: UUID = field(default_factory=uuid4)
    members: Dict[UUID, CompanyRole] = field(default_factory=dict)
    oauth_access_token: Optional[str] = field(default=None, repr=False)
    oauth_refresh_token: Optional[str] = field(default=None, repr=False)
    oauth_token_expires_at: Optional[datetime] = None
    oauth_connected_by: Optional[UUID] = None
    oauth_connected_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def has_oauth_connection(self) -> bool:
        return self.oauth_refresh_token is not None

    def has_valid_oauth_token(self, now: Optional[datetime] = None) -> bool:
        if self.oauth_access_token is None or self.oauth_token_expires_at is None:
            return False
        return self.oauth_token_expires_at > (now or utcnow())

    def role_of(self, user_id: UUID) -> Optional[CompanyRole]:
        return self.members.get(user_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "name": self.name,
            "members": {str(k): v.value for k, v in self.members.items()},
            "oauth_access_token": self.oauth_access_token,
            "oauth_refresh_token": self.oauth_refresh_token,
            "oauth_token_expires_at": _iso(self.oauth_token_expires_at),
            "oauth_connected_by": str(self.oauth_connected_by)
            if self.oauth_connected_by
            else None,
            "oauth_connected_at": _iso(self.oauth_connected_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Company":
        connected_by = data.get("oauth_connected_by")
        return cls(
            id=UUID(data["id"]),
            name=data["name"],
            members={UUID(k): CompanyRole(v) for k, v in data.get("members", {}).items()},
            oauth_access_token=data.get("oauth_access_token"),
            oauth_refresh_token=data.get("oauth_refresh_token"),
            oauth_token_expires_at=_parse(data.get("oauth_token_expires_at")),
            oauth_connected_by=UUID(connected_by) if connected_by else None,
            oauth_connected_at=_parse(data.get("oauth_connected_at")),
            created_at=_parse(data["created_at"]),
            updated_at=_parse(data["updated_at"]),
        )


@dataclass(frozen=True)
class DriveConnectionStatus:
    """Secret-free summary of a company's Drive connection."""

    company_id: UUID
    connected: bool
    success: bool
    message: str
    expires_at: Optional[datetime] = None
    connected_by: Optional[UUID] = None
    connected_at: Optional[datetime] = None

    @classmethod
    def for_company(cls, company: Company, success: bool, message: str) -> "DriveConnectionStatus":
        return cls(
            company_id=company.id,
            connected=company.has_oauth_connection(),
            success=success,
            message=message,
            expires_at=company.oauth_token_expires_at,
            connected_by=company.oauth_connected_by,
            connected_at=company.oauth_connected_at,
        )
