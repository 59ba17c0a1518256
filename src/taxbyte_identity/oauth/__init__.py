"""
Google Drive OAuth connection management.

This package provides:
- PKCE authorization URL construction
- Code-for-token exchange with single-use state
- Encrypted token payloads and silent refresh
- Pluggable provider transports (Google, mock)
"""

from .flow_manager import KeyedLock, OAuthFlowManager
from .mock_transport import MockOAuthTransport
from .models import OAuthConnection, OAuthPendingState, OAuthTokens
from .scopes import DRIVE_FILE_SCOPE, get_scopes
from .state_store import (
    InMemoryOAuthStateStore,
    LocalDirectoryOAuthStateStore,
    OAuthStateStore,
)
from .transport import GoogleOAuthTransport, ProviderTransport

__all__ = [
    "DRIVE_FILE_SCOPE",
    "GoogleOAuthTransport",
    "InMemoryOAuthStateStore",
    "KeyedLock",
    "LocalDirectoryOAuthStateStore",
    "MockOAuthTransport",
    "OAuthConnection",
    "OAuthFlowManager",
    "OAuthPendingState",
    "OAuthStateStore",
    "OAuthTokens",
    "ProviderTransport",
    "get_scopes",
]
