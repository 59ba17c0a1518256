"""TaxByte Identity - authentication and Google Drive token lifecycle core.

This package provides password authentication with brute-force throttling,
opaque server-side sessions and a PKCE OAuth flow whose tokens are kept
encrypted at rest and refreshed proactively.
"""
from .auth import AuthService, NewSession, User
from .bootstrap import Services, build_services
from .core.config import Settings
from .oauth import OAuthFlowManager
from .company import DriveConnectionUseCases

__version__ = "0.1.0"

__all__ = [
    "AuthService",
    "DriveConnectionUseCases",
    "NewSession",
    "OAuthFlowManager",
    "Services",
    "Settings",
    "User",
    "build_services",
]
