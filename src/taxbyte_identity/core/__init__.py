"""
Core configuration package for the TaxByte identity core.
"""

from .config import (
    OAuthSettings,
    RateLimitSettings,
    SecuritySettings,
    Settings,
    StorageSettings,
)

__all__ = [
    "OAuthSettings",
    "RateLimitSettings",
    "SecuritySettings",
    "Settings",
    "StorageSettings",
]
