"""
Configuration for the TaxByte identity core.

Settings are read once at process start (environment variables, optionally
seeded from a .env file) and then handed to each component's constructor.
Business logic never looks configuration up on its own.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from dotenv import load_dotenv

from ..utils import constants
from ..utils.errors import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "TAXBYTE_"
PRODUCTION_ENVIRONMENTS = ("production", "prod")


def _env(name: str, default: Optional[str] = None) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


def _env_int(name: str, default: int) -> int:
    raw = _env(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{ENV_PREFIX}{name} must be an integer")


def _env_bool(name: str, default: bool = False) -> bool:
    raw = _env(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SecuritySettings:
    """Password policy, session lifetimes and key material."""

    encryption_key: str = field(repr=False)
    password_min_length: int = constants.DEFAULT_PASSWORD_MIN_LENGTH
    session_ttl_seconds: int = constants.DEFAULT_SESSION_TTL_SECONDS
    remember_me_ttl_seconds: int = constants.DEFAULT_REMEMBER_ME_TTL_SECONDS
    session_token_pepper: Optional[str] = field(default=None, repr=False)

    def __post_init__(self) -> None:
        if not self.encryption_key:
            raise ConfigurationError("An encryption key is required")
        if self.password_min_length < 1:
            raise ConfigurationError("password_min_length must be positive")
        if self.password_min_length > constants.PASSWORD_MAX_LENGTH:
            raise ConfigurationError(
                f"password_min_length cannot exceed {constants.PASSWORD_MAX_LENGTH}"
            )
        if self.session_ttl_seconds <= 0 or self.remember_me_ttl_seconds <= 0:
            raise ConfigurationError("Session TTLs must be positive")


@dataclass(frozen=True)
class RateLimitSettings:
    """Login throttling thresholds."""

    login_max_attempts: int = constants.DEFAULT_LOGIN_MAX_ATTEMPTS
    login_window_seconds: int = constants.DEFAULT_LOGIN_WINDOW_SECONDS

    def __post_init__(self) -> None:
        if self.login_max_attempts < 1 or self.login_window_seconds < 1:
            raise ConfigurationError("Rate limit threshold and window must be positive")


@dataclass(frozen=True)
class OAuthSettings:
    """Google OAuth client configuration for the Drive connection."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = field(default=None, repr=False)
    redirect_uri: Optional[str] = None
    scope: str = "https://www.googleapis.com/auth/drive.file"
    auth_uri: str = constants.GOOGLE_AUTH_URI
    token_uri: str = constants.GOOGLE_TOKEN_URI
    http_timeout_seconds: int = constants.OAUTH_HTTP_TIMEOUT_SECONDS
    state_ttl_seconds: int = constants.OAUTH_STATE_TTL_SECONDS
    use_mock_provider: bool = False

    def is_configured(self) -> bool:
        """Check if the real provider can be used."""
        return bool(self.client_id and self.client_secret and self.redirect_uri)


@dataclass(frozen=True)
class StorageSettings:
    """Where the local-directory adapters keep their JSON files."""

    data_dir: Optional[str] = None

    def resolve_data_dir(self) -> str:
        if self.data_dir:
            return os.path.expanduser(self.data_dir)
        return os.path.join(os.path.expanduser("~"), ".config", "taxbyte", "identity")


@dataclass(frozen=True)
class Settings:
    """All configuration the identity core consumes."""

    security: SecuritySettings
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    oauth: OAuthSettings = field(default_factory=OAuthSettings)
    storage: StorageSettings = field(default_factory=StorageSettings)
    environment: str = "development"

    @property
    def is_production(self) -> bool:
        return self.environment.lower() in PRODUCTION_ENVIRONMENTS

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "Settings":
        """
        Build settings from TAXBYTE_* environment variables.

        Args:
            env_file: Optional .env path. Values already present in the
                      environment take precedence over the file.

        Returns:
            Validated Settings instance.

        Raises:
            ConfigurationError: If a value is missing or malformed.
        """
        load_dotenv(env_file)

        security = SecuritySettings(
            encryption_key=_env("ENCRYPTION_KEY", "") or "",
            password_min_length=_env_int(
                "PASSWORD_MIN_LENGTH", constants.DEFAULT_PASSWORD_MIN_LENGTH
            ),
            session_ttl_seconds=_env_int(
                "SESSION_TTL_SECONDS", constants.DEFAULT_SESSION_TTL_SECONDS
            ),
            remember_me_ttl_seconds=_env_int(
                "REMEMBER_ME_TTL_SECONDS", constants.DEFAULT_REMEMBER_ME_TTL_SECONDS
            ),
            session_token_pepper=_env("SESSION_TOKEN_PEPPER"),
        )
        rate_limit = RateLimitSettings(
            login_max_attempts=_env_int(
                "LOGIN_MAX_ATTEMPTS", constants.DEFAULT_LOGIN_MAX_ATTEMPTS
            ),
            login_window_seconds=_env_int(
                "LOGIN_WINDOW_SECONDS", constants.DEFAULT_LOGIN_WINDOW_SECONDS
            ),
        )
        oauth = OAuthSettings(
            client_id=_env("GOOGLE_OAUTH_CLIENT_ID"),
            client_secret=_env("GOOGLE_OAUTH_CLIENT_SECRET"),
            redirect_uri=_env("GOOGLE_OAUTH_REDIRECT_URI"),
            scope=_env("GOOGLE_OAUTH_SCOPE", OAuthSettings.scope) or OAuthSettings.scope,
            http_timeout_seconds=_env_int(
                "OAUTH_HTTP_TIMEOUT_SECONDS", constants.OAUTH_HTTP_TIMEOUT_SECONDS
            ),
            state_ttl_seconds=_env_int(
                "OAUTH_STATE_TTL_SECONDS", constants.OAUTH_STATE_TTL_SECONDS
            ),
            use_mock_provider=_env_bool("OAUTH_USE_MOCK_PROVIDER"),
        )
        storage = StorageSettings(data_dir=_env("DATA_DIR"))

        settings = cls(
            security=security,
            rate_limit=rate_limit,
            oauth=oauth,
            storage=storage,
            environment=_env("ENV", "development") or "development",
        )
        logger.info(f"Loaded settings for environment '{settings.environment}'")
        return settings

    def get_environment_summary(self) -> Dict[str, Any]:
        """Get a summary of the current configuration (excluding secrets)."""
        return {
            "environment": self.environment,
            "password_min_length": self.security.password_min_length,
            "session_ttl_seconds": self.security.session_ttl_seconds,
            "remember_me_ttl_seconds": self.security.remember_me_ttl_seconds,
            "login_max_attempts": self.rate_limit.login_max_attempts,
            "login_window_seconds": self.rate_limit.login_window_seconds,
            "oauth_client_configured": self.oauth.is_configured(),
            "oauth_redirect_uri": self.oauth.redirect_uri,
            "oauth_scope": self.oauth.scope,
            "oauth_mock_provider": self.oauth.use_mock_provider,
            "data_dir": self.storage.resolve_data_dir(),
        }
