"""
Composition root: turns Settings into wired services.

This is the only place that chooses adapters and the provider transport.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from .auth.credential_store import (
    CredentialStore,
    InMemoryCredentialStore,
    LocalDirectoryCredentialStore,
)
from .auth.models import utcnow
from .auth.rate_limiter import RateLimiter
from .auth.service import AuthService
from .company.drive_connection import DriveConnectionUseCases
from .company.repository import (
    CompanyRepository,
    InMemoryCompanyRepository,
    LocalDirectoryCompanyRepository,
)
from .core.config import Settings
from .oauth.flow_manager import OAuthFlowManager
from .oauth.mock_transport import MockOAuthTransport
from .oauth.state_store import (
    InMemoryOAuthStateStore,
    LocalDirectoryOAuthStateStore,
    OAuthStateStore,
)
from .oauth.transport import GoogleOAuthTransport, ProviderTransport
from .security.password_hasher import PasswordHasher
from .security.secret_codec import SecretCodec
from .security.token_generator import TokenGenerator
from .utils.errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a request handler needs, built once per process."""

    settings: Settings
    codec: SecretCodec
    tokens: TokenGenerator
    credential_store: CredentialStore
    auth: AuthService
    state_store: OAuthStateStore
    companies: CompanyRepository
    transport: ProviderTransport
    flow: OAuthFlowManager
    drive: DriveConnectionUseCases


def build_transport(settings: Settings) -> ProviderTransport:
    """
    Pick the OAuth provider transport.

    Raises:
        ConfigurationError: Mock provider requested in production, or the
            Google client is not configured.
    """
    if settings.oauth.use_mock_provider:
        if settings.is_production:
            raise ConfigurationError("The mock OAuth provider cannot be used in production")
        return MockOAuthTransport(redirect_uri=settings.oauth.redirect_uri)
    return GoogleOAuthTransport(settings.oauth)


def build_token_generator(settings: Settings) -> TokenGenerator:
    pepper = settings.security.session_token_pepper
    if pepper:
        return TokenGenerator(pepper)
    return TokenGenerator(TokenGenerator.derive_pepper(settings.security.encryption_key))


def build_services(
    settings: Optional[Settings] = None,
    in_memory: bool = False,
    transport: Optional[ProviderTransport] = None,
    hasher: Optional[PasswordHasher] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Services:
    """
    Wire the identity core.

    Args:
        settings: Loaded settings; read from the environment if omitted.
        in_memory: Use process-local adapters instead of JSON files.
        transport: Override the provider transport (tests).
        hasher: Override the password hasher (tests use cheap parameters).
        clock: Time source shared by every component.

    Returns:
        Wired Services.
    """
    settings = settings or Settings.from_env()
    codec = SecretCodec(settings.security.encryption_key)
    tokens = build_token_generator(settings)

    if in_memory:
        credential_store: CredentialStore = InMemoryCredentialStore()
        state_store: OAuthStateStore = InMemoryOAuthStateStore()
        companies: CompanyRepository = InMemoryCompanyRepository()
    else:
        data_dir = settings.storage.resolve_data_dir()
        credential_store = LocalDirectoryCredentialStore(data_dir)
        state_store = LocalDirectoryOAuthStateStore(data_dir)
        companies = LocalDirectoryCompanyRepository(data_dir)

    transport = transport or build_transport(settings)

    auth = AuthService(
        store=credential_store,
        hasher=hasher or PasswordHasher(),
        tokens=tokens,
        rate_limiter=RateLimiter(credential_store, settings.rate_limit, clock=clock),
        settings=settings.security,
        clock=clock,
    )
    flow = OAuthFlowManager(
        transport=transport,
        state_store=state_store,
        codec=codec,
        tokens=tokens,
        settings=settings.oauth,
        clock=clock,
    )
    drive = DriveConnectionUseCases(companies, flow, codec, clock=clock)

    logger.info(
        f"Identity services ready (environment={settings.environment}, "
        f"storage={'memory' if in_memory else 'local directory'}, "
        f"provider={type(transport).__name__})"
    )
    return Services(
        settings=settings,
        codec=codec,
        tokens=tokens,
        credential_store=credential_store,
        auth=auth,
        state_store=state_store,
        companies=companies,
        transport=transport,
        flow=flow,
        drive=drive,
    )
