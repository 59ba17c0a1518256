"""
OAuth flow manager for the Google Drive connection.

Drives the authorization code flow with PKCE:

    initiate -> (user consents at Google) -> complete -> refresh ... -> disconnect

Tokens leave this module only as encrypted envelopes. Persisting them on the
company record is the caller's job.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Dict, Hashable, Iterator, List, Optional
from uuid import UUID

from ..auth.models import utcnow
from ..core.config import OAuthSettings
from ..security.secret_codec import SecretCodec
from ..security.token_generator import TokenGenerator, pkce_code_challenge
from ..utils import constants
from ..utils.errors import ExchangeFailed, StateMismatch
from .models import OAuthConnection, OAuthPendingState, OAuthTokens
from .state_store import OAuthStateStore
from .transport import ProviderTransport

logger = logging.getLogger(__name__)


class KeyedLock:
    """One re-entrant lock per key, kept only while someone holds or awaits it."""

    def __init__(self) -> None:
        self._locks: Dict[Hashable, List] = {}
        self._guard = threading.Lock()

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = [threading.RLock(), 0]
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


class OAuthFlowManager:
    """Builds consent URLs, exchanges codes and refreshes tokens."""

    def __init__(
        self,
        transport: ProviderTransport,
        state_store: OAuthStateStore,
        codec: SecretCodec,
        tokens: TokenGenerator,
        settings: Optional[OAuthSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = settings or OAuthSettings()
        self._transport = transport
        self._states = state_store
        self._codec = codec
        self._tokens = tokens
        self._state_ttl = timedelta(seconds=settings.state_ttl_seconds)
        self._lookahead = timedelta(seconds=constants.OAUTH_REFRESH_LOOKAHEAD_SECONDS)
        self._clock = clock
        self._refresh_locks = KeyedLock()

    def initiate(self, company_id: UUID, user_id: UUID) -> str:
        """
        Start an authorization attempt.

        Args:
            company_id: Company the connection will belong to.
            user_id: User initiating the connection.

        Returns:
            Consent URL to redirect the user to.
        """
        code_verifier = self._tokens.generate()
        state = self._tokens.generate()
        now = self._clock()

        self._states.save_state(
            OAuthPendingState(
                state=state,
                code_verifier=code_verifier,
                company_id=company_id,
                user_id=user_id,
                created_at=now,
                expires_at=now + self._state_ttl,
            )
        )
        logger.info(f"OAuth flow initiated for company {company_id} (state {state[:8]}...)")
        return self._transport.authorization_url(state, pkce_code_challenge(code_verifier))

    def complete(self, code: str, state: str) -> OAuthConnection:
        """
        Finish an authorization attempt.

        The pending state is consumed before the provider is contacted, so
        a state can never be used twice, even if the exchange fails.

        Raises:
            StateMismatch: State unknown, already used or expired.
            ExchangeFailed: Provider rejected the code or omitted the
                refresh token.
        """
        pending = self._states.consume_state(state)
        if pending is None:
            logger.warning("OAuth callback with unknown or already used state")
            raise StateMismatch()
        if pending.is_expired(self._clock()):
            logger.warning(f"OAuth callback with expired state {state[:8]}...")
            raise StateMismatch()

        tokens = self._transport.exchange_code(code, pending.code_verifier)
        if not tokens.refresh_token:
            raise ExchangeFailed("Provider returned no refresh token")

        logger.info(f"OAuth tokens obtained for company {pending.company_id}")
        return OAuthConnection(
            access_token=self._codec.encrypt(tokens.access_token),
            refresh_token=self._codec.encrypt(tokens.refresh_token),
            expires_at=self._expiry(tokens),
            company_id=pending.company_id,
            connected_by=pending.user_id,
        )

    def refresh(self, company_id: UUID, encrypted_refresh_token: str) -> OAuthConnection:
        """
        Get a new access token using a stored refresh token.

        Args:
            company_id: Company whose connection is refreshed.
            encrypted_refresh_token: Envelope as stored on the company.

        Raises:
            DecryptError: The stored envelope cannot be decrypted.
            ExchangeFailed: Provider rejected the refresh.
        """
        with self.refresh_lock(company_id):
            refresh_token = self._codec.decrypt(encrypted_refresh_token)
            tokens = self._transport.refresh(refresh_token)

            if tokens.refresh_token and tokens.refresh_token != refresh_token:
                logger.info(f"Provider rotated the refresh token for company {company_id}")
                stored_refresh = self._codec.encrypt(tokens.refresh_token)
            else:
                stored_refresh = encrypted_refresh_token

            logger.info(f"Access token refreshed for company {company_id}")
            return OAuthConnection(
                access_token=self._codec.encrypt(tokens.access_token),
                refresh_token=stored_refresh,
                expires_at=self._expiry(tokens),
                company_id=company_id,
            )

    def needs_refresh(self, expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
        """True when the expiry is unknown or inside the refresh lookahead."""
        if expires_at is None:
            return True
        return expires_at <= (now or self._clock()) + self._lookahead

    def disconnect(self, company_id: UUID) -> int:
        """Forget pending authorization attempts for a company."""
        purged = self._states.purge_for_company(company_id)
        logger.info(f"Purged {purged} pending OAuth states for company {company_id}")
        return purged

    def purge_expired_states(self) -> int:
        return self._states.purge_expired(self._clock())

    def refresh_lock(self, company_id: UUID):
        """Context manager serializing refreshes of one company."""
        return self._refresh_locks.hold(company_id)

    def _expiry(self, tokens: OAuthTokens) -> datetime:
        return self._clock() + timedelta(seconds=tokens.expires_in)
