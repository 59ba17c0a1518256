"""
Mock OAuth provider for development and tests.

Simulates the Google flow without contacting Google. Only selectable with
TAXBYTE_OAUTH_USE_MOCK_PROVIDER=true and never in production.
"""

import logging
import threading
import uuid
from typing import Optional
from urllib.parse import urlencode

from ..utils import constants
from ..utils.errors import ExchangeFailed
from .models import OAuthTokens
from .transport import ProviderTransport

logger = logging.getLogger(__name__)

MOCK_CONSENT_PATH = "/dev/mock-oauth"


class MockOAuthTransport(ProviderTransport):
    """
    Returns fake tokens.

    Access tokens look like ``mock-access-token-<uuid>``. Refresh keeps the
    same refresh token unless ``rotate_refresh_tokens`` is set.
    """

    def __init__(
        self,
        redirect_uri: Optional[str] = None,
        expires_in: int = constants.OAUTH_DEFAULT_EXPIRES_IN_SECONDS,
        rotate_refresh_tokens: bool = False,
    ) -> None:
        self.redirect_uri = redirect_uri or "http://localhost:8080/oauth/callback"
        self.expires_in = expires_in
        self.rotate_refresh_tokens = rotate_refresh_tokens
        self.exchange_calls = 0
        self.refresh_calls = 0
        self._lock = threading.Lock()
        logger.warning("Using mock OAuth provider, tokens are not real")

    def authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "state": state,
            "redirect_uri": self.redirect_uri,
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{MOCK_CONSENT_PATH}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> OAuthTokens:
        with self._lock:
            self.exchange_calls += 1
        if not code or not code_verifier:
            raise ExchangeFailed("Missing authorization code or verifier")
        return OAuthTokens(
            access_token=f"mock-access-token-{uuid.uuid4()}",
            refresh_token=f"mock-refresh-token-{uuid.uuid4()}",
            expires_in=self.expires_in,
        )

    def refresh(self, refresh_token: str) -> OAuthTokens:
        with self._lock:
            self.refresh_calls += 1
        if not refresh_token:
            raise ExchangeFailed("Missing refresh token")
        rotated = f"mock-refresh-token-{uuid.uuid4()}" if self.rotate_refresh_tokens else None
        return OAuthTokens(
            access_token=f"mock-refreshed-access-token-{uuid.uuid4()}",
            refresh_token=rotated,
            expires_in=self.expires_in,
        )
