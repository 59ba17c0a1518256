"""
Provider transports for the Google Drive OAuth connection.

A transport knows how to build the consent URL and how to talk to the
provider's token endpoint. It never sees ciphertext and never persists
anything.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import requests
from google.auth.exceptions import RefreshError, TransportError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from oauthlib.oauth2.rfc6749.errors import OAuth2Error

from ..core.config import OAuthSettings
from ..utils import constants
from ..utils.errors import ConfigurationError, ExchangeFailed
from .models import OAuthTokens
from .scopes import get_scopes, is_narrowest_scope

logger = logging.getLogger(__name__)


class ProviderTransport(ABC):
    """Abstract base class for OAuth provider access."""

    @abstractmethod
    def authorization_url(self, state: str, code_challenge: str) -> str:
        """Build the consent URL for a PKCE (S256) authorization request."""
        pass

    @abstractmethod
    def exchange_code(self, code: str, code_verifier: str) -> OAuthTokens:
        """
        Exchange an authorization code for tokens.

        Raises:
            ExchangeFailed: Provider rejected the code or was unreachable.
        """
        pass

    @abstractmethod
    def refresh(self, refresh_token: str) -> OAuthTokens:
        """
        Obtain a new access token.

        Returns:
            OAuthTokens whose refresh_token is set only if the provider
            rotated it.

        Raises:
            ExchangeFailed: Provider rejected the refresh or was unreachable.
        """
        pass


class TimeoutRequest(Request):
    """google-auth transport request with a default timeout on every call."""

    def __init__(self, timeout: float, session: Optional[requests.Session] = None) -> None:
        super().__init__(session=session)
        self._timeout = timeout

    def __call__(self, *args, **kwargs):
        kwargs.setdefault("timeout", self._timeout)
        return super().__call__(*args, **kwargs)


class GoogleOAuthTransport(ProviderTransport):
    """Google authorization server access via google-auth-oauthlib and google-auth."""

    def __init__(self, settings: OAuthSettings) -> None:
        if not settings.is_configured():
            raise ConfigurationError(
                "Google OAuth requires client id, client secret and redirect URI"
            )
        self._settings = settings
        self._scopes: List[str] = get_scopes(settings.scope)
        if not is_narrowest_scope(self._scopes):
            logger.warning(f"Requesting Drive scopes beyond drive.file: {self._scopes}")

    def _client_config(self) -> Dict[str, Any]:
        return {
            "web": {
                "client_id": self._settings.client_id,
                "client_secret": self._settings.client_secret,
                "auth_uri": self._settings.auth_uri,
                "token_uri": self._settings.token_uri,
                "redirect_uris": [self._settings.redirect_uri],
            }
        }

    def authorization_url(self, state: str, code_challenge: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self._settings.client_id,
            "redirect_uri": self._settings.redirect_uri,
            "scope": " ".join(self._scopes),
            "state": state,
            "access_type": "offline",
            "prompt": "consent",
            "code_challenge": code_challenge,
            "code_challenge_method": "S256",
        }
        return f"{self._settings.auth_uri}?{urlencode(params)}"

    def exchange_code(self, code: str, code_verifier: str) -> OAuthTokens:
        if not code:
            raise ExchangeFailed("Missing authorization code")

        flow = Flow.from_client_config(
            self._client_config(),
            scopes=self._scopes,
            redirect_uri=self._settings.redirect_uri,
            code_verifier=code_verifier,
            autogenerate_code_verifier=False,
        )
        try:
            token = flow.fetch_token(code=code, timeout=self._settings.http_timeout_seconds)
        except OAuth2Error as e:
            logger.error(f"Authorization code exchange rejected: {e.error}")
            raise ExchangeFailed(f"Provider rejected the authorization code: {e.error}") from e
        except requests.RequestException as e:
            logger.error(f"Authorization code exchange failed: {e}")
            raise ExchangeFailed("Could not reach the authorization server") from e
        except (ValueError, Warning) as e:
            # oauthlib raises a Warning when the granted scope differs.
            logger.error(f"Unexpected token response: {e}")
            raise ExchangeFailed("Unexpected token response from provider") from e

        access_token = token.get("access_token")
        refresh_token = token.get("refresh_token")
        if not access_token:
            raise ExchangeFailed("Provider returned no access token")
        if not refresh_token:
            raise ExchangeFailed("Provider returned no refresh token")

        return OAuthTokens(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=_expires_in(token.get("expires_in")),
        )

    def refresh(self, refresh_token: str) -> OAuthTokens:
        credentials = Credentials(
            token=None,
            refresh_token=refresh_token,
            token_uri=self._settings.token_uri,
            client_id=self._settings.client_id,
            client_secret=self._settings.client_secret,
            scopes=self._scopes,
        )
        try:
            credentials.refresh(TimeoutRequest(self._settings.http_timeout_seconds))
        except RefreshError as e:
            logger.warning(f"Token refresh failed: {e}")
            raise ExchangeFailed("Provider rejected the refresh token") from e
        except TransportError as e:
            logger.error(f"Token refresh transport error: {e}")
            raise ExchangeFailed("Could not reach the authorization server") from e

        if not credentials.token:
            raise ExchangeFailed("Provider returned no access token")

        rotated = credentials.refresh_token
        return OAuthTokens(
            access_token=credentials.token,
            refresh_token=rotated if rotated and rotated != refresh_token else None,
            expires_in=_seconds_until(credentials.expiry),
        )


def _expires_in(value: Any) -> int:
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        return constants.OAUTH_DEFAULT_EXPIRES_IN_SECONDS
    return max(seconds, 0)


def _seconds_until(expiry: Optional[datetime]) -> int:
    """Seconds from now until a google-auth expiry (naive UTC)."""
    if expiry is None:
        return constants.OAUTH_DEFAULT_EXPIRES_IN_SECONDS
    if expiry.tzinfo is not None:
        expiry = expiry.astimezone(timezone.utc).replace(tzinfo=None)
    now = datetime.now(timezone.utc).replace(tzinfo=None)
    return max(int((expiry - now).total_seconds()), 0)
