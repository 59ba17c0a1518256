"""Unit tests for the Google OAuth transport."""

import os
import sys
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, Mock, patch

import pytest
import requests
from google.auth.exceptions import RefreshError
from oauthlib.oauth2.rfc6749.errors import InvalidGrantError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from taxbyte_identity.core.config import OAuthSettings
from taxbyte_identity.oauth.mock_transport import MockOAuthTransport
from taxbyte_identity.oauth.transport import GoogleOAuthTransport, TimeoutRequest
from taxbyte_identity.utils.errors import ConfigurationError, ExchangeFailed

SETTINGS = OAuthSettings(
    client_id="client-123.apps.googleusercontent.com",
    client_secret="client-secret",
    redirect_uri="https://app.taxbyte.test/oauth/callback",
    http_timeout_seconds=7,
)


class TestGoogleExchange:
    def setup_method(self):
        self.transport = GoogleOAuthTransport(SETTINGS)

    def test_requires_client_configuration(self):
        with pytest.raises(ConfigurationError):
            GoogleOAuthTransport(OAuthSettings())

    def test_exchange_uses_verifier_and_timeout(self):
        with patch("taxbyte_identity.oauth.transport.Flow") as mock_flow_cls:
            flow = mock_flow_cls.from_client_config.return_value
            flow.fetch_token.return_value = {
                "access_token": "ya29.access",
                "refresh_token": "1//refresh",
                "expires_in": 3599,
            }

            tokens = self.transport.exchange_code("auth-code", "verifier-" + "x" * 40)

        kwargs = mock_flow_cls.from_client_config.call_args.kwargs
        assert kwargs["code_verifier"] == "verifier-" + "x" * 40
        assert kwargs["autogenerate_code_verifier"] is False
        assert kwargs["redirect_uri"] == SETTINGS.redirect_uri
        assert kwargs["scopes"] == ["https://www.googleapis.com/auth/drive.file"]
        flow.fetch_token.assert_called_once_with(code="auth-code", timeout=7)

        assert tokens.access_token == "ya29.access"
        assert tokens.refresh_token == "1//refresh"
        assert tokens.expires_in == 3599

    def test_missing_refresh_token(self):
        with patch("taxbyte_identity.oauth.transport.Flow") as mock_flow_cls:
            mock_flow_cls.from_client_config.return_value.fetch_token.return_value = {
                "access_token": "ya29.access",
                "expires_in": 3599,
            }
            with pytest.raises(ExchangeFailed):
                self.transport.exchange_code("auth-code", "v" * 43)

    def test_provider_rejection(self):
        with patch("taxbyte_identity.oauth.transport.Flow") as mock_flow_cls:
            mock_flow_cls.from_client_config.return_value.fetch_token.side_effect = (
                InvalidGrantError()
            )
            with pytest.raises(ExchangeFailed) as exc_info:
                self.transport.exchange_code("used-code", "v" * 43)
        assert "invalid_grant" in exc_info.value.message

    def test_network_failure(self):
        with patch("taxbyte_identity.oauth.transport.Flow") as mock_flow_cls:
            mock_flow_cls.from_client_config.return_value.fetch_token.side_effect = (
                requests.Timeout("timed out")
            )
            with pytest.raises(ExchangeFailed):
                self.transport.exchange_code("auth-code", "v" * 43)

    def test_broad_scope_is_logged(self, caplog):
        settings = OAuthSettings(
            client_id=SETTINGS.client_id,
            client_secret=SETTINGS.client_secret,
            redirect_uri=SETTINGS.redirect_uri,
            scope="https://www.googleapis.com/auth/drive",
        )
        with caplog.at_level("WARNING", logger="taxbyte_identity.oauth.transport"):
            GoogleOAuthTransport(settings)
        assert "beyond drive.file" in caplog.text

    def test_empty_code(self):
        with pytest.raises(ExchangeFailed):
            self.transport.exchange_code("", "v" * 43)


class TestGoogleRefresh:
    def setup_method(self):
        self.transport = GoogleOAuthTransport(SETTINGS)

    def _credentials(self, refresh_token="1//refresh"):
        creds = MagicMock()
        creds.token = "ya29.new"
        creds.refresh_token = refresh_token
        creds.expiry = datetime.now(timezone.utc).replace(tzinfo=None) + timedelta(hours=1)
        return creds

    def test_refresh_without_rotation(self):
        creds = self._credentials()
        with patch("taxbyte_identity.oauth.transport.Credentials", return_value=creds) as cls:
            tokens = self.transport.refresh("1//refresh")

        kwargs = cls.call_args.kwargs
        assert kwargs["refresh_token"] == "1//refresh"
        assert kwargs["token_uri"] == "https://oauth2.googleapis.com/token"
        assert kwargs["client_id"] == SETTINGS.client_id

        request = creds.refresh.call_args.args[0]
        assert isinstance(request, TimeoutRequest)
        assert request._timeout == 7

        assert tokens.access_token == "ya29.new"
        assert tokens.refresh_token is None
        assert 3500 < tokens.expires_in <= 3600

    def test_refresh_with_rotation(self):
        creds = self._credentials(refresh_token="1//rotated")
        with patch("taxbyte_identity.oauth.transport.Credentials", return_value=creds):
            tokens = self.transport.refresh("1//refresh")
        assert tokens.refresh_token == "1//rotated"

    def test_refresh_rejected(self):
        creds = self._credentials()
        creds.refresh.side_effect = RefreshError("invalid_grant: Token has been revoked.")
        with patch("taxbyte_identity.oauth.transport.Credentials", return_value=creds):
            with pytest.raises(ExchangeFailed):
                self.transport.refresh("1//refresh")


class TestTimeoutRequest:
    def test_applies_default_timeout(self):
        session = Mock()
        request = TimeoutRequest(5, session=session)
        request("https://oauth2.googleapis.com/token", method="POST", body="x")
        assert session.request.call_args.kwargs["timeout"] == 5

    def test_explicit_timeout_wins(self):
        session = Mock()
        request = TimeoutRequest(5, session=session)
        request("https://oauth2.googleapis.com/token", method="POST", timeout=2)
        assert session.request.call_args.kwargs["timeout"] == 2


class TestMockTransport:
    def test_tokens_have_mock_shape(self):
        transport = MockOAuthTransport()
        tokens = transport.exchange_code("mock-code", "v" * 43)
        assert tokens.access_token.startswith("mock-access-token-")
        assert tokens.refresh_token.startswith("mock-refresh-token-")
        assert tokens.expires_in == 3600

    def test_refresh_keeps_refresh_token(self):
        tokens = MockOAuthTransport().refresh("mock-refresh-token-123")
        assert tokens.access_token.startswith("mock-refreshed-access-token-")
        assert tokens.refresh_token is None

    def test_authorization_url_points_to_mock_page(self):
        url = MockOAuthTransport().authorization_url("state-abc", "challenge")
        assert url.startswith("/dev/mock-oauth?")
        assert "state-abc" in url
