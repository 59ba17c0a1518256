"""Unit tests for the Google Drive connection use cases."""

import os
import shutil
import sys
import tempfile
import threading
import time
from datetime import timedelta
from unittest.mock import MagicMock, Mock
from urllib.parse import parse_qs, urlparse
from uuid import uuid4

import pytest
from googleapiclient.errors import HttpError

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from taxbyte_identity.company.drive_connection import DriveConnectionUseCases
from taxbyte_identity.company.models import Company, CompanyRole
from taxbyte_identity.company.repository import (
    InMemoryCompanyRepository,
    LocalDirectoryCompanyRepository,
)
from taxbyte_identity.oauth.flow_manager import OAuthFlowManager
from taxbyte_identity.oauth.mock_transport import MockOAuthTransport
from taxbyte_identity.oauth.models import OAuthTokens
from taxbyte_identity.oauth.state_store import InMemoryOAuthStateStore
from taxbyte_identity.security.secret_codec import SecretCodec
from taxbyte_identity.security.token_generator import TokenGenerator
from taxbyte_identity.utils.errors import (
    CompanyNotFound,
    DecryptError,
    ExchangeFailed,
    NotConnected,
    PermissionDenied,
    StateMismatch,
)

from fakes import FakeClock


class DriveTestCase:
    def make_repository(self):
        return InMemoryCompanyRepository()

    def setup_method(self):
        self.clock = FakeClock()
        self.codec = SecretCodec(SecretCodec.generate_key())
        self.transport = MockOAuthTransport()
        self.states = InMemoryOAuthStateStore()
        self.flow = OAuthFlowManager(
            transport=self.transport,
            state_store=self.states,
            codec=self.codec,
            tokens=TokenGenerator("pepper"),
            clock=self.clock,
        )
        self.companies = self.make_repository()
        self.drive_service = MagicMock()
        self.drive = DriveConnectionUseCases(
            self.companies,
            self.flow,
            self.codec,
            drive_service_factory=lambda token: self.drive_service,
            clock=self.clock,
        )

        self.owner_id = uuid4()
        self.admin_id = uuid4()
        self.member_id = uuid4()
        self.company = Company(
            name="Acme GmbH",
            members={
                self.owner_id: CompanyRole.OWNER,
                self.admin_id: CompanyRole.ADMIN,
                self.member_id: CompanyRole.MEMBER,
            },
        )
        self.companies.save(self.company)

    def connect(self, user_id=None):
        url = self.drive.initiate_oauth(self.company.id, user_id or self.owner_id)
        state = parse_qs(urlparse(url).query)["state"][0]
        return self.drive.complete_oauth("auth-code", state)

    def stored(self):
        return self.companies.get(self.company.id)


class TestConnect(DriveTestCase):
    def test_owner_and_admin_can_connect(self):
        status = self.connect()
        assert status.connected and status.success
        assert status.connected_by == self.owner_id

        self.drive.disconnect(self.company.id, self.owner_id)
        assert self.connect(self.admin_id).connected_by == self.admin_id

    def test_member_cannot_initiate(self):
        with pytest.raises(PermissionDenied):
            self.drive.initiate_oauth(self.company.id, self.member_id)

    def test_outsider_cannot_initiate(self):
        with pytest.raises(PermissionDenied):
            self.drive.initiate_oauth(self.company.id, uuid4())

    def test_unknown_company(self):
        with pytest.raises(CompanyNotFound):
            self.drive.initiate_oauth(uuid4(), self.owner_id)

    def test_tokens_stored_encrypted(self):
        self.connect()
        company = self.stored()
        assert not company.oauth_access_token.startswith("mock-")
        assert self.codec.decrypt(company.oauth_access_token).startswith("mock-access-token-")
        assert self.codec.decrypt(company.oauth_refresh_token).startswith("mock-refresh-token-")
        assert company.oauth_token_expires_at == self.clock.now + timedelta(hours=1)
        assert company.oauth_connected_at == self.clock.now

    def test_replayed_callback(self):
        url = self.drive.initiate_oauth(self.company.id, self.owner_id)
        state = parse_qs(urlparse(url).query)["state"][0]
        self.drive.complete_oauth("auth-code", state)
        with pytest.raises(StateMismatch):
            self.drive.complete_oauth("auth-code", state)

    def test_status_never_contains_tokens(self):
        status = self.connect()
        company = self.stored()
        assert company.oauth_access_token not in repr(status)
        assert company.oauth_refresh_token not in repr(status)


class TestRefresh(DriveTestCase):
    def test_refresh_after_complete_advances_expiry(self):
        self.connect()
        before = self.stored()
        self.clock.advance(30)

        status = self.drive.refresh_token(self.company.id)

        after = self.stored()
        assert status.expires_at > before.oauth_token_expires_at
        assert after.oauth_token_expires_at > before.oauth_token_expires_at
        assert self.codec.decrypt(after.oauth_access_token) != self.codec.decrypt(
            before.oauth_access_token
        )
        assert after.oauth_refresh_token == before.oauth_refresh_token
        assert after.oauth_connected_by == self.owner_id

    def test_rotated_refresh_token_is_persisted(self):
        self.connect()
        before = self.stored()
        self.transport.rotate_refresh_tokens = True
        self.drive.refresh_token(self.company.id)
        assert self.stored().oauth_refresh_token != before.oauth_refresh_token

    def test_not_connected(self):
        with pytest.raises(NotConnected):
            self.drive.refresh_token(self.company.id)

    def test_concurrent_refresh_calls_provider_once(self):
        self.connect()
        calls = []

        def slow_refresh(refresh_token):
            calls.append(refresh_token)
            time.sleep(0.05)
            return OAuthTokens(access_token=f"new-{len(calls)}", expires_in=3600)

        transport = Mock()
        transport.refresh.side_effect = slow_refresh
        self.flow._transport = transport
        self.clock.advance(10)

        barrier = threading.Barrier(4)
        errors = []

        def refresh():
            barrier.wait()
            try:
                self.drive.refresh_token(self.company.id)
            except Exception as e:  # surfaced through the assertion below
                errors.append(e)

        threads = [threading.Thread(target=refresh) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(calls) == 1

    def test_reconnect_during_refresh_keeps_new_tokens(self):
        self.connect()
        refresh_started = threading.Event()
        release_refresh = threading.Event()
        original_refresh = self.transport.refresh

        def blocking_refresh(refresh_token):
            refresh_started.set()
            release_refresh.wait(5)
            return original_refresh(refresh_token)

        self.transport.refresh = blocking_refresh
        exchanged = []
        original_exchange = self.transport.exchange_code

        def recording_exchange(code, code_verifier):
            tokens = original_exchange(code, code_verifier)
            exchanged.append(tokens.refresh_token)
            return tokens

        self.transport.exchange_code = recording_exchange
        self.clock.advance(10)

        refresher = threading.Thread(target=self.drive.refresh_token, args=(self.company.id,))
        refresher.start()
        assert refresh_started.wait(5)

        reconnector = threading.Thread(target=self.connect)
        reconnector.start()
        reconnector.join(0.2)
        release_refresh.set()
        refresher.join()
        reconnector.join()

        stored = self.stored()
        assert self.codec.decrypt(stored.oauth_refresh_token) == exchanged[-1]

    def test_undecryptable_token_is_not_reported_as_disconnected(self):
        self.connect()
        other = SecretCodec(SecretCodec.generate_key())
        company = self.stored()
        self.companies.update_oauth_tokens(
            company.id,
            access_token=company.oauth_access_token,
            refresh_token=other.encrypt("foreign"),
            expires_at=company.oauth_token_expires_at,
        )
        with pytest.raises(DecryptError):
            self.drive.refresh_token(self.company.id)


class TestAccessToken(DriveTestCase):
    def test_fresh_token_is_returned_without_refresh(self):
        self.connect()
        token = self.drive.get_access_token(self.company.id)
        assert token.startswith("mock-access-token-")
        assert self.transport.refresh_calls == 0

    def test_token_inside_lookahead_is_refreshed_first(self):
        self.connect()
        self.clock.advance(3600 - 120)
        token = self.drive.get_access_token(self.company.id)
        assert token.startswith("mock-refreshed-access-token-")
        assert self.transport.refresh_calls == 1

    def test_not_connected(self):
        with pytest.raises(NotConnected):
            self.drive.get_access_token(self.company.id)


class TestDisconnect(DriveTestCase):
    def test_disconnect_clears_everything(self):
        self.connect()
        self.drive.initiate_oauth(self.company.id, self.owner_id)

        self.drive.disconnect(self.company.id, self.admin_id)

        company = self.stored()
        assert company.oauth_access_token is None
        assert company.oauth_refresh_token is None
        assert company.oauth_token_expires_at is None
        assert company.oauth_connected_by is None
        assert company.oauth_connected_at is None
        assert self.states.purge_for_company(self.company.id) == 0

    def test_member_cannot_disconnect(self):
        self.connect()
        with pytest.raises(PermissionDenied):
            self.drive.disconnect(self.company.id, self.member_id)
        assert self.stored().has_oauth_connection()


class TestConnectionStatus(DriveTestCase):
    def test_not_connected(self):
        status = self.drive.connection_status(self.company.id)
        assert not status.connected

    def test_connected(self):
        self.connect()
        status = self.drive.connection_status(self.company.id)
        assert status.connected and status.success

    def test_expired(self):
        self.connect()
        self.clock.advance(7200)
        status = self.drive.connection_status(self.company.id)
        assert status.connected and not status.success


class TestConnectionProbe(DriveTestCase):
    def test_not_connected(self):
        status = self.drive.test_connection(self.company.id)
        assert not status.success
        assert status.message == "Google Drive is not connected"

    def test_active_connection_probes_drive(self):
        self.connect()
        status = self.drive.test_connection(self.company.id)
        assert status.success
        self.drive_service.about.return_value.get.assert_called_once_with(fields="user")

    def test_unrefreshable_token(self):
        self.connect()
        self.clock.advance(7200)
        transport = Mock()
        transport.refresh.side_effect = ExchangeFailed("invalid_grant")
        self.flow._transport = transport

        status = self.drive.test_connection(self.company.id)
        assert not status.success
        assert "reconnect" in status.message

    def test_drive_api_error(self):
        self.connect()
        resp = Mock(status=403, reason="Forbidden")
        self.drive_service.about.return_value.get.return_value.execute.side_effect = HttpError(
            resp, b"{}"
        )
        status = self.drive.test_connection(self.company.id)
        assert not status.success
        assert "403" in status.message


class TestLocalDirectoryCompanyRepository(DriveTestCase):
    def make_repository(self):
        self.temp_dir = tempfile.mkdtemp()
        return LocalDirectoryCompanyRepository(self.temp_dir)

    def teardown_method(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_connection_survives_restart(self):
        self.connect()
        reopened = LocalDirectoryCompanyRepository(self.temp_dir)
        company = reopened.get(self.company.id)
        assert company.has_oauth_connection()
        assert company.role_of(self.member_id) == CompanyRole.MEMBER

    def test_clear_unknown_company(self):
        with pytest.raises(CompanyNotFound):
            self.companies.clear_oauth_tokens(uuid4())
