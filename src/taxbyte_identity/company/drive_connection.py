"""
Google Drive connection use cases for a company.

These sequence the OAuth flow manager with the company repository and add
the authorization rule: only owners and admins may connect or disconnect.
"""

import logging
from datetime import datetime
from typing import Any, Callable
from uuid import UUID

from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from ..auth.models import utcnow
from ..oauth.flow_manager import OAuthFlowManager
from ..security.secret_codec import SecretCodec
from ..utils.errors import (
    CompanyNotFound,
    ExchangeFailed,
    NotConnected,
    PermissionDenied,
)
from .models import Company, DriveConnectionStatus
from .repository import CompanyRepository

logger = logging.getLogger(__name__)


def build_drive_service(access_token: str) -> Any:
    """Build a Drive v3 client authorized with a bare access token."""
    return build(
        "drive", "v3", credentials=Credentials(token=access_token), cache_discovery=False
    )


class DriveConnectionUseCases:
    """Connect, refresh, probe and disconnect a company's Google Drive."""

    def __init__(
        self,
        companies: CompanyRepository,
        flow: OAuthFlowManager,
        codec: SecretCodec,
        drive_service_factory: Callable[[str], Any] = build_drive_service,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._companies = companies
        self._flow = flow
        self._codec = codec
        self._drive_service_factory = drive_service_factory
        self._clock = clock

    def _require_company(self, company_id: UUID) -> Company:
        company = self._companies.get(company_id)
        if company is None:
            raise CompanyNotFound(str(company_id))
        return company

    def _require_manager(self, company: Company, user_id: UUID) -> None:
        role = company.role_of(user_id)
        if role is None or not role.can_manage:
            logger.warning(f"User {user_id} may not manage Drive for company {company.id}")
            raise PermissionDenied("Only owners and admins can manage the Drive connection")

    def initiate_oauth(self, company_id: UUID, user_id: UUID) -> str:
        """
        Start connecting Google Drive.

        Returns:
            Consent URL for the user.

        Raises:
            CompanyNotFound: Unknown company.
            PermissionDenied: User is not an owner or admin.
        """
        company = self._require_company(company_id)
        self._require_manager(company, user_id)
        return self._flow.initiate(company_id, user_id)

    def complete_oauth(self, code: str, state: str) -> DriveConnectionStatus:
        """
        Handle the provider callback and store the encrypted tokens.

        Raises:
            StateMismatch: Unknown, reused or expired state.
            ExchangeFailed: Provider rejected the code.
            CompanyNotFound: The company vanished during the flow.
        """
        connection = self._flow.complete(code, state)
        # An in-flight refresh must not write the previous tokens back over these.
        with self._flow.refresh_lock(connection.company_id):
            company = self._companies.update_oauth_tokens(
                connection.company_id,
                access_token=connection.access_token,
                refresh_token=connection.refresh_token,
                expires_at=connection.expires_at,
                connected_by=connection.connected_by,
                connected_at=self._clock(),
            )
        logger.info(f"Google Drive connected for company {company.id}")
        return DriveConnectionStatus.for_company(company, True, "Google Drive connected")

    def refresh_token(self, company_id: UUID) -> DriveConnectionStatus:
        """
        Refresh the company's access token.

        Concurrent calls for one company are serialized; a call that waited
        while another refreshed returns that result instead of refreshing
        again.

        Raises:
            CompanyNotFound: Unknown company.
            NotConnected: No refresh token stored.
            DecryptError: Stored token cannot be decrypted.
            ExchangeFailed: Provider rejected the refresh.
        """
        observed = self._require_company(company_id).oauth_token_expires_at
        company = self._refresh(
            company_id, lambda current: current.oauth_token_expires_at == observed
        )
        return DriveConnectionStatus.for_company(company, True, "Access token refreshed")

    def get_access_token(self, company_id: UUID) -> str:
        """
        Return a plaintext access token that is not about to expire.

        Refreshes first when the token is inside the lookahead window.

        Raises:
            NotConnected: No connection stored.
            DecryptError: Stored token cannot be decrypted.
            ExchangeFailed: A needed refresh failed.
        """
        company = self._require_company(company_id)
        if not company.has_oauth_connection():
            raise NotConnected(str(company_id))

        if self._flow.needs_refresh(company.oauth_token_expires_at, self._clock()):
            company = self._refresh(
                company_id,
                lambda current: self._flow.needs_refresh(
                    current.oauth_token_expires_at, self._clock()
                ),
            )

        if company.oauth_access_token is None:
            raise NotConnected(str(company_id))
        return self._codec.decrypt(company.oauth_access_token)

    def _refresh(self, company_id: UUID, still_needed: Callable[[Company], bool]) -> Company:
        with self._flow.refresh_lock(company_id):
            company = self._require_company(company_id)
            if not company.has_oauth_connection():
                raise NotConnected(str(company_id))
            if not still_needed(company):
                logger.debug(f"Refresh for company {company_id} already done by another caller")
                return company

            connection = self._flow.refresh(company_id, company.oauth_refresh_token)
            return self._companies.update_oauth_tokens(
                company_id,
                access_token=connection.access_token,
                refresh_token=connection.refresh_token,
                expires_at=connection.expires_at,
            )

    def disconnect(self, company_id: UUID, user_id: UUID) -> None:
        """
        Remove the Drive connection and any pending authorization attempts.

        Raises:
            CompanyNotFound: Unknown company.
            PermissionDenied: User is not an owner or admin.
        """
        company = self._require_company(company_id)
        self._require_manager(company, user_id)

        with self._flow.refresh_lock(company_id):
            self._companies.clear_oauth_tokens(company_id)
        self._flow.disconnect(company_id)
        logger.info(f"Google Drive disconnected for company {company_id} by user {user_id}")

    def connection_status(self, company_id: UUID) -> DriveConnectionStatus:
        company = self._require_company(company_id)
        if not company.has_oauth_connection():
            message, success = "Google Drive is not connected", False
        elif company.has_valid_oauth_token(self._clock()):
            message, success = "Connected", True
        else:
            message, success = "Access token expired, refresh pending", False
        return DriveConnectionStatus.for_company(company, success, message)

    def test_connection(self, company_id: UUID) -> DriveConnectionStatus:
        """
        Check the connection end to end with a Drive ``about.get`` call.

        Decryption failures are raised, never reported as "not connected".
        """
        company = self._require_company(company_id)
        if not company.has_oauth_connection():
            return DriveConnectionStatus.for_company(company, False, "Google Drive is not connected")

        try:
            access_token = self.get_access_token(company_id)
        except ExchangeFailed as e:
            logger.warning(f"Drive connection test for company {company_id}: {e.message}")
            company = self._require_company(company_id)
            return DriveConnectionStatus.for_company(
                company, False, "OAuth tokens have expired. Please reconnect."
            )

        company = self._require_company(company_id)
        try:
            service = self._drive_service_factory(access_token)
            service.about().get(fields="user").execute()
        except HttpError as e:
            logger.error(f"Drive API probe failed for company {company_id}: {e}")
            return DriveConnectionStatus.for_company(
                company, False, f"Drive API call failed (HTTP {e.resp.status})"
            )

        return DriveConnectionStatus.for_company(
            company, True, "Connection is active and tokens are valid"
        )
