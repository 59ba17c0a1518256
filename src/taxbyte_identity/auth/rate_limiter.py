"""Login throttling backed by the durable login-attempt log."""

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..core.config import RateLimitSettings
from ..utils.errors import RateLimited
from .credential_store import CredentialStore
from .models import LoginAttempt, utcnow

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Blocks login attempts after too many recent failures.

    Failures are counted separately for the email and for the source IP
    inside a trailing window; reaching the threshold on either key blocks.
    Because the counts come from the store, the limit holds across restarts
    and across processes sharing that store. Successful logins are recorded
    but never clear earlier failures.
    """

    def __init__(
        self,
        store: CredentialStore,
        settings: Optional[RateLimitSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        settings = settings or RateLimitSettings()
        self._store = store
        self._max_attempts = settings.login_max_attempts
        self._window = timedelta(seconds=settings.login_window_seconds)
        self._clock = clock

    def check(self, email: str, ip_address: Optional[str] = None) -> None:
        """
        Raise if the email or IP is currently blocked.

        Raises:
            RateLimited: With a retry hint equal to the window length.
        """
        since = self._clock() - self._window

        if self._store.count_failed_attempts(since, email=email) >= self._max_attempts:
            logger.warning("Login blocked: too many failures for account")
            raise RateLimited(int(self._window.total_seconds()))

        if ip_address is not None:
            count = self._store.count_failed_attempts(since, ip_address=ip_address)
            if count >= self._max_attempts:
                logger.warning(f"Login blocked: too many failures from {ip_address}")
                raise RateLimited(int(self._window.total_seconds()))

    def record(self, email: str, ip_address: Optional[str], success: bool) -> None:
        """Append an attempt to the log."""
        self._store.add_login_attempt(
            LoginAttempt(
                email=email,
                ip_address=ip_address,
                success=success,
                attempted_at=self._clock(),
            )
        )
