"""Unit tests for login throttling."""

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from taxbyte_identity.auth.credential_store import InMemoryCredentialStore
from taxbyte_identity.auth.rate_limiter import RateLimiter
from taxbyte_identity.core.config import RateLimitSettings
from taxbyte_identity.utils.errors import RateLimited

from fakes import FakeClock


class TestRateLimiter:
    def setup_method(self):
        self.clock = FakeClock()
        self.store = InMemoryCredentialStore()
        self.limiter = RateLimiter(
            self.store,
            RateLimitSettings(login_max_attempts=3, login_window_seconds=300),
            clock=self.clock,
        )

    def _fail(self, email="ada@example.com", ip="10.0.0.1", times=1):
        for _ in range(times):
            self.limiter.record(email, ip, success=False)

    def test_allows_below_threshold(self):
        self._fail(times=2)
        self.limiter.check("ada@example.com", "10.0.0.1")

    def test_blocks_at_threshold(self):
        self._fail(times=3)
        with pytest.raises(RateLimited) as exc_info:
            self.limiter.check("ada@example.com", "10.0.0.9")
        assert exc_info.value.retry_after_seconds == 300

    def test_ip_key_blocks_independently(self):
        """Spraying different accounts from one address is throttled by IP."""
        for i in range(3):
            self._fail(email=f"user{i}@example.com")
        with pytest.raises(RateLimited):
            self.limiter.check("fresh@example.com", "10.0.0.1")
        self.limiter.check("fresh@example.com", "10.0.0.2")

    def test_window_expires(self):
        self._fail(times=3)
        self.clock.advance(301)
        self.limiter.check("ada@example.com", "10.0.0.1")

    def test_success_does_not_reset_failures(self):
        self._fail(times=3)
        self.limiter.record("ada@example.com", "10.0.0.1", success=True)
        with pytest.raises(RateLimited):
            self.limiter.check("ada@example.com", "10.0.0.1")

    def test_limit_survives_new_limiter_instance(self):
        self._fail(times=3)
        restarted = RateLimiter(
            self.store,
            RateLimitSettings(login_max_attempts=3, login_window_seconds=300),
            clock=self.clock,
        )
        with pytest.raises(RateLimited):
            restarted.check("ada@example.com", None)
