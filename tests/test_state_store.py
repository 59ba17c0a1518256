"""Unit tests for OAuth state store adapters."""

import os
import shutil
import sys
import tempfile
import threading
from datetime import timedelta
from uuid import uuid4

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../src"))

from taxbyte_identity.oauth.models import OAuthPendingState
from taxbyte_identity.oauth.state_store import (
    InMemoryOAuthStateStore,
    LocalDirectoryOAuthStateStore,
)

from fakes import START


def _pending(state="state-1", company_id=None, ttl=600):
    return OAuthPendingState(
        state=state,
        code_verifier="v" * 43,
        company_id=company_id or uuid4(),
        user_id=uuid4(),
        created_at=START,
        expires_at=START + timedelta(seconds=ttl),
    )


class StateStoreContract:
    def make_store(self):
        raise NotImplementedError

    def setup_method(self):
        self.store = self.make_store()

    def test_consume_returns_once(self):
        pending = _pending()
        self.store.save_state(pending)
        assert self.store.consume_state("state-1") == pending
        assert self.store.consume_state("state-1") is None

    def test_consume_unknown(self):
        assert self.store.consume_state("missing") is None
        assert self.store.consume_state("") is None

    def test_concurrent_consume_single_winner(self):
        self.store.save_state(_pending())
        results = []
        barrier = threading.Barrier(8)

        def consume():
            barrier.wait()
            results.append(self.store.consume_state("state-1"))

        threads = [threading.Thread(target=consume) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len([r for r in results if r is not None]) == 1

    def test_purge_for_company(self):
        company_id = uuid4()
        self.store.save_state(_pending("a", company_id))
        self.store.save_state(_pending("b", company_id))
        self.store.save_state(_pending("c"))
        assert self.store.purge_for_company(company_id) == 2
        assert self.store.consume_state("a") is None
        assert self.store.consume_state("c") is not None

    def test_purge_expired(self):
        self.store.save_state(_pending("old", ttl=60))
        self.store.save_state(_pending("new", ttl=600))
        assert self.store.purge_expired(START + timedelta(seconds=120)) == 1
        assert self.store.consume_state("new") is not None


class TestInMemoryOAuthStateStore(StateStoreContract):
    def make_store(self):
        return InMemoryOAuthStateStore()


class TestLocalDirectoryOAuthStateStore(StateStoreContract):
    def make_store(self):
        self.temp_dir = tempfile.mkdtemp()
        return LocalDirectoryOAuthStateStore(self.temp_dir)

    def teardown_method(self):
        if os.path.exists(self.temp_dir):
            shutil.rmtree(self.temp_dir)

    def test_state_survives_restart(self):
        pending = _pending()
        self.store.save_state(pending)
        reopened = LocalDirectoryOAuthStateStore(self.temp_dir)
        assert reopened.consume_state("state-1") == pending

    def test_shared_directory_consume_single_winner(self):
        # Separate store instances stand in for separate worker processes.
        other = LocalDirectoryOAuthStateStore(self.temp_dir)
        for trial in range(30):
            state = f"shared-{trial}"
            self.store.save_state(_pending(state))
            results = []
            barrier = threading.Barrier(2)

            def consume(store):
                barrier.wait()
                results.append(store.consume_state(state))

            threads = [
                threading.Thread(target=consume, args=(store,)) for store in (self.store, other)
            ]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert len([r for r in results if r is not None]) == 1
