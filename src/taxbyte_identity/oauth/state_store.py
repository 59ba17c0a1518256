"""
OAuth state store for TaxByte.

Pending authorization states are persisted so a callback that arrives after
a restart can still be matched. Each state can be consumed exactly once.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional
from uuid import UUID

from ..utils.tables import DirectoryTables, MemoryTables, TableBackend
from .models import OAuthPendingState

logger = logging.getLogger(__name__)

STATES_TABLE = "oauth_states"


class OAuthStateStore(ABC):
    """Abstract base class for pending OAuth state storage."""

    @abstractmethod
    def save_state(self, pending: OAuthPendingState) -> None:
        """Persist a new pending state."""
        pass

    @abstractmethod
    def consume_state(self, state: str) -> Optional[OAuthPendingState]:
        """
        Atomically remove and return a pending state.

        Of any number of concurrent callers presenting the same state, at
        most one receives the record; the rest get None. Expiry is not
        checked here.
        """
        pass

    @abstractmethod
    def purge_for_company(self, company_id: UUID) -> int:
        """Delete all pending states of a company and return how many."""
        pass

    @abstractmethod
    def purge_expired(self, now: datetime) -> int:
        pass


class TableOAuthStateStore(OAuthStateStore):
    """OAuth state store built on a table backend, keyed by state value."""

    def __init__(self, backend: TableBackend) -> None:
        self._backend = backend

    def save_state(self, pending: OAuthPendingState) -> None:
        if not pending.state:
            raise ValueError("OAuth state must be provided")
        with self._backend.lock:
            states = self._backend.load(STATES_TABLE, {})
            states[pending.state] = pending.to_dict()
            self._backend.save(STATES_TABLE, states)
        logger.debug(
            f"Stored OAuth state {pending.state[:8]}... "
            f"(expires at {pending.expires_at.isoformat()})"
        )

    def consume_state(self, state: str) -> Optional[OAuthPendingState]:
        if not state:
            return None
        with self._backend.lock:
            states = self._backend.load(STATES_TABLE, {})
            row = states.pop(state, None)
            if row is None:
                return None
            self._backend.save(STATES_TABLE, states)
        logger.debug(f"Consumed OAuth state {state[:8]}...")
        return OAuthPendingState.from_dict(row)

    def purge_for_company(self, company_id: UUID) -> int:
        with self._backend.lock:
            states = self._backend.load(STATES_TABLE, {})
            kept = {k: v for k, v in states.items() if v["company_id"] != str(company_id)}
            removed = len(states) - len(kept)
            if removed:
                self._backend.save(STATES_TABLE, kept)
            return removed

    def purge_expired(self, now: datetime) -> int:
        with self._backend.lock:
            states = self._backend.load(STATES_TABLE, {})
            kept = {
                k: v
                for k, v in states.items()
                if not OAuthPendingState.from_dict(v).is_expired(now)
            }
            removed = len(states) - len(kept)
            if removed:
                self._backend.save(STATES_TABLE, kept)
                logger.info(f"Removed {removed} expired OAuth states")
            return removed


class InMemoryOAuthStateStore(TableOAuthStateStore):
    """State store that keeps pending states in process memory."""

    def __init__(self) -> None:
        super().__init__(MemoryTables())


class LocalDirectoryOAuthStateStore(TableOAuthStateStore):
    """State store persisted to oauth_states.json so flows survive restarts."""

    def __init__(self, base_dir: str) -> None:
        super().__init__(DirectoryTables(base_dir))
        self.base_dir = base_dir
        logger.info(f"LocalDirectoryOAuthStateStore initialized: {base_dir}")
