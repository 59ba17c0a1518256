"""
Table backends for the store adapters.

A backend hands out whole JSON-compatible "tables" (dicts or lists) by name
and persists them back. Store adapters perform every read-modify-write while
holding ``backend.lock``. For directory tables that lock is also an OS file
lock on ``<base_dir>/.lock``, so each store operation stays atomic across
processes sharing the directory.
"""

import copy
import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from threading import RLock
from typing import Any, Dict, Optional

from filelock import FileLock, Timeout

from . import constants
from .errors import RepositoryError

logger = logging.getLogger(__name__)

LOCK_FILE = ".lock"


class TableBackend(ABC):
    """Abstract base class for table persistence."""

    def __init__(self) -> None:
        self.lock = RLock()

    @abstractmethod
    def load(self, table: str, default: Any) -> Any:
        """Return a private copy of a table, or ``default`` if it does not exist."""
        pass

    @abstractmethod
    def save(self, table: str, data: Any) -> None:
        """Replace a table's contents."""
        pass


class MemoryTables(TableBackend):
    """Process-local tables for tests and local development."""

    def __init__(self) -> None:
        super().__init__()
        self._tables: Dict[str, Any] = {}

    def load(self, table: str, default: Any) -> Any:
        with self.lock:
            if table not in self._tables:
                return copy.deepcopy(default)
            return copy.deepcopy(self._tables[table])

    def save(self, table: str, data: Any) -> None:
        with self.lock:
            self._tables[table] = copy.deepcopy(data)


class DirectoryLock:
    """
    Re-entrant lock held by one thread of one process at a time.

    A thread lock orders the threads of this process; the file lock orders
    processes (and separate backends in one process) using the same directory.
    """

    def __init__(
        self, lock_path: str, timeout: float = constants.STORAGE_LOCK_TIMEOUT_SECONDS
    ) -> None:
        self._thread_lock = RLock()
        self._file_lock = FileLock(lock_path)
        self._timeout = timeout

    def __enter__(self) -> "DirectoryLock":
        self._thread_lock.acquire()
        acquired = False
        try:
            self._file_lock.acquire(timeout=self._timeout)
            acquired = True
        except Timeout as e:
            logger.error(f"Timed out waiting for storage lock {self._file_lock.lock_file}")
            raise RepositoryError("Storage is busy, try again") from e
        finally:
            if not acquired:
                self._thread_lock.release()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        try:
            self._file_lock.release()
        finally:
            self._thread_lock.release()


class DirectoryTables(TableBackend):
    """Tables stored as one JSON file each inside a directory."""

    def __init__(self, base_dir: str) -> None:
        super().__init__()
        self.base_dir = base_dir
        ensure_dir(base_dir)
        self.lock = DirectoryLock(os.path.join(base_dir, LOCK_FILE))
        logger.info(f"DirectoryTables initialized: {base_dir}")

    def _path(self, table: str) -> str:
        return os.path.join(self.base_dir, f"{table}.json")

    def load(self, table: str, default: Any) -> Any:
        with self.lock:
            return read_json(self._path(table), copy.deepcopy(default))

    def save(self, table: str, data: Any) -> None:
        with self.lock:
            write_json(self._path(table), data)


def ensure_dir(path: str) -> None:
    """Create a directory (and parents) if it does not exist yet."""
    if not os.path.exists(path):
        os.makedirs(path, exist_ok=True)
        logger.info(f"Created data directory: {path}")


def read_json(path: str, default: Optional[Any] = None) -> Any:
    """
    Load a JSON document, returning ``default`` when the file is absent.

    Raises:
        RepositoryError: If the file exists but cannot be read or parsed.
    """
    if not os.path.exists(path):
        return default
    try:
        with open(path, "r") as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        logger.error(f"Corrupt data file {path}: {e}")
        raise RepositoryError(f"Corrupt data file: {os.path.basename(path)}") from e
    except OSError as e:
        logger.error(f"Failed to read {path}: {e}")
        raise RepositoryError(f"Failed to read {os.path.basename(path)}") from e


def write_json(path: str, data: Any) -> None:
    """
    Persist a JSON document atomically (temp file + os.replace).

    Raises:
        RepositoryError: If the file cannot be written.
    """
    target_dir = os.path.dirname(path)
    try:
        fd, temp_path = tempfile.mkstemp(dir=target_dir, suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                json.dump(data, f, indent=2)
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
    except OSError as e:
        logger.error(f"Failed to write {path}: {e}")
        raise RepositoryError(f"Failed to write {os.path.basename(path)}") from e
