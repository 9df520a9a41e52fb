"""Shared fixtures: an in-memory row store standing in for PostgreSQL."""

import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Set

# Keep settings deterministic before any data_cleaner module is imported.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DB_HOST", "localhost")
os.environ.setdefault("DB_NAME", "test_db")
os.environ.setdefault("LOG_LEVEL", "INFO")

import pytest

from data_cleaner.errors import StoreError, TableNotFound
from data_cleaner.services.cleanup_engine import CleanupEngine
from data_cleaner.services.row_store import RowStoreGateway


CUTOFF = datetime(2023, 1, 1, tzinfo=timezone.utc)


class FakeRowStore(RowStoreGateway):
    """Row store kept in memory.

    `locks` may be shared between instances to emulate a store-wide
    advisory lock seen by several engines.
    """

    def __init__(self, locks: Optional[Set[str]] = None):
        self.tables: Dict[str, List[datetime]] = {}
        self.locks = locks if locks is not None else set()
        self.calls: List[str] = []
        self.batch_limits: List[int] = []
        self.batch_timeouts: List[Optional[float]] = []
        self.deleted_per_batch: List[int] = []
        self.released: List[str] = []
        self.fail_on_batch: Optional[int] = None
        self.batch_hook: Optional[Callable[[int], None]] = None
        self._guard = threading.Lock()

    def add_rows(self, table: str, count: int, older: bool = True) -> None:
        base = CUTOFF - timedelta(days=30) if older else CUTOFF + timedelta(days=1)
        rows = self.tables.setdefault(table, [])
        rows.extend(base + timedelta(seconds=i) for i in range(count))

    def validate_table(self, table_name):
        self.calls.append("validate_table")
        if table_name not in self.tables:
            raise TableNotFound(table_name)

    def try_acquire_lock(self, table_name):
        self.calls.append("try_acquire_lock")
        with self._guard:
            if table_name in self.locks:
                return False, None
            self.locks.add(table_name)

        released = []

        def release():
            if released:
                return
            released.append(True)
            with self._guard:
                self.locks.discard(table_name)
            self.released.append(table_name)

        return True, release

    def delete_batch(self, table_name, before_date, batch_size, timeout=None):
        self.calls.append("delete_batch")
        self.batch_limits.append(batch_size)
        self.batch_timeouts.append(timeout)
        batch_number = len(self.batch_limits)
        if self.fail_on_batch == batch_number:
            raise StoreError("connection reset by peer")

        with self._guard:
            rows = sorted(self.tables.get(table_name, []))
            victims = [r for r in rows if r < before_date][:batch_size]
            for victim in victims:
                rows.remove(victim)
            self.tables[table_name] = rows
        self.deleted_per_batch.append(len(victims))

        if self.batch_hook is not None:
            self.batch_hook(len(victims))
        return len(victims)

    def remaining(self, table: str) -> int:
        return len(self.tables.get(table, []))


@pytest.fixture
def cutoff():
    return CUTOFF


@pytest.fixture
def store():
    return FakeRowStore()


@pytest.fixture
def engine(store):
    return CleanupEngine(store, batch_pause=0, batch_timeout=5)
