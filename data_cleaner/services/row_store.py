"""Row store gateway: the storage operations the cleanup engine needs.

`RowStoreGateway` is the abstract contract; `PostgresRowStore`
implements it on a pooled SQLAlchemy engine using
`pg_try_advisory_lock` for per-table exclusion and
`FOR UPDATE SKIP LOCKED` for contention-free batch deletes.
"""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from ..errors import StoreError, TableNotFound
from ..utils.identifiers import advisory_lock_key, ensure_valid_table_name


logger = logging.getLogger(__name__)

ReleaseFn = Callable[[], None]

_quote = postgresql.dialect().identifier_preparer.quote


class RowStoreGateway(ABC):
    """Storage operations used by a cleanup run.

    Each operation is independently retriable by the caller.
    """

    @abstractmethod
    def validate_table(self, table_name: str) -> None:
        """Raise `TableNotFound` if the table does not exist.

        A missing index on the timestamp column is only logged.
        """

    @abstractmethod
    def try_acquire_lock(self, table_name: str) -> Tuple[bool, Optional[ReleaseFn]]:
        """Try to take the table's exclusive lock without blocking.

        Returns `(False, None)` when another holder has it.  When
        acquired, the returned callable releases exactly this lock.
        """

    @abstractmethod
    def delete_batch(
        self,
        table_name: str,
        before_date: datetime,
        batch_size: int,
        timeout: Optional[float] = None,
    ) -> int:
        """Delete up to `batch_size` of the oldest rows older than `before_date`.

        Returns the number of rows removed.  Runs as one transaction;
        on failure nothing is deleted and `StoreError` is raised.
        """


_TABLE_EXISTS_SQL = text(
    """
    SELECT EXISTS (
        SELECT FROM information_schema.tables
        WHERE table_schema = :schema
        AND table_name = :table
    )
    """
)

_INDEX_EXISTS_SQL = text(
    """
    SELECT EXISTS (
        SELECT FROM pg_indexes
        WHERE schemaname = :schema
        AND tablename = :table
        AND indexdef LIKE :pattern
    )
    """
)

_DELETE_BATCH_SQL = """
    WITH rows_to_delete AS (
        SELECT {key} FROM {schema}.{table}
        WHERE {ts} < :before_date
        ORDER BY {ts}
        LIMIT :batch_size
        FOR UPDATE SKIP LOCKED
    )
    DELETE FROM {schema}.{table}
    WHERE {key} IN (SELECT {key} FROM rows_to_delete)
    RETURNING {key}
"""


class AdvisoryLock:
    """A session-level advisory lock pinned to one pooled connection.

    PostgreSQL ties advisory locks to the session that took them, so the
    unlock must run on the same connection.  `release` is idempotent.
    """

    def __init__(self, conn: Connection, key: int, table_name: str):
        self._conn = conn
        self.key = key
        self.table_name = table_name
        self._released = False
        self._guard = threading.Lock()

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        with self._guard:
            if self._released:
                return
            self._released = True

        try:
            unlocked = self._conn.execute(text("SELECT pg_advisory_unlock(:key)"), {"key": self.key}).scalar()
            self._conn.commit()
            if not unlocked:
                logger.warning(f"Advisory lock for table {self.table_name} (lock_id={self.key}) was not held at release")
        except SQLAlchemyError as e:
            logger.error(f"Failed to release advisory lock table={self.table_name} lock_id={self.key}: {e}")
            # Dropping the session drops every advisory lock it holds.
            self._conn.invalidate()
        finally:
            self._conn.close()


class PostgresRowStore(RowStoreGateway):
    """PostgreSQL implementation of the row store gateway."""

    def __init__(
        self,
        engine: Engine,
        schema: str = "public",
        key_column: str = "id",
        timestamp_column: str = "created_at",
    ):
        self._engine = engine
        self._schema = ensure_valid_table_name(schema)
        self._key_column = ensure_valid_table_name(key_column)
        self._timestamp_column = ensure_valid_table_name(timestamp_column)

    def validate_table(self, table_name: str) -> None:
        params = {"schema": self._schema, "table": table_name}
        try:
            with self._engine.connect() as conn:
                exists = conn.execute(_TABLE_EXISTS_SQL, params).scalar()
                if not exists:
                    raise TableNotFound(table_name)
                has_index = conn.execute(
                    _INDEX_EXISTS_SQL, {**params, "pattern": f"%{self._timestamp_column}%"}
                ).scalar()
        except SQLAlchemyError as e:
            raise StoreError(f"check table {table_name}: {e}") from e

        if not has_index:
            logger.warning(
                f"Table {table_name} doesn't have an index on {self._timestamp_column}, operation may be slow"
            )

    def try_acquire_lock(self, table_name: str) -> Tuple[bool, Optional[ReleaseFn]]:
        key = advisory_lock_key(table_name)
        try:
            conn = self._engine.connect()
        except SQLAlchemyError as e:
            raise StoreError(f"acquire advisory lock: {e}") from e

        try:
            acquired = conn.execute(text("SELECT pg_try_advisory_lock(:key)"), {"key": key}).scalar()
            conn.commit()
        except SQLAlchemyError as e:
            conn.close()
            raise StoreError(f"acquire advisory lock: {e}") from e

        if not acquired:
            conn.close()
            return False, None

        lock = AdvisoryLock(conn, key, table_name)
        return True, lock.release

    def delete_batch(
        self,
        table_name: str,
        before_date: datetime,
        batch_size: int,
        timeout: Optional[float] = None,
    ) -> int:
        ensure_valid_table_name(table_name)
        # Quoted names keep their case, matching the lookup in validate_table.
        query = text(
            _DELETE_BATCH_SQL.format(
                schema=_quote(self._schema),
                table=_quote(table_name),
                key=_quote(self._key_column),
                ts=_quote(self._timestamp_column),
            )
        )

        try:
            with self._engine.connect() as conn:
                conn.execution_options(isolation_level="READ COMMITTED")
                with conn.begin():
                    if timeout is not None:
                        timeout_ms = max(1, int(timeout * 1000))
                        conn.execute(text(f"SET LOCAL statement_timeout = {timeout_ms}"))
                    rows = conn.execute(query, {"before_date": before_date, "batch_size": batch_size}).fetchall()
        except SQLAlchemyError as e:
            raise StoreError(f"delete batch from {table_name}: {e}") from e

        return len(rows)
