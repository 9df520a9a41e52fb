"""Batch deletion engine.

A run walks through validating → locking → deleting → releasing and
ends in exactly one of completed, failed or canceled.  Batches are
strictly sequential: each batch's size decides whether another one is
needed, and the table lock scopes the whole run as a single writer.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import timedelta
from typing import Callable, Optional

from ..errors import AlreadyRunning, BatchDeleteFailed, CleanupCanceled
from ..schemas import CleanupRequest, CleanupResult, CleanupStatus
from .row_store import RowStoreGateway


logger = logging.getLogger(__name__)

ProgressFn = Callable[[int], None]


class CleanupEngine:
    """Deletes stale rows from one table at a time, in bounded batches."""

    def __init__(self, gateway: RowStoreGateway, batch_pause: float = 0.1, batch_timeout: float = 30.0):
        self._gateway = gateway
        self.batch_pause = batch_pause
        self.batch_timeout = batch_timeout

    def clean_table(
        self,
        request: CleanupRequest,
        cancel_event: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
        on_progress: Optional[ProgressFn] = None,
    ) -> CleanupResult:
        """Run one cleanup to completion and return its result.

        Args:
            request: Table, cutoff and batch size.
            cancel_event: Checked between batches; setting it cancels the run.
            timeout: Overall budget in seconds.  Expiring between batches
                cancels the run; it also caps each batch's statement timeout.
            on_progress: Called with the running total after every batch.

        Raises:
            DomainError: The request is invalid.  Nothing touched the store.
            TableNotFound: The table does not exist.
            AlreadyRunning: Another run holds the table's lock.
            BatchDeleteFailed: A batch failed; `result` holds the partial run.
            CleanupCanceled: The run was canceled; `result` holds the partial run.
        """
        deadline = time.monotonic() + timeout if timeout is not None else None
        cancel_event = cancel_event or threading.Event()

        request.validate_request()
        self._gateway.validate_table(request.table_name)

        acquired, release = self._gateway.try_acquire_lock(request.table_name)
        if not acquired:
            raise AlreadyRunning(request.table_name)

        try:
            return self._delete_batches(request, cancel_event, deadline, on_progress)
        finally:
            release()

    def _delete_batches(
        self,
        request: CleanupRequest,
        cancel_event: threading.Event,
        deadline: Optional[float],
        on_progress: Optional[ProgressFn],
    ) -> CleanupResult:
        table = request.table_name
        logger.info(
            f"Starting data cleanup table={table} before_date={request.before_date.isoformat()} "
            f"batch_size={request.batch_size}"
        )

        started = time.monotonic()
        result = CleanupResult(table_name=table, status=CleanupStatus.IN_PROGRESS)
        total_deleted = 0

        while True:
            try:
                deleted = self._gateway.delete_batch(
                    table,
                    request.before_date,
                    request.batch_size,
                    timeout=self._batch_timeout(deadline),
                )
            except Exception as e:
                logger.error(f"Error deleting batch table={table} total_deleted={total_deleted}: {e}")
                self._finish(result, CleanupStatus.FAILED, total_deleted, started, error_message=str(e))
                raise BatchDeleteFailed(f"batch deletion failed: {e}", result=result) from e

            total_deleted += deleted
            result.rows_deleted = total_deleted
            logger.info(f"Batch deleted table={table} deleted_count={deleted} total_deleted={total_deleted}")
            if on_progress is not None:
                on_progress(total_deleted)

            if deleted < request.batch_size:
                break

            reason = self._pause(cancel_event, deadline)
            if reason is not None:
                logger.info(f"Cleanup canceled table={table} reason={reason} total_deleted={total_deleted}")
                self._finish(result, CleanupStatus.CANCELED, total_deleted, started, error_message=reason)
                raise CleanupCanceled(f"cleanup of table {table} {reason}", result=result)

        self._finish(result, CleanupStatus.COMPLETED, total_deleted, started)
        logger.info(
            f"Cleanup completed table={table} total_deleted={total_deleted} "
            f"duration={result.elapsed_time.total_seconds():.3f}s"
        )
        return result

    def _batch_timeout(self, deadline: Optional[float]) -> float:
        if deadline is None:
            return self.batch_timeout
        remaining = deadline - time.monotonic()
        return max(0.001, min(self.batch_timeout, remaining))

    def _pause(self, cancel_event: threading.Event, deadline: Optional[float]) -> Optional[str]:
        """Wait between batches; return why the run must stop, if it must."""
        delay = self.batch_pause
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= delay:
                if remaining > 0 and cancel_event.wait(remaining):
                    return "canceled"
                return "deadline exceeded"
        if cancel_event.wait(delay):
            return "canceled"
        return None

    @staticmethod
    def _finish(
        result: CleanupResult,
        status: CleanupStatus,
        total_deleted: int,
        started: float,
        error_message: Optional[str] = None,
    ) -> None:
        result.rows_deleted = total_deleted
        result.elapsed_time = timedelta(seconds=time.monotonic() - started)
        result.error_message = error_message
        result.status = status
