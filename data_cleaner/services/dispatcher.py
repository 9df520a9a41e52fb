"""Runs cleanups in the background and records their status."""
from __future__ import annotations

import logging
import threading
import uuid
from typing import Dict, Optional

from ..errors import CleanupError
from ..schemas import CleanupRequest, CleanupResult, CleanupStatus
from .cleanup_engine import CleanupEngine
from .task_registry import TaskRegistry


logger = logging.getLogger(__name__)


class CleanupDispatcher:
    """Starts cleanup runs on daemon threads and tracks them in a registry.

    Each run gets its own time budget, independent of the HTTP request
    that submitted it, since the caller may disconnect long before the
    run finishes.
    """

    def __init__(
        self,
        engine: CleanupEngine,
        registry: TaskRegistry,
        run_timeout: float = 3600.0,
        retention: float = 3600.0,
    ):
        self._engine = engine
        self._registry = registry
        self.run_timeout = run_timeout
        self.retention = retention
        self._lock = threading.Lock()
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}

    def submit(self, request: CleanupRequest) -> str:
        """Validate `request`, register a pending task and start it.

        Domain errors are raised before any task is created.
        """
        request.validate_request()

        task_id = str(uuid.uuid4())
        self._registry.add(task_id, CleanupResult(table_name=request.table_name, status=CleanupStatus.PENDING))

        cancel_event = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(task_id, request, cancel_event),
            name=f"cleanup-{task_id[:8]}",
            daemon=True,
        )
        with self._lock:
            self._cancel_events[task_id] = cancel_event
            self._threads[task_id] = thread
        thread.start()

        logger.info(f"Submitted async cleanup task={task_id} table={request.table_name}")
        return task_id

    def get_status(self, task_id: str) -> CleanupResult:
        return self._registry.get(task_id)

    def cancel(self, task_id: str) -> bool:
        """Signal a running task to stop at its next batch boundary.

        Returns False if the task already finished.
        """
        snapshot = self._registry.get(task_id)
        with self._lock:
            cancel_event = self._cancel_events.get(task_id)
        if cancel_event is None or snapshot.is_terminal:
            return False
        cancel_event.set()
        logger.info(f"Cancellation requested for cleanup task={task_id}")
        return True

    def wait(self, task_id: str, timeout: Optional[float] = None) -> bool:
        """Block until the task's thread exits; True if it did."""
        with self._lock:
            thread = self._threads.get(task_id)
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    def shutdown(self, timeout: float = 5.0) -> None:
        """Cancel all in-flight runs and stop expiry timers."""
        with self._lock:
            events = list(self._cancel_events.values())
            threads = list(self._threads.values())
        if events:
            logger.info(f"Canceling {len(events)} in-flight cleanup task(s)")
        for event in events:
            event.set()
        for thread in threads:
            thread.join(timeout)
        self._registry.close()

    def _run(self, task_id: str, request: CleanupRequest, cancel_event: threading.Event) -> None:
        try:
            self._registry.update(task_id, status=CleanupStatus.IN_PROGRESS)
            result = self._engine.clean_table(
                request,
                cancel_event=cancel_event,
                timeout=self.run_timeout,
                on_progress=lambda total: self._registry.update(task_id, rows_deleted=total),
            )
            self._registry.replace(task_id, result)
        except CleanupError as e:
            if e.result is not None:
                final = e.result.model_copy()
                if not final.error_message:
                    final.error_message = e.message
                self._registry.replace(task_id, final)
            else:
                self._registry.update(task_id, status=CleanupStatus.FAILED, error_message=e.message)
            logger.warning(f"Async cleanup task={task_id} ended with {e.kind.value} error: {e.message}")
        except Exception as e:
            logger.error(f"Async cleanup task={task_id} crashed: {e}", exc_info=True)
            self._registry.update(task_id, status=CleanupStatus.FAILED, error_message=str(e))
        finally:
            with self._lock:
                self._cancel_events.pop(task_id, None)
                self._threads.pop(task_id, None)
            self._registry.schedule_expiry(task_id, self.retention)
