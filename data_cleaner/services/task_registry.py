"""In-memory registry of asynchronous cleanup tasks."""
from __future__ import annotations

import logging
import threading
from typing import Dict

from ..errors import TaskNotFound
from ..schemas import CleanupResult


logger = logging.getLogger(__name__)


class TaskRegistry:
    """Maps task identifiers to their live `CleanupResult`.

    All access goes through the methods below, each atomic under one
    lock.  Readers get a copy, never the live object.  Entries are
    volatile: they vanish on restart and are expired after completion.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._tasks: Dict[str, CleanupResult] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._closed = False

    def add(self, task_id: str, result: CleanupResult) -> None:
        with self._lock:
            self._tasks[task_id] = result

    def get(self, task_id: str) -> CleanupResult:
        with self._lock:
            result = self._tasks.get(task_id)
            if result is None:
                raise TaskNotFound(task_id)
            return result.model_copy(deep=True)

    def update(self, task_id: str, **fields) -> bool:
        """Set fields on the live result.

        Returns False if the task is gone or already terminal, in which
        case nothing changes.
        """
        with self._lock:
            result = self._tasks.get(task_id)
            if result is None or result.is_terminal:
                return False
            for name, value in fields.items():
                setattr(result, name, value)
            return True

    def replace(self, task_id: str, new: CleanupResult) -> bool:
        """Overwrite the live result in place with the values of `new`."""
        with self._lock:
            result = self._tasks.get(task_id)
            if result is None:
                return False
            for name in CleanupResult.model_fields:
                setattr(result, name, getattr(new, name))
            return True

    def remove(self, task_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(task_id, None)
            removed = self._tasks.pop(task_id, None) is not None
        if timer is not None:
            timer.cancel()
        return removed

    def schedule_expiry(self, task_id: str, after: float) -> None:
        """Remove `task_id` no earlier than `after` seconds from now."""
        timer = threading.Timer(after, self._expire, args=(task_id,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(task_id, None)
            scheduled = not self._closed and task_id in self._tasks
            if scheduled:
                self._timers[task_id] = timer
        if previous is not None:
            previous.cancel()
        if scheduled:
            timer.start()

    def close(self) -> None:
        """Cancel every pending expiry timer and refuse new ones."""
        with self._lock:
            self._closed = True
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def _expire(self, task_id: str) -> None:
        with self._lock:
            self._timers.pop(task_id, None)
            removed = self._tasks.pop(task_id, None) is not None
        if removed:
            logger.debug(f"Expired cleanup task {task_id}")

    def __contains__(self, task_id: str) -> bool:
        with self._lock:
            return task_id in self._tasks

    def __len__(self) -> int:
        with self._lock:
            return len(self._tasks)
