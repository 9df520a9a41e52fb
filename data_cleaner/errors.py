"""Error taxonomy for cleanup operations.

Every error raised by the cleanup core derives from `CleanupError` and
carries a `kind` discriminant.  The HTTP layer maps the kind to a
status code; it never inspects concrete exception classes.
"""
from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .schemas import CleanupResult


class ErrorKind(str, Enum):
    DOMAIN = "domain"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CANCELED = "canceled"
    INFRASTRUCTURE = "infrastructure"


class CleanupError(Exception):
    """Base class for cleanup errors.

    `result` holds the partial run result when the error happened after
    deletion started; it is authoritative for status and row count.
    """

    kind: ErrorKind = ErrorKind.INFRASTRUCTURE

    def __init__(self, message: str, result: Optional["CleanupResult"] = None):
        super().__init__(message)
        self.message = message
        self.result = result


# --- Domain / validation errors ---

class DomainError(CleanupError):
    kind = ErrorKind.DOMAIN


class EmptyTableName(DomainError):
    def __init__(self):
        super().__init__("table name cannot be empty")


class InvalidCutoff(DomainError):
    def __init__(self):
        super().__init__("invalid date specified")


class InvalidBatchSize(DomainError):
    def __init__(self, message: str = "batch size must be positive"):
        super().__init__(message)


class InvalidIdentifier(DomainError):
    def __init__(self, name: str):
        super().__init__(f"invalid table name: {name}")
        self.name = name


# --- Lookup errors ---

class TableNotFound(CleanupError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, table_name: str):
        super().__init__(f"table {table_name} does not exist")
        self.table_name = table_name


class TaskNotFound(CleanupError):
    kind = ErrorKind.NOT_FOUND

    def __init__(self, task_id: str):
        super().__init__(f"task with ID {task_id} not found")
        self.task_id = task_id


# --- Contention ---

class AlreadyRunning(CleanupError):
    kind = ErrorKind.CONFLICT

    def __init__(self, table_name: str):
        super().__init__(f"another process is already cleaning table {table_name}")
        self.table_name = table_name


class TaskAlreadyFinished(CleanupError):
    kind = ErrorKind.CONFLICT

    def __init__(self, task_id: str):
        super().__init__(f"task with ID {task_id} has already finished")
        self.task_id = task_id


# --- Infrastructure ---

class StoreError(CleanupError):
    kind = ErrorKind.INFRASTRUCTURE


class BatchDeleteFailed(CleanupError):
    kind = ErrorKind.INFRASTRUCTURE


# --- Cancellation ---

class CleanupCanceled(CleanupError):
    kind = ErrorKind.CANCELED
