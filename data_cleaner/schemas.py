"""Pydantic models for request and response bodies.

These classes define the data shapes exchanged between the HTTP layer
and the cleanup core.  `CleanupRequest` is immutable; `CleanupResult`
is mutated while a run progresses and copied whenever it is handed to a
reader.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, field_validator

from .errors import EmptyTableName, InvalidBatchSize, InvalidCutoff
from .utils.identifiers import ensure_valid_table_name


class CleanupStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATUSES = frozenset({CleanupStatus.COMPLETED, CleanupStatus.FAILED, CleanupStatus.CANCELED})

# Zero value of a cutoff, as sent by clients that serialize an unset timestamp.
ZERO_CUTOFF = datetime(1, 1, 1, tzinfo=timezone.utc)


class CleanupRequest(BaseModel):
    """Request to delete rows of `table_name` created before `before_date`.

    `before_date` must carry a UTC offset; a naive timestamp would be read
    in the database session's time zone.
    """

    model_config = ConfigDict(frozen=True)

    table_name: str = ""
    before_date: Optional[AwareDatetime] = None
    batch_size: int = 0

    @field_validator("before_date", mode="before")
    @classmethod
    def _reject_numeric_cutoff(cls, value):
        if isinstance(value, (int, float)):
            raise ValueError("before_date must be an RFC 3339 timestamp")
        return value

    def validate_request(self) -> None:
        """Raise a domain error if the request cannot be executed.

        Runs before any store call, so an unsafe identifier never reaches
        the database.
        """
        if not self.table_name:
            raise EmptyTableName()
        if self.before_date is None or self.before_date == ZERO_CUTOFF:
            raise InvalidCutoff()
        if self.batch_size <= 0:
            raise InvalidBatchSize()
        ensure_valid_table_name(self.table_name)

    def with_default_batch_size(self, default: int) -> "CleanupRequest":
        if self.batch_size == 0:
            return self.model_copy(update={"batch_size": default})
        return self


class CleanupResult(BaseModel):
    table_name: str
    rows_deleted: int = Field(0, ge=0)
    elapsed_time: timedelta = timedelta(0)
    status: CleanupStatus = CleanupStatus.PENDING
    error_message: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class AsyncCleanupAccepted(BaseModel):
    task_id: str
    status: CleanupStatus = CleanupStatus.PENDING
    status_url: str


class HealthOut(BaseModel):
    status: str
    time: datetime
