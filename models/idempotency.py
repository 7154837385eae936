"""
Idempotency record and acquire outcomes.

Acquire outcomes are explicit variants rather than exceptions so call
sites branch on every case.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import Field

from models.base import RecordSchema, TimestampMixin


class IdempotencyState(str, Enum):
    """Lifecycle of an idempotency record."""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class IdempotencyRecord(RecordSchema, TimestampMixin):
    """Row of api_idempotency_keys."""

    id: str
    endpoint: str
    idempotency_key: str
    request_hash: str
    state: IdempotencyState
    status_code: Optional[int] = None
    response_body: Any = None
    locked_until: datetime
    locked_until_raw: Optional[str] = Field(
        None,
        exclude=True,
        description="locked_until exactly as stored; used for compare-and-swap takeover"
    )


@dataclass(frozen=True)
class Acquired:
    """Caller owns the key and must finalize it."""
    record_id: str


@dataclass(frozen=True)
class Replay:
    """Request already completed; return the stored response."""
    status_code: int
    response_body: Any


@dataclass(frozen=True)
class InProgress:
    """Another holder is still running."""


@dataclass(frozen=True)
class Conflict:
    """Key reused with a different payload."""


AcquireResult = Union[Acquired, Replay, InProgress, Conflict]


@dataclass(frozen=True)
class IdempotentOutcome:
    """Response produced (or replayed) under an idempotency key."""
    status_code: int
    body: Any
    replayed: bool = False
