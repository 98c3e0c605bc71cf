"""Exception types raised by the transcript core.

Stale events have no exception type: a late live update or batch completion
is reported as ``ApplyOutcome.STALE_DISCARDED`` and logged, never raised.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional


class MeetNotesError(Exception):
    """Base class for all errors raised by meetnotes."""


class NotFoundError(MeetNotesError):
    def __init__(self, what: str, ident: object) -> None:
        super().__init__(f"{what} {ident} not found")
        self.what = what
        self.ident = ident


class OrderErrorCode(str, Enum):
    OUT_OF_RANGE = "out_of_range"
    DUPLICATE_ENTRY = "duplicate_entry"
    UNKNOWN_SOURCE = "unknown_source"
    BUSY = "busy"


class OrderError(MeetNotesError):
    """A reorder request the caller can correct and resubmit."""

    def __init__(self, code: OrderErrorCode, message: str) -> None:
        super().__init__(message)
        self.code = code


class ReorderInProgress(OrderError):
    """Another reorder for the same meeting has not finished persisting yet."""

    def __init__(self, meeting_id: int) -> None:
        super().__init__(
            OrderErrorCode.BUSY,
            f"A reorder for meeting {meeting_id} is still in progress; retry later",
        )
        self.meeting_id = meeting_id


class PersistenceFailure(MeetNotesError):
    """The storage backend rejected a write; nothing from that write is visible."""


class TranscriptionFailure(MeetNotesError):
    def __init__(self, message: str, source_id: Optional[int] = None) -> None:
        super().__init__(message)
        self.source_id = source_id


class UploadError(MeetNotesError):
    """The file handed to upload ingestion cannot be accepted."""
