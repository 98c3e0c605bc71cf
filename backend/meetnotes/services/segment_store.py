"""Flat per-meeting collection of transcript segments.

Segments that came from batch transcription are already persisted and are
read through the storage collaborator. Segments produced by a running live
session are held in memory under synthetic ids until the session finalizes
and they are flushed in one append.
"""

from __future__ import annotations

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from meetnotes.errors import MeetNotesError
from meetnotes.models.audio_source import SourceRef
from meetnotes.models.transcript_segment import TranscriptSegment
from meetnotes.services.storage import Storage


logger = logging.getLogger("meetnotes.segments")

# Pending ids count up from here so they never collide with SQLite rowids
# while staying exact as JSON numbers.
LIVE_ID_BASE = 1 << 48


class StaleHandleError(MeetNotesError):
    """A handle no longer points at the segment it was issued for."""


@dataclass(frozen=True)
class SegmentHandle:
    meeting_id: int
    segment_id: int


class SegmentStore:
    def __init__(self, storage: Storage) -> None:
        self._storage = storage
        self._lock = threading.Lock()
        self._pending: Dict[int, List[TranscriptSegment]] = {}
        self._ids = itertools.count(LIVE_ID_BASE)

    # -- live (in-memory) ----------------------------------------------------

    def append_live(self, meeting_id: int, segment: TranscriptSegment) -> SegmentHandle:
        with self._lock:
            segment.id = next(self._ids)
            segment.meeting_id = meeting_id
            self._pending.setdefault(meeting_id, []).append(segment)
            return SegmentHandle(meeting_id, int(segment.id))

    def get(self, handle: SegmentHandle) -> TranscriptSegment:
        with self._lock:
            return self._pending[handle.meeting_id][self._resolve(handle)]

    def replace(self, handle: SegmentHandle, segment: TranscriptSegment) -> SegmentHandle:
        """Swap the segment behind ``handle`` for ``segment``, keeping its id."""
        with self._lock:
            index = self._resolve(handle)
            segment.id = handle.segment_id
            segment.meeting_id = handle.meeting_id
            self._pending[handle.meeting_id][index] = segment
            return handle

    def pending_live(self, meeting_id: int) -> List[TranscriptSegment]:
        with self._lock:
            return list(self._pending.get(meeting_id, []))

    def flush_live(
        self, meeting_id: int, segment_ids: Optional[Iterable[int]] = None
    ) -> List[TranscriptSegment]:
        """Persist pending live segments of a meeting.

        With ``segment_ids`` only those rows are written, so one session can
        be flushed while a newer session of the same meeting keeps going. On
        failure the segments stay pending and the error propagates, so the
        flush can be retried without losing text.
        """
        wanted = None if segment_ids is None else set(segment_ids)
        with self._lock:
            rows = [
                row for row in self._pending.get(meeting_id, [])
                if wanted is None or row.id in wanted
            ]
        if not rows:
            return []
        saved = self._storage.append_segments(meeting_id, rows)
        flushed = {row.id for row in rows}
        with self._lock:
            remaining = [row for row in self._pending.get(meeting_id, []) if row.id not in flushed]
            if remaining:
                self._pending[meeting_id] = remaining
            else:
                self._pending.pop(meeting_id, None)
        logger.info("Flushed %d live segments for meeting %s", len(saved), meeting_id)
        return saved

    def _resolve(self, handle: SegmentHandle) -> int:
        for index, row in enumerate(self._pending.get(handle.meeting_id, [])):
            if row.id == handle.segment_id:
                return index
        raise StaleHandleError(f"segment {handle.segment_id} of meeting {handle.meeting_id} is gone")

    # -- batch (persisted) ---------------------------------------------------

    def replace_source(
        self, meeting_id: int, ref: SourceRef, segments: Sequence[TranscriptSegment]
    ) -> List[TranscriptSegment]:
        return self._storage.replace_source_segments(meeting_id, ref, segments)

    # -- reads ---------------------------------------------------------------

    def segments(self, meeting_id: int) -> List[TranscriptSegment]:
        """Persisted segments (by start time) followed by pending live ones in arrival order."""
        stored = self._storage.get_segments(meeting_id)
        return [*stored, *self.pending_live(meeting_id)]
