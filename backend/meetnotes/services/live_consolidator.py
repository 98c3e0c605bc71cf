"""Fold incremental live transcription events into the segment store.

Each event carries one speaker label and a run of timed chunks. A chunk whose
speaker matches the session's last segment extends that segment in place;
any other chunk starts a new one. Consequently two neighbouring segments of
one session never share a speaker.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from meetnotes.models.transcript_segment import SourceType, TranscriptSegment
from meetnotes.services.segment_store import SegmentHandle, SegmentStore
from meetnotes.services.subject import ApplyOutcome
from meetnotes.services.text_filters import is_noise_text


logger = logging.getLogger("meetnotes.live")


class LiveChunk(BaseModel):
    start: float
    end: float
    text: str


class LiveUpdate(BaseModel):
    meeting_id: int
    speaker_label: Optional[str] = None
    chunks: List[LiveChunk] = Field(default_factory=list)
    is_final: bool = False


@dataclass
class LiveSession:
    session_id: int
    meeting_id: int
    active: bool = True
    last: Optional[SegmentHandle] = None
    last_end: Optional[float] = None
    handles: List[SegmentHandle] = field(default_factory=list)


class LiveConsolidator:
    def __init__(self, store: SegmentStore) -> None:
        self._store = store
        self._session: Optional[LiveSession] = None
        self._session_ids = itertools.count(1)

    @property
    def active_session(self) -> Optional[LiveSession]:
        if self._session is not None and self._session.active:
            return self._session
        return None

    @property
    def active_meeting_id(self) -> Optional[int]:
        session = self.active_session
        return session.meeting_id if session else None

    def start_session(self, meeting_id: int) -> LiveSession:
        """Begin a new live session; a session still running is ended first."""
        session, finished = self.open_session(meeting_id)
        self.flush(finished)
        return session

    def open_session(self, meeting_id: int) -> Tuple[LiveSession, Optional[LiveSession]]:
        """Session bookkeeping of ``start_session``; returns the session that still needs a flush."""
        previous = self.active_session
        if previous is not None:
            logger.info("Ending live session %s for meeting %s before starting a new one",
                        previous.session_id, previous.meeting_id)
            self._close(previous)
        self._session = LiveSession(session_id=next(self._session_ids), meeting_id=meeting_id)
        logger.info("Live session %s started for meeting %s", self._session.session_id, meeting_id)
        return self._session, previous

    def apply_live_update(self, update: LiveUpdate) -> ApplyOutcome:
        outcome, finished = self.fold_update(update)
        self.flush(finished)
        return outcome

    def fold_update(self, update: LiveUpdate) -> Tuple[ApplyOutcome, Optional[LiveSession]]:
        """Fold ``update`` into the active session without touching storage.

        A final update closes the session; it is handed back so the caller
        can flush it wherever blocking I/O is acceptable.
        """
        session = self.active_session
        if session is None or session.meeting_id != update.meeting_id:
            logger.info(
                "Discarding stale live update for meeting %s (active: %s)",
                update.meeting_id,
                session.meeting_id if session else None,
            )
            return ApplyOutcome.STALE_DISCARDED, None

        for chunk in update.chunks:
            self._fold(session, update.speaker_label, chunk)

        if update.is_final:
            self._close(session)
            return ApplyOutcome.APPLIED, session
        return ApplyOutcome.APPLIED, None

    def stop_session(self, meeting_id: int) -> ApplyOutcome:
        """Explicit stop; equivalent to a final event with no chunks."""
        return self.apply_live_update(LiveUpdate(meeting_id=meeting_id, is_final=True))

    def close_session(self, meeting_id: int) -> Tuple[ApplyOutcome, Optional[LiveSession]]:
        return self.fold_update(LiveUpdate(meeting_id=meeting_id, is_final=True))

    def flush(self, session: Optional[LiveSession]) -> List[TranscriptSegment]:
        """Persist the segments of a closed session."""
        if session is None:
            return []
        return self._store.flush_live(session.meeting_id, [h.segment_id for h in session.handles])

    def _fold(self, session: LiveSession, speaker: Optional[str], chunk: LiveChunk) -> None:
        if is_noise_text(chunk.text):
            return
        if session.last_end is not None and chunk.start < session.last_end:
            # Accepted as given; upstream owns timestamp monotonicity
            logger.warning(
                "Live chunk for meeting %s starts at %.2fs, before previous end %.2fs",
                session.meeting_id, chunk.start, session.last_end,
            )
        session.last_end = chunk.end

        text = chunk.text.strip()
        if session.last is not None:
            last = self._store.get(session.last)
            if last.speaker == speaker:
                merged = TranscriptSegment(
                    meeting_id=session.meeting_id,
                    start_time=last.start_time,
                    end_time=chunk.end,
                    text=f"{last.text} {text}",
                    speaker=speaker,
                    source_type=SourceType.LIVE.value,
                    source_id=None,
                )
                self._store.replace(session.last, merged)
                return

        handle = self._store.append_live(
            session.meeting_id,
            TranscriptSegment(
                meeting_id=session.meeting_id,
                start_time=chunk.start,
                end_time=chunk.end,
                text=text,
                speaker=speaker,
                source_type=SourceType.LIVE.value,
                source_id=None,
            ),
        )
        session.last = handle
        session.handles.append(handle)

    def _close(self, session: LiveSession) -> None:
        # Terminal: no merge may target this session's last segment again
        session.active = False
        session.last = None
        logger.info("Live session %s for meeting %s finalized with %d segments",
                    session.session_id, session.meeting_id, len(session.handles))
