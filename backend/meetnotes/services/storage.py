"""Storage collaborator: the only path from the transcript core to the database.

Every call opens its own short-lived session, the way the transcription
worker does, so callers may run it from a threadpool. SQLAlchemy errors are
rolled back and re-raised as ``PersistenceFailure``.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Protocol, Sequence

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from meetnotes.errors import NotFoundError, PersistenceFailure
from meetnotes.models.audio_segment import AudioSegment
from meetnotes.models.audio_source import AudioSource, SourceRef
from meetnotes.models.meeting import Meeting
from meetnotes.models.transcript_segment import TranscriptSegment
from meetnotes.models.uploaded_audio import UploadedAudio
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.meetings import MeetingsRepository
from meetnotes.repositories.transcripts import TranscriptsRepository


logger = logging.getLogger("meetnotes.storage")


class Storage(Protocol):
    def list_sources(self, meeting_id: int) -> List[AudioSource]: ...

    def persist_order(self, meeting_id: int, ordered: Sequence[SourceRef]) -> None: ...

    def append_segments(self, meeting_id: int, segments: Sequence[TranscriptSegment]) -> List[TranscriptSegment]: ...

    def get_segments(self, meeting_id: int) -> List[TranscriptSegment]: ...

    def replace_source_segments(
        self, meeting_id: int, ref: SourceRef, segments: Sequence[TranscriptSegment]
    ) -> List[TranscriptSegment]: ...

    def get_upload(self, upload_id: int) -> UploadedAudio: ...

    def get_recorded_segment(self, segment_id: int) -> AudioSegment: ...

    def set_upload_status(self, upload_id: int, status: str) -> None: ...


class SqlStorage:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    @contextmanager
    def _session(self, action: str) -> Iterator[Session]:
        with Session(self.engine, expire_on_commit=False) as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                session.rollback()
                logger.exception("Storage failure during %s", action)
                raise PersistenceFailure(f"{action} failed: {exc}") from exc

    def get_meeting(self, meeting_id: int) -> Meeting:
        with self._session("get_meeting") as session:
            return MeetingsRepository(session).require(meeting_id)

    def list_sources(self, meeting_id: int) -> List[AudioSource]:
        with self._session("list_sources") as session:
            return AudioSourcesRepository(session).list_by_meeting(meeting_id)

    def persist_order(self, meeting_id: int, ordered: Sequence[SourceRef]) -> None:
        with self._session("persist_order") as session:
            try:
                AudioSourcesRepository(session).apply_order(meeting_id, ordered)
            except LookupError as exc:
                raise PersistenceFailure(str(exc)) from exc

    def append_segments(self, meeting_id: int, segments: Sequence[TranscriptSegment]) -> List[TranscriptSegment]:
        rows = [_detached_copy(seg, meeting_id) for seg in segments]
        with self._session("append_segments") as session:
            return TranscriptsRepository(session).add_segments(rows)

    def get_segments(self, meeting_id: int) -> List[TranscriptSegment]:
        with self._session("get_segments") as session:
            return TranscriptsRepository(session).list_by_meeting(meeting_id)

    def replace_source_segments(
        self, meeting_id: int, ref: SourceRef, segments: Sequence[TranscriptSegment]
    ) -> List[TranscriptSegment]:
        """Swap one source's transcript for a new one in a single transaction."""
        rows = [_detached_copy(seg, meeting_id) for seg in segments]
        with self._session("replace_source_segments") as session:
            repo = TranscriptsRepository(session)
            repo.delete_by_source(ref.kind.value, ref.id, commit=False)
            return repo.add_segments(rows)

    def get_upload(self, upload_id: int) -> UploadedAudio:
        with self._session("get_upload") as session:
            row = AudioSourcesRepository(session).get_upload(upload_id)
        if row is None:
            raise NotFoundError("Uploaded audio", upload_id)
        return row

    def get_recorded_segment(self, segment_id: int) -> AudioSegment:
        with self._session("get_recorded_segment") as session:
            row = AudioSourcesRepository(session).get_segment(segment_id)
        if row is None:
            raise NotFoundError("Audio segment", segment_id)
        return row

    def set_upload_status(self, upload_id: int, status: str) -> None:
        with self._session("set_upload_status") as session:
            if AudioSourcesRepository(session).update_upload_status(upload_id, status) is None:
                raise NotFoundError("Uploaded audio", upload_id)


def _detached_copy(seg: TranscriptSegment, meeting_id: int) -> TranscriptSegment:
    # Synthetic in-memory ids must not leak into the table
    return TranscriptSegment(
        meeting_id=meeting_id,
        start_time=float(seg.start_time),
        end_time=float(seg.end_time),
        text=seg.text,
        speaker=seg.speaker,
        source_type=seg.source_type,
        source_id=seg.source_id,
    )
