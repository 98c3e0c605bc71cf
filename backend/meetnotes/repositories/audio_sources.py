from __future__ import annotations

from typing import List, Optional, Sequence

from sqlalchemy import func
from sqlmodel import Session, select, col

from meetnotes.models.audio_segment import AudioSegment
from meetnotes.models.audio_source import AudioSource, SourceKind, SourceRef, assert_never, sort_sources
from meetnotes.models.meeting import Meeting
from meetnotes.models.uploaded_audio import TRANSCRIPTION_STATUSES, UploadedAudio
from meetnotes.repositories.transcripts import TranscriptsRepository


class AudioSourcesRepository:
    """Recorded segments and uploaded files of a meeting, which share one display order."""

    def __init__(self, session: Session) -> None:
        self.session = session

    def next_display_order(self, meeting_id: int) -> int:
        max_segment = self.session.exec(
            select(func.max(AudioSegment.display_order)).where(AudioSegment.meeting_id == meeting_id)
        ).one()
        max_upload = self.session.exec(
            select(func.max(UploadedAudio.display_order)).where(UploadedAudio.meeting_id == meeting_id)
        ).one()
        return max(
            max_segment if max_segment is not None else -1,
            max_upload if max_upload is not None else -1,
        ) + 1

    def next_segment_index(self, meeting_id: int) -> int:
        current = self.session.exec(
            select(func.max(AudioSegment.segment_index)).where(AudioSegment.meeting_id == meeting_id)
        ).one()
        return 0 if current is None else int(current) + 1

    def create_segment(self, segment: AudioSegment) -> AudioSegment:
        segment.display_order = self.next_display_order(segment.meeting_id)
        self.session.add(segment)
        self.session.commit()
        self.session.refresh(segment)
        return segment

    def create_upload(self, upload: UploadedAudio) -> UploadedAudio:
        upload.display_order = self.next_display_order(upload.meeting_id)
        self.session.add(upload)
        self.session.commit()
        self.session.refresh(upload)
        return upload

    def get_segment(self, segment_id: int) -> Optional[AudioSegment]:
        return self.session.get(AudioSegment, segment_id)

    def get_upload(self, upload_id: int) -> Optional[UploadedAudio]:
        return self.session.get(UploadedAudio, upload_id)

    def get(self, ref: SourceRef) -> Optional[AudioSource]:
        if ref.kind is SourceKind.SEGMENT:
            return self.get_segment(ref.id)
        if ref.kind is SourceKind.UPLOAD:
            return self.get_upload(ref.id)
        assert_never(ref.kind)

    def list_segments(self, meeting_id: int) -> list[AudioSegment]:
        statement = select(AudioSegment).where(AudioSegment.meeting_id == meeting_id).order_by(
            col(AudioSegment.display_order).asc(), col(AudioSegment.id).asc()
        )
        return list(self.session.exec(statement))

    def list_uploads(self, meeting_id: int) -> list[UploadedAudio]:
        statement = select(UploadedAudio).where(UploadedAudio.meeting_id == meeting_id).order_by(
            col(UploadedAudio.display_order).asc(), col(UploadedAudio.id).asc()
        )
        return list(self.session.exec(statement))

    def list_by_meeting(self, meeting_id: int) -> List[AudioSource]:
        sources: List[AudioSource] = [*self.list_segments(meeting_id), *self.list_uploads(meeting_id)]
        return sort_sources(sources)

    def apply_order(self, meeting_id: int, ordered: Sequence[SourceRef]) -> None:
        """Write display_order = position for every ref in one transaction.

        The caller owns validation; this only guards against refs that belong
        to another meeting. Any error rolls the whole batch back.
        """
        try:
            for position, ref in enumerate(ordered):
                row = self.get(ref)
                if row is None or row.meeting_id != meeting_id:
                    raise LookupError(f"{ref.key} is not a source of meeting {meeting_id}")
                row.display_order = position
                self.session.add(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

    def update_upload_status(self, upload_id: int, status: str) -> Optional[UploadedAudio]:
        if status not in TRANSCRIPTION_STATUSES:
            raise ValueError(f"Unknown transcription status: {status}")
        row = self.get_upload(upload_id)
        if row is None:
            return None
        row.transcription_status = status
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def update_upload_speaker(self, upload_id: int, speaker_label: str) -> Optional[UploadedAudio]:
        row = self.get_upload(upload_id)
        if row is None:
            return None
        row.speaker_label = speaker_label
        self.session.add(row)
        self.session.commit()
        self.session.refresh(row)
        return row

    def delete(self, ref: SourceRef) -> Optional[AudioSource]:
        """Delete a source together with the transcript segments it produced."""
        row = self.get(ref)
        if row is None:
            return None
        try:
            TranscriptsRepository(self.session).delete_by_source(ref.kind.value, ref.id, commit=False)
            self.session.delete(row)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        return row

    def migrate_legacy_audio(self, meeting_id: int, duration_ms: Optional[int] = None) -> Optional[AudioSegment]:
        """Turn a meeting's legacy single ``audio_path`` into recorded segment #0.

        Returns the created segment, or None when there is nothing to migrate
        (no legacy path, or the meeting already has recorded segments).
        """
        meeting = self.session.get(Meeting, meeting_id)
        if meeting is None or not meeting.audio_path:
            return None
        if self.list_segments(meeting_id):
            return None

        try:
            # Shift uploads down to make room at position 0
            for upload in self.list_uploads(meeting_id):
                upload.display_order = upload.display_order + 1
                self.session.add(upload)
            segment = AudioSegment(
                meeting_id=meeting_id,
                segment_index=0,
                mic_path=meeting.audio_path,
                system_path=None,
                start_offset_ms=0,
                duration_ms=duration_ms,
                display_order=0,
            )
            self.session.add(segment)
            meeting.audio_path = None
            self.session.add(meeting)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(segment)
        return segment
