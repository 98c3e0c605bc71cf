from __future__ import annotations

from typing import Iterable, List
from sqlmodel import Session, select, col

from meetnotes.models.transcript_segment import TranscriptSegment


class TranscriptsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_segments(self, segments: Iterable[TranscriptSegment], commit: bool = True) -> List[TranscriptSegment]:
        saved: List[TranscriptSegment] = []
        for seg in segments:
            self.session.add(seg)
            saved.append(seg)
        if commit:
            self.session.commit()
            for seg in saved:
                self.session.refresh(seg)
        return saved

    def delete_by_source(self, source_type: str, source_id: int, commit: bool = True) -> int:
        """Delete every segment produced by one audio source. Returns the count."""
        statement = select(TranscriptSegment).where(
            TranscriptSegment.source_type == source_type,
            TranscriptSegment.source_id == source_id,
        )
        to_delete = list(self.session.exec(statement))
        for seg in to_delete:
            self.session.delete(seg)
        if commit:
            self.session.commit()
        return len(to_delete)

    def list_by_meeting(self, meeting_id: int) -> list[TranscriptSegment]:
        statement = (
            select(TranscriptSegment)
            .where(TranscriptSegment.meeting_id == meeting_id)
            .order_by(col(TranscriptSegment.start_time).asc(), col(TranscriptSegment.id).asc())
        )
        return list(self.session.exec(statement))
