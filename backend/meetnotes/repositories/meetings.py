from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlmodel import Session, select

from meetnotes.errors import NotFoundError
from meetnotes.models.meeting import Meeting


class MeetingsRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create(self, meeting: Meeting) -> Meeting:
        self.session.add(meeting)
        self.session.commit()
        self.session.refresh(meeting)
        return meeting

    def get(self, meeting_id: int) -> Optional[Meeting]:
        return self.session.get(Meeting, meeting_id)

    def require(self, meeting_id: int) -> Meeting:
        meeting = self.get(meeting_id)
        if meeting is None:
            raise NotFoundError("Meeting", meeting_id)
        return meeting

    def list(self, limit: int = 50, offset: int = 0) -> list[Meeting]:
        statement = select(Meeting).order_by(Meeting.started_at.desc()).limit(limit).offset(offset)
        return list(self.session.exec(statement))

    def rename(self, meeting_id: int, title: str) -> Meeting:
        meeting = self.require(meeting_id)
        meeting.title = title.strip() or meeting.title
        self.session.add(meeting)
        self.session.commit()
        self.session.refresh(meeting)
        return meeting

    def mark_ended(self, meeting_id: int, ended_at: Optional[datetime] = None) -> Meeting:
        """Stamp the end of capture; a meeting that already ended keeps its first timestamp."""
        meeting = self.require(meeting_id)
        if meeting.ended_at is None:
            meeting.ended_at = ended_at or datetime.utcnow()
            self.session.add(meeting)
            self.session.commit()
            self.session.refresh(meeting)
        return meeting
