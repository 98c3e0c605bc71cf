from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional
from sqlmodel import SQLModel, Field


class SourceType(str, Enum):
    UPLOAD = "upload"
    SEGMENT = "segment"
    LIVE = "live"
    # Rows written before provenance existed carry a NULL source_type
    LEGACY = "legacy"


class TranscriptSegment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(index=True, foreign_key="meeting.id")
    start_time: float = Field(index=True)  # seconds, relative to the source
    end_time: float
    text: str
    speaker: Optional[str] = None
    source_type: Optional[str] = Field(default=None, index=True)  # upload|segment|live|NULL
    source_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def provenance(self) -> SourceType:
        if self.source_type is None:
            return SourceType.LEGACY
        try:
            return SourceType(self.source_type)
        except ValueError:
            return SourceType.LEGACY
