from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


class AudioSegment(SQLModel, table=True):
    """One recorded capture interval of a meeting (mic track plus optional system track)."""

    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(index=True, foreign_key="meeting.id")
    segment_index: int = 0
    mic_path: str
    system_path: Optional[str] = None
    start_offset_ms: int = 0
    duration_ms: Optional[int] = None  # None until capture ends
    display_order: int = Field(default=0, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
