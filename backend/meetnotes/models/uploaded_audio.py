from __future__ import annotations

from datetime import datetime
from typing import Optional
from sqlmodel import SQLModel, Field


TRANSCRIPTION_STATUSES = ("pending", "processing", "completed", "failed")


class UploadedAudio(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    meeting_id: int = Field(index=True, foreign_key="meeting.id")
    file_path: str
    original_filename: str
    duration_ms: Optional[int] = None
    speaker_label: str = Field(default="Uploaded")
    transcription_status: str = Field(default="pending")  # pending|processing|completed|failed
    display_order: int = Field(default=0, index=True)
    created_at: datetime = Field(default_factory=datetime.utcnow)
