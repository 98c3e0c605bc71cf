from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from meetnotes.api.meetings import AudioSourceOut, source_out
from meetnotes.context import AppContext
from meetnotes.deps import get_context, get_session
from meetnotes.models.audio_source import SourceKind, SourceRef
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.settings import load_app_settings_model
from meetnotes.services.batch_transcription import BatchResult
from meetnotes.services.uploads import delete_source, ingest_upload


router = APIRouter(tags=["audio"])


class UploadRequest(BaseModel):
    source_path: str
    speaker_label: Optional[str] = None


class SpeakerUpdate(BaseModel):
    speaker_label: str


class TranscribeResponse(BaseModel):
    ok: bool
    meeting_id: int
    source: str
    segment_count: int
    language: Optional[str] = None
    outcome: str


def _transcribe_response(result: BatchResult) -> TranscribeResponse:
    return TranscribeResponse(
        ok=True,
        meeting_id=result.meeting_id,
        source=result.source.key,
        segment_count=result.segment_count,
        language=result.language,
        outcome=result.outcome.value,
    )


@router.post("/meetings/{meeting_id}/uploads")
def upload_audio(
    meeting_id: int,
    body: UploadRequest,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> AudioSourceOut:
    upload = ingest_upload(session, ctx.settings, meeting_id, body.source_path, body.speaker_label)
    return source_out(upload)


@router.put("/uploads/{upload_id}/speaker")
def update_upload_speaker(upload_id: int, body: SpeakerUpdate, session: Session = Depends(get_session)) -> AudioSourceOut:
    label = body.speaker_label.strip()
    if not label:
        raise HTTPException(status_code=422, detail="speaker_label must not be empty")
    row = AudioSourcesRepository(session).update_upload_speaker(upload_id, label)
    if row is None:
        raise HTTPException(status_code=404, detail="Uploaded audio not found")
    return source_out(row)


@router.delete("/uploads/{upload_id}")
def delete_upload(upload_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    removed = delete_source(session, SourceRef(SourceKind.UPLOAD, upload_id))
    return {"ok": True, "deleted": source_out(removed)}


@router.post("/uploads/{upload_id}/transcribe")
def transcribe_upload(upload_id: int, ctx: AppContext = Depends(get_context)) -> TranscribeResponse:
    return _transcribe_response(ctx.batch.transcribe_upload(upload_id))


@router.delete("/segments/{segment_id}")
def delete_recorded_segment(segment_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    removed = delete_source(session, SourceRef(SourceKind.SEGMENT, segment_id))
    return {"ok": True, "deleted": source_out(removed)}


@router.post("/segments/{segment_id}/transcribe")
def transcribe_recorded_segment(
    segment_id: int,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> TranscribeResponse:
    # The local mic track is attributed to the profile name ("Me" unless changed)
    mic_speaker = load_app_settings_model(session).profile.display_name
    return _transcribe_response(ctx.batch.transcribe_recorded_segment(segment_id, mic_speaker))
