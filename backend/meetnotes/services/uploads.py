from __future__ import annotations

import logging
import shutil
import uuid
from pathlib import Path
from typing import Optional

from sqlmodel import Session

from meetnotes.config import Settings
from meetnotes.errors import NotFoundError, UploadError
from meetnotes.models.audio_source import AudioSource, SourceKind, SourceRef, assert_never, source_kind, source_ref
from meetnotes.models.uploaded_audio import UploadedAudio
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.meetings import MeetingsRepository


logger = logging.getLogger("meetnotes.uploads")


def is_supported_format(path: Path, settings: Settings) -> bool:
    return path.suffix.lower().lstrip(".") in settings.upload_extensions


def ingest_upload(
    session: Session,
    settings: Settings,
    meeting_id: int,
    source_path: str,
    speaker_label: Optional[str] = None,
) -> UploadedAudio:
    """Copy an audio file into the meeting's audio dir and register it as pending."""
    MeetingsRepository(session).require(meeting_id)

    source = Path(source_path)
    if not source.is_file():
        raise UploadError("Source file does not exist")
    if not is_supported_format(source, settings):
        raise UploadError(
            "Unsupported audio format. Supported formats: " + ", ".join(settings.upload_extensions)
        )

    meeting_dir = settings.audio_dir / str(meeting_id)
    meeting_dir.mkdir(parents=True, exist_ok=True)
    stem = f"{meeting_id}_upload_{uuid.uuid4().hex[:8]}"
    final_path = meeting_dir / f"{stem}{source.suffix.lower()}"
    temp_path = meeting_dir / f"{stem}{source.suffix.lower()}.tmp"

    # An interrupted copy leaves only the .tmp file behind
    try:
        shutil.copyfile(source, temp_path)
        temp_path.replace(final_path)
    except OSError as exc:
        temp_path.unlink(missing_ok=True)
        raise UploadError(f"Failed to store uploaded file: {exc}") from exc

    upload = UploadedAudio(
        meeting_id=meeting_id,
        file_path=str(final_path),
        original_filename=source.name,
        duration_ms=None,
        speaker_label=(speaker_label or "").strip() or settings.default_upload_speaker,
        transcription_status="pending",
    )
    upload = AudioSourcesRepository(session).create_upload(upload)
    logger.info("Upload %s registered for meeting %s at order %s", upload.id, meeting_id, upload.display_order)
    return upload


def delete_source(session: Session, ref: SourceRef) -> AudioSource:
    """Delete an audio source, its transcript segments and its files on disk."""
    removed = AudioSourcesRepository(session).delete(ref)
    if removed is None:
        raise NotFoundError(ref.kind.value, ref.id)
    for path in _files_of(removed):
        try:
            Path(path).unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove audio file %s", path)
    logger.info("Deleted %s", source_ref(removed).key)
    return removed


def _files_of(source: AudioSource) -> list[str]:
    kind = source_kind(source)
    if kind is SourceKind.UPLOAD:
        return [source.file_path]  # type: ignore[union-attr]
    if kind is SourceKind.SEGMENT:
        return [p for p in (source.mic_path, source.system_path) if p]  # type: ignore[union-attr]
    assert_never(kind)
