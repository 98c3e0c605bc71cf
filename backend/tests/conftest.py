from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import pytest
from sqlmodel import Session

from meetnotes.config import Settings
from meetnotes.errors import PersistenceFailure
from meetnotes.models.audio_segment import AudioSegment
from meetnotes.models.audio_source import SourceRef
from meetnotes.models.base import init_db, make_engine
from meetnotes.models.meeting import Meeting
from meetnotes.models.transcript_segment import TranscriptSegment
from meetnotes.models.uploaded_audio import UploadedAudio
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.meetings import MeetingsRepository
from meetnotes.services.asr_engine import BatchTranscript, TranscribedChunk
from meetnotes.services.storage import SqlStorage


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    root = tmp_path / "appdata"
    s = Settings(
        appdata_dir=root,
        data_dir=root / "data",
        audio_dir=root / "audio",
        models_dir=root / "models",
        logs_dir=root / "logs",
        database_path=root / "data" / "test.db",
    )
    s.ensure_dirs()
    return s


@pytest.fixture
def engine(settings: Settings):
    eng = make_engine(settings)
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine, expire_on_commit=False) as s:
        yield s


@pytest.fixture
def storage(engine) -> SqlStorage:
    return SqlStorage(engine)


@pytest.fixture
def meeting(session: Session) -> Meeting:
    return MeetingsRepository(session).create(Meeting(title="Weekly sync"))


def add_recorded(session: Session, meeting_id: int, tmp_path: Optional[Path] = None, **kwargs) -> AudioSegment:
    repo = AudioSourcesRepository(session)
    index = repo.next_segment_index(meeting_id)
    mic = str(tmp_path / f"mic_{index}.wav") if tmp_path else f"/recordings/mic_{index}.wav"
    return repo.create_segment(AudioSegment(meeting_id=meeting_id, segment_index=index, mic_path=mic, **kwargs))


def add_upload(session: Session, meeting_id: int, filename: str = "call.mp3", **kwargs) -> UploadedAudio:
    return AudioSourcesRepository(session).create_upload(
        UploadedAudio(meeting_id=meeting_id, file_path=f"/uploads/{filename}", original_filename=filename, **kwargs)
    )


def seg(
    start: float,
    text: str,
    speaker: Optional[str] = "Me",
    source_type: Optional[str] = None,
    source_id: Optional[int] = None,
    end: Optional[float] = None,
    seg_id: Optional[int] = None,
    meeting_id: int = 1,
) -> TranscriptSegment:
    return TranscriptSegment(
        id=seg_id,
        meeting_id=meeting_id,
        start_time=start,
        end_time=end if end is not None else start + 1.0,
        text=text,
        speaker=speaker,
        source_type=source_type,
        source_id=source_id,
    )


class MemoryStorage:
    """Segment half of the storage contract, kept in a dict."""

    def __init__(self, fail_appends: bool = False) -> None:
        self.rows: Dict[int, List[TranscriptSegment]] = {}
        self.fail_appends = fail_appends
        self._next_id = 1000

    def append_segments(self, meeting_id: int, segments: Sequence[TranscriptSegment]) -> List[TranscriptSegment]:
        if self.fail_appends:
            raise PersistenceFailure("disk full")
        saved = []
        for s in segments:
            self._next_id += 1
            saved.append(
                TranscriptSegment(
                    id=self._next_id,
                    meeting_id=meeting_id,
                    start_time=s.start_time,
                    end_time=s.end_time,
                    text=s.text,
                    speaker=s.speaker,
                    source_type=s.source_type,
                    source_id=s.source_id,
                )
            )
        self.rows.setdefault(meeting_id, []).extend(saved)
        return saved

    def get_segments(self, meeting_id: int) -> List[TranscriptSegment]:
        return sorted(self.rows.get(meeting_id, []), key=lambda s: (s.start_time, s.id))

    def replace_source_segments(self, meeting_id: int, ref: SourceRef, segments) -> List[TranscriptSegment]:
        kept = [
            s for s in self.rows.get(meeting_id, [])
            if not (s.source_type == ref.kind.value and s.source_id == ref.id)
        ]
        self.rows[meeting_id] = kept
        return self.append_segments(meeting_id, segments)


class FakeTranscriber:
    """Returns canned transcripts keyed by file name; an Exception value is raised instead."""

    def __init__(
        self,
        results: Optional[Dict[str, Union[BatchTranscript, Exception]]] = None,
        default: Optional[BatchTranscript] = None,
    ) -> None:
        self.results = results or {}
        self.default = default
        self.calls: List[str] = []

    def transcribe(self, audio_path: Path, meeting_id: Optional[int] = None) -> BatchTranscript:
        self.calls.append(Path(audio_path).name)
        result = self.results.get(Path(audio_path).name, self.default)
        if isinstance(result, Exception):
            raise result
        return result or BatchTranscript()


def transcript(*chunks: tuple, language: str = "en") -> BatchTranscript:
    parts = [TranscribedChunk(start=a, end=b, text=t) for a, b, t in chunks]
    return BatchTranscript(segments=parts, full_text=" ".join(p.text for p in parts), language=language)
