from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from meetnotes.errors import MeetNotesError, PersistenceFailure, TranscriptionFailure
from meetnotes.models.audio_source import SourceKind, SourceRef
from meetnotes.models.transcript_segment import SourceType, TranscriptSegment
from meetnotes.services.asr_engine import BatchTranscript, Transcriber
from meetnotes.services.segment_store import SegmentStore
from meetnotes.services.storage import Storage
from meetnotes.services.subject import ApplyOutcome, SubjectTracker
from meetnotes.services.text_filters import is_echo_of_system, is_noise_text


logger = logging.getLogger("meetnotes.batch")


@dataclass
class JobState:
    status: str = "idle"  # idle|running|done|error
    source: Optional[str] = None
    message: Optional[str] = None


@dataclass
class BatchResult:
    meeting_id: int
    source: SourceRef
    segment_count: int
    language: Optional[str]
    outcome: ApplyOutcome


class BatchTranscriptionService:
    """Transcribe finished audio sources and store their segments.

    One job runs at a time. Each job replaces the transcript of exactly one
    source; a failure only marks that source and leaves everything else as it was.
    """

    def __init__(
        self,
        storage: Storage,
        store: SegmentStore,
        transcriber: Transcriber,
        subjects: SubjectTracker,
        others_label: str = "Others",
    ) -> None:
        self._storage = storage
        self._store = store
        self._transcriber = transcriber
        self._subjects = subjects
        self._others_label = others_label
        self._lock = threading.Lock()
        self._jobs: Dict[int, JobState] = {}

    def get_status(self, meeting_id: int) -> JobState:
        return self._jobs.get(meeting_id, JobState())

    def transcribe_upload(self, upload_id: int) -> BatchResult:
        upload = self._storage.get_upload(upload_id)
        ref = SourceRef(SourceKind.UPLOAD, upload_id)
        ticket = self._subjects.capture()
        self._acquire(upload.meeting_id, ref)
        try:
            try:
                self._storage.set_upload_status(upload_id, "processing")
                transcript = self._run(Path(upload.file_path), upload.meeting_id, ref)
                rows = [
                    _segment(upload.meeting_id, chunk.start, chunk.end, chunk.text, upload.speaker_label, ref)
                    for chunk in transcript.segments
                    if not is_noise_text(chunk.text)
                ]
                saved = self._store.replace_source(upload.meeting_id, ref, rows)
                self._storage.set_upload_status(upload_id, "completed")
            except MeetNotesError as exc:
                self._mark_failed(upload_id, upload.meeting_id, ref, exc)
                if isinstance(exc, TranscriptionFailure):
                    raise
                raise TranscriptionFailure(str(exc), source_id=upload_id) from exc
            self._jobs[upload.meeting_id] = JobState(status="done", source=ref.key, message="completed")
        finally:
            self._lock.release()

        logger.info("Upload %s transcribed: %d segments", upload_id, len(saved))
        return BatchResult(
            meeting_id=upload.meeting_id,
            source=ref,
            segment_count=len(saved),
            language=transcript.language,
            outcome=self._subjects.settle(ticket, f"transcription of {ref.key}"),
        )

    def transcribe_recorded_segment(self, segment_id: int, mic_speaker: str) -> BatchResult:
        """Transcribe both tracks of a recorded segment.

        The system track goes first so that mic segments which merely repeat
        the system audio (speaker bleed) can be dropped.
        """
        recorded = self._storage.get_recorded_segment(segment_id)
        ref = SourceRef(SourceKind.SEGMENT, segment_id)
        ticket = self._subjects.capture()
        self._acquire(recorded.meeting_id, ref)
        try:
            rows: List[TranscriptSegment] = []
            system_spans: List[Tuple[float, float, str]] = []
            language: Optional[str] = None
            try:
                if recorded.system_path:
                    try:
                        sys_result = self._run(Path(recorded.system_path), recorded.meeting_id, ref)
                    except TranscriptionFailure:
                        # The mic track alone still yields a usable transcript
                        logger.warning("System track of %s failed; continuing with mic only", ref.key)
                    else:
                        language = sys_result.language
                        for chunk in sys_result.segments:
                            if is_noise_text(chunk.text):
                                continue
                            system_spans.append((chunk.start, chunk.end, chunk.text))
                            rows.append(_segment(recorded.meeting_id, chunk.start, chunk.end, chunk.text,
                                                 self._others_label, ref))

                mic_result = self._run(Path(recorded.mic_path), recorded.meeting_id, ref)
                language = mic_result.language or language
                for chunk in mic_result.segments:
                    if is_noise_text(chunk.text):
                        continue
                    if is_echo_of_system(chunk.text, chunk.start, chunk.end, system_spans):
                        continue
                    rows.append(_segment(recorded.meeting_id, chunk.start, chunk.end, chunk.text, mic_speaker, ref))

                saved = self._store.replace_source(recorded.meeting_id, ref, rows)
            except (TranscriptionFailure, PersistenceFailure) as exc:
                self._jobs[recorded.meeting_id] = JobState(status="error", source=ref.key, message=str(exc))
                raise
            self._jobs[recorded.meeting_id] = JobState(status="done", source=ref.key, message="completed")
        finally:
            self._lock.release()

        logger.info("Recorded segment %s transcribed: %d segments", segment_id, len(saved))
        return BatchResult(
            meeting_id=recorded.meeting_id,
            source=ref,
            segment_count=len(saved),
            language=language,
            outcome=self._subjects.settle(ticket, f"transcription of {ref.key}"),
        )

    def _acquire(self, meeting_id: int, ref: SourceRef) -> None:
        if not self._lock.acquire(blocking=False):
            raise TranscriptionFailure(
                "Already transcribing. Please wait for the current transcription to finish.",
                source_id=ref.id,
            )
        self._jobs[meeting_id] = JobState(status="running", source=ref.key, message="transcribing")

    def _run(self, audio_path: Path, meeting_id: int, ref: SourceRef) -> BatchTranscript:
        if not audio_path.exists():
            raise TranscriptionFailure(f"Audio file not found: {audio_path}", source_id=ref.id)
        try:
            return self._transcriber.transcribe(audio_path, meeting_id)
        except TranscriptionFailure:
            raise
        except Exception as exc:
            # Engine errors share no common base class
            logger.exception("Transcriber failed on %s", audio_path)
            raise TranscriptionFailure(str(exc), source_id=ref.id) from exc

    def _mark_failed(self, upload_id: int, meeting_id: int, ref: SourceRef, exc: Exception) -> None:
        self._jobs[meeting_id] = JobState(status="error", source=ref.key, message=str(exc))
        try:
            self._storage.set_upload_status(upload_id, "failed")
        except PersistenceFailure:
            logger.error("Could not mark upload %s as failed", upload_id)


def _segment(
    meeting_id: int, start: float, end: float, text: str, speaker: Optional[str], ref: SourceRef
) -> TranscriptSegment:
    source_type = SourceType.UPLOAD if ref.kind is SourceKind.UPLOAD else SourceType.SEGMENT
    return TranscriptSegment(
        meeting_id=meeting_id,
        start_time=start,
        end_time=end,
        text=text.strip(),
        speaker=speaker,
        source_type=source_type.value,
        source_id=ref.id,
    )
