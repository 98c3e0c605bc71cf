from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Tuple

from meetnotes.config import Settings


@dataclass
class TranscribedChunk:
    start: float  # seconds
    end: float
    text: str


@dataclass
class BatchTranscript:
    segments: List[TranscribedChunk] = field(default_factory=list)
    full_text: str = ""
    language: Optional[str] = None


@dataclass
class ASRConfig:
    model_id: str = "large-v3"
    device: str = "auto"  # auto|cpu|cuda
    language: Optional[str] = None
    vad: bool = True


class Transcriber(Protocol):
    def transcribe(self, audio_path: Path, meeting_id: Optional[int] = None) -> BatchTranscript: ...


class WhisperTranscriber:
    """Thin wrapper around faster-whisper WhisperModel with simple model caching."""

    def __init__(self, settings: Settings, config_provider: Optional[Callable[[], ASRConfig]] = None) -> None:
        self._settings = settings
        # Read on every job so preference changes apply without a restart
        self._config_provider = config_provider or ASRConfig
        self._cached_key: Optional[Tuple[str, str, str]] = None
        self._model = None

    @staticmethod
    def _resolve_device_and_compute_type(device_pref: str) -> Tuple[str, str]:
        device = "cuda" if device_pref == "cuda" else "cpu" if device_pref == "cpu" else "auto"
        compute_type = "float16" if device == "cuda" else "int8" if device == "cpu" else "default"
        return device, compute_type

    def _ensure_model(self, model_id: str, device: str, compute_type: str) -> None:
        key = (model_id, device, compute_type)
        if self._model is not None and self._cached_key == key:
            return
        # Lazy import to avoid heavy module import during app startup
        from faster_whisper import WhisperModel  # type: ignore

        download_root = str((self._settings.models_dir / "whisper" / "faster-whisper").resolve())
        self._model = WhisperModel(
            model_id,
            device=device,
            compute_type=compute_type,
            download_root=download_root,
        )
        self._cached_key = key

    def transcribe(self, audio_path: Path, meeting_id: Optional[int] = None) -> BatchTranscript:
        cfg = self._config_provider()
        device, compute_type = self._resolve_device_and_compute_type(cfg.device)
        self._ensure_model(cfg.model_id, device, compute_type)
        assert self._model is not None

        seg_iter, info = self._model.transcribe(
            str(audio_path),
            vad_filter=bool(cfg.vad),
            language=cfg.language,
            task="transcribe",
            beam_size=1,
            best_of=1,
            temperature=0.0,
            condition_on_previous_text=False,
            compression_ratio_threshold=2.4,
            log_prob_threshold=-1.0,
            no_speech_threshold=0.6,
        )
        chunks: List[TranscribedChunk] = []
        for seg in seg_iter:
            start = float(seg.start) if seg.start is not None else 0.0
            end = float(seg.end) if seg.end is not None else start
            chunks.append(TranscribedChunk(start=start, end=end, text=seg.text or ""))

        return BatchTranscript(
            segments=chunks,
            full_text=" ".join(c.text.strip() for c in chunks if c.text.strip()),
            language=getattr(info, "language", None),
        )
