"""Everything a request handler needs, built once per application.

Handlers receive this object through a dependency instead of reaching for
module-level globals, so tests can build as many isolated apps as they like.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session

from meetnotes.config import Settings
from meetnotes.models.base import init_db, make_engine
from meetnotes.repositories.settings import load_app_settings_model
from meetnotes.services.asr_engine import ASRConfig, Transcriber, WhisperTranscriber
from meetnotes.services.batch_transcription import BatchTranscriptionService
from meetnotes.services.live_consolidator import LiveConsolidator
from meetnotes.services.segment_store import SegmentStore
from meetnotes.services.source_order import SourceOrderRegister
from meetnotes.services.storage import SqlStorage
from meetnotes.services.subject import SubjectTracker


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    storage: SqlStorage
    subjects: SubjectTracker
    segments: SegmentStore
    live: LiveConsolidator
    order: SourceOrderRegister
    batch: BatchTranscriptionService

    @classmethod
    def build(cls, settings: Settings, transcriber: Optional[Transcriber] = None) -> "AppContext":
        settings.ensure_dirs()
        engine = make_engine(settings)
        init_db(engine)
        storage = SqlStorage(engine)
        subjects = SubjectTracker()
        segments = SegmentStore(storage)
        return cls(
            settings=settings,
            engine=engine,
            storage=storage,
            subjects=subjects,
            segments=segments,
            live=LiveConsolidator(segments),
            order=SourceOrderRegister(storage, subjects),
            batch=BatchTranscriptionService(
                storage,
                segments,
                transcriber or WhisperTranscriber(settings, lambda: asr_config_from_db(engine)),
                subjects,
                others_label=settings.others_label,
            ),
        )


def asr_config_from_db(engine: Engine) -> ASRConfig:
    with Session(engine) as session:
        prefs = load_app_settings_model(session).transcription
    return ASRConfig(model_id=prefs.model_id, device=prefs.device, language=prefs.language, vad=prefs.vad)
