from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from meetnotes.config import Settings


def make_engine(settings: Settings) -> Engine:
    # SQLite with WAL enabled
    engine = create_engine(
        f"sqlite:///{settings.database_path}", connect_args={"check_same_thread": False}
    )

    @event.listens_for(engine, "connect")
    def _enable_foreign_keys(dbapi_conn, _record) -> None:  # type: ignore[no-untyped-def]
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.close()

    return engine


def init_db(engine: Engine) -> None:
    # Import table modules so their metadata is registered before create_all
    from meetnotes.models import audio_segment, meeting, setting, transcript_segment, uploaded_audio  # noqa: F401

    with engine.begin() as conn:
        conn.exec_driver_sql("PRAGMA journal_mode=WAL;")
        conn.exec_driver_sql("PRAGMA synchronous=NORMAL;")
    SQLModel.metadata.create_all(engine)
