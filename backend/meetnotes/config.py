from __future__ import annotations

from pathlib import Path
from typing import Tuple
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
import os


def _appdata_root() -> Path:
    return Path(os.getenv("APPDATA", "")) / "MeetingNotes"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="MN_", case_sensitive=False)

    app_name: str = "Meeting Notes"
    app_author: str = "MeetingNotes"

    # Base roaming app data dir (e.g., %APPDATA%\MeetingNotes)
    appdata_dir: Path = Field(default_factory=_appdata_root)
    data_dir: Path = Field(default_factory=lambda: _appdata_root() / "data")
    audio_dir: Path = Field(default_factory=lambda: _appdata_root() / "audio")
    models_dir: Path = Field(default_factory=lambda: _appdata_root() / "models")
    logs_dir: Path = Field(default_factory=lambda: _appdata_root() / "logs")

    database_path: Path = Field(default_factory=lambda: _appdata_root() / "data" / "meeting_notes.db")

    # Speaker label the system track is transcribed as; the "others" filter matches it exactly
    others_label: str = "Others"
    default_upload_speaker: str = "Uploaded"
    upload_extensions: Tuple[str, ...] = ("mp3", "m4a", "wav", "webm", "ogg", "flac", "aac", "wma")

    def ensure_dirs(self) -> None:
        for d in [self.appdata_dir, self.data_dir, self.audio_dir, self.models_dir, self.logs_dir]:
            d.mkdir(parents=True, exist_ok=True)
