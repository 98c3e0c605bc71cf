from __future__ import annotations

from typing import Any, Dict, Optional, Literal
from pydantic import BaseModel, Field


class ProfileSettings(BaseModel):
    """Who "you" are in transcripts."""

    # Speaker label given to the local microphone track (live and batch)
    display_name: str = Field(default="Me")


class TranscriptionSettings(BaseModel):
    """Settings forwarded to the local transcriber."""

    model_id: Literal[
        "tiny",
        "base",
        "small",
        "medium",
        "large-v1",
        "large-v2",
        "large-v3",
        "distil-large-v3",
    ] = Field(default="large-v3")

    device: Literal["auto", "cpu", "cuda"] = Field(default="auto")

    # Optional fixed language (e.g., "de", "en"); None means auto-detect
    language: Optional[str] = Field(default=None)

    vad: bool = Field(default=True)


class AppSettingsModel(BaseModel):
    profile: ProfileSettings = Field(default_factory=ProfileSettings)
    transcription: TranscriptionSettings = Field(default_factory=TranscriptionSettings)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump()


def deep_merge_dict(dst: Dict[str, Any], src: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in src.items():
        if isinstance(v, dict) and isinstance(dst.get(k), dict):
            dst[k] = deep_merge_dict(dict(dst.get(k, {})), v)
        else:
            dst[k] = v
    return dst


def migrate_settings_dict(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Migrate an arbitrary settings payload to the supported structure.

    - Older payloads kept transcription options under 'asr'; they are moved.
    - A bare 'display_name' at the top level moves under 'profile'.
    - Unrelated keys are dropped. Only keys present in the input are emitted,
      so the result can be used as a partial patch.
    """
    result: Dict[str, Any] = {}
    if not isinstance(raw, dict):
        return result

    profile_in: Dict[str, Any] = dict(raw.get("profile") or {}) if isinstance(raw.get("profile"), dict) else {}
    if "display_name" in raw and "display_name" not in profile_in:
        profile_in["display_name"] = raw.get("display_name")
    name = profile_in.get("display_name")
    if isinstance(name, str) and name.strip():
        result["profile"] = {"display_name": name.strip()}

    tr_in: Dict[str, Any] = {}
    for key in ("asr", "transcription"):
        block = raw.get(key)
        if isinstance(block, dict):
            tr_in.update(block)

    normalized: Dict[str, Any] = {}
    if "model_id" in tr_in:
        normalized["model_id"] = tr_in.get("model_id")
    if "device" in tr_in:
        dev = str(tr_in.get("device", "auto")).lower()
        normalized["device"] = dev if dev in {"auto", "cpu", "cuda"} else "auto"
    if "language" in tr_in:
        lang = tr_in.get("language")
        normalized["language"] = str(lang).strip() if isinstance(lang, str) and lang.strip() else None
    if "vad" in tr_in:
        normalized["vad"] = bool(tr_in.get("vad"))
    if normalized:
        result["transcription"] = normalized
    return result
