from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional
import json
import logging

from pydantic import ValidationError
from sqlmodel import Session, select

from meetnotes.models.setting import Setting
from meetnotes.models.app_settings import (
    AppSettingsModel,
    migrate_settings_dict,
    deep_merge_dict,
)


DEFAULT_SETTINGS: Dict[str, Any] = AppSettingsModel().to_dict()


APP_SETTINGS_KEY = "app_settings"

logger = logging.getLogger("meetnotes.settings")


def _defaults() -> Dict[str, Any]:
    return json.loads(json.dumps(DEFAULT_SETTINGS))


def _load_json_or_default(value_json: Optional[str]) -> Dict[str, Any]:
    if not value_json:
        return _defaults()
    try:
        parsed = json.loads(value_json)
        # migrate legacy keys
        migrated = migrate_settings_dict(parsed)
        # deep-merge defaults to ensure new fields exist
        merged = deep_merge_dict(_defaults(), migrated)
        # validate with Pydantic to coerce and ensure types
        return AppSettingsModel(**merged).to_dict()
    except (ValueError, ValidationError):
        logger.warning("Stored settings are unreadable; falling back to defaults")
        return _defaults()


def get_app_settings(session: Session) -> Dict[str, Any]:
    stmt = select(Setting).where(Setting.key == APP_SETTINGS_KEY)
    row = session.exec(stmt).first()
    return _load_json_or_default(row.value_json if row else None)


def load_app_settings_model(session: Session) -> AppSettingsModel:
    return AppSettingsModel(**get_app_settings(session))


def save_app_settings(session: Session, settings_data: Dict[str, Any]) -> Dict[str, Any]:
    # Merge with existing to avoid losing unknown fields
    current = get_app_settings(session)
    # migrate input patch too
    incoming = migrate_settings_dict(settings_data)
    merged = deep_merge_dict(current, incoming)
    # validate and normalize via Pydantic
    normalized = AppSettingsModel(**merged).to_dict()
    payload = json.dumps(normalized, ensure_ascii=False)
    stmt = select(Setting).where(Setting.key == APP_SETTINGS_KEY)
    row = session.exec(stmt).first()
    if row is None:
        row = Setting(key=APP_SETTINGS_KEY, value_json=payload)
        session.add(row)
    else:
        row.value_json = payload
        row.updated_at = datetime.utcnow()
        session.add(row)
    session.commit()
    return normalized
