from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError
from sqlmodel import Session

from meetnotes.deps import get_session
from meetnotes.repositories.settings import get_app_settings, save_app_settings


router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsUpdate(BaseModel):
    profile: Optional[Dict[str, Any]] = None
    transcription: Optional[Dict[str, Any]] = None
    # Accept the older 'asr' block for backward compatibility
    asr: Optional[Dict[str, Any]] = None


@router.get("")
def read_settings(session: Session = Depends(get_session)) -> Dict[str, Any]:
    return get_app_settings(session)


@router.post("")
def update_settings(body: SettingsUpdate, session: Session = Depends(get_session)) -> Dict[str, Any]:
    try:
        return save_app_settings(session, body.model_dump(exclude_none=True))
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=exc.errors(include_url=False)) from exc
