from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlmodel import Session
from starlette.concurrency import run_in_threadpool
import logging

from meetnotes.context import AppContext
from meetnotes.deps import get_context, get_session
from meetnotes.models.audio_source import AudioSource, SourceKind, assert_never, source_kind, source_label, source_ref
from meetnotes.models.meeting import Meeting
from meetnotes.models.transcript_segment import TranscriptSegment
from meetnotes.repositories.audio_sources import AudioSourcesRepository
from meetnotes.repositories.meetings import MeetingsRepository
from meetnotes.services.live_consolidator import LiveUpdate
from meetnotes.services.source_order import Direction, OrderMove
from meetnotes.services.subject import ApplyOutcome
from meetnotes.services.transcript_view import SourceSection, SpeakerFilter, TranscriptFilters, project

logger = logging.getLogger("meetnotes.api")


router = APIRouter(prefix="/meetings", tags=["meetings"])


class CreateMeetingRequest(BaseModel):
    title: Optional[str] = None


class UpdateMeetingRequest(BaseModel):
    title: Optional[str] = None


class AudioSourceOut(BaseModel):
    kind: SourceKind
    id: int
    meeting_id: int
    label: str
    display_order: int
    duration_ms: Optional[int] = None
    # recorded segments
    segment_index: Optional[int] = None
    start_offset_ms: Optional[int] = None
    # uploaded files
    original_filename: Optional[str] = None
    speaker_label: Optional[str] = None
    transcription_status: Optional[str] = None


class ReorderItem(BaseModel):
    kind: SourceKind
    id: int
    new_index: int


class ReorderRequest(BaseModel):
    items: List[ReorderItem]


class MoveRequest(BaseModel):
    index: int
    direction: Direction


class OrderResponse(BaseModel):
    outcome: str
    sources: List[AudioSourceOut]


class SpeakerRunOut(BaseModel):
    speaker: Optional[str]
    start_time: float
    end_time: float
    segment_ids: List[int]
    text: str


class SourceSectionOut(BaseModel):
    key: str
    label: str
    source_type: str
    source_id: Optional[int]
    # None for sections without a known source (rendered last)
    display_order: Optional[float]
    runs: List[SpeakerRunOut]


class LiveStatus(BaseModel):
    outcome: str
    active_meeting_id: Optional[int]


def source_out(src: AudioSource) -> AudioSourceOut:
    ref = source_ref(src)
    out = AudioSourceOut(
        kind=ref.kind,
        id=ref.id,
        meeting_id=src.meeting_id,
        label=source_label(src),
        display_order=src.display_order,
        duration_ms=src.duration_ms,
    )
    kind = source_kind(src)
    if kind is SourceKind.SEGMENT:
        out.segment_index = src.segment_index  # type: ignore[union-attr]
        out.start_offset_ms = src.start_offset_ms  # type: ignore[union-attr]
    elif kind is SourceKind.UPLOAD:
        out.original_filename = src.original_filename  # type: ignore[union-attr]
        out.speaker_label = src.speaker_label  # type: ignore[union-attr]
        out.transcription_status = src.transcription_status  # type: ignore[union-attr]
    else:
        assert_never(kind)
    return out


def section_out(section: SourceSection) -> SourceSectionOut:
    return SourceSectionOut(
        key=section.key,
        label=section.label,
        source_type=section.source_type.value,
        source_id=section.source_id,
        display_order=None if math.isinf(section.display_order) else section.display_order,
        runs=[
            SpeakerRunOut(
                speaker=run.speaker,
                start_time=run.start_time,
                end_time=run.end_time,
                segment_ids=list(run.segment_ids),
                text=run.text,
            )
            for run in section.runs
        ],
    )


@router.post("")
def create_meeting(body: CreateMeetingRequest, session: Session = Depends(get_session)) -> Meeting:
    return MeetingsRepository(session).create(Meeting(title=body.title or "Untitled Meeting"))


@router.get("")
def list_meetings(limit: int = 50, offset: int = 0, session: Session = Depends(get_session)) -> List[Meeting]:
    return MeetingsRepository(session).list(limit=limit, offset=offset)


@router.get("/{meeting_id}")
def get_meeting_detail(
    meeting_id: int,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> Dict[str, Any]:
    meeting = MeetingsRepository(session).require(meeting_id)
    return {
        "meeting": meeting,
        "sources": [source_out(s) for s in ctx.order.list(meeting_id)],
        "transcript_segments": ctx.segments.segments(meeting_id),
        "open": ctx.subjects.current_meeting_id == meeting_id,
        "live": ctx.live.active_meeting_id == meeting_id,
        "transcription": ctx.batch.get_status(meeting_id),
    }


@router.put("/{meeting_id}")
def update_meeting(meeting_id: int, body: UpdateMeetingRequest, session: Session = Depends(get_session)) -> Meeting:
    repo = MeetingsRepository(session)
    if body.title is None:
        return repo.require(meeting_id)
    return repo.rename(meeting_id, body.title)


@router.post("/{meeting_id}/open")
def open_meeting(
    meeting_id: int,
    session: Session = Depends(get_session),
    ctx: AppContext = Depends(get_context),
) -> Dict[str, int]:
    MeetingsRepository(session).require(meeting_id)
    ticket = ctx.subjects.open(meeting_id)
    return {"meeting_id": meeting_id, "generation": ticket.generation}


@router.post("/{meeting_id}/migrate-legacy")
def migrate_legacy(meeting_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    MeetingsRepository(session).require(meeting_id)
    created = AudioSourcesRepository(session).migrate_legacy_audio(meeting_id)
    return {"migrated": created is not None, "source": source_out(created) if created else None}


# -- audio source order ------------------------------------------------------


@router.get("/{meeting_id}/sources")
def list_sources(meeting_id: int, ctx: AppContext = Depends(get_context)) -> List[AudioSourceOut]:
    return [source_out(s) for s in ctx.order.list(meeting_id)]


@router.post("/{meeting_id}/sources/reorder")
async def reorder_sources(
    meeting_id: int, body: ReorderRequest, ctx: AppContext = Depends(get_context)
) -> OrderResponse:
    moves = [OrderMove(item.kind, item.id, item.new_index) for item in body.items]
    outcome = await ctx.order.reorder(meeting_id, moves)
    sources = await run_in_threadpool(ctx.order.list, meeting_id)
    return OrderResponse(outcome=outcome.value, sources=[source_out(s) for s in sources])


@router.post("/{meeting_id}/sources/move")
async def move_source(meeting_id: int, body: MoveRequest, ctx: AppContext = Depends(get_context)) -> OrderResponse:
    outcome = await ctx.order.move_adjacent(meeting_id, body.index, body.direction)
    sources = await run_in_threadpool(ctx.order.list, meeting_id)
    return OrderResponse(outcome=outcome.value, sources=[source_out(s) for s in sources])


# -- transcript ----------------------------------------------------------------


@router.get("/{meeting_id}/segments")
def get_segments(meeting_id: int, ctx: AppContext = Depends(get_context)) -> List[TranscriptSegment]:
    return ctx.segments.segments(meeting_id)


@router.get("/{meeting_id}/transcript")
def get_transcript(
    meeting_id: int,
    speaker: SpeakerFilter = SpeakerFilter.ALL,
    q: str = "",
    ctx: AppContext = Depends(get_context),
) -> List[SourceSectionOut]:
    filters = TranscriptFilters(speaker=speaker, query=q, others_label=ctx.settings.others_label)
    sections = project(ctx.segments.segments(meeting_id), ctx.order.list(meeting_id), filters)
    return [section_out(s) for s in sections]


# -- live capture --------------------------------------------------------------


@router.post("/{meeting_id}/live/start")
async def start_live(meeting_id: int, ctx: AppContext = Depends(get_context)) -> LiveStatus:
    await run_in_threadpool(ctx.storage.get_meeting, meeting_id)
    session, finished = ctx.live.open_session(meeting_id)
    await run_in_threadpool(ctx.live.flush, finished)
    return LiveStatus(outcome=ApplyOutcome.APPLIED.value, active_meeting_id=session.meeting_id)


@router.post("/{meeting_id}/live/stop")
async def stop_live(meeting_id: int, ctx: AppContext = Depends(get_context)) -> LiveStatus:
    await run_in_threadpool(ctx.storage.get_meeting, meeting_id)
    outcome, finished = ctx.live.close_session(meeting_id)
    if outcome is ApplyOutcome.APPLIED:
        await run_in_threadpool(ctx.live.flush, finished)
        await run_in_threadpool(_mark_ended, ctx, meeting_id)
    return LiveStatus(outcome=outcome.value, active_meeting_id=ctx.live.active_meeting_id)


def _mark_ended(ctx: AppContext, meeting_id: int) -> None:
    with Session(ctx.engine) as session:
        MeetingsRepository(session).mark_ended(meeting_id)


live_router = APIRouter(prefix="/live", tags=["live"])


@live_router.post("/events")
async def live_event(body: LiveUpdate, ctx: AppContext = Depends(get_context)) -> LiveStatus:
    outcome, finished = ctx.live.fold_update(body)
    if finished is not None:
        await run_in_threadpool(ctx.live.flush, finished)
    return LiveStatus(outcome=outcome.value, active_meeting_id=ctx.live.active_meeting_id)
