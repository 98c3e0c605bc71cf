"""The user-controlled order of a meeting's audio sources.

Recorded segments and uploaded files share one ``display_order`` key. A
reorder always rewrites the whole sequence to ``0..N-1`` in one transaction.
Only one reorder per meeting may be in flight; a second request is refused
with ``ReorderInProgress`` and the caller retries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Set

from starlette.concurrency import run_in_threadpool

from meetnotes.errors import OrderError, OrderErrorCode, ReorderInProgress
from meetnotes.models.audio_source import AudioSource, SourceKind, SourceRef, source_ref
from meetnotes.services.storage import Storage
from meetnotes.services.subject import ApplyOutcome, SubjectTracker


logger = logging.getLogger("meetnotes.order")


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


@dataclass(frozen=True)
class OrderMove:
    kind: SourceKind
    id: int
    new_index: int


def resolve_permutation(current: Sequence[AudioSource], moves: Sequence[OrderMove]) -> List[SourceRef]:
    """Validate ``moves`` against ``current`` and return the refs in their new order."""
    known = {source_ref(s) for s in current}
    slots: List[Optional[SourceRef]] = [None] * len(current)
    seen: Set[SourceRef] = set()

    for move in moves:
        ref = SourceRef(SourceKind(move.kind), int(move.id))
        if ref in seen:
            raise OrderError(OrderErrorCode.DUPLICATE_ENTRY, f"{ref.key} appears more than once")
        seen.add(ref)
        if ref not in known:
            raise OrderError(OrderErrorCode.UNKNOWN_SOURCE, f"{ref.key} is not a source of this meeting")
        if not 0 <= move.new_index < len(slots):
            raise OrderError(
                OrderErrorCode.OUT_OF_RANGE,
                f"index {move.new_index} for {ref.key} is outside 0..{len(slots) - 1}",
            )
        if slots[move.new_index] is not None:
            raise OrderError(OrderErrorCode.DUPLICATE_ENTRY, f"index {move.new_index} is assigned twice")
        slots[move.new_index] = ref

    if len(seen) != len(slots):
        raise OrderError(
            OrderErrorCode.OUT_OF_RANGE,
            f"ordering covers {len(seen)} of {len(slots)} sources",
        )
    return [ref for ref in slots if ref is not None]


def adjacent_swap(current: Sequence[AudioSource], index: int, direction: Direction) -> List[OrderMove]:
    """Full permutation that swaps the item at ``index`` with its neighbour."""
    n = len(current)
    if not 0 <= index < n:
        raise OrderError(OrderErrorCode.OUT_OF_RANGE, f"index {index} is outside 0..{n - 1}")
    target = index - 1 if direction is Direction.UP else index + 1
    if not 0 <= target < n:
        raise OrderError(
            OrderErrorCode.OUT_OF_RANGE,
            f"cannot move item {index} {direction.value}: no neighbour",
        )
    refs = [source_ref(s) for s in current]
    refs[index], refs[target] = refs[target], refs[index]
    return [OrderMove(ref.kind, ref.id, position) for position, ref in enumerate(refs)]


class SourceOrderRegister:
    def __init__(self, storage: Storage, subjects: Optional[SubjectTracker] = None) -> None:
        self._storage = storage
        self._subjects = subjects
        self._in_flight: Set[int] = set()

    def list(self, meeting_id: int) -> List[AudioSource]:
        return self._storage.list_sources(meeting_id)

    def is_busy(self, meeting_id: int) -> bool:
        return meeting_id in self._in_flight

    async def reorder(self, meeting_id: int, moves: Sequence[OrderMove]) -> ApplyOutcome:
        self._claim(meeting_id)
        try:
            return await self._reorder(meeting_id, lambda current: moves)
        finally:
            self._in_flight.discard(meeting_id)

    async def move_adjacent(self, meeting_id: int, index: int, direction: Direction) -> ApplyOutcome:
        self._claim(meeting_id)
        try:
            return await self._reorder(meeting_id, lambda current: adjacent_swap(current, index, direction))
        finally:
            self._in_flight.discard(meeting_id)

    def _claim(self, meeting_id: int) -> None:
        if meeting_id in self._in_flight:
            logger.info("Rejecting overlapping reorder for meeting %s", meeting_id)
            raise ReorderInProgress(meeting_id)
        self._in_flight.add(meeting_id)

    async def _reorder(self, meeting_id, build_moves) -> ApplyOutcome:  # type: ignore[no-untyped-def]
        ticket = self._subjects.capture() if self._subjects is not None else None
        current = await run_in_threadpool(self._storage.list_sources, meeting_id)
        ordered = resolve_permutation(current, build_moves(current))
        # All-or-nothing: nothing in memory changes before this write commits
        await run_in_threadpool(self._storage.persist_order, meeting_id, ordered)
        logger.info("Meeting %s sources reordered: %s", meeting_id, [ref.key for ref in ordered])
        if ticket is None:
            return ApplyOutcome.APPLIED
        return self._subjects.settle(ticket, "reorder")  # type: ignore[union-attr]
