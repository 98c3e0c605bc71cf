from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional


logger = logging.getLogger("meetnotes.subject")


class ApplyOutcome(str, Enum):
    APPLIED = "applied"
    # The originating meeting/session is no longer the active one; nothing was applied
    STALE_DISCARDED = "stale_discarded"


@dataclass(frozen=True)
class SubjectTicket:
    meeting_id: Optional[int]
    generation: int


class SubjectTracker:
    """Which meeting the user currently has open.

    Long-running commands take a ticket when they start and check it when
    they finish, so a completion for meeting A is never delivered to a view
    that has since switched to meeting B.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._meeting_id: Optional[int] = None
        self._generation = 0

    @property
    def current_meeting_id(self) -> Optional[int]:
        return self._meeting_id

    def open(self, meeting_id: Optional[int]) -> SubjectTicket:
        with self._lock:
            if meeting_id != self._meeting_id:
                self._generation += 1
                self._meeting_id = meeting_id
            return SubjectTicket(self._meeting_id, self._generation)

    def capture(self) -> SubjectTicket:
        with self._lock:
            return SubjectTicket(self._meeting_id, self._generation)

    def is_current(self, ticket: SubjectTicket) -> bool:
        with self._lock:
            return ticket.generation == self._generation

    def settle(self, ticket: SubjectTicket, what: str) -> ApplyOutcome:
        if self.is_current(ticket):
            return ApplyOutcome.APPLIED
        logger.info(
            "Discarding stale %s completion for meeting %s (now viewing %s)",
            what,
            ticket.meeting_id,
            self._meeting_id,
        )
        return ApplyOutcome.STALE_DISCARDED
