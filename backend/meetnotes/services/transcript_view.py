"""Read-time grouping of a meeting's transcript by audio source and speaker.

``project`` is a pure function of its arguments: it never mutates the
segments or sources it is given and keeps no cache, so two calls with the
same input produce equal output.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from meetnotes.models.audio_source import AudioSource, SourceKind, source_label, source_ref, sort_sources
from meetnotes.models.transcript_segment import SourceType, TranscriptSegment


LIVE_KEY = "live"
LEGACY_KEY = "legacy"
LIVE_LABEL = "Live Transcription"
LEGACY_LABEL = "Transcript"


class SpeakerFilter(str, Enum):
    ALL = "all"
    YOU = "you"
    OTHERS = "others"


@dataclass(frozen=True)
class TranscriptFilters:
    speaker: SpeakerFilter = SpeakerFilter.ALL
    query: str = ""
    others_label: str = "Others"


@dataclass(frozen=True)
class SpeakerRun:
    speaker: Optional[str]
    start_time: float
    end_time: float
    segment_ids: Tuple[int, ...]
    texts: Tuple[str, ...]

    @property
    def text(self) -> str:
        return " ".join(t.strip() for t in self.texts if t.strip())


@dataclass(frozen=True)
class SourceSection:
    key: str
    label: str
    source_type: SourceType
    source_id: Optional[int]
    display_order: float
    runs: Tuple[SpeakerRun, ...]

    @property
    def segment_count(self) -> int:
        return sum(len(run.segment_ids) for run in self.runs)


def matches_speaker(segment: TranscriptSegment, filters: TranscriptFilters) -> bool:
    if filters.speaker is SpeakerFilter.ALL:
        return True
    if filters.speaker is SpeakerFilter.OTHERS:
        return segment.speaker == filters.others_label
    # "you" is anyone attributed who is not the others sentinel
    return segment.speaker is not None and segment.speaker != filters.others_label


def apply_filters(segments: Iterable[TranscriptSegment], filters: TranscriptFilters) -> List[TranscriptSegment]:
    """Speaker filter first, then a case-insensitive substring match on raw text."""
    result = [s for s in segments if matches_speaker(s, filters)]
    if filters.query.strip():
        query = filters.query.lower()
        result = [s for s in result if query in s.text.lower()]
    return result


def fold_speaker_runs(segments: Sequence[TranscriptSegment]) -> Tuple[SpeakerRun, ...]:
    runs: List[SpeakerRun] = []
    group: List[TranscriptSegment] = []

    def close() -> None:
        if group:
            runs.append(
                SpeakerRun(
                    speaker=group[0].speaker,
                    start_time=group[0].start_time,
                    end_time=max(s.end_time for s in group),
                    segment_ids=tuple(int(s.id or 0) for s in group),
                    texts=tuple(s.text for s in group),
                )
            )

    for segment in segments:
        if group and group[-1].speaker != segment.speaker:
            close()
            group = []
        group.append(segment)
    close()
    return tuple(runs)


@dataclass(frozen=True)
class _Placement:
    key: str
    label: str
    source_type: SourceType
    source_id: Optional[int]
    order: float
    # Among +inf sections, dangling references sort before legacy text
    rank: int


def _place(segment: TranscriptSegment, positions: Dict[str, Tuple[int, str]]) -> _Placement:
    kind = segment.provenance
    if kind in (SourceType.UPLOAD, SourceType.SEGMENT) and segment.source_id is not None:
        source_kind = SourceKind.UPLOAD if kind is SourceType.UPLOAD else SourceKind.SEGMENT
        key = f"{source_kind.value}-{segment.source_id}"
        found = positions.get(key)
        if found is not None:
            order, label = found
            return _Placement(key, label, kind, segment.source_id, float(order), 0)
        fallback = "Uploaded Audio" if kind is SourceType.UPLOAD else "Recording"
        return _Placement(key, fallback, kind, segment.source_id, math.inf, 0)
    if kind is SourceType.LIVE:
        return _Placement(LIVE_KEY, LIVE_LABEL, SourceType.LIVE, None, -1.0, 0)
    return _Placement(LEGACY_KEY, LEGACY_LABEL, SourceType.LEGACY, None, math.inf, 1)


def project(
    segments: Sequence[TranscriptSegment],
    sources: Sequence[AudioSource],
    filters: Optional[TranscriptFilters] = None,
) -> List[SourceSection]:
    filters = filters or TranscriptFilters()

    positions: Dict[str, Tuple[int, str]] = {
        source_ref(src).key: (index, source_label(src)) for index, src in enumerate(sort_sources(list(sources)))
    }

    placements: Dict[str, _Placement] = {}
    members: Dict[str, List[TranscriptSegment]] = {}
    for segment in apply_filters(segments, filters):
        placement = _place(segment, positions)
        placements.setdefault(placement.key, placement)
        members.setdefault(placement.key, []).append(segment)

    ordered = sorted(placements.values(), key=lambda p: (p.order, p.rank, p.key))
    sections: List[SourceSection] = []
    for placement in ordered:
        rows = sorted(members[placement.key], key=lambda s: (s.start_time, s.id or 0))
        sections.append(
            SourceSection(
                key=placement.key,
                label=placement.label,
                source_type=placement.source_type,
                source_id=placement.source_id,
                display_order=placement.order,
                runs=fold_speaker_runs(rows),
            )
        )
    return sections
