"""The two kinds of audio source a meeting can hold, under one ordering key.

Every consumer dispatches through ``source_kind`` so a third kind only needs
to be added here (and the ``assert_never`` branches will point at the rest).
"""

from __future__ import annotations

from enum import Enum
from typing import NamedTuple, NoReturn, Union

from meetnotes.models.audio_segment import AudioSegment
from meetnotes.models.uploaded_audio import UploadedAudio


AudioSource = Union[AudioSegment, UploadedAudio]


class SourceKind(str, Enum):
    SEGMENT = "segment"
    UPLOAD = "upload"


class SourceRef(NamedTuple):
    kind: SourceKind
    id: int

    @property
    def key(self) -> str:
        return f"{self.kind.value}-{self.id}"


def assert_never(value: NoReturn) -> NoReturn:
    raise AssertionError(f"Unhandled audio source variant: {value!r}")


def source_kind(source: AudioSource) -> SourceKind:
    if isinstance(source, AudioSegment):
        return SourceKind.SEGMENT
    if isinstance(source, UploadedAudio):
        return SourceKind.UPLOAD
    assert_never(source)


def source_ref(source: AudioSource) -> SourceRef:
    if source.id is None:
        raise ValueError("audio source has not been saved yet")
    return SourceRef(source_kind(source), int(source.id))


def source_label(source: AudioSource) -> str:
    kind = source_kind(source)
    if kind is SourceKind.SEGMENT:
        return f"Recording {source.segment_index + 1}"  # type: ignore[union-attr]
    if kind is SourceKind.UPLOAD:
        return source.original_filename  # type: ignore[union-attr]
    assert_never(kind)


def sort_sources(sources: list[AudioSource]) -> list[AudioSource]:
    """Order by display_order; ties fall back to creation time, then kind and id."""
    return sorted(
        sources,
        key=lambda s: (s.display_order, s.created_at, source_kind(s).value, s.id or 0),
    )
