from __future__ import annotations

from typing import Iterable, Tuple


NOISE_MARKERS = (
    "[blank_audio]",
    "[inaudible]",
    "[ inaudible ]",
    "[silence]",
    "[music]",
    "[applause]",
    "[laughter]",
)


def is_noise_text(text: str) -> bool:
    """True for empty text and for the bracketed non-speech markers Whisper emits."""
    lowered = text.lower()
    return not text.strip() or any(marker in lowered for marker in NOISE_MARKERS)


def is_echo_of_system(
    mic_text: str,
    mic_start: float,
    mic_end: float,
    system_segments: Iterable[Tuple[float, float, str]],
) -> bool:
    """Guess whether a mic segment is the speakers' output picked up again.

    A mic segment counts as an echo of a system segment when the two overlap
    by at least a second and share 3 of their first 5 words (2 when the mic
    text is 3 words or shorter).
    """
    mic_words = mic_text.lower().split()[:5]
    if not mic_words:
        return False

    for sys_start, sys_end, sys_text in system_segments:
        overlap = min(mic_end, sys_end) - max(mic_start, sys_start)
        if overlap < 1.0:
            continue
        sys_words = sys_text.lower().split()[:5]
        matches = sum(1 for w in mic_words if w in sys_words)
        if matches >= 3 or (matches >= 2 and len(mic_words) <= 3):
            return True
    return False
