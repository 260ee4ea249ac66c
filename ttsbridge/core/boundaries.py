"""
Word-boundary normalization and estimation.

Every synthesis result carries one canonical boundary sequence, whether the
engine reported word timings itself or not:

- native timings are normalized (clamped, deduplicated, completed) without
  ever being reordered,
- otherwise the timeline is estimated by spreading the total audio duration
  across whitespace tokens proportionally to their character length.

Within a sequence offsets never decrease, durations are >= 0 and no mark ends
after the audio (plus EPSILON_MS) when the total duration is known.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence

logger = logging.getLogger("ttsbridge.boundaries")

EPSILON_MS = 1.0
DEFAULT_WORDS_PER_MINUTE = 150


class BoundarySource(Enum):
    NATIVE = "native"
    ESTIMATED = "estimated"


@dataclass(frozen=True)
class BoundaryMark:
    """When one word is spoken, in milliseconds from the start of the audio."""
    text: str
    offset_ms: float
    duration_ms: float
    source: BoundarySource = BoundarySource.NATIVE

    @property
    def end_ms(self) -> float:
        return self.offset_ms + self.duration_ms

    @property
    def start_sec(self) -> float:
        return self.offset_ms / 1000.0

    @property
    def end_sec(self) -> float:
        return self.end_ms / 1000.0

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "offset_ms": self.offset_ms,
            "duration_ms": self.duration_ms,
            "source": self.source.value,
        }


def _field(raw: Mapping[str, Any], *names: str) -> Any:
    for name in names:
        if raw.get(name) is not None:
            return raw[name]
    return None


def _coerce(raw: Any) -> tuple:
    """(text, offset, duration-or-None) from a tuple, dict or BoundaryMark."""
    if isinstance(raw, BoundaryMark):
        return raw.text, raw.offset_ms, raw.duration_ms
    if isinstance(raw, Mapping):
        text = _field(raw, "text", "word", "value")
        offset = _field(raw, "offset", "offset_ms", "time")
        duration = _field(raw, "duration", "duration_ms")
        if text is None or offset is None:
            raise ValueError(f"Boundary mapping needs text and offset: {raw!r}")
        return str(text), float(offset), None if duration is None else float(duration)
    if isinstance(raw, Sequence) and not isinstance(raw, str) and len(raw) in (2, 3):
        duration = raw[2] if len(raw) == 3 else None
        return str(raw[0]), float(raw[1]), None if duration is None else float(duration)
    raise ValueError(f"Unsupported boundary value: {raw!r}")


def normalize_native(marks: Iterable[Any], total_ms: Optional[float] = None) -> List[BoundaryMark]:
    """
    Normalize engine-reported word timings.

    Accepts (word, offset_ms, duration_ms) tuples, (word, offset_ms) pairs,
    dicts using text/word/value + offset/time + duration keys, or
    BoundaryMark instances. Input order is preserved.

    - negative offsets and durations clamp to 0,
    - exact duplicate zero-width marks are dropped,
    - a missing duration extends to the next mark's offset (the last one to
      `total_ms` when known, else 0),
    - with `total_ms` known, no mark ends past it.
    """
    entries = []
    for raw in marks:
        text, offset, duration = _coerce(raw)
        offset = max(0.0, offset)
        if duration is not None:
            duration = max(0.0, duration)
        entries.append([text, offset, duration])

    for i, entry in enumerate(entries):
        if entry[2] is not None:
            continue
        if i + 1 < len(entries):
            entry[2] = max(0.0, entries[i + 1][1] - entry[1])
        elif total_ms is not None:
            entry[2] = max(0.0, total_ms - entry[1])
        else:
            entry[2] = 0.0

    result: List[BoundaryMark] = []
    seen_zero_width = set()
    previous_offset = 0.0
    for text, offset, duration in entries:
        if offset < previous_offset:
            logger.debug(f"Out-of-order native boundary '{text}' at {offset}ms kept in place")
            offset = previous_offset
        if total_ms is not None:
            offset = min(offset, total_ms)
            duration = min(duration, total_ms - offset)
        if duration == 0:
            key = (text, offset)
            if key in seen_zero_width:
                continue
            seen_zero_width.add(key)
        result.append(BoundaryMark(text, offset, duration, BoundarySource.NATIVE))
        previous_offset = offset

    return result


def tokenize(text: str) -> List[str]:
    """Whitespace tokens; punctuation stays attached to its word."""
    return text.split()


def estimate_boundaries(text: str, total_ms: float) -> List[BoundaryMark]:
    """
    Spread `total_ms` across the words of `text` by character length.

    Offsets are the cumulative weight prefix scaled to the duration and each
    duration runs to the next scaled prefix, so the last mark ends at
    exactly `total_ms`.
    """
    tokens = tokenize(text)
    if not tokens:
        return []

    total_ms = max(0.0, float(total_ms))
    weights = [max(1, len(token)) for token in tokens]
    total_weight = sum(weights)

    marks = []
    prefix = 0
    for token, weight in zip(tokens, weights):
        offset = total_ms * prefix / total_weight
        prefix += weight
        end = total_ms if prefix == total_weight else total_ms * prefix / total_weight
        marks.append(BoundaryMark(token, offset, end - offset, BoundarySource.ESTIMATED))
    return marks


def estimate_duration_ms(text: str, words_per_minute: int = DEFAULT_WORDS_PER_MINUTE) -> float:
    """
    Rough speaking time for text nobody has measured.

    Assumes a constant rate; longer words take proportionally longer
    (factor len/5 clamped to [0.5, 2.0]).
    """
    if words_per_minute <= 0:
        raise ValueError("words_per_minute must be positive")
    ms_per_word = 60_000 / words_per_minute
    return sum(ms_per_word * max(0.5, min(2.0, len(word) / 5)) for word in tokenize(text))


def total_duration_ms(marks: Sequence[BoundaryMark]) -> float:
    """End of the last-ending mark (0 for an empty sequence)."""
    return max((mark.end_ms for mark in marks), default=0.0)
