"""
Subtitle timeline construction and reconciliation.

Line timestamps are first laid out back to back from per-line durations,
then scaled by one factor so the last line ends exactly where the measured
narration ends. Per-line measurements drift slightly from the joined file
(container padding, resampling), and a single linear scale removes that
drift without reordering or overlapping lines.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

DEFAULT_LINE_MS = 1000
DEFAULT_LINE_SECONDS = 1.0


@dataclass(frozen=True)
class SubtitleLine:
    text: str
    start: int
    end: int

    @property
    def duration(self) -> int:
        return self.end - self.start


def build_timeline(lines: Sequence[str], durations_ms: Sequence[int]) -> list[SubtitleLine]:
    out: list[SubtitleLine] = []
    cursor = 0
    for i, text in enumerate(lines):
        dur = durations_ms[i] if i < len(durations_ms) else 0
        if dur == 0:
            dur = DEFAULT_LINE_MS
        out.append(SubtitleLine(text=text, start=cursor, end=cursor + dur))
        cursor += dur
    return out


def build_timeline_float(lines: Sequence[str], durations_s: Sequence[float]) -> list[SubtitleLine]:
    """Same as `build_timeline` but accumulates in seconds so rounding never compounds."""
    out: list[SubtitleLine] = []
    cursor = 0.0
    for i, text in enumerate(lines):
        dur = durations_s[i] if i < len(durations_s) else 0.0
        if dur == 0:
            dur = DEFAULT_LINE_SECONDS
        out.append(
            SubtitleLine(
                text=text,
                start=int(round(cursor * 1000)),
                end=int(round((cursor + dur) * 1000)),
            )
        )
        cursor += dur
    return out


def scale_factor(raw_sum: float, total: float) -> float:
    if raw_sum <= 0 or total <= 0:
        return 1.0
    return total / raw_sum


@dataclass(frozen=True)
class Reconciliation:
    lines: list[SubtitleLine]
    scale_factor: float
    raw_sum: float

    @property
    def end_ms(self) -> int:
        return self.lines[-1].end if self.lines else 0


def reconcile(lines: Sequence[str], durations_s: Sequence[float], total_s: float) -> Reconciliation:
    raw = build_timeline_float(lines, durations_s)
    raw_sum = raw[-1].end / 1000.0 if raw else 0.0
    factor = scale_factor(raw_sum, total_s)
    scaled = [
        SubtitleLine(
            text=line.text,
            start=int(round(line.start * factor)),
            end=int(round(line.end * factor)),
        )
        for line in raw
    ]
    return Reconciliation(lines=scaled, scale_factor=factor, raw_sum=raw_sum)
