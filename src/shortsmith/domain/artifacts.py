from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class NarrationArtifact:
    path: Path
    duration_seconds: float
    line_durations: list[float] = field(default_factory=list)


@dataclass(frozen=True)
class SubtitleArtifact:
    path: Path
    format: str = "ass"
    line_count: int = 0
    scale_factor: float = 1.0
    end_ms: int = 0


@dataclass(frozen=True)
class VideoArtifact:
    path: Path
    format: str = "mp4"
    duration_seconds: float | None = None
    segment_count: int | None = None


@dataclass(frozen=True)
class BGMArtifact:
    path: Path
    volume: float


@dataclass
class Artifacts:
    lines: list[str] = field(default_factory=list)
    narration: Optional[NarrationArtifact] = None
    subtitles: Optional[SubtitleArtifact] = None
    timeline: Optional[VideoArtifact] = None
    bgm: Optional[BGMArtifact] = None
    output: Optional[VideoArtifact] = None
