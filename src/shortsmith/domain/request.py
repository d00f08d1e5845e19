"""
Job request models.

A `JobRequest` is everything needed to produce one video: the narration
script, the visual materials in playback order, and the TTS, video, BGM and
subtitle settings. Validation fills defaults for missing or non-positive
values so downstream services never have to re-check them.
"""

from __future__ import annotations

import re
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

RESOLUTION_RE = re.compile(r"^\d+x\d+$")

BGM_SOURCES = ("upload", "url", "preset", "none")
RANDOM_BGM = "random"

DEFAULT_FONT = "Noto Sans CJK TC"


class Material(BaseModel):
    type: Literal["image", "video"]
    source: Literal["upload", "url", "local"] = "local"
    path: str
    duration_sec: float
    mute: bool = False
    volume: float = Field(default=1.0, ge=0.0, le=1.0)
    effect: Literal["none", "zoom_in", "zoom_out"] = "none"

    @field_validator("duration_sec")
    @classmethod
    def _positive_duration(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("duration_sec must be greater than 0")
        return value

    @field_validator("path")
    @classmethod
    def _path_present(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("material path is required")
        return value.strip()


class TTSSetting(BaseModel):
    provider: str = "edge_tts"
    voice: str = ""
    locale: str = "zh-TW"
    speed: float = 1.0
    pitch: float = 0.0

    @field_validator("speed")
    @classmethod
    def _speed_default(cls, value: float) -> float:
        return value if value > 0 else 1.0

    @field_validator("provider")
    @classmethod
    def _provider_default(cls, value: str) -> str:
        return value.strip() or "edge_tts"


class VideoSetting(BaseModel):
    resolution: str = "1080x1920"
    fps: int = 30
    background: str = "000000"
    blur_background: bool = False
    transition: str = "none"

    @field_validator("resolution")
    @classmethod
    def _resolution_format(cls, value: str) -> str:
        value = value.strip().lower()
        if not value:
            return "1080x1920"
        if not RESOLUTION_RE.match(value):
            raise ValueError("resolution must look like WIDTHxHEIGHT, e.g. 1080x1920")
        return value

    @field_validator("fps")
    @classmethod
    def _fps_default(cls, value: int) -> int:
        return value if value > 0 else 30

    @field_validator("transition")
    @classmethod
    def _transition_default(cls, value: str) -> str:
        return value.strip() or "none"

    @property
    def has_transition(self) -> bool:
        return self.transition != "none"


class BGMSetting(BaseModel):
    source: str = "none"
    path: str = ""
    volume: float = 0.25

    @field_validator("volume")
    @classmethod
    def _volume_default(cls, value: float) -> float:
        return value if value > 0 else 0.25

    @model_validator(mode="after")
    def _check_source(self) -> "BGMSetting":
        if not self.source:
            self.source = "none"
        if self.source not in BGM_SOURCES:
            raise ValueError(f"bgm source must be one of: {', '.join(BGM_SOURCES)}")
        if self.source != "none" and not self.path:
            raise ValueError("bgm path is required unless source is 'none'")
        return self

    @property
    def enabled(self) -> bool:
        return self.source != "none"


class SubtitleStyle(BaseModel):
    font: str = "NotoSansTC"
    size: int = 36
    color: str = "FFFFFF"
    y_offset: int = 0
    outline_width: float = 0.1
    outline_color: str = "000000"
    max_line_width: int = 16

    @field_validator("size")
    @classmethod
    def _size_default(cls, value: int) -> int:
        return value if value > 0 else 36

    @field_validator("outline_width")
    @classmethod
    def _outline_default(cls, value: float) -> float:
        return value if value > 0 else 0.1

    @field_validator("max_line_width")
    @classmethod
    def _line_width_default(cls, value: int) -> int:
        return value if value > 0 else 16

    @field_validator("color", "outline_color")
    @classmethod
    def _strip_hash(cls, value: str) -> str:
        return value.strip().lstrip("#").upper()

    def resolved(self, resolution: str) -> "SubtitleStyle":
        """Copy with every field usable for rendering at `resolution`."""
        from shortsmith.utils.ffmpeg import parse_resolution

        _, height = parse_resolution(resolution)
        y_offset = self.y_offset
        if y_offset <= 0:
            if height >= 1200:
                y_offset = 80
            elif height >= 720:
                y_offset = 60
            else:
                y_offset = 40
        return self.model_copy(
            update={
                "font": self.font.strip() or DEFAULT_FONT,
                "size": self.size if self.size > 0 else 48,
                "color": self.color or "FFFFFF",
                "outline_color": self.outline_color or "000000",
                "outline_width": self.outline_width if self.outline_width > 0 else 0.1,
                "max_line_width": self.max_line_width if self.max_line_width > 0 else 16,
                "y_offset": y_offset,
            }
        )


class JobRequest(BaseModel):
    script: str
    materials: list[Material]
    tts: TTSSetting = Field(default_factory=TTSSetting)
    video: VideoSetting = Field(default_factory=VideoSetting)
    bgm: BGMSetting = Field(default_factory=BGMSetting)
    subtitle_style: SubtitleStyle = Field(default_factory=SubtitleStyle)

    @field_validator("script")
    @classmethod
    def _script_present(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("script must not be empty")
        return value

    @field_validator("materials")
    @classmethod
    def _materials_present(cls, value: list[Material]) -> list[Material]:
        if not value:
            raise ValueError("at least one material is required")
        return value
