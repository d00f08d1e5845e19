"""
Material preparation and the visual timeline.

Materials are copied (or downloaded) into the job's working directory so
the originals are never touched, then laid end to end, looping through the
list as often as needed, until the picture covers the narration plus one
second.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

import requests

from shortsmith.domain.request import Material
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import RequestValidationError, ResourceError
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)

TAIL_MS = 1000
DEFAULT_SEGMENT_MS = 1000
CHUNK_SIZE = 1 << 16


@dataclass(frozen=True)
class Segment:
    path: Path
    start: int
    end: int
    type: str
    mute: bool = False
    volume: float = 1.0
    effect: str = "none"

    @property
    def duration_ms(self) -> int:
        return self.end - self.start

    @property
    def duration_seconds(self) -> float:
        return self.duration_ms / 1000.0


def is_url(path: str) -> bool:
    return path.startswith(("http://", "https://"))


def material_extension(material: Material) -> str:
    path = material.path.split("?", 1)[0] if is_url(material.path) else material.path
    ext = Path(path).suffix
    if ext:
        return ext.lower()
    return ".png" if material.type == "image" else ".mp4"


def download(url: str, target: Path, *, timeout: float = 60.0) -> Path:
    try:
        with requests.get(url, stream=True, timeout=timeout, allow_redirects=True) as resp:
            resp.raise_for_status()
            with target.open("wb") as fh:
                for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        fh.write(chunk)
    except requests.RequestException as exc:
        target.unlink(missing_ok=True)
        raise ResourceError(f"Failed to download {url}: {exc}") from exc
    return target


def copy_local(src: str | Path, target: Path) -> Path:
    source = Path(src).expanduser()
    if not source.is_file():
        raise ResourceError(f"Material not found: {source}")
    try:
        shutil.copyfile(source, target)
    except OSError as exc:
        raise ResourceError(f"Failed to copy {source}: {exc}") from exc
    return target


def prepare_materials(
    workspace: Workspace,
    materials: Sequence[Material],
    *,
    timeout: float = 60.0,
) -> list[Path]:
    prepared: list[Path] = []
    for i, material in enumerate(materials):
        target = workspace.material(i, material_extension(material))
        if is_url(material.path):
            log.info("Downloading material %d: %s", i, material.path)
            download(material.path, target, timeout=timeout)
        else:
            copy_local(material.path, target)
        prepared.append(target)
    log.info("Prepared %d material(s) in %s", len(prepared), workspace.materials_dir)
    return prepared


def build_video_timeline(
    prepared: Sequence[Path],
    materials: Sequence[Material],
    need_ms: int,
) -> list[Segment]:
    """
    Cover `need_ms + 1000` ms with materials, cycling through them in order.

    The last segment is clipped so the timeline ends exactly at the ceiling.
    A material whose duration hint is not positive counts as one second.
    """
    if not materials or not prepared:
        raise RequestValidationError("At least one material is required to build a video timeline.")

    ceiling = need_ms + TAIL_MS
    segments: list[Segment] = []
    cursor = 0
    idx = 0
    while cursor < ceiling:
        material = materials[idx]
        dur = int(round(material.duration_sec * 1000))
        if dur <= 0:
            dur = DEFAULT_SEGMENT_MS
        dur = min(dur, ceiling - cursor)
        segments.append(
            Segment(
                path=Path(prepared[idx]),
                start=cursor,
                end=cursor + dur,
                type=material.type,
                mute=material.mute,
                volume=material.volume,
                effect=material.effect,
            )
        )
        cursor += dur
        idx = (idx + 1) % len(materials)
    return segments
