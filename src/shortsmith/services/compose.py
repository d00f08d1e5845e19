"""
Final composition service.

This module renders the deliverable MP4 by combining:
- the merged visual timeline (with each clip's own audio)
- the narration
- optional looping background music
- burned-in ASS subtitles

Responsibilities:
- Acquire background music, falling back to a preset track or to none
- Invoke ffmpeg once for the final mix and render

Does NOT:
- Render or merge visual segments
- Decide subtitle timing
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from shortsmith.domain.artifacts import BGMArtifact, NarrationArtifact, SubtitleArtifact, VideoArtifact
from shortsmith.domain.request import BGMSetting
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import ResourceError
from shortsmith.services.materials import copy_local, download
from shortsmith.utils import ffmpeg
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)

AUDIO_EXTENSIONS = (".mp3", ".wav")


def list_audio_files(directory: str | Path) -> list[str]:
    """Names of preset tracks in `directory`, sorted."""
    root = Path(directory).expanduser()
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if p.is_file() and p.suffix.lower() in AUDIO_EXTENSIONS)


def pick_first_audio(directory: str | Path) -> Path | None:
    root = Path(directory).expanduser()
    if not root.is_dir():
        return None
    for ext in AUDIO_EXTENSIONS:
        matches = sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() == ext)
        if matches:
            return matches[0]
    return None


def _fetch_bgm(workspace: Workspace, bgm: BGMSetting, bgm_dir: Path, timeout: float) -> Path:
    source_path = bgm.path.split("?", 1)[0] if bgm.source == "url" else bgm.path
    target = workspace.bgm(Path(source_path).suffix.lower() or ".mp3")
    if bgm.source == "preset":
        return copy_local(bgm_dir / bgm.path, target)
    if bgm.source == "upload":
        return copy_local(bgm.path, target)
    return download(bgm.path, target, timeout=timeout)


def prepare_bgm(
    workspace: Workspace,
    bgm: BGMSetting,
    bgm_dir: str | Path,
    *,
    timeout: float = 60.0,
) -> BGMArtifact | None:
    if not bgm.enabled:
        return None
    bgm_dir = Path(bgm_dir).expanduser()
    try:
        path = _fetch_bgm(workspace, bgm, bgm_dir, timeout)
    except ResourceError as exc:
        fallback = pick_first_audio(bgm_dir)
        if fallback is None:
            log.warning("Background music unavailable (%s); rendering without it", exc)
            return None
        log.warning("Background music unavailable (%s); using preset %s", exc, fallback.name)
        path = fallback
    return BGMArtifact(path=path, volume=bgm.volume)


@dataclass
class Compositor:
    timeout: float = 300.0

    def compose(
        self,
        workspace: Workspace,
        *,
        video: VideoArtifact,
        narration: NarrationArtifact,
        subtitles: SubtitleArtifact,
        bgm: BGMArtifact | None = None,
    ) -> VideoArtifact:
        ffmpeg.ensure_ffmpeg()
        if not narration.path.exists():
            raise ResourceError(f"Narration not found: {narration.path}")
        if not video.path.exists():
            raise ResourceError(f"Visual timeline not found: {video.path}")

        video_seconds = video.duration_seconds
        if video_seconds is None:
            video_seconds = narration.duration_seconds
            log.warning("Visual timeline duration unknown; using narration duration")
        # Music keeps playing until both the voice and the picture end.
        final_seconds = max(narration.duration_seconds, video_seconds)

        out = workspace.output_mp4
        cmd = ffmpeg.build_final_cmd(
            video.path,
            narration.path,
            subtitles.path,
            out,
            narration_seconds=narration.duration_seconds,
            final_seconds=final_seconds,
            bgm=bgm.path if bgm else None,
            bgm_volume=bgm.volume if bgm else 0.0,
        )
        log.info("Rendering final video (bgm=%s) -> %s", bgm.path.name if bgm else "none", out)
        log.debug("ffmpeg cmd: %s", " ".join(cmd))
        ffmpeg.run_ffmpeg(cmd, timeout=self.timeout, stderr_path=workspace.path("ffmpeg.stderr.txt"))

        if not out.exists() or out.stat().st_size == 0:
            raise ResourceError(f"Final render produced no output: {out}")
        return VideoArtifact(path=out, duration_seconds=ffmpeg.probe_duration(out))
