"""
Segment rendering service.

Each visual segment is rendered to its own normalized MP4 (same size, frame
rate, pixel format and a stereo 44.1 kHz audio track) so the segments can be
joined either by stream copy or by cross-fading.

Responsibilities:
- Fit every image/clip onto the output canvas (padded or blurred backdrop)
- Give every segment an audio track, silent when the source has none
- Merge segments with a plain concat or chained `xfade`/`acrossfade`

Does NOT:
- Decide which material plays when (see services.materials)
- Burn subtitles or mix narration (see services.compose)
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from shortsmith.domain.artifacts import VideoArtifact
from shortsmith.domain.request import VideoSetting
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import MediaToolError
from shortsmith.services.materials import Segment
from shortsmith.utils import ffmpeg
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]

MIN_SEGMENT_SECONDS = 0.1


def render_seconds(segment: Segment, index: int, count: int, *, transition: bool) -> float:
    """
    Length to render `segment` at.

    With transitions, every segment but the last carries an extra overlap so
    the cross-fade eats into padding, not into the segment's own slot.
    """
    seconds = segment.duration_seconds
    overlap = ffmpeg.OVERLAP_SECONDS
    if not transition:
        return max(seconds, MIN_SEGMENT_SECONDS)
    if index < count - 1:
        return max(seconds + overlap, overlap + 1.0)
    return max(seconds, overlap)


@dataclass
class SegmentRenderer:
    segment_timeout: float = 120.0
    merge_timeout: float = 600.0
    workers: int = 1

    def _frame_filter(self, video: VideoSetting) -> str:
        width, height = ffmpeg.parse_resolution(video.resolution)
        return ffmpeg.build_frame_filter(
            width,
            height,
            video.fps,
            background=video.background,
            blur_background=video.blur_background,
        )

    def render_segment(
        self,
        segment: Segment,
        out: Path,
        *,
        seconds: float,
        video: VideoSetting,
    ) -> float:
        """Render one segment and return its probed duration in seconds."""
        frame = self._frame_filter(video)
        if segment.type == "image":
            width, height = ffmpeg.parse_resolution(video.resolution)
            effect = ffmpeg.build_zoompan_filter(
                segment.effect, width=width, height=height, fps=video.fps, seconds=seconds
            )
            cmd = ffmpeg.build_image_segment_cmd(
                segment.path, out, seconds=seconds, frame_filter=frame, effect_filter=effect
            )
            ffmpeg.run_ffmpeg(cmd, timeout=self.segment_timeout)
        else:
            if video.has_transition:
                frame = ffmpeg.hold_last_frame(frame)
            muted = ffmpeg.build_muted_video_segment_cmd(segment.path, out, seconds=seconds, frame_filter=frame)
            if segment.mute:
                ffmpeg.run_ffmpeg(muted, timeout=self.segment_timeout)
            else:
                voiced = ffmpeg.build_voiced_video_segment_cmd(
                    segment.path, out, seconds=seconds, frame_filter=frame, volume=segment.volume
                )
                try:
                    ffmpeg.run_ffmpeg(voiced, timeout=self.segment_timeout)
                except MediaToolError as exc:
                    # Usually a clip without an audio stream.
                    log.warning("Voiced render failed for %s; retrying muted (%s)", segment.path.name, exc)
                    ffmpeg.run_ffmpeg(muted, timeout=self.segment_timeout)

        actual = ffmpeg.probe_duration(out)
        if actual is None:
            log.warning("Unable to probe %s; using requested %.3fs", out.name, seconds)
            return seconds
        return actual

    def render(
        self,
        workspace: Workspace,
        segments: Sequence[Segment],
        video: VideoSetting,
        on_progress: ProgressCallback | None = None,
    ) -> VideoArtifact:
        ffmpeg.ensure_ffmpeg()
        count = len(segments)
        transition = video.has_transition
        outputs = [workspace.segment(i) for i in range(count)]
        # One extra step is reserved for the merge.
        steps = count + 1
        done = 0

        def render_one(i: int) -> float:
            seconds = render_seconds(segments[i], i, count, transition=transition)
            log.debug("Rendering segment %d/%d (%s, %.3fs)", i + 1, count, segments[i].type, seconds)
            return self.render_segment(segments[i], outputs[i], seconds=seconds, video=video)

        durations: list[float] = []
        if self.workers > 1 and count > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                # map() yields in submission order, so durations stay aligned with outputs.
                for actual in pool.map(render_one, range(count)):
                    durations.append(actual)
                    done += 1
                    if on_progress is not None:
                        on_progress(done, steps)
        else:
            for i in range(count):
                durations.append(render_one(i))
                done += 1
                if on_progress is not None:
                    on_progress(done, steps)

        out = self.merge(workspace, outputs, durations, video.transition)
        if on_progress is not None:
            on_progress(steps, steps)
        total = ffmpeg.probe_duration(out)
        log.info("Visual timeline ready: %d segment(s), %s -> %s", count, video.transition, out)
        return VideoArtifact(path=out, duration_seconds=total, segment_count=count)

    def merge(
        self,
        workspace: Workspace,
        files: Sequence[Path],
        durations: Sequence[float],
        transition: str,
    ) -> Path:
        out = workspace.video_mp4
        if transition == "none" or len(files) < 2:
            ffmpeg.write_concat_list(files, workspace.segment_list)
            ffmpeg.run_ffmpeg(
                ffmpeg.build_concat_copy_cmd(workspace.segment_list, out),
                timeout=self.segment_timeout,
            )
            return out
        cmd = ffmpeg.build_xfade_merge_cmd(files, durations, out, transition=transition)
        log.debug("xfade offsets: %s", ", ".join(f"{o:.3f}" for o in ffmpeg.xfade_offsets(durations)))
        ffmpeg.run_ffmpeg(cmd, timeout=self.merge_timeout)
        return out
