from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from typing import Sequence

from shortsmith.exceptions import MediaToolError
from shortsmith.utils.checks import require_media_tools

DEFAULT_WIDTH = 1080
DEFAULT_HEIGHT = 1920

# Narration is normalized to 24 kHz mono PCM so clips and padding concat cleanly.
NARRATION_SAMPLE_RATE = 24000
# Clip audio and the final mix run at 44.1 kHz stereo.
MIX_SAMPLE_RATE = 44100
MIX_FORMAT = f"aformat=sample_rates={MIX_SAMPLE_RATE}:channel_layouts=stereo"

# Each non-final segment is rendered this much longer than its slot so the
# cross-fade has real frames on both sides; the visual fade itself is shorter.
OVERLAP_SECONDS = 1.2
XFADE_SECONDS = 1.0

EFFECT_MAX_ZOOM = 1.3

TRIM_SILENCE_FILTER = (
    "silenceremove=start_periods=1:start_duration=0:start_threshold=-50dB:detection=peak,"
    "areverse,"
    "silenceremove=start_periods=1:start_duration=0:start_threshold=-50dB:detection=peak,"
    "areverse"
)

_VIDEO_ENCODE = ["-c:v", "libx264", "-preset", "veryfast", "-pix_fmt", "yuv420p"]
_AUDIO_ENCODE = ["-c:a", "aac"]


def ensure_ffmpeg() -> None:
    require_media_tools()


def _base_cmd() -> list[str]:
    return ["ffmpeg", "-y", "-hide_banner", "-loglevel", "error"]


def _seconds(value: float) -> str:
    return f"{value:.3f}"


def parse_resolution(resolution: str | None) -> tuple[int, int]:
    width, height = DEFAULT_WIDTH, DEFAULT_HEIGHT
    if not resolution:
        return width, height
    parts = resolution.lower().split("x")
    if len(parts) != 2:
        return width, height
    try:
        width = int(parts[0])
    except ValueError:
        pass
    try:
        height = int(parts[1])
    except ValueError:
        pass
    return width, height


def normalize_color(color: str | None) -> str:
    if not color:
        return "black"
    if not color.startswith("#") and len(color) == 6:
        return "#" + color
    return color


def _escape_filter_path(value: str) -> str:
    return (
        value.replace("\\", r"\\")
        .replace(":", r"\:")
        .replace(",", r"\,")
        .replace("'", r"\'")
    )


def write_concat_list(paths: Sequence[str | Path], list_path: Path) -> Path:
    lines = []
    for p in paths:
        quoted = str(p).replace("'", r"'\''")
        lines.append(f"file '{quoted}'")
    list_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return list_path


# ----------------------------------------------------------------------
# Narration
# ----------------------------------------------------------------------
def build_silence_cmd(out: str | Path, *, seconds: float) -> list[str]:
    return _base_cmd() + [
        "-f",
        "lavfi",
        "-i",
        f"anullsrc=r={NARRATION_SAMPLE_RATE}:cl=mono",
        "-t",
        _seconds(seconds),
        "-c:a",
        "pcm_s16le",
        str(out),
    ]


def _narration_pcm_args() -> list[str]:
    return ["-c:a", "pcm_s16le", "-ar", str(NARRATION_SAMPLE_RATE), "-ac", "1"]


def build_trim_silence_cmd(src: str | Path, out: str | Path) -> list[str]:
    return _base_cmd() + ["-i", str(src), "-af", TRIM_SILENCE_FILTER] + _narration_pcm_args() + [str(out)]


def build_audio_concat_cmd(list_file: str | Path, out: str | Path) -> list[str]:
    return (
        _base_cmd()
        + ["-f", "concat", "-safe", "0", "-i", str(list_file)]
        + _narration_pcm_args()
        + [str(out)]
    )


# ----------------------------------------------------------------------
# Segment rendering
# ----------------------------------------------------------------------
def build_frame_filter(
    width: int,
    height: int,
    fps: int,
    *,
    background: str | None = None,
    blur_background: bool = False,
) -> str:
    """Scale any source onto a fixed WxH canvas (padded or over a blurred copy)."""
    if blur_background:
        return (
            f"split[bg][fg];"
            f"[bg]scale={width}:{height}:force_original_aspect_ratio=increase,"
            f"crop={width}:{height},scale=iw/4:-1,boxblur=10:5,"
            f"scale={width}:{height}:flags=neighbor[bg_blurred];"
            f"[fg]scale={width}:{height}:force_original_aspect_ratio=decrease[fg_scaled];"
            f"[bg_blurred][fg_scaled]overlay=(W-w)/2:(H-h)/2,setsar=1,fps={fps}"
        )
    color = normalize_color(background)
    return (
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2:color={color},setsar=1,fps={fps}"
    )


def build_zoompan_filter(effect: str, *, width: int, height: int, fps: int, seconds: float) -> str | None:
    frames = max(int(round(seconds * fps)), 1)
    step = (EFFECT_MAX_ZOOM - 1.0) / frames
    if effect == "zoom_in":
        zoom = f"min(1+{step:.6f}*on\\,{EFFECT_MAX_ZOOM})"
    elif effect == "zoom_out":
        zoom = f"max({EFFECT_MAX_ZOOM}-{step:.6f}*on\\,1)"
    else:
        return None
    return (
        f"zoompan=z={zoom}:x=iw/2-(iw/zoom/2):y=ih/2-(ih/zoom/2)"
        f":d={frames}:s={width}x{height}:fps={fps},setsar=1"
    )


def _silent_track_input(seconds: float) -> list[str]:
    return ["-f", "lavfi", "-t", _seconds(seconds), "-i", f"anullsrc=r={MIX_SAMPLE_RATE}:cl=stereo"]


def build_image_segment_cmd(
    src: str | Path,
    out: str | Path,
    *,
    seconds: float,
    frame_filter: str,
    effect_filter: str | None = None,
) -> list[str]:
    if effect_filter:
        # zoompan expands the single decoded frame into the whole clip.
        video_input = ["-i", str(src)]
        vf = f"{frame_filter},{effect_filter}"
    else:
        video_input = ["-loop", "1", "-t", _seconds(seconds), "-i", str(src)]
        vf = frame_filter
    return (
        _base_cmd()
        + video_input
        + _silent_track_input(seconds)
        + ["-filter_complex", f"[0:v]{vf}[v]", "-map", "[v]", "-map", "1:a"]
        + _VIDEO_ENCODE
        + _AUDIO_ENCODE
        + ["-t", _seconds(seconds), "-shortest", str(out)]
    )


def hold_last_frame(frame_filter: str, seconds: float = OVERLAP_SECONDS) -> str:
    return f"{frame_filter},tpad=stop_mode=clone:stop_duration={seconds:.1f}"


def build_muted_video_segment_cmd(
    src: str | Path,
    out: str | Path,
    *,
    seconds: float,
    frame_filter: str,
) -> list[str]:
    return (
        _base_cmd()
        + ["-t", _seconds(seconds), "-i", str(src)]
        + _silent_track_input(seconds)
        + ["-filter_complex", f"[0:v]{frame_filter}[v]", "-map", "[v]", "-map", "1:a"]
        + _VIDEO_ENCODE
        + _AUDIO_ENCODE
        + ["-shortest", str(out)]
    )


def build_voiced_video_segment_cmd(
    src: str | Path,
    out: str | Path,
    *,
    seconds: float,
    frame_filter: str,
    volume: float = 1.0,
) -> list[str]:
    audio_chain = MIX_FORMAT
    if volume != 1.0:
        audio_chain += f",volume={volume:.2f}"
    audio_chain += ",apad"
    return (
        _base_cmd()
        + ["-t", _seconds(seconds), "-i", str(src)]
        + [
            "-filter_complex",
            f"[0:v]{frame_filter}[v];[0:a]{audio_chain}[a]",
            "-map",
            "[v]",
            "-map",
            "[a]",
        ]
        + _VIDEO_ENCODE
        + _AUDIO_ENCODE
        + ["-shortest", str(out)]
    )


# ----------------------------------------------------------------------
# Segment merging
# ----------------------------------------------------------------------
def build_concat_copy_cmd(list_file: str | Path, out: str | Path) -> list[str]:
    return _base_cmd() + ["-f", "concat", "-safe", "0", "-i", str(list_file), "-c", "copy", str(out)]


def xfade_offsets(durations: Sequence[float], overlap: float = OVERLAP_SECONDS) -> list[float]:
    """
    Offsets (seconds) at which each pairwise cross-fade starts.

    Join i starts where the overlap region of the merged stream begins:
    the sum of the actual durations of segments 0..i minus one overlap per join.
    """
    offsets: list[float] = []
    total = 0.0
    for i in range(len(durations) - 1):
        total += durations[i]
        offsets.append(total - (i + 1) * overlap)
    return offsets


def build_xfade_filter(
    durations: Sequence[float],
    transition: str,
    *,
    overlap: float = OVERLAP_SECONDS,
    fade: float = XFADE_SECONDS,
) -> str:
    parts: list[str] = []
    prev_v, prev_a = "0:v", "0:a"
    offsets = xfade_offsets(durations, overlap)
    for i, offset in enumerate(offsets):
        last = i == len(offsets) - 1
        out_v = "outv" if last else f"v{i + 1}"
        out_a = "outa" if last else f"a{i + 1}"
        parts.append(
            f"[{prev_v}][{i + 1}:v]xfade=transition={transition}:duration={fade:g}:offset={offset:.3f}[{out_v}]"
        )
        # Audio blends over the full overlap so both streams stay aligned.
        parts.append(f"[{prev_a}][{i + 1}:a]acrossfade=d={overlap:.2f}[{out_a}]")
        prev_v, prev_a = out_v, out_a
    return ";".join(parts)


def build_xfade_merge_cmd(
    segment_files: Sequence[str | Path],
    durations: Sequence[float],
    out: str | Path,
    *,
    transition: str,
) -> list[str]:
    cmd = _base_cmd()
    for f in segment_files:
        cmd += ["-i", str(f)]
    cmd += [
        "-filter_complex",
        build_xfade_filter(durations, transition),
        "-map",
        "[outv]",
        "-map",
        "[outa]",
    ]
    return cmd + _VIDEO_ENCODE + _AUDIO_ENCODE + [str(out)]


# ----------------------------------------------------------------------
# Final composite
# ----------------------------------------------------------------------
def build_subtitles_filter(subtitles_path: str | Path) -> str:
    path_value = _escape_filter_path(Path(subtitles_path).as_posix())
    if str(subtitles_path).lower().endswith((".ass", ".ssa")):
        return f"ass={path_value}"
    return f"subtitles={path_value}"


def build_mix_filter(
    *,
    subtitles_path: str | Path,
    narration_seconds: float,
    final_seconds: float,
    bgm_volume: float | None = None,
) -> str:
    """
    Filter graph for the final render.

    Inputs: 0 = visual timeline, 1 = background music (only when
    `bgm_volume` is given), last = narration. Background music loops and is
    trimmed to `final_seconds` so it runs until both voice and picture end.
    """
    video = f"[0:v]{build_subtitles_filter(subtitles_path)}[vout]"
    clip_audio = f"[0:a]{MIX_FORMAT}[video_audio]"
    if bgm_volume is None:
        tts = f"[1:a]atrim=0:{narration_seconds:.3f},{MIX_FORMAT}[tts]"
        mix = "[video_audio][tts]amix=inputs=2:duration=longest[aout]"
        return ";".join([video, tts, clip_audio, mix])
    bgm = f"[1:a]volume={bgm_volume:.2f},aloop=-1:size=0,atrim=0:{final_seconds:.3f},{MIX_FORMAT}[bgm]"
    tts = f"[2:a]atrim=0:{narration_seconds:.3f},{MIX_FORMAT}[tts]"
    mix = "[video_audio][bgm][tts]amix=inputs=3:duration=longest[aout]"
    return ";".join([video, bgm, tts, clip_audio, mix])


def build_final_cmd(
    video: str | Path,
    narration: str | Path,
    subtitles_path: str | Path,
    out: str | Path,
    *,
    narration_seconds: float,
    final_seconds: float,
    bgm: str | Path | None = None,
    bgm_volume: float = 0.25,
) -> list[str]:
    cmd = _base_cmd() + ["-i", str(video)]
    if bgm is not None:
        cmd += ["-i", str(bgm)]
    cmd += ["-i", str(narration)]
    cmd += [
        "-filter_complex",
        build_mix_filter(
            subtitles_path=subtitles_path,
            narration_seconds=narration_seconds,
            final_seconds=final_seconds,
            bgm_volume=bgm_volume if bgm is not None else None,
        ),
        "-map",
        "[vout]",
        "-map",
        "[aout]",
        "-c:v",
        "libx264",
        "-preset",
        "veryfast",
        "-c:a",
        "aac",
        # Cap at the shorter of the encoded video and audio streams.
        "-shortest",
        str(out),
    ]
    return cmd


def build_preview_cmd(
    subtitles_path: str | Path,
    out: str | Path,
    *,
    resolution: str,
    background: str,
) -> list[str]:
    return _base_cmd() + [
        "-f",
        "lavfi",
        "-i",
        f"color=c={background}:s={resolution}:d=0.1",
        "-vf",
        build_subtitles_filter(subtitles_path),
        "-frames:v",
        "1",
        "-f",
        "image2",
        str(out),
    ]


# ----------------------------------------------------------------------
# Execution / probing
# ----------------------------------------------------------------------
def run_ffmpeg(
    cmd: list[str],
    *,
    timeout: float | None = None,
    stderr_path: Path | None = None,
) -> subprocess.CompletedProcess[str]:
    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except subprocess.TimeoutExpired as exc:
        stderr = exc.stderr.decode("utf-8", "replace") if isinstance(exc.stderr, bytes) else (exc.stderr or "")
        raise MediaToolError(
            f"ffmpeg timed out after {timeout:.0f}s.",
            stderr=stderr,
            timed_out=True,
        ) from exc
    except FileNotFoundError as exc:
        raise MediaToolError(f"Executable not found: {cmd[0]}") from exc
    if stderr_path is not None:
        stderr_path.write_text(proc.stderr or "", encoding="utf-8")
    if proc.returncode != 0:
        raise MediaToolError(
            "ffmpeg failed.\n"
            f"STDOUT:\n{proc.stdout}\n\n"
            f"STDERR:\n{proc.stderr}",
            stderr=proc.stderr or "",
        )
    return proc


def probe_duration(path: str | Path, *, timeout: float = 30.0) -> float | None:
    ffprobe = shutil.which("ffprobe")
    if not ffprobe:
        return None
    try:
        proc = subprocess.run(
            [
                ffprobe,
                "-v",
                "error",
                "-show_entries",
                "format=duration",
                "-of",
                "default=noprint_wrappers=1:nokey=1",
                str(path),
            ],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        return None
    if proc.returncode != 0:
        return None
    try:
        return float(proc.stdout.strip())
    except ValueError:
        return None
