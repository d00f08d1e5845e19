"""
Narration service.

Synthesizes one clip per subtitle line, trims the silence the TTS engine
leaves around each clip, and joins everything into a single `voice.wav`
with a short silence pad after every line.

Responsibilities:
- Keep a per-line duration (clip + pad) so subtitles can be timed per line
- Measure the joined narration so the timeline can be reconciled to it

Does NOT:
- Decide subtitle timestamps (see services.timeline)
- Mix narration with video or music (see services.compose)

Notes:
- Every part is normalized to 24 kHz mono PCM so the concat demuxer can
  join clips and pads without drift.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from shortsmith.domain.artifacts import NarrationArtifact
from shortsmith.domain.request import TTSSetting
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import MediaToolError
from shortsmith.services.tts import SpeechProvider
from shortsmith.utils import ffmpeg
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]


def sanitize_for_speech(line: str) -> str:
    text = line.replace("\n", ", ")
    for ch in ("\\", "/", "*"):
        text = text.replace(ch, "")
    return text


@dataclass
class NarrationService:
    silence_seconds: float = 0.2
    timeout: float = 120.0

    def build_silence(self, workspace: Workspace) -> tuple[Path, float]:
        out = workspace.silence_wav
        ffmpeg.run_ffmpeg(ffmpeg.build_silence_cmd(out, seconds=self.silence_seconds), timeout=self.timeout)
        return out, ffmpeg.probe_duration(out) or self.silence_seconds

    def trim(self, clip: Path, out: Path) -> Path:
        try:
            ffmpeg.run_ffmpeg(ffmpeg.build_trim_silence_cmd(clip, out), timeout=self.timeout)
        except MediaToolError as exc:
            log.warning("Silence trim failed for %s; using raw clip (%s)", clip.name, exc)
            return clip
        return out

    def generate(
        self,
        workspace: Workspace,
        lines: list[str],
        provider: SpeechProvider,
        tts: TTSSetting,
        on_progress: ProgressCallback | None = None,
    ) -> NarrationArtifact:
        ffmpeg.ensure_ffmpeg()
        silence, silence_seconds = self.build_silence(workspace)

        log.info("Synthesizing %d line(s) with provider=%s", len(lines), provider.name)
        parts: list[Path] = []
        durations: list[float] = []
        for i, line in enumerate(lines):
            clip = provider.synthesize(
                sanitize_for_speech(line),
                voice=tts.voice,
                locale=tts.locale,
                speed=tts.speed,
                pitch=tts.pitch,
                out_path=workspace.tts_clip(i),
            )
            trimmed = self.trim(clip.path, workspace.tts_trimmed(i))
            clip_seconds = ffmpeg.probe_duration(trimmed)
            if clip_seconds is None:
                clip_seconds = clip.duration_seconds
            parts += [trimmed, silence]
            durations.append(clip_seconds + silence_seconds)
            if on_progress is not None:
                on_progress(i + 1, len(lines))

        ffmpeg.write_concat_list(parts, workspace.voice_list)
        out = workspace.voice_wav
        ffmpeg.run_ffmpeg(ffmpeg.build_audio_concat_cmd(workspace.voice_list, out), timeout=self.timeout)

        total = ffmpeg.probe_duration(out)
        if total is None:
            total = sum(durations)
            log.warning("Unable to probe narration duration; using sum of lines (%.3fs)", total)
        log.info("Narration ready: %.3fs (%d line(s)) -> %s", total, len(lines), out)
        return NarrationArtifact(path=out, duration_seconds=total, line_durations=durations)
