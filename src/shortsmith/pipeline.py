"""
Pipeline orchestration for shortsmith.

The pipeline executes one job end to end:

1) Prepare materials (copy/download into the job directory)
2) Segment the script into subtitle lines (AI or rules)
3) Synthesize narration line by line and join it
4) Reconcile subtitle timing to the measured narration, write ASS
5) Build the visual timeline and render/merge segments
6) Acquire background music and compose the final video

Responsibilities:
- Coordinate service execution order
- Report progress at fixed checkpoints
- Preserve explicit state via Artifacts and write the run manifest

Does NOT:
- Touch the job store (the worker owns record state)
- Implement vendor-specific logic (TTS engines, OpenAI, ffmpeg)
"""

from __future__ import annotations

from typing import Callable

from shortsmith.config.settings import Settings
from shortsmith.domain.artifacts import Artifacts
from shortsmith.domain.request import JobRequest
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import RequestValidationError
from shortsmith.services.audio import NarrationService
from shortsmith.services.compose import Compositor, prepare_bgm
from shortsmith.services.materials import build_video_timeline, prepare_materials
from shortsmith.services.segmenter import TextSegmenter, create_segmenter
from shortsmith.services.subtitles import SubtitleService
from shortsmith.services.timeline import reconcile
from shortsmith.services.tts import SpeechProvider, get_provider
from shortsmith.services.video import SegmentRenderer
from shortsmith.utils.logging import job_logger
from shortsmith.utils.manifest import write_run_manifest
from shortsmith.utils.timing import StepTimer, utc_now

ProgressReporter = Callable[[int], None]

PROGRESS_START = 5
PROGRESS_MATERIALS = 15
PROGRESS_NARRATION = 35
PROGRESS_VISUAL = 70
PROGRESS_COMPOSED = 95


def _span(start: int, end: int, report: ProgressReporter) -> Callable[[int, int], None]:
    """Map `done/total` of one stage onto the [start, end] progress range."""

    def on_progress(done: int, total: int) -> None:
        if total > 0:
            report(min(start + int(done / total * (end - start)), end))

    return on_progress


class Pipeline:
    """
    Orchestrates the build steps using composable services.

    Notes:
    - The segmenter and TTS provider are created per run from settings
      unless injected, because they depend on runtime credentials.
    - Other services are injected or defaulted for testability.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        segmenter: TextSegmenter | None = None,
        provider_factory: Callable[[str, Settings], SpeechProvider] = get_provider,
        narration: NarrationService | None = None,
        subtitles: SubtitleService | None = None,
        renderer: SegmentRenderer | None = None,
        compositor: Compositor | None = None,
    ) -> None:
        self.settings = settings
        self.segmenter = segmenter  # may be None → created per-run
        self.provider_factory = provider_factory
        self.narration = narration or NarrationService(
            silence_seconds=settings.silence_pad_seconds,
            timeout=settings.segment_timeout_seconds,
        )
        self.subtitles = subtitles or SubtitleService()
        self.renderer = renderer or SegmentRenderer(
            segment_timeout=settings.segment_timeout_seconds,
            merge_timeout=settings.merge_timeout_seconds,
            workers=settings.render_workers,
        )
        self.compositor = compositor or Compositor(timeout=settings.final_timeout_seconds)

    def run(
        self,
        job_id: str,
        request: JobRequest,
        workspace: Workspace,
        report: ProgressReporter | None = None,
    ) -> Artifacts:
        """
        Run the pipeline once.

        Args:
            job_id: Id of the job being processed (for logging).
            request: Validated job request.
            workspace: The job's private working directory.
            report: Receives absolute progress checkpoints (0-100).

        Returns:
            Populated Artifacts; `artifacts.output` is the final video.
        """
        log = job_logger(__name__, job_id)
        report = report or (lambda progress: None)
        timer = StepTimer(clock=utc_now)
        started_at = timer.clock()
        artifacts = Artifacts()
        error: str | None = None
        workspace.create()

        try:
            # 1) Materials
            with timer.step("prepare_materials"):
                prepared = prepare_materials(
                    workspace,
                    request.materials,
                    timeout=self.settings.download_timeout_seconds,
                )
            report(PROGRESS_MATERIALS)

            # 2) Segmentation
            with timer.step("segment_script"):
                segmenter = self.segmenter or create_segmenter(self.settings)
                lines = segmenter.segment(request.script, request.subtitle_style.max_line_width)
                if not lines:
                    raise RequestValidationError("Script produced no subtitle lines.")
                artifacts.lines = lines
            log.info("Segmented script into %d line(s)", len(lines))

            # 3) Narration
            with timer.step("synthesize_narration"):
                provider = self.provider_factory(request.tts.provider, self.settings)
                narration = self.narration.generate(
                    workspace,
                    lines,
                    provider,
                    request.tts,
                    on_progress=_span(PROGRESS_MATERIALS, PROGRESS_NARRATION, report),
                )
                artifacts.narration = narration
            report(PROGRESS_NARRATION)

            # 4) Subtitles
            with timer.step("write_subtitles"):
                result = reconcile(lines, narration.line_durations, narration.duration_seconds)
                log.info(
                    "Timeline reconciled: sum=%.3fs total=%.3fs scale=%.4f",
                    result.raw_sum,
                    narration.duration_seconds,
                    result.scale_factor,
                )
                artifacts.subtitles = self.subtitles.write(
                    workspace.subtitle_ass,
                    result,
                    request.subtitle_style,
                    request.video.resolution,
                )

            # 5) Visual timeline
            with timer.step("render_segments"):
                segments = build_video_timeline(
                    prepared,
                    request.materials,
                    int(round(narration.duration_seconds * 1000)),
                )
                artifacts.timeline = self.renderer.render(
                    workspace,
                    segments,
                    request.video,
                    on_progress=_span(PROGRESS_NARRATION, PROGRESS_VISUAL, report),
                )
            report(PROGRESS_VISUAL)

            # 6) Final composite
            with timer.step("compose_video"):
                artifacts.bgm = prepare_bgm(
                    workspace,
                    request.bgm,
                    self.settings.bgm_path,
                    timeout=self.settings.download_timeout_seconds,
                )
                artifacts.output = self.compositor.compose(
                    workspace,
                    video=artifacts.timeline,
                    narration=narration,
                    subtitles=artifacts.subtitles,
                    bgm=artifacts.bgm,
                )
            report(PROGRESS_COMPOSED)
            return artifacts
        except Exception as exc:
            error = str(exc)
            raise
        finally:
            if workspace.root.exists():
                try:
                    write_run_manifest(
                        workspace=workspace,
                        settings=self.settings,
                        artifacts=artifacts,
                        steps=timer.steps,
                        started_at=started_at,
                        finished_at=timer.clock(),
                        error=error,
                    )
                except OSError as exc:
                    log.warning("Failed to write run manifest: %s", exc)
