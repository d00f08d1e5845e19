from __future__ import annotations

from pathlib import Path

import pytest

from shortsmith.domain.request import VideoSetting
from shortsmith.domain.workspace import Workspace
from shortsmith.services.materials import Segment
from shortsmith.services.video import SegmentRenderer, render_seconds


def _segment(kind: str = "image", start: int = 0, end: int = 2000, **kwargs) -> Segment:  # noqa: ANN003
    return Segment(path=Path("/src/mat.png" if kind == "image" else "/src/mat.mp4"), start=start, end=end, type=kind, **kwargs)


def test_render_seconds_adds_overlap_except_for_last() -> None:
    seg = _segment(end=2000)
    assert render_seconds(seg, 0, 2, transition=False) == pytest.approx(2.0)
    assert render_seconds(seg, 0, 2, transition=True) == pytest.approx(3.2)
    assert render_seconds(seg, 1, 2, transition=True) == pytest.approx(2.0)
    assert render_seconds(_segment(end=500), 0, 2, transition=True) == pytest.approx(2.2)
    assert render_seconds(_segment(end=500), 1, 2, transition=True) == pytest.approx(1.2)


def test_render_without_transition_concats_by_copy(settings, fake_ffmpeg) -> None:
    workspace = Workspace.for_job(settings.storage_path, "job-1").create()
    segments = [_segment(end=2000), _segment(start=2000, end=3500)]
    progress = []

    artifact = SegmentRenderer().render(
        workspace, segments, VideoSetting(), on_progress=lambda done, total: progress.append((done, total))
    )

    assert artifact.path == workspace.video_mp4
    assert artifact.segment_count == 2
    assert progress == [(1, 3), (2, 3), (3, 3)]
    merge = fake_ffmpeg.commands[-1]
    assert "copy" in merge
    assert len(workspace.segment_list.read_text(encoding="utf-8").splitlines()) == 2


def test_render_with_transition_uses_measured_durations(settings, fake_ffmpeg) -> None:
    fake_ffmpeg.durations.update({"seg_0.mp4": 3.2, "seg_1.mp4": 2.0})
    workspace = Workspace.for_job(settings.storage_path, "job-1").create()
    segments = [_segment(end=2000), _segment(start=2000, end=4000)]

    SegmentRenderer(workers=2).render(workspace, segments, VideoSetting(transition="fade"))

    merge = " ".join(fake_ffmpeg.commands[-1])
    assert "xfade=transition=fade:duration=1:offset=2.000" in merge
    assert "acrossfade=d=1.20" in merge


def test_image_effect_replaces_loop(settings, fake_ffmpeg, tmp_path: Path) -> None:
    renderer = SegmentRenderer()
    renderer.render_segment(_segment(effect="zoom_in"), tmp_path / "seg.mp4", seconds=2.0, video=VideoSetting())
    renderer.render_segment(_segment(), tmp_path / "seg.mp4", seconds=2.0, video=VideoSetting())

    zoom, plain = fake_ffmpeg.commands
    assert "-loop" not in zoom
    assert any("zoompan=" in part for part in zoom)
    assert "-loop" in plain


def test_voiced_clip_retries_muted(settings, fake_ffmpeg, tmp_path: Path) -> None:
    fake_ffmpeg.fail_when = lambda cmd: any("[0:a]" in part for part in cmd)

    seconds = SegmentRenderer().render_segment(
        _segment("video", volume=0.5), tmp_path / "seg.mp4", seconds=2.0, video=VideoSetting()
    )

    assert seconds == 2.0
    assert len(fake_ffmpeg.commands) == 2
    assert not any("[0:a]" in part for part in fake_ffmpeg.commands[1])


def test_muted_clip_renders_once_and_holds_last_frame(settings, fake_ffmpeg, tmp_path: Path) -> None:
    SegmentRenderer().render_segment(
        _segment("video", mute=True), tmp_path / "seg.mp4", seconds=2.0, video=VideoSetting(transition="fade")
    )

    assert len(fake_ffmpeg.commands) == 1
    assert any("tpad=stop_mode=clone" in part for part in fake_ffmpeg.commands[0])


def test_unprobeable_segment_reports_requested_length(fake_ffmpeg, tmp_path: Path) -> None:
    fake_ffmpeg.default_duration = None
    seconds = SegmentRenderer().render_segment(_segment(), tmp_path / "seg.mp4", seconds=1.7, video=VideoSetting())
    assert seconds == 1.7
