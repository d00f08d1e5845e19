from __future__ import annotations

from pathlib import Path

import pytest

from shortsmith.utils import ffmpeg


def test_parse_resolution_and_colors() -> None:
    assert ffmpeg.parse_resolution("1280x720") == (1280, 720)
    assert ffmpeg.parse_resolution("garbage") == (ffmpeg.DEFAULT_WIDTH, ffmpeg.DEFAULT_HEIGHT)
    assert ffmpeg.normalize_color("") == "black"
    assert ffmpeg.normalize_color("112233") == "#112233"


def test_xfade_offsets_subtract_accumulated_overlap() -> None:
    offsets = ffmpeg.xfade_offsets([4.0, 3.0, 5.0], ffmpeg.OVERLAP_SECONDS)
    assert offsets == pytest.approx([2.8, 4.6])


def test_xfade_filter_chains_video_and_audio() -> None:
    graph = ffmpeg.build_xfade_filter([4.0, 3.0, 5.0], "fade")
    assert "xfade=transition=fade:duration=1:offset=2.800" in graph
    assert "xfade=transition=fade:duration=1:offset=4.600" in graph
    assert graph.count("acrossfade=d=1.20") == 2
    assert "[outv]" in graph


def test_merge_cmd_lists_every_input(tmp_path: Path) -> None:
    files = [tmp_path / "seg_0.mp4", tmp_path / "seg_1.mp4"]
    out = tmp_path / "video.mp4"
    cmd = ffmpeg.build_xfade_merge_cmd(files, [3.0, 3.0], out, transition="fade")
    assert cmd[0] == "ffmpeg"
    assert cmd.count("-i") == 2
    assert cmd[-1] == str(out)


def test_zoompan_filter() -> None:
    assert ffmpeg.build_zoompan_filter("none", width=1080, height=1920, fps=30, seconds=3) is None
    zoom_in = ffmpeg.build_zoompan_filter("zoom_in", width=1080, height=1920, fps=30, seconds=3)
    assert zoom_in is not None
    assert "zoompan=" in zoom_in
    assert "min(" in zoom_in
    assert "d=90" in zoom_in
    zoom_out = ffmpeg.build_zoompan_filter("zoom_out", width=1080, height=1920, fps=30, seconds=3)
    assert zoom_out is not None
    assert "max(" in zoom_out


def test_voiced_segment_volume_only_when_changed(tmp_path: Path) -> None:
    frame = ffmpeg.build_frame_filter(1080, 1920, 30, background="#000000", blur_background=False)
    plain = ffmpeg.build_voiced_video_segment_cmd(
        tmp_path / "in.mp4", tmp_path / "out.mp4", seconds=2.0, frame_filter=frame
    )
    quiet = ffmpeg.build_voiced_video_segment_cmd(
        tmp_path / "in.mp4", tmp_path / "out.mp4", seconds=2.0, frame_filter=frame, volume=0.5
    )
    assert not any("volume=" in part for part in plain)
    assert any("volume=0.5" in part for part in quiet)


def test_subtitles_filter_picks_ass() -> None:
    assert ffmpeg.build_subtitles_filter(Path("/tmp/subtitle.ass")).startswith("ass=")
    assert ffmpeg.build_subtitles_filter(Path("/tmp/subtitle.srt")).startswith("subtitles=")


def test_final_cmd_puts_bgm_between_video_and_narration(tmp_path: Path) -> None:
    cmd = ffmpeg.build_final_cmd(
        tmp_path / "video.mp4",
        tmp_path / "voice.wav",
        tmp_path / "subtitle.ass",
        tmp_path / "output.mp4",
        narration_seconds=5.0,
        final_seconds=6.0,
        bgm=tmp_path / "bgm.mp3",
        bgm_volume=0.3,
    )
    inputs = [cmd[i + 1] for i, part in enumerate(cmd) if part == "-i"]
    assert [Path(p).name for p in inputs] == ["video.mp4", "bgm.mp3", "voice.wav"]
    assert cmd[-1] == str(tmp_path / "output.mp4")


def test_run_ffmpeg_raises_media_tool_error(monkeypatch) -> None:
    import subprocess

    from shortsmith.exceptions import MediaToolError

    class Proc:
        returncode = 1
        stdout = ""
        stderr = "boom"

    monkeypatch.setattr(subprocess, "run", lambda *a, **k: Proc())
    with pytest.raises(MediaToolError) as excinfo:
        ffmpeg.run_ffmpeg(["ffmpeg", "-i", "x", "y"])
    assert excinfo.value.exit_code == 6


def test_write_concat_list(tmp_path: Path) -> None:
    list_path = tmp_path / "list.txt"
    ffmpeg.write_concat_list([tmp_path / "a.wav", tmp_path / "b.wav"], list_path)
    rows = list_path.read_text(encoding="utf-8").splitlines()
    assert rows == [f"file '{tmp_path / 'a.wav'}'", f"file '{tmp_path / 'b.wav'}'"]
