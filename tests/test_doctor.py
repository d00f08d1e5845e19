from __future__ import annotations

from pathlib import Path

from shortsmith.utils import doctor


def _patch(monkeypatch, run=None, modules=lambda _: True) -> None:  # noqa: ANN001
    def fake_run(cmd):  # noqa: ANN001
        if cmd[0] == "ffmpeg":
            return 0, "ffmpeg version x"
        if cmd[0] == "ffprobe":
            return 0, "ffprobe version y"
        return 0, ""

    monkeypatch.setattr(doctor, "_run_cmd", run or fake_run)
    monkeypatch.setattr(doctor, "_check_writable", lambda _: True)
    monkeypatch.setattr(doctor, "_module_available", modules)
    monkeypatch.setattr(doctor, "_get_version", lambda: "0.0.0")


def test_doctor_all_ok(monkeypatch, capsys, settings) -> None:  # noqa: ANN001
    _patch(monkeypatch)

    code = doctor.run_doctor(settings)
    out = capsys.readouterr().out

    assert code == 0
    assert "ffmpeg version x" in out
    assert "rule-based segmentation" in out


def test_doctor_missing_ffmpeg(monkeypatch, capsys, settings) -> None:  # noqa: ANN001
    def fake_run(cmd):  # noqa: ANN001
        if cmd[0] == "ffmpeg":
            return 1, ""
        return 0, "ok"

    _patch(monkeypatch, run=fake_run)

    code = doctor.run_doctor(settings)
    assert code == 1
    hint = doctor._ffmpeg_hint()  # noqa: SLF001
    assert hint in capsys.readouterr().out


def test_doctor_optional_pieces_only_warn(monkeypatch, capsys, settings) -> None:  # noqa: ANN001
    def fake_run(cmd):  # noqa: ANN001
        if cmd[0] == settings.espeak_binary:
            return 1, ""
        return 0, "ok"

    _patch(monkeypatch, run=fake_run, modules=lambda name: name != "edge_tts")

    code = doctor.run_doctor(settings)
    out = capsys.readouterr().out

    assert code == 0
    assert "edge-tts (not installed)" in out
    assert "provider 'espeak' unavailable" in out


def test_doctor_unwritable_storage(monkeypatch, settings) -> None:  # noqa: ANN001
    _patch(monkeypatch)
    monkeypatch.setattr(doctor, "_check_writable", lambda _: False)
    assert doctor.run_doctor(settings) == 1


def test_doctor_counts_preset_tracks(monkeypatch, capsys, settings) -> None:  # noqa: ANN001
    root = Path(settings.bgm_path)
    root.mkdir(parents=True)
    (root / "theme.mp3").write_bytes(b"\0")
    _patch(monkeypatch)

    doctor.run_doctor(settings)

    assert "1 track(s)" in capsys.readouterr().out
