from __future__ import annotations

import inspect
import subprocess
from pathlib import Path

import pytest
import typer.testing

from shortsmith.config.settings import Settings
from shortsmith.exceptions import MediaToolError
from shortsmith.services.tts import SpeechClip, Voice
from shortsmith.utils import ffmpeg


def _patch_clirunner() -> None:
    if "mix_stderr" in inspect.signature(typer.testing.CliRunner).parameters:
        return

    class PatchedCliRunner(typer.testing.CliRunner):
        def __init__(self, *args, **kwargs):  # noqa: ANN002, ANN003
            kwargs.pop("mix_stderr", None)
            super().__init__(*args, **kwargs)

    typer.testing.CliRunner = PatchedCliRunner


_patch_clirunner()


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        storage_path=str(tmp_path / ".shortsmith"),
        bgm_path=str(tmp_path / "bgm"),
        openai_api_key=None,
        azure_tts_key=None,
        azure_tts_region=None,
        ai_retry_delay_seconds=0.0,
    )


@pytest.fixture
def image_file(tmp_path: Path) -> Path:
    path = tmp_path / "inputs" / "photo.png"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"\x89PNG fake image")
    return path


@pytest.fixture
def payload(image_file: Path) -> dict:
    return {
        "script": "今天天氣很好。我們去公園散步吧！",
        "materials": [
            {"type": "image", "source": "local", "path": str(image_file), "duration_sec": 3},
        ],
    }


class FakeFFmpeg:
    """Stands in for the ffmpeg/ffprobe binaries: records commands and touches outputs."""

    def __init__(self) -> None:
        self.commands: list[list[str]] = []
        self.durations: dict[str, float | None] = {}
        self.default_duration: float | None = 2.0
        self.write_output = True
        self.fail_when = lambda cmd: False

    def run(self, cmd, *, timeout=None, stderr_path=None):  # noqa: ANN001
        self.commands.append(list(cmd))
        if self.fail_when(cmd):
            raise MediaToolError("ffmpeg failed.", stderr="boom")
        if self.write_output:
            out = Path(cmd[-1])
            out.parent.mkdir(parents=True, exist_ok=True)
            out.write_bytes(b"\0" * 256)
        if stderr_path is not None:
            stderr_path.write_text("", encoding="utf-8")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    def probe(self, path, *, timeout=30.0):  # noqa: ANN001
        return self.durations.get(Path(path).name, self.default_duration)

    def joined(self) -> list[str]:
        return [" ".join(cmd) for cmd in self.commands]


@pytest.fixture
def fake_ffmpeg(monkeypatch) -> FakeFFmpeg:
    fake = FakeFFmpeg()
    monkeypatch.setattr(ffmpeg, "run_ffmpeg", fake.run)
    monkeypatch.setattr(ffmpeg, "probe_duration", fake.probe)
    monkeypatch.setattr(ffmpeg, "ensure_ffmpeg", lambda: None)
    return fake


class FakeSpeechProvider:
    name = "fake"

    def __init__(self, voices: list[Voice] | None = None) -> None:
        self.calls: list[str] = []
        self._voices = voices or []

    def synthesize(self, text, *, voice, locale, speed, pitch, out_path):  # noqa: ANN001
        self.calls.append(text)
        out = Path(out_path).with_suffix(".wav")
        out.write_bytes(b"\0" * 512)
        return SpeechClip(path=out, duration_seconds=1.0)

    def list_voices(self) -> list[Voice]:
        return list(self._voices)


@pytest.fixture
def speech_provider() -> FakeSpeechProvider:
    return FakeSpeechProvider()
