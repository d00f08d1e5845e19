from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from shortsmith.exceptions import ExternalServiceError, UnknownProviderError
from shortsmith.services import tts
from shortsmith.services.tts import (
    AzureSpeechProvider,
    EdgeSpeechProvider,
    EspeakSpeechProvider,
    Voice,
    VoiceCatalog,
    get_provider,
    rate_percent,
)

ESPEAK_VOICES = """\
Pty Language       Age/Gender VoiceName          File                 Other Languages
 5  af              --/M      Afrikaans          gmw/af
 5  cmn             --/M      Chinese_(Mandarin) sit/cmn
 5  en-us           --/F      English_(America)  gmw/en-US
"""


class FakeResponse:
    def __init__(self, status_code: int = 200, content: bytes = b"", payload=None) -> None:  # noqa: ANN001
        self.status_code = status_code
        self.content = content
        self.text = content.decode("utf-8", "replace")
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self):  # noqa: ANN201
        return self._payload


def test_rate_percent() -> None:
    assert rate_percent(1.0) == "+0%"
    assert rate_percent(0.8) == "-20%"
    assert rate_percent(1.5) == "+50%"


def test_unknown_provider_is_configuration_error(settings) -> None:
    with pytest.raises(UnknownProviderError) as excinfo:
        get_provider("nope", settings)
    assert excinfo.value.exit_code == 2
    assert "nope" in excinfo.value.message


def test_azure_without_credentials_falls_back_to_edge(settings) -> None:
    assert isinstance(get_provider("azure_v1", settings), EdgeSpeechProvider)


def test_azure_with_credentials(settings) -> None:
    settings.azure_tts_key = "key"
    settings.azure_tts_region = "eastasia"
    provider = get_provider("azure_v2", settings)
    assert isinstance(provider, AzureSpeechProvider)
    assert provider.name == "azure_v2"
    assert provider.endpoint.startswith("https://eastasia.tts.speech.microsoft.com/")


def test_azure_ssml_escapes_text() -> None:
    provider = AzureSpeechProvider("key", "eastasia")
    ssml = provider.build_ssml("A < B & C", voice="", locale="zh-TW", speed=1.5, pitch=0)
    assert "A &lt; B &amp; C" in ssml
    assert "zh-TW-AriaNeural" in ssml
    assert "rate='+50%'" in ssml


def test_azure_synthesize_writes_wav(monkeypatch, tmp_path: Path) -> None:
    seen = {}

    def fake_post(url, data, headers, timeout):  # noqa: ANN001
        seen.update(url=url, headers=headers)
        return FakeResponse(200, b"RIFF" + b"\0" * 400)

    monkeypatch.setattr(tts.requests, "post", fake_post)
    monkeypatch.setattr(tts.ffmpeg, "probe_duration", lambda path: 1.5)

    clip = AzureSpeechProvider("key", "eastasia").synthesize(
        "你好", voice="zh-TW-HsiaoChenNeural", locale="zh-TW", speed=1.0, pitch=0.0, out_path=tmp_path / "line_0"
    )

    assert clip.path == tmp_path / "line_0.wav"
    assert clip.duration_seconds == 1.5
    assert seen["headers"]["Ocp-Apim-Subscription-Key"] == "key"


@pytest.mark.parametrize("response", [FakeResponse(401, b"unauthorized"), FakeResponse(200, b"tiny")])
def test_azure_errors_are_external_service_errors(monkeypatch, tmp_path: Path, response) -> None:  # noqa: ANN001
    monkeypatch.setattr(tts.requests, "post", lambda *a, **k: response)
    with pytest.raises(ExternalServiceError) as excinfo:
        AzureSpeechProvider("key", "eastasia").synthesize(
            "hi", voice="", locale="en-US", speed=1.0, pitch=0.0, out_path=tmp_path / "line_0"
        )
    assert excinfo.value.exit_code == 5


def test_azure_list_voices(monkeypatch) -> None:
    payload = [{"ShortName": "zh-TW-HsiaoChenNeural", "LocalName": "曉臻", "Locale": "zh-TW", "Gender": "Female"}]
    monkeypatch.setattr(tts.requests, "get", lambda *a, **k: FakeResponse(payload=payload))
    voices = AzureSpeechProvider("key", "eastasia").list_voices()
    assert voices == [Voice("zh-TW-HsiaoChenNeural", "曉臻 (zh-TW, Female)", "zh-TW", "Female")]


def test_espeak_synthesize(monkeypatch, tmp_path: Path) -> None:
    calls = []

    def fake_run(cmd, capture_output, text, timeout):  # noqa: ANN001
        calls.append(cmd)
        Path(cmd[cmd.index("-w") + 1]).write_bytes(b"\0" * 300)
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(tts, "require_binary", lambda binary, **kwargs: binary)
    monkeypatch.setattr(tts.subprocess, "run", fake_run)
    monkeypatch.setattr(tts.ffmpeg, "probe_duration", lambda path: 0.9)

    clip = EspeakSpeechProvider("espeak-ng").synthesize(
        "hello", voice="", locale="en-us", speed=1.2, pitch=0.0, out_path=tmp_path / "line_0"
    )

    assert calls[0][:5] == ["espeak-ng", "-v", "en-us", "-s", "210"]
    assert calls[0][-1] == "hello"
    assert clip.duration_seconds == 0.9


def test_espeak_list_voices(monkeypatch) -> None:
    monkeypatch.setattr(tts, "require_binary", lambda binary, **kwargs: binary)
    monkeypatch.setattr(
        tts.subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, ESPEAK_VOICES, ""),
    )
    voices = EspeakSpeechProvider().list_voices()
    assert [v.name for v in voices] == ["af", "cmn", "en-us"]
    assert voices[2].gender == "Female"


def test_voice_catalog_caches_and_filters(monkeypatch, settings) -> None:
    created = []

    class Provider:
        name = "fake"

        def list_voices(self):  # noqa: ANN201
            return [
                Voice("zh-TW-YunJheNeural", "YunJhe", "zh-TW", "Male"),
                Voice("en-US-AriaNeural", "Aria", "en-US", "Female"),
                Voice("zh-TW-HsiaoChenNeural", "HsiaoChen", "zh-TW", "Female"),
            ]

    def factory(_settings):  # noqa: ANN001
        created.append(1)
        return Provider()

    monkeypatch.setitem(tts.PROVIDERS, "fake", factory)
    catalog = VoiceCatalog(settings)

    zh = catalog.voices("fake", locale="zh")
    everything = catalog.voices("fake")

    assert [v.name for v in zh] == ["zh-TW-HsiaoChenNeural", "zh-TW-YunJheNeural"]
    assert len(everything) == 3
    assert len(created) == 1
