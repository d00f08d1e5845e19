"""
Speech synthesis providers.

Every provider turns one line of text into one audio clip on disk and can
list its voices. Providers are looked up by name in `PROVIDERS`; an unknown
name is a configuration error, never a silent fallback.

Providers:
- `azure_v1` / `azure_v2`: Azure Speech REST API (SSML, 24 kHz mono PCM).
- `edge_tts`: Microsoft Edge online voices via the `edge-tts` package (MP3).
- `espeak`: local espeak/espeak-ng subprocess (WAV), no network needed.
"""

from __future__ import annotations

import asyncio
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol
from xml.sax.saxutils import escape, quoteattr

import requests

from shortsmith.config.settings import Settings
from shortsmith.exceptions import ExternalServiceError, UnknownProviderError
from shortsmith.utils import ffmpeg
from shortsmith.utils.checks import require_binary
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)

MIN_AUDIO_BYTES = 100
DEFAULT_EDGE_VOICE = "zh-TW-HsiaoChenNeural"


@dataclass(frozen=True)
class Voice:
    name: str
    display_name: str
    locale: str
    gender: str

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "display_name": self.display_name,
            "locale": self.locale,
            "gender": self.gender,
        }


@dataclass(frozen=True)
class SpeechClip:
    path: Path
    duration_seconds: float


class SpeechProvider(Protocol):
    name: str

    def synthesize(
        self,
        text: str,
        *,
        voice: str,
        locale: str,
        speed: float,
        pitch: float,
        out_path: Path,
    ) -> SpeechClip: ...

    def list_voices(self) -> list[Voice]: ...


def rate_percent(speed: float) -> str:
    return f"{(speed - 1.0) * 100:+.0f}%"


def _check_output(path: Path, provider: str) -> None:
    size = path.stat().st_size if path.exists() else 0
    if size < MIN_AUDIO_BYTES:
        raise ExternalServiceError(
            f"{provider} returned too little audio ({size} bytes).",
            service=provider,
        )


def _clip(path: Path) -> SpeechClip:
    return SpeechClip(path=path, duration_seconds=ffmpeg.probe_duration(path) or 0.0)


# ---------------------------------------------------------------------
# Azure Speech (REST)
# ---------------------------------------------------------------------
class AzureSpeechProvider:
    extension = ".wav"

    def __init__(self, key: str, region: str, *, name: str = "azure_v1", timeout: float = 30.0) -> None:
        self.key = key
        self.region = region
        self.name = name
        self.timeout = timeout

    @property
    def endpoint(self) -> str:
        return f"https://{self.region}.tts.speech.microsoft.com/cognitiveservices/v1"

    @property
    def voices_endpoint(self) -> str:
        return f"https://{self.region}.tts.speech.microsoft.com/cognitiveservices/voices/list"

    def build_ssml(self, text: str, *, voice: str, locale: str, speed: float, pitch: float) -> str:
        voice = voice or f"{locale}-AriaNeural"
        return (
            f"<speak version='1.0' xml:lang={quoteattr(locale)}>"
            f"<voice name={quoteattr(voice)}>"
            f"<prosody rate='{rate_percent(speed)}' pitch='{pitch * 100:+.0f}%'>{escape(text)}</prosody>"
            "</voice></speak>"
        )

    def synthesize(self, text, *, voice, locale, speed, pitch, out_path):
        out = Path(out_path).with_suffix(self.extension)
        ssml = self.build_ssml(text, voice=voice, locale=locale, speed=speed, pitch=pitch)
        try:
            resp = requests.post(
                self.endpoint,
                data=ssml.encode("utf-8"),
                headers={
                    "Content-Type": "application/ssml+xml",
                    "Ocp-Apim-Subscription-Key": self.key,
                    "X-Microsoft-OutputFormat": "riff-24khz-16bit-mono-pcm",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ExternalServiceError(f"Azure TTS request failed: {exc}", service=self.name) from exc
        if resp.status_code >= 300:
            raise ExternalServiceError(
                f"Azure TTS error {resp.status_code}: {resp.text[:300]}",
                service=self.name,
            )
        out.write_bytes(resp.content)
        _check_output(out, self.name)
        return _clip(out)

    def list_voices(self) -> list[Voice]:
        try:
            resp = requests.get(
                self.voices_endpoint,
                headers={"Ocp-Apim-Subscription-Key": self.key},
                timeout=10,
            )
            resp.raise_for_status()
            raw = resp.json()
        except (requests.RequestException, ValueError) as exc:
            raise ExternalServiceError(f"Failed to list Azure voices: {exc}", service=self.name) from exc
        return [
            Voice(
                name=v.get("ShortName", ""),
                display_name=f"{v.get('LocalName', '')} ({v.get('Locale', '')}, {v.get('Gender', '')})",
                locale=v.get("Locale", ""),
                gender=v.get("Gender", ""),
            )
            for v in raw
        ]


# ---------------------------------------------------------------------
# edge-tts
# ---------------------------------------------------------------------
class EdgeSpeechProvider:
    name = "edge_tts"
    extension = ".mp3"

    def __init__(self) -> None:
        import edge_tts  # type: ignore

        self._edge_tts = edge_tts

    def synthesize(self, text, *, voice, locale, speed, pitch, out_path):
        out = Path(out_path).with_suffix(self.extension)
        communicate = self._edge_tts.Communicate(
            text=text,
            voice=voice or DEFAULT_EDGE_VOICE,
            rate=rate_percent(speed),
            pitch=f"{pitch * 50:+.0f}Hz",
        )
        try:
            asyncio.run(communicate.save(str(out)))
        except Exception as exc:
            raise ExternalServiceError(f"edge-tts synthesis failed: {exc}", service=self.name) from exc
        _check_output(out, self.name)
        return _clip(out)

    def list_voices(self) -> list[Voice]:
        try:
            raw = asyncio.run(self._edge_tts.list_voices())
        except Exception as exc:
            raise ExternalServiceError(f"Failed to list edge-tts voices: {exc}", service=self.name) from exc
        voices = []
        for v in raw:
            short_name = str(v.get("ShortName", ""))
            parts = short_name.split("-")
            locale = "-".join(parts[:2]) if len(parts) >= 2 else str(v.get("Locale", ""))
            voices.append(
                Voice(
                    name=short_name,
                    display_name=f"{v.get('FriendlyName', short_name)} ({v.get('Locale', '')}, {v.get('Gender', '')})",
                    locale=locale,
                    gender=str(v.get("Gender", "")),
                )
            )
        return voices


# ---------------------------------------------------------------------
# espeak (local)
# ---------------------------------------------------------------------
class EspeakSpeechProvider:
    name = "espeak"
    extension = ".wav"

    def __init__(self, binary: str = "espeak", *, timeout: float = 30.0) -> None:
        self.binary = binary
        self.timeout = timeout

    def synthesize(self, text, *, voice, locale, speed, pitch, out_path):
        require_binary(self.binary, purpose="the espeak TTS provider")
        out = Path(out_path).with_suffix(self.extension)
        speed = speed if speed > 0 else 1.0
        cmd = [self.binary, "-v", voice or locale, "-s", str(int(175 * speed)), "-w", str(out), text]
        try:
            proc = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
        except subprocess.TimeoutExpired as exc:
            raise ExternalServiceError(f"espeak timed out after {self.timeout:.0f}s", service=self.name) from exc
        if proc.returncode != 0:
            raise ExternalServiceError(f"espeak failed: {proc.stderr.strip()}", service=self.name)
        _check_output(out, self.name)
        return _clip(out)

    def list_voices(self) -> list[Voice]:
        require_binary(self.binary, purpose="the espeak TTS provider")
        proc = subprocess.run([self.binary, "--voices"], capture_output=True, text=True, timeout=self.timeout)
        if proc.returncode != 0:
            raise ExternalServiceError(f"espeak --voices failed: {proc.stderr.strip()}", service=self.name)
        voices = []
        # Pty Language Age/Gender VoiceName File Other Languages
        for row in proc.stdout.splitlines()[1:]:
            cols = row.split()
            if len(cols) < 4:
                continue
            gender = cols[2].split("/")[-1]
            voices.append(
                Voice(
                    name=cols[1],
                    display_name=f"{cols[3]} ({cols[1]}, {gender})",
                    locale=cols[1],
                    gender={"M": "Male", "F": "Female"}.get(gender, gender),
                )
            )
        return voices


# ---------------------------------------------------------------------
# Lookup
# ---------------------------------------------------------------------
def _azure(name: str) -> Callable[[Settings], SpeechProvider]:
    def factory(settings: Settings) -> SpeechProvider:
        if not (settings.azure_tts_key and settings.azure_tts_region):
            log.warning("Azure TTS key or region missing; provider %s falls back to edge_tts", name)
            return EdgeSpeechProvider()
        return AzureSpeechProvider(
            settings.azure_tts_key,
            settings.azure_tts_region,
            name=name,
            timeout=settings.tts_timeout_seconds,
        )

    return factory


PROVIDERS: dict[str, Callable[[Settings], SpeechProvider]] = {
    "azure_v1": _azure("azure_v1"),
    "azure_v2": _azure("azure_v2"),
    "edge_tts": lambda settings: EdgeSpeechProvider(),
    "espeak": lambda settings: EspeakSpeechProvider(settings.espeak_binary, timeout=settings.tts_timeout_seconds),
}


def get_provider(name: str, settings: Settings) -> SpeechProvider:
    factory = PROVIDERS.get(name)
    if factory is None:
        raise UnknownProviderError(name)
    return factory(settings)


class VoiceCatalog:
    """
    Per-provider voice lists, fetched once on first use and kept for the
    lifetime of the catalog.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._cache: dict[str, list[Voice]] = {}

    def voices(self, provider: str, *, locale: str | None = None) -> list[Voice]:
        with self._lock:
            if provider not in self._cache:
                self._cache[provider] = get_provider(provider, self.settings).list_voices()
                log.info("Cached %d voice(s) for %s", len(self._cache[provider]), provider)
            cached = list(self._cache[provider])
        if locale:
            prefix = locale.lower()
            cached = [v for v in cached if v.locale.lower().startswith(prefix)]
        return sorted(cached, key=lambda v: v.name)
