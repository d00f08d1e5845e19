from __future__ import annotations

import importlib
import sys
import tempfile
from pathlib import Path

from shortsmith.config.settings import Settings
from shortsmith.services.compose import list_audio_files


def _run_cmd(cmd: list[str]) -> tuple[int, str]:
    import subprocess

    try:
        proc = subprocess.run(cmd, capture_output=True, text=True, timeout=15)
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return 1, ""
    return proc.returncode, proc.stdout.strip() or proc.stderr.strip()


def _module_available(name: str) -> bool:
    try:
        importlib.import_module(name)
    except Exception:
        return False
    return True


def _check_writable(path: Path) -> bool:
    try:
        path.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=path, delete=True):
            return True
    except OSError:
        return False


def _get_version() -> str:
    try:
        import importlib.metadata

        return importlib.metadata.version("shortsmith")
    except Exception:
        return "unknown"


def _ffmpeg_hint() -> str:
    if sys.platform.startswith("darwin"):
        return "Install with: brew install ffmpeg"
    if sys.platform.startswith("win"):
        return "Install with: winget install ffmpeg"
    return "Install with: sudo apt-get install ffmpeg"


def _status_line(ok: bool, label: str, detail: str = "") -> str:
    icon = "✅" if ok else "❌"
    return f"{icon} {label}{detail}"


def _warn_line(label: str, detail: str = "") -> str:
    return f"⚠️ {label}{detail}"


def _binary_line(binary: str) -> tuple[bool, str]:
    code, out = _run_cmd([binary, "-version"])
    if code != 0:
        return False, _status_line(False, binary, " (not found)")
    first_line = out.splitlines()[0] if out else "available"
    return True, _status_line(True, binary, f": {first_line}")


def run_doctor(settings: Settings) -> int:
    required_ok = True
    lines: list[str] = []

    lines.append("shortsmith doctor")
    lines.append("")

    python_version = sys.version.split()[0]
    lines.append(_status_line(True, "Python", f": {python_version}"))
    lines.append(_status_line(True, "shortsmith version", f": {_get_version()}"))

    storage = Path(settings.storage_path).expanduser().resolve()
    writable = _check_writable(storage)
    if not writable:
        required_ok = False
    lines.append(_status_line(writable, "Storage writable", f": {storage}"))

    missing_media_tool = False
    for binary in ("ffmpeg", "ffprobe"):
        ok, line = _binary_line(binary)
        lines.append(line)
        if not ok:
            required_ok = False
            missing_media_tool = True
    if missing_media_tool:
        lines.append(f"   {_ffmpeg_hint()}")

    espeak_code, _ = _run_cmd([settings.espeak_binary, "--version"])
    if espeak_code == 0:
        lines.append(_status_line(True, "espeak", " (available)"))
    else:
        lines.append(_warn_line("espeak", " (not found; provider 'espeak' unavailable)"))

    for module, label in (("edge_tts", "edge-tts"), ("openai", "openai")):
        if _module_available(module):
            lines.append(_status_line(True, label, " (available)"))
        else:
            lines.append(_warn_line(label, " (not installed)"))

    lines.append(
        _status_line(
            bool(settings.openai_api_key),
            "OpenAI API key",
            ": set (AI segmentation)" if settings.openai_api_key else ": missing (rule-based segmentation)",
        )
    )
    azure_ok = bool(settings.azure_tts_key and settings.azure_tts_region)
    if azure_ok:
        lines.append(_status_line(True, "Azure TTS", f": {settings.azure_tts_region}"))
    else:
        lines.append(_warn_line("Azure TTS", ": not configured (azure providers fall back to edge_tts)"))

    tracks = list_audio_files(settings.bgm_path)
    if tracks:
        lines.append(_status_line(True, "Preset BGM", f": {len(tracks)} track(s) in {settings.bgm_path}"))
    else:
        lines.append(_warn_line("Preset BGM", f": none in {settings.bgm_path}"))

    print("\n".join(lines))
    return 0 if required_ok else 1
