from __future__ import annotations

import shutil

from shortsmith.exceptions import DependencyMissingError

MEDIA_BINARIES = ("ffmpeg", "ffprobe")


def require_binary(binary: str, *, purpose: str = "") -> str:
    """Resolve `binary` on PATH or raise a dependency error naming what needs it."""
    path = shutil.which(binary)
    if path is None:
        needed_for = f" (needed for {purpose})" if purpose else ""
        raise DependencyMissingError(
            f"Missing required dependency '{binary}'{needed_for}. Install it and try again."
        )
    return path


def require_media_tools() -> None:
    for binary in MEDIA_BINARIES:
        require_binary(binary, purpose="rendering")
