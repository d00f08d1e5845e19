from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from shortsmith.config.settings import Settings
from shortsmith.domain.artifacts import Artifacts
from shortsmith.domain.workspace import Workspace
from shortsmith.utils.timing import StepTiming


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat()


def _artifact_entry(artifact: Any) -> dict[str, Any] | None:
    if artifact is None:
        return None
    path = Path(artifact.path)
    size = path.stat().st_size if path.exists() else None
    entry: dict[str, Any] = {"path": str(path), "size_bytes": size}
    for key in ("duration_seconds", "line_count", "scale_factor", "end_ms", "segment_count", "volume"):
        value = getattr(artifact, key, None)
        if value is not None:
            entry[key] = value
    return entry


def write_run_manifest(
    *,
    workspace: Workspace,
    settings: Settings,
    artifacts: Artifacts,
    steps: Iterable[StepTiming],
    started_at: datetime,
    finished_at: datetime,
    error: str | None = None,
) -> Path:
    narration = artifacts.narration
    subtitles = artifacts.subtitles
    timeline = artifacts.timeline
    payload: dict[str, Any] = {
        "job_id": workspace.job_id,
        "started_at": _iso(started_at),
        "finished_at": _iso(finished_at),
        "duration_seconds_total": (finished_at - started_at).total_seconds(),
        "ok": error is None,
        "error": error,
        "settings_public": settings.to_public_dict(),
        "steps": [step.to_dict() for step in steps],
        "line_count": len(artifacts.lines),
        "scale_factor": subtitles.scale_factor if subtitles else None,
        "narration_duration_seconds": narration.duration_seconds if narration else None,
        "video_duration_seconds": timeline.duration_seconds if timeline else None,
        "subtitles_end_seconds": subtitles.end_ms / 1000.0 if subtitles else None,
        "artifacts": {
            "narration": _artifact_entry(narration),
            "subtitles": _artifact_entry(subtitles),
            "timeline": _artifact_entry(timeline),
            "bgm": _artifact_entry(artifacts.bgm),
            "output": _artifact_entry(artifacts.output),
        },
    }

    out = workspace.run_manifest
    out.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    return out
