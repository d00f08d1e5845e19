"""
Keyed JSON record store for jobs.

All records live in one `jobs.json` file under the storage root. Several
processes may share the file, so nothing is cached: every read loads the
file and every mutation reloads it, changes the one record involved and
rewrites it through a temp file and `os.replace`. A crash never leaves a
half-written store behind.
"""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

from shortsmith.domain.job import JobRecord
from shortsmith.exceptions import JobNotFoundError, ResourceError
from shortsmith.utils.logging import get_logger

log = get_logger(__name__)


class JobStore:
    def __init__(self, base: str | Path) -> None:
        self.base = Path(base).expanduser()
        self.base.mkdir(parents=True, exist_ok=True)
        self.path = self.base / "jobs.json"
        self._lock = threading.RLock()
        log.debug("Opened job store %s (%d job(s))", self.path, len(self._load()))

    def _load(self) -> dict[str, JobRecord]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except json.JSONDecodeError as exc:
            raise ResourceError(f"Job store is corrupt: {self.path} ({exc})") from exc
        return {job_id: JobRecord.model_validate(payload) for job_id, payload in raw.items()}

    def _persist(self, data: dict[str, JobRecord]) -> None:
        payload = {job_id: rec.model_dump(mode="json") for job_id, rec in data.items()}
        tmp = self.path.with_name(f"{self.path.stem}.{os.getpid()}.tmp")
        tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self.path)

    def insert(self, record: JobRecord) -> None:
        with self._lock:
            data = self._load()
            data[record.id] = record.model_copy(deep=True)
            self._persist(data)

    def update(self, record: JobRecord) -> None:
        """Replace one record; a cancellation request already stored is never cleared."""
        with self._lock:
            data = self._load()
            current = data.get(record.id)
            if current is None:
                raise JobNotFoundError(record.id)
            updated = record.model_copy(deep=True)
            updated.cancel_requested = record.cancel_requested or current.cancel_requested
            data[record.id] = updated
            self._persist(data)

    def get(self, job_id: str) -> JobRecord:
        with self._lock:
            record = self._load().get(job_id)
        if record is None:
            raise JobNotFoundError(job_id)
        return record

    def list(self, page: int = 1, limit: int = 20) -> tuple[list[JobRecord], int]:
        """Newest first; returns one page and the total record count."""
        page = page if page > 0 else 1
        limit = limit if 0 < limit <= 100 else 20
        with self._lock:
            values = sorted(self._load().values(), key=lambda r: r.created_at, reverse=True)
        start = (page - 1) * limit
        return values[start : start + limit], len(values)

    def all(self) -> list[JobRecord]:
        with self._lock:
            return list(self._load().values())

    def delete(self, job_id: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(job_id, None) is None:
                raise JobNotFoundError(job_id)
            self._persist(data)

    def delete_all(self) -> None:
        with self._lock:
            self._persist({})
