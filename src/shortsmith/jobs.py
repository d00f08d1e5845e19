"""
Job submission and lifecycle.

`JobService` is the entry point the CLI (or any other front end) uses to
create, inspect, cancel and delete jobs. It validates requests, owns the
record store and pushes new ids onto the worker queue.
"""

from __future__ import annotations

import random
import shutil
from pathlib import Path
from typing import Any, Collection

from pydantic import ValidationError

from shortsmith.config.settings import Settings
from shortsmith.domain.job import JobRecord, JobStatus
from shortsmith.domain.request import RANDOM_BGM, JobRequest
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import RequestValidationError
from shortsmith.services.compose import list_audio_files
from shortsmith.storage.store import JobStore
from shortsmith.utils.logging import get_logger
from shortsmith.worker.queue import JobQueue
from shortsmith.worker.worker import CANCELED_MESSAGE

log = get_logger(__name__)


def format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


def parse_request(payload: JobRequest | dict[str, Any]) -> JobRequest:
    if isinstance(payload, JobRequest):
        return payload
    try:
        return JobRequest.model_validate(payload)
    except ValidationError as exc:
        raise RequestValidationError(format_validation_error(exc)) from exc


class JobService:
    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        jobs: JobQueue,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.queue = jobs
        self._rng = rng or random.Random()

    def _resolve_random_bgm(self, request: JobRequest) -> JobRequest:
        bgm = request.bgm
        if bgm.source != "preset" or bgm.path != RANDOM_BGM:
            return request
        tracks = list_audio_files(self.settings.bgm_path)
        if tracks:
            selected = self._rng.choice(tracks)
            log.info("Random background music selected: %s", selected)
            update = {"path": selected}
        else:
            log.warning("Random background music requested but %s has no tracks; disabling", self.settings.bgm_path)
            update = {"source": "none", "path": ""}
        return request.model_copy(update={"bgm": bgm.model_copy(update=update)})

    def submit(self, payload: JobRequest | dict[str, Any]) -> JobRecord:
        request = self._resolve_random_bgm(parse_request(payload))
        record = JobRecord(request=request)
        record.base_path = str(Workspace.for_job(self.settings.storage_path, record.id).root)
        self.store.insert(record)
        self.queue.push(record.id)
        log.info("Job submitted: %s (%d material(s))", record.id, len(request.materials))
        return record

    def get(self, job_id: str) -> JobRecord:
        return self.store.get(job_id)

    def list(self, page: int = 1, limit: int = 20) -> tuple[list[JobRecord], int]:
        return self.store.list(page, limit)

    def cancel(self, job_id: str) -> JobRecord:
        """
        Request cancellation.

        A running job keeps running; the request is stored on the record so
        the worker that owns the job sees it, even from another process, and
        records the cancellation when the run ends. Any other job is marked
        canceled immediately.
        """
        rec = self.store.get(job_id)
        self.queue.cancel(job_id)
        rec.cancel_requested = True
        if rec.status == JobStatus.RUNNING:
            self.store.update(rec)
            log.info("Cancellation requested for running job %s", job_id)
            return rec
        rec.result_path = ""
        rec.mark(JobStatus.CANCELED, progress=0, error=CANCELED_MESSAGE)
        self.store.update(rec)
        self._remove_dir(rec)
        log.info("Job canceled: %s", job_id)
        return rec

    def delete(self, job_id: str) -> None:
        rec = self.store.get(job_id)
        if rec.status == JobStatus.RUNNING:
            # The running pipeline still uses the directory; the worker removes it when the run ends.
            self.queue.cancel(job_id)
        else:
            self._remove_dir(rec)
        self.store.delete(job_id)
        log.info("Job deleted: %s", job_id)

    def delete_all(self) -> int:
        records = self.store.all()
        for rec in records:
            if rec.status == JobStatus.RUNNING:
                self.queue.cancel(rec.id)
            else:
                self._remove_dir(rec)
        self.store.delete_all()
        log.info("Deleted %d job(s)", len(records))
        return len(records)

    def _remove_dir(self, rec: JobRecord) -> None:
        root = Path(rec.base_path) if rec.base_path else Workspace.for_job(self.settings.storage_path, rec.id).root
        shutil.rmtree(root, ignore_errors=True)

    def requeue_pending(self, skip: Collection[str] = ()) -> list[str]:
        """
        Push every pending record not in `skip` onto the queue, oldest first.

        Returns the ids of all pending records, queued now or before. Blocks
        while the queue is full.
        """
        pending = sorted(
            (rec for rec in self.store.all() if rec.status == JobStatus.PENDING and not rec.cancel_requested),
            key=lambda rec: rec.created_at,
        )
        for rec in pending:
            if rec.id not in skip:
                self.queue.push(rec.id)
                log.info("Job queued: %s", rec.id)
        return [rec.id for rec in pending]
