"""
Single-consumer job worker.

Pops job ids from the queue and runs the pipeline for one job at a time.
The worker owns record state while a job runs: it sets `running`, reports
progress, and writes the terminal status. Nothing a job does can stop the
loop; every failure is recorded on the job and the worker moves on.
"""

from __future__ import annotations

import queue
import shutil
import threading
from pathlib import Path
from typing import Callable

from shortsmith.config.settings import Settings
from shortsmith.domain.job import JobRecord, JobStatus
from shortsmith.domain.workspace import Workspace
from shortsmith.exceptions import JobNotFoundError
from shortsmith.pipeline import PROGRESS_START, Pipeline
from shortsmith.storage.store import JobStore
from shortsmith.utils.logging import JobLogAdapter, get_logger, job_logger
from shortsmith.worker.queue import JobQueue

log = get_logger(__name__)

CANCELED_MESSAGE = "canceled by user"
POLL_SECONDS = 0.5


class Worker:
    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        jobs: JobQueue,
        pipeline: Pipeline | None = None,
    ) -> None:
        self.settings = settings
        self.store = store
        self.queue = jobs
        self.pipeline = pipeline or Pipeline(settings)
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # ------------------------------------------------------------------
    # Loop control
    # ------------------------------------------------------------------
    def start(self) -> threading.Thread:
        if self._thread is None or not self._thread.is_alive():
            self._stop.clear()
            self._thread = threading.Thread(target=self.run, name="shortsmith-worker", daemon=True)
            self._thread.start()
        return self._thread

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)

    def run(self, until: Callable[[], bool] | None = None) -> None:
        """Process ids until stopped, or until the queue is empty and `until()` is true."""
        log.info("Worker started")
        while not self._stop.is_set():
            try:
                job_id = self.queue.pop(timeout=POLL_SECONDS)
            except queue.Empty:
                if until is not None and until():
                    break
                continue
            try:
                self.handle(job_id)
            except Exception:
                log.exception("Unexpected worker error for job=%s", job_id)
        log.info("Worker stopped")

    # ------------------------------------------------------------------
    # One job
    # ------------------------------------------------------------------
    def _workspace(self, rec: JobRecord) -> Workspace:
        if rec.base_path:
            return Workspace(root=Path(rec.base_path), job_id=rec.id)
        return Workspace.for_job(self.settings.storage_path, rec.id)

    def _save(self, rec: JobRecord) -> None:
        try:
            self.store.update(rec)
        except JobNotFoundError:
            log.warning("Job %s was deleted while processing; state not saved", rec.id)

    def _cancel_requested(self, job_id: str) -> bool:
        """True when the job was canceled here, flagged on its record, or deleted."""
        if self.queue.is_canceled(job_id):
            return True
        try:
            return self.store.get(job_id).cancel_requested
        except JobNotFoundError:
            return True

    def handle(self, job_id: str) -> JobRecord | None:
        """Process one dequeued id; returns the final record, or None when skipped."""
        jlog = job_logger(__name__, job_id)
        try:
            return self._handle(job_id, jlog)
        finally:
            self.queue.forget(job_id)

    def _handle(self, job_id: str, jlog: JobLogAdapter) -> JobRecord | None:
        if self.queue.is_canceled(job_id):
            jlog.info("Skipping canceled job")
            return None
        try:
            rec = self.store.get(job_id)
        except JobNotFoundError:
            jlog.error("Job record not found; skipping")
            return None
        if rec.cancel_requested or rec.status != JobStatus.PENDING:
            jlog.info("Skipping job in status %s", rec.status.value)
            return None

        workspace = self._workspace(rec)
        rec.base_path = str(workspace.root)
        rec.mark(JobStatus.RUNNING, progress=PROGRESS_START)
        self._save(rec)
        jlog.info("Processing started")

        def report(progress: int) -> None:
            if progress > rec.progress:
                rec.progress = progress
                rec.touch()
                self._save(rec)

        try:
            artifacts = self.pipeline.run(rec.id, rec.request, workspace, report)
        except Exception as exc:
            rec.mark(JobStatus.FAILED, progress=0, error=str(exc))
            jlog.error("Processing failed: %s", exc)
        else:
            rec.result_path = str(artifacts.output.path) if artifacts.output else ""
            rec.mark(JobStatus.SUCCESS, progress=100, error="")
            jlog.info("Processing finished -> %s", rec.result_path)

        if self._cancel_requested(job_id):
            rec.result_path = ""
            rec.mark(JobStatus.CANCELED, progress=0, error=CANCELED_MESSAGE)
            shutil.rmtree(workspace.root, ignore_errors=True)
            jlog.info("Canceled while running; working directory removed")
        self._save(rec)
        return rec
