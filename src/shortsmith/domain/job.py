from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from shortsmith.domain.request import JobRequest
from shortsmith.utils.timing import utc_now


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.SUCCESS, JobStatus.FAILED, JobStatus.CANCELED)


class JobRecord(BaseModel):
    """Persisted state of one job; mutated only by the job service and the worker."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    error_message: str = ""
    result_path: str = ""
    request: JobRequest
    base_path: str = ""
    cancel_requested: bool = False

    def touch(self) -> None:
        self.updated_at = utc_now()

    def mark(self, status: JobStatus, *, progress: int | None = None, error: str | None = None) -> None:
        self.status = status
        if progress is not None:
            self.progress = progress
        if error is not None:
            self.error_message = error
        self.touch()
