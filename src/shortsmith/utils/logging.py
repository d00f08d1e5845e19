from __future__ import annotations

import logging
from typing import Optional


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    logger = logging.getLogger(name)
    if level:
        logger.setLevel(getattr(logging, level.upper(), logger.level))
    return logger


class JobLogAdapter(logging.LoggerAdapter):
    """Prefixes every message with `job=<id>` so interleaved runs stay readable."""

    def process(self, msg, kwargs):  # noqa: ANN001
        return f"job={self.extra['job_id']} {msg}", kwargs


def job_logger(name: str, job_id: str) -> JobLogAdapter:
    return JobLogAdapter(get_logger(name), {"job_id": job_id})
