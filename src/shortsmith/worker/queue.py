from __future__ import annotations

import queue
import threading


class JobQueue:
    """
    Bounded FIFO of job ids with a cancellation set.

    `push` blocks while the queue is full. Cancellation only marks an id;
    the worker checks the mark when it dequeues the id and again when a
    running job finishes, then forgets it.
    """

    def __init__(self, size: int = 10) -> None:
        self._q: queue.Queue[str] = queue.Queue(maxsize=max(1, int(size)))
        self._cancel: set[str] = set()
        self._cancel_lock = threading.Lock()

    def push(self, job_id: str) -> None:
        self._q.put(job_id)

    def pop(self, timeout: float | None = None) -> str:
        """Block until an id is available; raises `queue.Empty` only when `timeout` elapses."""
        return self._q.get(timeout=timeout)

    def cancel(self, job_id: str) -> None:
        with self._cancel_lock:
            self._cancel.add(job_id)

    def is_canceled(self, job_id: str) -> bool:
        with self._cancel_lock:
            return job_id in self._cancel

    def forget(self, job_id: str) -> None:
        with self._cancel_lock:
            self._cancel.discard(job_id)

    def __len__(self) -> int:
        return self._q.qsize()
