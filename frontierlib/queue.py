import asyncio
import enum
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional

from .errors import JobTimeoutError


logger = logging.getLogger(__name__)

Callback = Callable[[Optional[BaseException], Any], None]
Worker = Callable[[Any], Awaitable[Any]]


class JobState(enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    TIMEOUT = "timeout"


class Job:
    def __init__(self, item: Any, callback: Callback):
        self.item = item
        self.callback = callback
        self.state = JobState.QUEUED
        self.task: Optional[asyncio.Task] = None
        self.timer: Optional[asyncio.TimerHandle] = None

    @property
    def settled(self) -> bool:
        return self.state in (JobState.DONE, JobState.ERROR, JobState.TIMEOUT)


class JobQueue:
    """Bounded-concurrency FIFO executor for async work items.

    At most ``concurrency`` items run at once; the rest wait in submission
    order. ``limit`` caps the number of items ever accepted, and
    ``timeout_ms`` bounds how long a running item may take before its
    callback receives a :class:`JobTimeoutError`.

    Each callback is invoked exactly once with ``(error, result)``. Must be
    driven from a running event loop.
    """

    def __init__(self, worker: Worker, concurrency: int = 1, timeout_ms: Optional[int] = None, limit: Optional[int] = None):
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")
        self._worker = worker
        self.concurrency = concurrency
        self.timeout_ms = timeout_ms
        self.limit = limit
        self._waiting: Deque[Job] = deque()
        self._running = 0
        self._accepted = 0

    @property
    def running(self) -> int:
        return self._running

    @property
    def waiting(self) -> int:
        return len(self._waiting)

    @property
    def accepted(self) -> int:
        return self._accepted

    def submit(self, item: Any, callback: Callback) -> bool:
        if self.limit is not None and self._accepted >= self.limit:
            logger.debug("queue limit %d reached, rejecting %s", self.limit, item)
            return False
        self._accepted += 1
        job = Job(item, callback)
        if self._running < self.concurrency:
            self._start(job)
        else:
            self._waiting.append(job)
        return True

    def _start(self, job: Job) -> None:
        loop = asyncio.get_running_loop()
        self._running += 1
        job.state = JobState.RUNNING
        job.task = loop.create_task(self._worker(job.item))
        job.task.add_done_callback(lambda task: self._on_task_done(job, task))
        if self.timeout_ms is not None:
            job.timer = loop.call_later(self.timeout_ms / 1000.0, self._on_timeout, job)

    def _on_task_done(self, job: Job, task: asyncio.Task) -> None:
        if job.settled:
            # late completion of a job that already timed out
            if not task.cancelled() and task.exception() is not None:
                logger.debug("discarding late error for %s: %s", job.item, task.exception())
            return
        if job.timer is not None:
            job.timer.cancel()
        if task.cancelled():
            self._settle(job, JobState.ERROR, asyncio.CancelledError(), None)
        elif task.exception() is not None:
            self._settle(job, JobState.ERROR, task.exception(), None)
        else:
            self._settle(job, JobState.DONE, None, task.result())

    def _on_timeout(self, job: Job) -> None:
        if job.settled:
            return
        if job.task is not None and not job.task.done():
            job.task.cancel()
        self._settle(job, JobState.TIMEOUT, JobTimeoutError(job.item, self.timeout_ms), None)

    def _settle(self, job: Job, state: JobState, error: Optional[BaseException], result: Any) -> None:
        job.state = state
        self._running -= 1
        if self._waiting:
            self._start(self._waiting.popleft())
        job.callback(error, result)
