"""Bounded in-process worker pool for AI processing jobs.

Job rows are the source of truth. The queue only carries job ids, so a job
that is never enqueued (full queue, runner not started, process restart) stays
``pending`` and is picked up by the next recovery sweep. Jobs left ``running``
by a dead process are moved back to ``pending`` once they are older than the
stale threshold, which gives at-least-once execution.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Protocol
from uuid import UUID

from processmaster.domain.jobs import JobStatus, ProcessingJob
from processmaster.errors import JobQueueFullError

_logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Job cancelled"

JobHandler = Callable[[ProcessingJob], Awaitable[dict[str, object]]]


class JobRepository(Protocol):
    """Persistence interface for processing jobs."""

    def create_job(  # noqa: PLR0913
        self,
        user_id: UUID,
        job_type: str,
        input_data: dict[str, object],
        session_id: UUID | None = None,
        guide_id: UUID | None = None,
        status: str = JobStatus.PENDING,
        output_data: dict[str, object] | None = None,
        processing_time: int | None = None,
    ) -> ProcessingJob:
        """Create a job row."""

    def get_job(self, job_id: UUID) -> ProcessingJob | None:
        """Return a job by id, if present."""

    def claim_job(self, job_id: UUID) -> ProcessingJob | None:
        """Move a pending job to running; None when it was not pending."""

    def complete_job(
        self, job_id: UUID, output_data: dict[str, object], processing_time: int
    ) -> ProcessingJob | None:
        """Mark a running job completed; None when it was not running."""

    def fail_job(
        self, job_id: UUID, error_message: str, processing_time: int | None = None
    ) -> ProcessingJob | None:
        """Mark a non-terminal job failed; None when it was already terminal."""

    def latest_job_for_session(self, session_id: UUID) -> ProcessingJob | None:
        """Return the most recently created job for a capture session."""

    def list_pending_jobs(self, limit: int) -> list[ProcessingJob]:
        """Return pending jobs, oldest first."""

    def requeue_stale_jobs(self, started_before: datetime) -> list[ProcessingJob]:
        """Move running jobs started before the cutoff back to pending."""


@dataclass
class JobRunner:
    """Runs job handlers on a fixed number of asyncio workers."""

    repository: JobRepository
    handlers: dict[str, JobHandler] = field(default_factory=dict)
    workers: int = 2
    queue_size: int = 100
    timeout_seconds: float = 600.0
    stale_after_seconds: float = 900.0
    sweep_interval_seconds: float = 60.0
    _queue: asyncio.Queue[UUID] | None = field(default=None, init=False, repr=False)
    _tasks: list[asyncio.Task[None]] = field(default_factory=list, init=False)
    _queued: set[UUID] = field(default_factory=set, init=False)
    _running: dict[UUID, asyncio.Task[dict[str, object]]] = field(
        default_factory=dict, init=False
    )

    def register(self, job_type: str, handler: JobHandler) -> None:
        self.handlers[job_type] = handler

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        """Start workers and the recovery sweep, then recover leftovers."""
        if self._tasks:
            return
        self._queue = asyncio.Queue(maxsize=self.queue_size)
        for index in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(index)))
        self._tasks.append(asyncio.create_task(self._sweep()))
        recovered = await self.recover()
        _logger.info(
            "Job runner started with %s workers (%s jobs recovered)",
            self.workers,
            recovered,
        )

    async def stop(self) -> None:
        """Cancel workers. In-flight jobs stay running until recovered."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._queue = None
        self._queued.clear()

    def submit(self, job_id: UUID) -> None:
        """Enqueue a job id for execution."""
        if self._queue is None:
            _logger.info("Job runner not started; job %s left pending", job_id)
            return
        if job_id in self._queued:
            return
        try:
            self._queue.put_nowait(job_id)
        except asyncio.QueueFull as exc:
            _logger.warning("Job queue full; job %s left pending", job_id)
            raise JobQueueFullError(
                "Job queue is full, the job will be retried",
                details={"jobId": str(job_id)},
            ) from exc
        self._queued.add(job_id)

    async def run_job(self, job_id: UUID) -> ProcessingJob | None:
        """Claim and execute a single job, recording its outcome."""
        job = self.repository.claim_job(job_id)
        if job is None:
            _logger.info("Job %s is no longer pending, skipping", job_id)
            return None
        handler = self.handlers.get(job.job_type)
        if handler is None:
            return self.repository.fail_job(
                job_id, f"No handler registered for job type {job.job_type}"
            )

        started = time.monotonic()
        task = asyncio.create_task(
            asyncio.wait_for(handler(job), timeout=self.timeout_seconds)
        )
        self._running[job_id] = task
        try:
            output = await task
        except asyncio.CancelledError:
            if _cancelling():
                raise
            _logger.info("Job %s cancelled", job_id)
            cancelled = self.repository.fail_job(
                job_id, CANCELLED_MESSAGE, _elapsed_ms(started)
            )
            return cancelled or self.repository.get_job(job_id)
        except TimeoutError:
            _logger.warning("Job %s timed out after %ss", job_id, self.timeout_seconds)
            return self.repository.fail_job(
                job_id,
                f"Job timed out after {self.timeout_seconds:g} seconds",
                _elapsed_ms(started),
            )
        except Exception as exc:
            _logger.exception("Job %s (%s) failed", job_id, job.job_type)
            return self.repository.fail_job(
                job_id, str(exc) or type(exc).__name__, _elapsed_ms(started)
            )
        finally:
            self._running.pop(job_id, None)

        completed = self.repository.complete_job(job_id, output, _elapsed_ms(started))
        if _cancelling():
            # Shutdown raced the handler; the result is kept but stop() must win.
            raise asyncio.CancelledError
        if completed is None:
            _logger.info("Job %s finished after it was cancelled", job_id)
            return self.repository.get_job(job_id)
        _logger.info("Job %s (%s) completed", job_id, job.job_type)
        return completed

    def cancel(self, job_id: UUID) -> ProcessingJob | None:
        """Fail a non-terminal job and stop its handler if it runs here."""
        cancelled = self.repository.fail_job(job_id, CANCELLED_MESSAGE)
        task = self._running.get(job_id)
        if task is not None:
            task.cancel()
        return cancelled

    async def recover(self) -> int:
        """Requeue stale running jobs and enqueue all pending ones."""
        cutoff = datetime.now(tz=UTC) - timedelta(seconds=self.stale_after_seconds)
        for job in self.repository.requeue_stale_jobs(cutoff):
            _logger.warning("Requeued stale job %s (%s)", job.id, job.job_type)
        if self._queue is None:
            return 0
        enqueued = 0
        for job in self.repository.list_pending_jobs(limit=self.queue_size):
            if job.id in self._queued or job.id in self._running:
                continue
            try:
                self.submit(job.id)
            except JobQueueFullError:
                break
            enqueued += 1
        return enqueued

    async def _worker(self, index: int) -> None:
        queue = self._queue
        if queue is None:
            return
        while not _cancelling():
            job_id = await queue.get()
            try:
                await self.run_job(job_id)
            except Exception:
                _logger.exception(
                    "Worker %s failed while running job %s", index, job_id
                )
            finally:
                self._queued.discard(job_id)
                queue.task_done()

    async def _sweep(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                await self.recover()
            except Exception:
                _logger.exception("Job recovery sweep failed")


def _cancelling() -> bool:
    current = asyncio.current_task()
    return current is not None and current.cancelling() > 0


def _elapsed_ms(started: float) -> int:

    return int((time.monotonic() - started) * 1000)
