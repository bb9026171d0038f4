"""
In-process job worker with a bounded execution pool and cooperative cancellation.
"""

import asyncio
import os
import socket
from collections import deque
from datetime import UTC, datetime, timedelta
from functools import partial
from typing import Any
from uuid import UUID

import structlog

from textstream.config.logging import get_logger
from textstream.config.settings import Settings
from textstream.v1.core.exceptions import (
    OperationCancelledError,
    ServiceUnavailableError,
)
from textstream.v1.infra.jobs.models import CancellationToken, Job, JobStatus
from textstream.v1.infra.jobs.notifications import (
    LoggingNotificationSink,
    NotificationSink,
)
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.processing.transform import TextProcessor

logger = get_logger(__name__)


class JobWorker:
    """
    In-process job worker.

    Features:
    - One admission loop feeding a FIFO queue into at most ``capacity``
      concurrent executions
    - Per-character progress recorded in the store and pushed to the sink
    - Cooperative cancellation through the store's per-job tokens
    - Exactly one terminal notification per executed job
    - Periodic cleanup of old finished jobs
    - Graceful drain of in-flight jobs on shutdown
    """

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        processor: TextProcessor,
        notifier: NotificationSink | None = None,
    ):
        self.settings = settings
        self.store = store
        self.processor = processor
        self.notifier = notifier if notifier is not None else LoggingNotificationSink()
        self.worker_id = f"{socket.gethostname()}-{os.getpid()}-{id(self)}"
        self.running = False
        self.max_observed_active = 0

        self._stopping = False
        self._queue: deque[UUID] = deque()
        self._active: dict[UUID, asyncio.Task] = {}
        self._wakeup = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._cleanup_task: asyncio.Task | None = None

    @property
    def capacity(self) -> int:
        return self.settings.job_concurrency

    @property
    def active_count(self) -> int:
        return len(self._active)

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def is_running(self) -> bool:
        return self.running

    def status(self) -> dict[str, Any]:
        """Snapshot of worker state for health and stats endpoints."""
        return {
            "worker_id": self.worker_id,
            "running": self.running,
            "capacity": self.capacity,
            "active_jobs": self.active_count,
            "queue_depth": self.queue_depth,
            "max_observed_active": self.max_observed_active,
        }

    def enqueue(self, job_id: UUID) -> None:
        """Queue a job for execution in FIFO order."""
        if self._stopping:
            raise ServiceUnavailableError(
                "Job worker is shutting down and not accepting jobs",
                details={"job_id": str(job_id)},
            )

        self._queue.append(job_id)
        self._wakeup.set()

        logger.info(
            "Enqueued job for background processing",
            job_id=str(job_id),
            queue_depth=len(self._queue),
        )

    async def start(self) -> None:
        """Start the admission and cleanup loops."""
        if self.running:
            raise RuntimeError("Worker is already running")

        self.running = True
        self._stopping = False
        logger.info(
            "Starting job worker",
            worker_id=self.worker_id,
            concurrency=self.capacity,
            poll_interval_ms=self.settings.job_poll_interval_ms,
        )

        self._loop_task = asyncio.create_task(
            self._worker_loop(), name="job-worker-loop"
        )
        self._cleanup_task = asyncio.create_task(
            self._cleanup_loop(), name="job-cleanup-loop"
        )

    async def stop(self) -> None:
        """Stop admitting jobs and wait for every in-flight job to finish."""
        if not self.running:
            return

        logger.info("Stopping job worker", worker_id=self.worker_id)
        self._stopping = True
        self.running = False
        self._wakeup.set()

        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None

        in_flight = list(self._active.values())
        if in_flight:
            logger.info(
                "Waiting for active jobs to complete during shutdown",
                active_jobs=len(in_flight),
            )
            await asyncio.gather(*in_flight, return_exceptions=True)

        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

        logger.info(
            "Job worker stopped",
            worker_id=self.worker_id,
            abandoned_queued_jobs=len(self._queue),
        )

    async def _worker_loop(self) -> None:
        """Main loop that admits queued jobs while capacity is free."""
        while self.running:
            try:
                self._wakeup.clear()
                self._admit_jobs()
                await self._wait_for_work()
            except Exception:
                logger.exception(
                    "Error in worker loop", worker_id=self.worker_id
                )
                await asyncio.sleep(self.settings.job_loop_backoff_ms / 1000)

    def _admit_jobs(self) -> None:
        while self._queue and len(self._active) < self.capacity:
            job_id = self._queue.popleft()
            if job_id in self._active:
                logger.warning("Job is already executing", job_id=str(job_id))
                continue

            task = asyncio.create_task(self._process_job(job_id), name=f"job-{job_id}")
            self._active[job_id] = task
            task.add_done_callback(partial(self._reap, job_id))
            self.max_observed_active = max(self.max_observed_active, len(self._active))

            logger.info(
                "Started job execution",
                job_id=str(job_id),
                active_jobs=len(self._active),
                capacity=self.capacity,
            )

    async def _wait_for_work(self) -> None:
        """Sleep until a job arrives, a job finishes, or the poll interval passes."""
        try:
            await asyncio.wait_for(
                self._wakeup.wait(), timeout=self.settings.job_poll_interval_ms / 1000
            )
        except asyncio.TimeoutError:
            pass

    def _reap(self, job_id: UUID, task: asyncio.Task) -> None:
        """Free the execution slot of a finished job."""
        if self._active.get(job_id) is task:
            del self._active[job_id]

        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Job execution ended with an unhandled error",
                job_id=str(job_id),
                exc_info=task.exception(),
            )

        logger.debug(
            "Removed finished job execution",
            job_id=str(job_id),
            active_jobs=len(self._active),
        )
        self._wakeup.set()

    async def _process_job(self, job_id: UUID) -> None:
        """Run one job through the streaming transform and finalize it."""
        with structlog.contextvars.bound_contextvars(job_id=str(job_id)):
            job = self.store.transition(
                job_id, JobStatus.RUNNING, started_at=datetime.now(UTC)
            )
            if job is None:
                # Cancelled while queued, or already cleaned up
                logger.info("Skipping job that is no longer pending")
                self.store.release_cancellation_token(job_id)
                return

            token = self.store.get_cancellation_token(job_id) or CancellationToken()

            async def on_unit_processed(
                character: str, position: int, total: int
            ) -> None:
                updated = self.store.record_progress(job_id, position + 1)
                progress = (
                    updated.get_progress_percentage()
                    if updated is not None
                    else (position + 1) / total * 100.0
                )
                await self._deliver(
                    "unit_processed", job.owner_id, job_id, character, progress
                )

            try:
                logger.info("Processing job started")
                result = await self.processor.stream_transform(
                    job.input_text, on_unit_processed, token
                )

            except OperationCancelledError:
                logger.info("Processing cancelled")
                await self._finish_cancelled(job)

            except asyncio.CancelledError:
                logger.info("Job task cancelled")
                await self._finish_cancelled(job)
                raise

            except Exception as e:
                logger.exception("Job processing failed", error=str(e))
                failed = self.store.transition(
                    job_id,
                    JobStatus.FAILED,
                    error_message=str(e) or e.__class__.__name__,
                    completed_at=datetime.now(UTC),
                )
                if failed is not None:
                    await self._deliver(
                        "job_failed", job.owner_id, job_id, failed.error_message
                    )
                else:
                    await self._finish_cancelled(job)

            else:
                completed = self.store.transition(
                    job_id,
                    JobStatus.COMPLETED,
                    processed_text=result.formatted_result,
                    completed_at=datetime.now(UTC),
                )
                if completed is not None:
                    logger.info("Processing job completed successfully")
                    await self._deliver("job_completed", job.owner_id, completed)
                else:
                    # Cancelled after the last unit but before completion
                    await self._finish_cancelled(job)

            finally:
                self.store.release_cancellation_token(job_id)

    async def _finish_cancelled(self, job: Job) -> None:
        """Mark Cancelled unless an explicit cancel already did, then notify once."""
        self.store.transition(
            job.id, JobStatus.CANCELLED, completed_at=datetime.now(UTC)
        )
        await self._deliver("job_cancelled", job.owner_id, job.id)

    async def _deliver(self, event: str, *args: Any) -> None:
        """Call the sink; delivery problems never affect the job."""
        try:
            await getattr(self.notifier, event)(*args)
        except Exception:
            logger.exception("Notification delivery failed", notification=event)

    async def _cleanup_loop(self) -> None:
        """Remove finished jobs older than the retention period."""
        retention = timedelta(minutes=self.settings.job_retention_minutes)
        while self.running:
            try:
                await asyncio.sleep(self.settings.job_cleanup_interval_s)
                self.store.cleanup_older_than(retention)

            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Error in job cleanup loop")
