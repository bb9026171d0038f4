"""
Job service: the ingress gate for creating, reading and cancelling jobs.
"""

import logging
from datetime import timedelta
from uuid import UUID

from textstream.config.settings import Settings
from textstream.v1.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    ServiceUnavailableError,
)
from textstream.v1.core.security import authorize_cancel
from textstream.v1.infra.jobs.models import Job, JobStatus
from textstream.v1.infra.jobs.notifications import NotificationSink
from textstream.v1.infra.jobs.schemas import JobStatsResponse
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.infra.jobs.worker import JobWorker

logger = logging.getLogger(__name__)


class JobService:
    """Service for managing background text processing jobs."""

    def __init__(
        self,
        settings: Settings,
        store: JobStore,
        worker: JobWorker,
        notifier: NotificationSink,
    ):
        self.settings = settings
        self.store = store
        self.worker = worker
        self.notifier = notifier

    def create_job(self, text: str | None, owner_id: str) -> Job:
        """
        Validate the input, create a Pending job and queue it.

        Raises:
            InvalidArgumentError: empty, whitespace-only or oversized text.
            ServiceUnavailableError: the worker is shutting down.
        """
        if not text or not text.strip():
            raise InvalidArgumentError("Input text cannot be null or empty")

        if len(text) > self.settings.max_input_length:
            raise InvalidArgumentError(
                f"Input text exceeds maximum length of "
                f"{self.settings.max_input_length} characters",
                details={
                    "length": len(text),
                    "max_length": self.settings.max_input_length,
                },
            )

        job = self.store.create(text, owner_id)
        try:
            self.worker.enqueue(job.id)
        except ServiceUnavailableError:
            # Never leave a job Pending that no worker will pick up
            self.store.try_cancel(job.id)
            raise

        logger.info(
            "Job submitted",
            extra={
                "job_id": str(job.id),
                "owner_id": owner_id,
                "input_length": len(text),
            },
        )
        return job

    def get_job(self, job_id: UUID) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise NotFoundError(
                f"Job {job_id} not found", details={"job_id": str(job_id)}
            )
        return job

    async def cancel_job(self, job_id: UUID, requester_id: str | None) -> Job:
        """
        Cancel a job on behalf of ``requester_id``.

        Checks run in order: existence, ownership, state. A Pending job is
        reported cancelled right away because it will never execute; a Running
        job is reported by the worker once its execution unwinds.

        Raises:
            NotFoundError: unknown job.
            ForbiddenError: requester does not own the job.
            ConflictError: job is already terminal.
        """
        job = self.get_job(job_id)

        if not authorize_cancel(job, requester_id):
            logger.warning(
                "Unauthorized cancellation attempt",
                extra={"job_id": str(job_id), "requester_id": requester_id},
            )
            raise ForbiddenError(
                "Only the submitting connection can cancel this job",
                details={"job_id": str(job_id)},
            )

        previous_status = self.store.try_cancel(job_id)
        if previous_status is None:
            current = self.store.get(job_id)
            state = current.status.value if current else "Unknown"
            raise ConflictError(
                "Cannot cancel job in current state",
                details={"job_id": str(job_id), "status": state},
            )

        if previous_status == JobStatus.PENDING:
            try:
                await self.notifier.job_cancelled(job.owner_id, job_id)
            except Exception:
                logger.exception(
                    "Failed to deliver cancellation notification",
                    extra={"job_id": str(job_id)},
                )

        logger.info(
            "Job cancellation requested",
            extra={"job_id": str(job_id), "from_status": previous_status.value},
        )
        return self.get_job(job_id)

    def list_jobs(self, owner_id: str | None) -> list[Job]:
        """Jobs owned by ``owner_id``, newest first; anonymous callers own none."""
        if not owner_id:
            return []
        return self.store.list_by_owner(owner_id)

    def get_job_stats(self, owner_id: str | None = None) -> JobStatsResponse:
        by_status = self.store.count_by_status(owner_id)
        return JobStatsResponse(
            total_jobs=sum(by_status.values()),
            by_status=by_status,
            queue_depth=self.worker.queue_depth,
            active_jobs=self.worker.active_count,
            capacity=self.worker.capacity,
        )

    def cleanup_old_jobs(self, older_than: timedelta | None = None) -> int:
        """Remove finished jobs older than ``older_than`` (default: retention)."""
        if older_than is None:
            older_than = timedelta(minutes=self.settings.job_retention_minutes)

        removed = self.store.cleanup_older_than(older_than)
        logger.info(
            "Cleaned up old jobs",
            extra={"removed_count": removed, "older_than": str(older_than)},
        )
        return removed
