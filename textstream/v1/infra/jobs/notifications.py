"""
Outbound job events.

The worker reports per-character progress and the single terminal outcome of
each job through a ``NotificationSink``. Delivery is best effort: sinks log
their own failures and never raise back into job execution.
"""

from typing import Protocol
from uuid import UUID

from textstream.config.logging import get_logger
from textstream.v1.infra.jobs.models import Job

logger = get_logger(__name__)


class NotificationSink(Protocol):
    """Protocol for push channels that deliver job events to clients."""

    async def unit_processed(
        self, owner_id: str, job_id: UUID, unit: str, progress_percent: float
    ) -> None:
        """One output character was produced."""
        ...

    async def job_completed(self, owner_id: str, job: Job) -> None:
        ...

    async def job_cancelled(self, owner_id: str, job_id: UUID) -> None:
        ...

    async def job_failed(self, owner_id: str, job_id: UUID, error_message: str) -> None:
        ...


class LoggingNotificationSink:
    """Sink that only logs events; used when no push channel is attached."""

    async def unit_processed(
        self, owner_id: str, job_id: UUID, unit: str, progress_percent: float
    ) -> None:
        logger.debug(
            "Unit processed",
            owner_id=owner_id,
            job_id=str(job_id),
            unit=unit,
            progress=round(progress_percent, 2),
        )

    async def job_completed(self, owner_id: str, job: Job) -> None:
        logger.info("Job completed", owner_id=owner_id, job_id=str(job.id))

    async def job_cancelled(self, owner_id: str, job_id: UUID) -> None:
        logger.info("Job cancelled", owner_id=owner_id, job_id=str(job_id))

    async def job_failed(self, owner_id: str, job_id: UUID, error_message: str) -> None:
        logger.warning(
            "Job failed",
            owner_id=owner_id,
            job_id=str(job_id),
            error_message=error_message,
        )
