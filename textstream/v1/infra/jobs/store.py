"""
In-memory job store.

Holds the canonical job table and one cancellation token per job. All access
goes through short critical sections on a single lock; callers always receive
copies, so the only way to change a stored job is through this class.
"""

import threading
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID, uuid4

from textstream.config.logging import get_logger
from textstream.v1.core.exceptions import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
)
from textstream.v1.infra.jobs.models import (
    CancellationToken,
    Job,
    JobStatus,
)
from textstream.v1.processing.transform import estimate_output_length

logger = get_logger(__name__)

# Fields fixed at creation time
_IMMUTABLE_FIELDS = ("id", "input_text", "owner_id", "created_at", "total_units")


class JobStore:
    """
    Thread-safe, volatile job table keyed by job ID.

    Cancellation may be requested from any thread; the job's token wakes its
    waiting event loop safely.
    """

    def __init__(self) -> None:
        self._jobs: dict[UUID, Job] = {}
        self._tokens: dict[UUID, CancellationToken] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._jobs)

    def create(self, input_text: str, owner_id: str) -> Job:
        """
        Create a Pending job and its cancellation token.

        Raises:
            InvalidArgumentError: if the text is empty or whitespace-only, or
                the owner is missing.
        """
        if not input_text or not input_text.strip():
            raise InvalidArgumentError("Input text cannot be null or empty")
        if not owner_id:
            raise InvalidArgumentError("Owner id is required")

        job = Job(
            id=uuid4(),
            input_text=input_text,
            owner_id=owner_id,
            status=JobStatus.PENDING,
            total_units=estimate_output_length(input_text),
        )

        with self._lock:
            self._jobs[job.id] = job
            self._tokens[job.id] = CancellationToken()

        logger.info(
            "Created job",
            job_id=str(job.id),
            owner_id=owner_id,
            input_length=len(input_text),
            total_units=job.total_units,
        )
        return job.model_copy()

    def get(self, job_id: UUID) -> Job | None:
        with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy() if job else None

    def update(self, job: Job) -> Job:
        """
        Replace a stored job wholesale.

        Raises:
            NotFoundError: if the job ID is unknown.
            ConflictError: if the replacement breaks a job invariant.
        """
        with self._lock:
            current = self._jobs.get(job.id)
            if current is None:
                raise NotFoundError(f"Job {job.id} not found")

            self._check_replacement(current, job)
            self._jobs[job.id] = job.model_copy()

        logger.debug("Updated job", job_id=str(job.id), status=job.status.value)
        return job.model_copy()

    def transition(
        self, job_id: UUID, status: JobStatus, **changes: Any
    ) -> Job | None:
        """
        Move a job forward to ``status`` and apply ``changes`` atomically.

        Returns None without changing anything when the job is unknown or the
        transition is not allowed (for instance, the job is already terminal).
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None or not current.can_transition_to(status):
                return None

            candidate = current.model_copy(update={"status": status, **changes})
            self._check_replacement(current, candidate)
            self._jobs[job_id] = candidate

        logger.info(
            "Job status changed",
            job_id=str(job_id),
            from_status=current.status.value,
            to_status=status.value,
        )
        return candidate.model_copy()

    def record_progress(self, job_id: UUID, processed_units: int) -> Job | None:
        """
        Record progress of a Running job.

        The value is clamped to ``total_units`` and never moves backwards.
        Returns the job as stored, or None if the job is unknown.
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                return None
            if current.status != JobStatus.RUNNING:
                return current.model_copy()

            value = max(
                current.processed_units, min(processed_units, current.total_units)
            )
            candidate = current.model_copy(update={"processed_units": value})
            self._jobs[job_id] = candidate
            return candidate.model_copy()

    def try_cancel(self, job_id: UUID) -> JobStatus | None:
        """
        Cancel a Pending or Running job.

        Triggers its cancellation token, marks it Cancelled and sets
        ``completed_at``. Returns the status the job was cancelled from, or
        None when the job is unknown or no longer cancellable.
        """
        with self._lock:
            current = self._jobs.get(job_id)
            if current is None:
                logger.warning(
                    "Attempted to cancel non-existent job", job_id=str(job_id)
                )
                return None

            if not current.can_be_cancelled():
                logger.warning(
                    "Cannot cancel job in current status",
                    job_id=str(job_id),
                    status=current.status.value,
                )
                return None

            token = self._tokens.get(job_id)
            if token is not None:
                token.cancel()

            self._jobs[job_id] = current.model_copy(
                update={
                    "status": JobStatus.CANCELLED,
                    "completed_at": datetime.now(UTC),
                }
            )

        logger.info(
            "Cancelled job", job_id=str(job_id), from_status=current.status.value
        )
        return current.status

    def cancel(self, job_id: UUID) -> bool:
        return self.try_cancel(job_id) is not None

    def get_cancellation_token(self, job_id: UUID) -> CancellationToken | None:
        with self._lock:
            return self._tokens.get(job_id)

    def release_cancellation_token(self, job_id: UUID) -> None:
        """Dispose the token once execution ends; it stays mapped until cleanup."""
        with self._lock:
            token = self._tokens.get(job_id)
            if token is not None:
                token.dispose()

    def list_by_owner(self, owner_id: str) -> list[Job]:
        """All jobs of ``owner_id``, newest first."""
        with self._lock:
            jobs = [
                job.model_copy()
                for job in self._jobs.values()
                if job.owner_id == owner_id
            ]

        jobs.sort(key=lambda job: job.created_at, reverse=True)
        logger.debug("Listed jobs for owner", owner_id=owner_id, count=len(jobs))
        return jobs

    def count_by_status(self, owner_id: str | None = None) -> dict[str, int]:
        counts = {status.value: 0 for status in JobStatus}
        with self._lock:
            for job in self._jobs.values():
                if owner_id is None or job.owner_id == owner_id:
                    counts[job.status.value] += 1
        return counts

    def cleanup_older_than(self, age: timedelta) -> int:
        """
        Remove terminal jobs created more than ``age`` ago.

        Their cancellation tokens are disposed with them. Jobs that are still
        Pending or Running are never removed, however old.
        """
        cutoff = datetime.now(UTC) - age
        removed = 0

        with self._lock:
            expired = [
                job_id
                for job_id, job in self._jobs.items()
                if job.created_at < cutoff and job.is_terminal()
            ]
            for job_id in expired:
                del self._jobs[job_id]
                token = self._tokens.pop(job_id, None)
                if token is not None:
                    token.dispose()
                removed += 1

        if removed > 0:
            logger.info(
                "Cleaned up old jobs",
                removed_count=removed,
                older_than_seconds=age.total_seconds(),
            )
        return removed

    @staticmethod
    def _check_replacement(current: Job, candidate: Job) -> None:
        """Reject replacements that would break a job invariant."""
        for field_name in _IMMUTABLE_FIELDS:
            if getattr(current, field_name) != getattr(candidate, field_name):
                raise ConflictError(
                    f"Job field '{field_name}' cannot be changed",
                    details={"job_id": str(current.id)},
                )

        if candidate.status != current.status and not current.can_transition_to(
            candidate.status
        ):
            raise ConflictError(
                f"Invalid status transition {current.status.value} -> "
                f"{candidate.status.value}",
                details={"job_id": str(current.id)},
            )

        for field_name in ("started_at", "completed_at"):
            current_value = getattr(current, field_name)
            candidate_value = getattr(candidate, field_name)
            if current_value is not None and candidate_value != current_value:
                raise ConflictError(
                    f"Job timestamp '{field_name}' is set once and cannot change",
                    details={"job_id": str(current.id)},
                )

        if candidate.processed_units > candidate.total_units:
            raise ConflictError(
                "processed_units cannot exceed total_units",
                details={"job_id": str(current.id)},
            )
        if candidate.processed_units < current.processed_units:
            raise ConflictError(
                "processed_units cannot decrease",
                details={"job_id": str(current.id)},
            )
