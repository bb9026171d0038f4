"""
Job API Pydantic schemas.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from textstream.v1.infra.jobs.models import Job


class ProcessTextRequest(BaseModel):
    """Schema for submitting text for processing."""

    text: str = Field(..., min_length=1, description="Text to process")


class JobResponse(BaseModel):
    """Schema for job API responses."""

    id: UUID
    input_text: str
    processed_text: str | None = None
    status: str
    progress_percentage: float
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None
    error_message: str | None = None

    @classmethod
    def from_job(cls, job: Job) -> "JobResponse":
        return cls(
            id=job.id,
            input_text=job.input_text,
            processed_text=job.processed_text,
            status=job.status.value,
            progress_percentage=round(job.get_progress_percentage(), 2),
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            error_message=job.error_message,
        )


class JobListResponse(BaseModel):
    """Schema for job list API response."""

    jobs: list[JobResponse]
    total: int


class JobStatsResponse(BaseModel):
    """Schema for job statistics."""

    total_jobs: int
    by_status: dict[str, int]
    queue_depth: int  # waiting for an execution slot
    active_jobs: int
    capacity: int


class JobCancelResponse(BaseModel):
    """Schema for cancellation responses."""

    job_id: UUID
    status: str
    message: str = "Cancellation requested"
