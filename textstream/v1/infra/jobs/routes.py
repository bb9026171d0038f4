"""
Job API endpoints.

Provides text submission, job inspection, listing and cancellation. Ownership
is carried by the opaque connection identifier header.
"""

import logging
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from textstream.v1.core.exceptions import create_success_response
from textstream.v1.core.security import (
    ConnectionDep,
    ConnectionIdentity,
    SubmittingConnectionDep,
)
from textstream.v1.infra.jobs.schemas import (
    JobCancelResponse,
    JobListResponse,
    JobResponse,
    ProcessTextRequest,
)
from textstream.v1.infra.jobs.service import JobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_job_service(request: Request) -> JobService:
    """Dependency returning the application's job service."""
    return request.app.state.job_service


JobServiceDep = Depends(get_job_service)


@router.post("", response_model=dict, status_code=status.HTTP_201_CREATED)
async def process_text(
    body: ProcessTextRequest,
    response: Response,
    connection: ConnectionIdentity = SubmittingConnectionDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Submit text for background processing."""

    job = service.create_job(body.text, connection.connection_id)

    # Echo the owner so anonymous callers learn the identifier they now hold
    response.headers[service.settings.connection_header] = connection.connection_id

    logger.info(
        "Job created via API",
        extra={
            "job_id": str(job.id),
            "owner_id": connection.connection_id,
            "generated_connection": connection.generated,
        },
    )

    return create_success_response(
        data=JobResponse.from_job(job).model_dump(mode="json"),
        message="Job created",
    )


@router.get("", response_model=dict)
async def list_jobs(
    connection: ConnectionIdentity = ConnectionDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """List the caller's jobs, newest first."""

    jobs = service.list_jobs(connection.connection_id)
    response_data = JobListResponse(
        jobs=[JobResponse.from_job(job) for job in jobs],
        total=len(jobs),
    )

    return create_success_response(data=response_data.model_dump(mode="json"))


@router.get("/stats/overview", response_model=dict)
async def get_job_stats(
    connection: ConnectionIdentity = ConnectionDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Get job statistics for the caller."""

    stats = service.get_job_stats(connection.connection_id)
    return create_success_response(data=stats.model_dump())


@router.get("/{job_id}", response_model=dict)
async def get_job(
    job_id: UUID,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Get a specific job by ID."""

    job = service.get_job(job_id)
    return create_success_response(
        data=JobResponse.from_job(job).model_dump(mode="json")
    )


@router.post(
    "/{job_id}/cancel", response_model=dict, status_code=status.HTTP_202_ACCEPTED
)
async def cancel_job(
    job_id: UUID,
    connection: ConnectionIdentity = ConnectionDep,
    service: JobService = JobServiceDep,
) -> dict[str, Any]:
    """Request cancellation of a Pending or Running job."""

    job = await service.cancel_job(job_id, connection.connection_id)

    logger.info(
        "Job cancelled via API",
        extra={"job_id": str(job_id), "owner_id": connection.connection_id},
    )

    response_data = JobCancelResponse(job_id=job.id, status=job.status.value)
    return create_success_response(data=response_data.model_dump(mode="json"))
