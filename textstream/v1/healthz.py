from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

from textstream.v1.core.exceptions import create_success_response
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.infra.jobs.worker import JobWorker

router = APIRouter()


class WorkerHealth(BaseModel):
    """Worker health status."""

    running: bool
    capacity: int
    active_jobs: int = 0
    queue_depth: int = 0
    total_jobs: int = 0


class HealthResponse(BaseModel):
    """Health response with worker status."""

    ok: bool
    version: str
    environment: str
    timestamp: str
    worker: WorkerHealth


@router.get("/healthz", response_model=dict)
async def health_check(request: Request):
    """Health check endpoint with worker and queue status."""

    settings = request.app.state.settings
    worker_health = _check_worker_health(
        request.app.state.worker, request.app.state.job_store
    )

    health_data = HealthResponse(
        ok=worker_health.running,
        version=settings.version,
        environment=settings.environment,
        timestamp=datetime.now(UTC).isoformat(),
        worker=worker_health,
    )

    return create_success_response(data=health_data.model_dump())


def _check_worker_health(worker: JobWorker, store: JobStore) -> WorkerHealth:
    return WorkerHealth(
        running=worker.is_running,
        capacity=worker.capacity,
        active_jobs=worker.active_count,
        queue_depth=worker.queue_depth,
        total_jobs=len(store),
    )
