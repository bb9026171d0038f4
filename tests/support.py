"""Test doubles and polling helpers shared by the test suite."""

import asyncio
import time
from uuid import UUID

from textstream.config.settings import Settings
from textstream.v1.infra.jobs.models import Job, JobStatus
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.processing.transform import TextProcessor


class RecordingSink:
    """Notification sink that records every event in order."""

    def __init__(self):
        self.events: list[tuple] = []

    async def unit_processed(self, owner_id, job_id, unit, progress_percent):
        self.events.append(("unit_processed", job_id, unit, progress_percent))

    async def job_completed(self, owner_id, job):
        self.events.append(("job_completed", job.id, job.processed_text))

    async def job_cancelled(self, owner_id, job_id):
        self.events.append(("job_cancelled", job_id))

    async def job_failed(self, owner_id, job_id, error_message):
        self.events.append(("job_failed", job_id, error_message))

    def for_job(self, job_id: UUID) -> list[tuple]:
        return [event for event in self.events if event[1] == job_id]

    def terminal_events(self, job_id: UUID) -> list[tuple]:
        return [event for event in self.for_job(job_id) if event[0] != "unit_processed"]


class GatedProcessor(TextProcessor):
    """Processor that holds every job until ``gate`` is opened."""

    def __init__(self):
        super().__init__(min_delay_ms=0, max_delay_ms=0)
        self.gate = asyncio.Event()
        self.running = 0
        self.max_running = 0
        self.started: list[str] = []

    async def stream_transform(self, text, on_unit_processed, cancel_token):
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        self.started.append(text)
        try:
            while not self.gate.is_set():
                cancel_token.raise_if_cancelled()
                await asyncio.sleep(0.005)
            return await super().stream_transform(text, on_unit_processed, cancel_token)
        finally:
            self.running -= 1


class FailingProcessor(TextProcessor):
    """Processor that fails every job after its first unit."""

    def __init__(self, message: str = "boom"):
        super().__init__(min_delay_ms=0, max_delay_ms=0)
        self.message = message

    async def stream_transform(self, text, on_unit_processed, cancel_token):
        await on_unit_processed("x", 0, 10)
        raise RuntimeError(self.message)


def make_settings(**overrides) -> Settings:
    values = {
        "job_concurrency": 2,
        "job_poll_interval_ms": 10,
        "job_loop_backoff_ms": 10,
        "unit_delay_min_ms": 0,
        "unit_delay_max_ms": 0,
        "max_input_length": 200,
    }
    values.update(overrides)
    return Settings(**values)


async def wait_for_status(
    store: JobStore, job_id: UUID, *statuses: JobStatus, timeout: float = 3.0
) -> Job:
    """Poll the store until the job reaches one of ``statuses``."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = store.get(job_id)
        if job is not None and job.status in statuses:
            return job
        await asyncio.sleep(0.005)
    raise AssertionError(f"Job {job_id} did not reach {statuses}: {store.get(job_id)}")


async def wait_until(predicate, timeout: float = 3.0) -> None:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("Condition not met in time")


def poll_job(client, job_id: str, *statuses: str, timeout: float = 5.0):
    """Poll the HTTP API until the job reaches one of ``statuses``."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        job = client.get(f"/v1/jobs/{job_id}").json()["data"]
        if job["status"] in statuses:
            return job
        time.sleep(0.01)
    raise AssertionError(f"Job {job_id} did not reach {statuses}")

