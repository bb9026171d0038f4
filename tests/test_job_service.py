from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from tests.support import RecordingSink, make_settings
from textstream.v1.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
    ServiceUnavailableError,
)
from textstream.v1.infra.jobs.models import JobStatus
from textstream.v1.infra.jobs.service import JobService
from textstream.v1.infra.jobs.store import JobStore
from textstream.v1.infra.jobs.worker import JobWorker
from textstream.v1.processing.transform import TextProcessor


@pytest.fixture
def service_parts():
    """Service over a worker that is never started, so jobs stay Pending."""
    settings = make_settings(max_input_length=20)
    store = JobStore()
    sink = RecordingSink()
    worker = JobWorker(settings, store, TextProcessor(0, 0), sink)
    return JobService(settings, store, worker, sink), store, worker, sink


class TestCreateJob:
    """Test job submission through the ingress gate."""

    def test_create_enqueues_job(self, service_parts):
        service, store, worker, _ = service_parts

        job = service.create_job("Hello", "conn-1")

        assert job.status == JobStatus.PENDING
        assert job.owner_id == "conn-1"
        assert worker.queue_depth == 1
        assert store.get(job.id) is not None

    @pytest.mark.parametrize("text", [None, "", "   "])
    def test_create_rejects_blank_text(self, service_parts, text):
        service, store, worker, _ = service_parts

        with pytest.raises(InvalidArgumentError, match="cannot be null or empty"):
            service.create_job(text, "conn-1")
        assert len(store) == 0
        assert worker.queue_depth == 0

    def test_create_rejects_oversized_text(self, service_parts):
        service, store, _, _ = service_parts

        with pytest.raises(InvalidArgumentError, match="maximum length of 20"):
            service.create_job("x" * 21, "conn-1")
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_create_while_shutting_down(self, service_parts):
        service, store, worker, _ = service_parts
        await worker.start()
        await worker.stop()

        with pytest.raises(ServiceUnavailableError):
            service.create_job("Hello", "conn-1")

        # The rejected job must not linger as Pending
        assert store.count_by_status()["Pending"] == 0


class TestCancelJob:
    """Test cancellation checks and notifications."""

    @pytest.mark.asyncio
    async def test_cancel_unknown_job(self, service_parts):
        service, _, _, _ = service_parts

        with pytest.raises(NotFoundError):
            await service.cancel_job(uuid4(), "conn-1")

    @pytest.mark.asyncio
    async def test_cancel_by_other_connection(self, service_parts):
        service, store, _, sink = service_parts
        job = service.create_job("Hello", "conn-1")

        with pytest.raises(ForbiddenError):
            await service.cancel_job(job.id, "conn-2")

        assert store.get(job.id).status == JobStatus.PENDING
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_cancel_without_connection(self, service_parts):
        service, _, _, _ = service_parts
        job = service.create_job("Hello", "conn-1")

        with pytest.raises(ForbiddenError):
            await service.cancel_job(job.id, None)

    @pytest.mark.asyncio
    async def test_forbidden_checked_before_state(self, service_parts):
        service, store, _, _ = service_parts
        job = service.create_job("Hello", "conn-1")
        store.cancel(job.id)

        with pytest.raises(ForbiddenError):
            await service.cancel_job(job.id, "conn-2")

    @pytest.mark.asyncio
    async def test_cancel_pending_job_notifies_once(self, service_parts):
        service, _, _, sink = service_parts
        job = service.create_job("Hello", "conn-1")

        cancelled = await service.cancel_job(job.id, "conn-1")

        assert cancelled.status == JobStatus.CANCELLED
        assert cancelled.completed_at is not None
        assert sink.events == [("job_cancelled", job.id)]

    @pytest.mark.asyncio
    async def test_cancel_terminal_job_conflicts(self, service_parts):
        service, _, _, sink = service_parts
        job = service.create_job("Hello", "conn-1")
        first = await service.cancel_job(job.id, "conn-1")

        with pytest.raises(ConflictError, match="Cannot cancel job in current state"):
            await service.cancel_job(job.id, "conn-1")

        assert len(sink.events) == 1
        current = service.get_job(job.id)
        assert current.status == JobStatus.CANCELLED
        assert current.completed_at == first.completed_at

    @pytest.mark.asyncio
    async def test_cancel_completed_job_keeps_timestamps(self, service_parts):
        service, store, _, sink = service_parts
        job = service.create_job("Hello", "conn-1")
        store.transition(job.id, JobStatus.RUNNING, started_at=datetime.now(UTC))
        completed = store.transition(
            job.id,
            JobStatus.COMPLETED,
            processed_text="done",
            completed_at=datetime.now(UTC),
        )

        with pytest.raises(ConflictError):
            await service.cancel_job(job.id, "conn-1")

        current = service.get_job(job.id)
        assert current.status == JobStatus.COMPLETED
        assert current.started_at == completed.started_at
        assert current.completed_at == completed.completed_at
        assert sink.events == []

    @pytest.mark.asyncio
    async def test_cancel_running_job_leaves_notification_to_worker(
        self, service_parts
    ):
        service, store, _, sink = service_parts
        job = service.create_job("Hello", "conn-1")
        store.transition(job.id, JobStatus.RUNNING, started_at=datetime.now(UTC))

        cancelled = await service.cancel_job(job.id, "conn-1")

        assert cancelled.status == JobStatus.CANCELLED
        assert store.get_cancellation_token(job.id).is_cancelled
        assert sink.events == []


class TestQueries:
    """Test lookup, listing, statistics and cleanup."""

    def test_get_job(self, service_parts):
        service, _, _, _ = service_parts
        job = service.create_job("Hello", "conn-1")

        assert service.get_job(job.id).id == job.id
        with pytest.raises(NotFoundError):
            service.get_job(uuid4())

    def test_list_jobs_scoped_to_owner(self, service_parts):
        service, _, _, _ = service_parts
        mine = service.create_job("mine", "conn-1")
        service.create_job("theirs", "conn-2")

        assert [job.id for job in service.list_jobs("conn-1")] == [mine.id]
        assert service.list_jobs(None) == []

    def test_job_stats(self, service_parts):
        service, _, _, _ = service_parts
        service.create_job("one", "conn-1")
        service.create_job("two", "conn-1")
        service.create_job("three", "conn-2")

        stats = service.get_job_stats("conn-1")
        assert stats.total_jobs == 2
        assert stats.by_status["Pending"] == 2
        assert stats.queue_depth == 3
        assert stats.active_jobs == 0
        assert stats.capacity == 2

        assert service.get_job_stats().total_jobs == 3

    @pytest.mark.asyncio
    async def test_cleanup_old_jobs(self, service_parts):
        service, store, _, _ = service_parts
        job = service.create_job("Hello", "conn-1")
        await service.cancel_job(job.id, "conn-1")

        assert service.cleanup_old_jobs() == 0
        assert service.cleanup_old_jobs(older_than=timedelta(seconds=-1)) == 1
        assert store.get(job.id) is None
