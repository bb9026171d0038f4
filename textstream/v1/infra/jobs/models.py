"""
Job models for in-memory background text processing.
"""

import asyncio
import threading
from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from textstream.v1.core.exceptions import OperationCancelledError


class JobStatus(str, Enum):
    """Job status enumeration."""

    PENDING = "Pending"
    RUNNING = "Running"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


TERMINAL_STATUSES = frozenset(
    {JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED}
)
CANCELLABLE_STATUSES = frozenset({JobStatus.PENDING, JobStatus.RUNNING})

# Forward-only state machine; terminal states have no outgoing edges
ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED}),
    JobStatus.RUNNING: frozenset(
        {JobStatus.COMPLETED, JobStatus.CANCELLED, JobStatus.FAILED}
    ),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
    JobStatus.FAILED: frozenset(),
}


class Job(BaseModel):
    """
    One text-processing request tracked end to end.

    Provides:
    - Forward-only status lifecycle (see ``ALLOWED_TRANSITIONS``)
    - Progress tracking in output characters (units)
    - Ownership by the submitting connection
    """

    id: UUID = Field(default_factory=uuid4)
    input_text: str
    processed_text: str | None = None
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    started_at: datetime | None = None
    completed_at: datetime | None = None
    total_units: int = Field(default=0, ge=0)
    processed_units: int = Field(default=0, ge=0)
    error_message: str | None = None
    owner_id: str

    def is_terminal(self) -> bool:
        """Check if job is in a final state (completed, cancelled, failed)."""
        return self.status in TERMINAL_STATUSES

    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATUSES

    def can_transition_to(self, status: JobStatus) -> bool:
        return status in ALLOWED_TRANSITIONS[self.status]

    def get_progress_percentage(self) -> float:
        """Processed units as a percentage of the total."""
        if self.total_units <= 0:
            return 0.0
        return min(100.0, (self.processed_units / self.total_units) * 100.0)

    def duration_seconds(self) -> float | None:
        if self.started_at is None or self.completed_at is None:
            return None
        return (self.completed_at - self.started_at).total_seconds()


class CancellationToken:
    """
    Per-job cooperative cancellation signal.

    Created together with its job by the store. Execution code polls
    ``is_cancelled`` / ``raise_if_cancelled`` or waits on it; the public
    cancel path calls ``cancel``. Cancelling twice, or after ``dispose``,
    does nothing.

    ``cancel`` may be called from any thread. The waiter's event loop is
    recorded by ``wait`` and woken through ``call_soon_threadsafe``.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._lock = threading.Lock()
        self._cancelled = False
        self._disposed = False
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_disposed(self) -> bool:
        return self._disposed

    def cancel(self) -> bool:
        """Trigger the signal. Returns True only on the first effective call."""
        with self._lock:
            if self._disposed or self._cancelled:
                return False
            self._cancelled = True
            loop = self._loop

        if loop is None or loop.is_closed() or _running_loop() is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelledError("Operation was cancelled")

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until cancelled or ``timeout`` elapses. Returns ``is_cancelled``."""
        with self._lock:
            self._loop = asyncio.get_running_loop()
            if self._cancelled:
                self._event.set()

        if timeout is None:
            await self._event.wait()
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            pass
        return self._cancelled

    def dispose(self) -> None:
        self._disposed = True


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None
