import os
import tempfile
from collections.abc import Generator

# Keep CLI configuration away from the real home directory
os.environ.setdefault("TEXTSTREAM_CONFIG_DIR", tempfile.mkdtemp(prefix="textstream-"))

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from tests.support import RecordingSink, make_settings  # noqa: E402
from textstream.config.settings import Settings  # noqa: E402
from textstream.main import create_app  # noqa: E402
from textstream.v1.infra.jobs.store import JobStore  # noqa: E402
from textstream.v1.infra.jobs.worker import JobWorker  # noqa: E402
from textstream.v1.processing.transform import TextProcessor  # noqa: E402


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> JobStore:
    return JobStore()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def processor() -> TextProcessor:
    return TextProcessor(min_delay_ms=0, max_delay_ms=0)


@pytest.fixture
async def worker(test_settings, store, processor, sink):
    """Started worker backed by the shared store and recording sink."""
    job_worker = JobWorker(test_settings, store, processor, sink)
    await job_worker.start()
    yield job_worker
    await job_worker.stop()


@pytest.fixture
def app(test_settings):
    """Create a test FastAPI application with instant processing."""
    return create_app(test_settings)


@pytest.fixture
def client(app) -> Generator[TestClient, None, None]:
    """Create a test client; the worker runs for the client's lifetime."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def slow_client() -> Generator[TestClient, None, None]:
    """Test client whose jobs take about 100 ms per output character."""
    slow_app = create_app(make_settings(unit_delay_min_ms=100, unit_delay_max_ms=100))
    with TestClient(slow_app) as test_client:
        yield test_client


@pytest.fixture
def connection_headers() -> dict[str, str]:
    return {"X-Connection-ID": "conn-test-1"}
