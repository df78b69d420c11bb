"""Test configuration and fixtures."""
from datetime import datetime, timezone

import pytest

from opportunity_jobs.errors import NotFoundError
from opportunity_jobs.schemas.jobs import JobStatusResponse, JobSubmitResponse
from opportunity_jobs.services.job_store import MemoryJobStore
from opportunity_jobs.services.orchestrator import JobOrchestrator

FIXED_NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


def make_status(job_id, status, progress=0, message="", result=None, error=None, created_at=None):
    """Build a job status payload the way the backend returns it."""
    return JobStatusResponse.model_validate({
        "job_id": job_id,
        "status": status,
        "progress": progress,
        "message": message,
        "result": result,
        "error": error,
        "created_at": created_at,
    })


class FakeJobService:
    """Scripted stand-in for JobServiceClient.

    ``script(job_id, *responses)`` queues status responses (or exceptions to
    raise); the last one repeats forever.  Unknown job ids are not found.
    """

    def __init__(self):
        self.statuses: dict[str, list] = {}
        self.active: dict[str, object] = {}
        self.submit_error: Exception | None = None
        self.submit_calls: list[tuple] = []
        self.status_calls: list[str] = []
        self.active_calls: list[str] = []
        self._counter = 0

    def script(self, job_id, *responses):
        self.statuses.setdefault(job_id, []).extend(responses)

    async def submit_job(self, search_id, limit=100, force_refresh=False):
        self.submit_calls.append((search_id, limit, force_refresh))
        if self.submit_error is not None:
            raise self.submit_error
        self._counter += 1
        return JobSubmitResponse(job_id=f"job-{self._counter}", status="pending", message="Job queued")

    async def get_job_status(self, job_id):
        self.status_calls.append(job_id)
        queue = self.statuses.get(job_id)
        if not queue:
            raise NotFoundError(f"Job {job_id} not found")
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def get_active_job_for_search(self, search_id):
        self.active_calls.append(search_id)
        item = self.active.get(search_id)
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def fake_api():
    return FakeJobService()


@pytest.fixture
def store():
    return MemoryJobStore()


@pytest.fixture
def orchestrator(fake_api, store):
    return JobOrchestrator(
        fake_api,
        store,
        poll_interval=0,
        max_attempts=5,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def events(orchestrator):
    received = []
    orchestrator.subscribe(received.append)
    return received
