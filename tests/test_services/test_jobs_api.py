"""Tests for the job service HTTP client and its error mapping."""
import httpx
import pytest

from opportunity_jobs.errors import (
    ApiError,
    AuthenticationError,
    ConflictError,
    CooldownError,
    NotFoundError,
    TransportError,
)
from opportunity_jobs.schemas.common import JobStatus
from opportunity_jobs.services.job_store import MemoryJobStore
from opportunity_jobs.services.jobs_api import JobServiceClient, extract_error_message
from opportunity_jobs.services.orchestrator import JobOrchestrator
from opportunity_jobs.services.status_poller import StatusPoller


def make_client(handler, token="secret"):
    return JobServiceClient(
        "http://api.test/",
        token=token,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


class TestSubmitJob:
    @pytest.mark.anyio
    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"job_id": "job-1", "status": "pending", "message": "Job queued"})

        resp = await make_client(handler).submit_job("S1", limit=50)

        assert resp.job_id == "job-1"
        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/api/v1/opportunities/generate"
        assert request.url.params["keyword_search_id"] == "S1"
        assert request.url.params["limit"] == "50"
        assert "force_refresh" not in request.url.params
        assert request.headers["Authorization"] == "Bearer secret"

    @pytest.mark.anyio
    async def test_force_refresh_flag(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"job_id": "job-1"})

        await make_client(handler, token="").submit_job("S1", force_refresh=True)

        assert seen[0].url.params["force_refresh"] == "true"
        assert "Authorization" not in seen[0].headers

    @pytest.mark.anyio
    async def test_conflict(self):
        client = make_client(lambda r: httpx.Response(409, json={"detail": "Cooldown: Wait 3 more minutes"}))
        with pytest.raises(ConflictError) as exc:
            await client.submit_job("S1")
        assert exc.value.detail == "Cooldown: Wait 3 more minutes"

    @pytest.mark.anyio
    async def test_missing_job_id(self):
        client = make_client(lambda r: httpx.Response(200, json={"status": "pending"}))
        with pytest.raises(ApiError):
            await client.submit_job("S1")


class TestGetJobStatus:
    @pytest.mark.anyio
    async def test_normalizes_payload(self):
        def handler(request):
            assert request.url.path == "/api/v1/opportunities/generate/job-1/status"
            return httpx.Response(200, json={
                "job_id": "job-1",
                "status": "PROCESSING",
                "progress": 140,
                "message": None,
                "result": {"opportunities_created": 3},
                "error": "stale",
            })

        status = await make_client(handler).get_job_status("job-1")

        assert status.status == JobStatus.PROCESSING
        assert status.progress == 100
        assert status.message == ""
        assert status.result is None
        assert status.error is None

    @pytest.mark.anyio
    async def test_not_found(self):
        client = make_client(lambda r: httpx.Response(404, json={"detail": "Job not found"}))
        with pytest.raises(NotFoundError):
            await client.get_job_status("job-1")

    @pytest.mark.anyio
    async def test_server_error_is_transient(self):
        client = make_client(lambda r: httpx.Response(503, text="upstream down"))
        with pytest.raises(TransportError) as exc:
            await client.get_job_status("job-1")
        assert exc.value.status_code == 503

    @pytest.mark.anyio
    async def test_network_error_is_transient(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(TransportError):
            await make_client(handler).get_job_status("job-1")

    @pytest.mark.anyio
    async def test_timeout_is_transient(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(TransportError):
            await make_client(handler).get_job_status("job-1")

    @pytest.mark.anyio
    async def test_unauthorized(self):
        client = make_client(lambda r: httpx.Response(401, json={"detail": "Authentication required"}))
        with pytest.raises(AuthenticationError) as exc:
            await client.get_job_status("job-1")
        assert exc.value.status_code == 401

    @pytest.mark.anyio
    async def test_malformed_payload(self):
        client = make_client(lambda r: httpx.Response(200, json={"job_id": "job-1", "status": "exploded"}))
        with pytest.raises(ApiError):
            await client.get_job_status("job-1")

    @pytest.mark.anyio
    async def test_poller_passes_status_through(self):
        client = make_client(lambda r: httpx.Response(200, json={"job_id": "job-1", "status": "pending"}))
        status = await StatusPoller(client).poll("job-1")
        assert status.is_active


class TestGetActiveJob:
    @pytest.mark.anyio
    async def test_none_when_not_found(self):
        client = make_client(lambda r: httpx.Response(404, json={"detail": "No active job"}))
        assert await client.get_active_job_for_search("S1") is None

    @pytest.mark.anyio
    async def test_returns_active_job(self):
        def handler(request):
            assert request.url.path == "/api/v1/opportunities/generate/active/S1"
            return httpx.Response(200, json={"job_id": "job-4", "status": "processing", "progress": 10})

        job = await make_client(handler).get_active_job_for_search("S1")
        assert job.job_id == "job-4"
        assert job.is_active

    @pytest.mark.anyio
    async def test_payload_without_job_id_is_ignored(self):
        client = make_client(lambda r: httpx.Response(200, json={"status": "processing", "progress": 10}))
        assert await client.get_active_job_for_search("S1") is None

        client = make_client(lambda r: httpx.Response(200, json={"job_id": "", "status": "processing"}))
        assert await client.get_active_job_for_search("S1") is None


class TestExtractErrorMessage:
    def test_string_detail(self):
        assert extract_error_message({"detail": "Bad request"}) == "Bad request"

    def test_structured_detail(self):
        assert extract_error_message({"detail": {"message": "Plan limit reached", "error_code": "X"}}) == "Plan limit reached"

    def test_validation_errors(self):
        body = {"detail": [
            {"loc": ["query", "limit"], "msg": "must be positive"},
            {"loc": ["query", "keyword_search_id"], "msg": "field required"},
        ]}
        assert extract_error_message(body) == "limit: must be positive, keyword_search_id: field required"

    def test_message_field(self):
        assert extract_error_message({"message": "Try again"}) == "Try again"

    def test_fallback(self):
        assert extract_error_message({}, 502) == "HTTP 502"
        assert extract_error_message(None) == "An unknown error occurred"


class TestOrchestratorOverHttp:
    @pytest.mark.anyio
    async def test_conflict_cooldown_end_to_end(self):
        def handler(request):
            if "/active/" in request.url.path:
                return httpx.Response(404, json={"detail": "No active job"})
            return httpx.Response(409, json={"detail": "Cooldown: Wait 3 more minutes"})

        store = MemoryJobStore()
        orchestrator = JobOrchestrator(make_client(handler), store, poll_interval=0)

        with pytest.raises(CooldownError) as exc:
            await orchestrator.generate("S1")

        assert "3" in str(exc.value)
        assert "minutes" in str(exc.value)
        assert orchestrator.job_id is None
        assert (await store.load()) is None
