"""HTTP caller for the backend opportunity-generation job service.

Provides ``JobServiceClient`` with the three operations the orchestrator
needs (submit, status and active-job lookup) and maps every transport or
HTTP failure onto the ``opportunity_jobs.errors`` taxonomy.

No retry logic lives here; the orchestrator decides what to retry.
"""
from __future__ import annotations

import logging
from typing import Any

import httpx
from pydantic import ValidationError

from opportunity_jobs.config import Settings
from opportunity_jobs.errors import (
    ApiError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    TransportError,
)
from opportunity_jobs.schemas.jobs import JobStatusResponse, JobSubmitResponse
from opportunity_jobs.services.http_client_manager import get_http_client

logger = logging.getLogger(__name__)

GENERATE_PATH = "/api/v1/opportunities/generate"


def extract_error_message(body: Any, status_code: int = 0) -> str:
    """Pull a human-readable message out of an API error body.

    Handles a plain ``detail`` string, a structured ``detail.message``,
    pydantic validation error lists, and a top-level ``message``.
    """
    fallback = f"HTTP {status_code}" if status_code else "An unknown error occurred"
    if not body:
        return fallback
    if isinstance(body, str):
        return body
    if not isinstance(body, dict):
        return fallback

    detail = body.get("detail")
    if isinstance(detail, str) and detail:
        return detail
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if isinstance(detail, list) and detail:
        parts = []
        for err in detail:
            if not isinstance(err, dict):
                continue
            loc = err.get("loc")
            field = ".".join(str(p) for p in loc[1:]) if isinstance(loc, list) else "field"
            parts.append(f"{field}: {err.get('msg', '')}")
        if parts:
            return ", ".join(parts)

    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return fallback


def _raise_for_status(resp: httpx.Response) -> None:
    if resp.is_success:
        return
    try:
        body = resp.json()
    except ValueError:
        body = resp.text
    detail = extract_error_message(body, resp.status_code)
    status = resp.status_code

    if status == 404:
        raise NotFoundError(detail)
    if status == 409:
        raise ConflictError(detail)
    if status in (401, 403):
        raise AuthenticationError(status, detail)
    if status >= 500 or status in (408, 429):
        raise TransportError(detail, status_code=status)
    raise ApiError(status, detail)


class JobServiceClient:
    """Async client for the job submission / status endpoints."""

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: httpx.Timeout | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout or httpx.Timeout(30.0, connect=10.0)
        self._client = client

    @classmethod
    def from_settings(cls, settings: Settings) -> "JobServiceClient":
        return cls(
            settings.API_BASE_URL,
            token=settings.API_TOKEN,
            timeout=httpx.Timeout(
                settings.REQUEST_TIMEOUT_SECONDS,
                connect=settings.CONNECT_TIMEOUT_SECONDS,
            ),
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        return get_http_client(self.base_url, self.timeout)

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _request(self, method: str, path: str, params: dict | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = await self._get_client().request(
                method, url, params=params, headers=self._headers(),
            )
        except httpx.TimeoutException as e:
            raise TransportError(f"Request to {path} timed out") from e
        except httpx.TransportError as e:
            raise TransportError(f"Network error: {type(e).__name__}: {e}") from e

        _raise_for_status(resp)

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise ApiError(resp.status_code, "Failed to parse response") from e

    # ── Operations ─────────────────────────────────────────────────────

    async def submit_job(
        self,
        search_id: str,
        limit: int = 100,
        force_refresh: bool = False,
    ) -> JobSubmitResponse:
        """Start an opportunity-generation job for *search_id*.

        Raises ``ConflictError`` on 409; the caller decides whether that is
        a cooldown.
        """
        params: dict[str, str] = {"keyword_search_id": search_id, "limit": str(limit)}
        if force_refresh:
            params["force_refresh"] = "true"
        logger.info(
            "Submitting generation job: search=%s limit=%d force_refresh=%s",
            search_id, limit, force_refresh,
        )
        data = await self._request("POST", GENERATE_PATH, params=params)
        try:
            return JobSubmitResponse.model_validate(data)
        except ValidationError as e:
            raise ApiError(200, "Submission response did not include a job id") from e

    async def get_job_status(self, job_id: str) -> JobStatusResponse:
        data = await self._request("GET", f"{GENERATE_PATH}/{job_id}/status")
        return _parse_status(data, job_id)

    async def get_active_job_for_search(self, search_id: str) -> JobStatusResponse | None:
        """Return the active job for *search_id*, or None when there is none."""
        try:
            data = await self._request("GET", f"{GENERATE_PATH}/active/{search_id}")
        except NotFoundError:
            return None
        if not isinstance(data, dict) or not data.get("job_id"):
            if data:
                logger.warning("Active job payload for search %s has no job id; ignoring", search_id)
            return None
        return _parse_status(data, str(data["job_id"]))


def _parse_status(data: Any, job_id: str) -> JobStatusResponse:
    if isinstance(data, dict) and "job_id" not in data:
        data = {**data, "job_id": job_id}
    try:
        return JobStatusResponse.model_validate(data)
    except ValidationError as e:
        logger.warning("Malformed status payload for job %s: %s", job_id, e)
        raise ApiError(200, f"Malformed status payload for job {job_id}") from e
