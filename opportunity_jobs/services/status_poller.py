"""Single status request for a tracked job."""
from __future__ import annotations

import logging

from opportunity_jobs.schemas.jobs import JobStatusResponse
from opportunity_jobs.services.jobs_api import JobServiceClient

logger = logging.getLogger(__name__)


class StatusPoller:
    """Issues one status request per call and returns the normalized record.

    Normalization (progress clamping, result/error exclusivity) happens in
    ``JobStatusResponse``.  ``NotFoundError`` (job vanished) and
    ``TransportError`` (try again later) propagate unchanged so the caller
    can tell them apart.
    """

    def __init__(self, api: JobServiceClient):
        self.api = api

    async def poll(self, job_id: str) -> JobStatusResponse:
        status = await self.api.get_job_status(job_id)
        logger.debug(
            "Job %s: %s %d%% %s", job_id[:8], status.status.value, status.progress, status.message,
        )
        return status
