"""Error taxonomy for opportunity-generation jobs.

Every failure the orchestrator can hit is resolved to one of these before it
reaches the presentation layer, so callers never have to inspect raw backend
text themselves.

    JobError
    ├── ApiError                 HTTP-level failure talking to the job service
    │   ├── TransportError       network / timeout / 5xx, retried next tick
    │   ├── NotFoundError        job vanished, terminal abandonment
    │   ├── ConflictError        409 on submission, cooldown candidate
    │   └── AuthenticationError  401 / 403
    ├── DuplicateJobError        a job for the search is already active
    ├── CooldownError            backend-imposed rate limit (warning)
    ├── JobTimeoutError          poll budget exhausted
    └── JobFailedError           backend explicitly reported failure
"""
from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from opportunity_jobs.services.cooldown import CooldownSignal


class JobError(Exception):
    """Base class for all orchestrator errors."""

    #: warnings are non-blocking for the user; everything else is an error toast
    is_warning = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ApiError(JobError):
    def __init__(self, status_code: int, detail: str):
        super().__init__(detail)
        self.status_code = status_code
        self.detail = detail


class TransportError(ApiError):
    """Transient failure: connection refused, timeout, or 5xx."""

    def __init__(self, detail: str, status_code: int = 0):
        super().__init__(status_code, detail)


class NotFoundError(ApiError):
    def __init__(self, detail: str = "Job not found"):
        super().__init__(404, detail)


class ConflictError(ApiError):
    def __init__(self, detail: str):
        super().__init__(409, detail)


class AuthenticationError(ApiError):
    pass


class DuplicateJobError(JobError):
    is_warning = True

    def __init__(self, search_id: str, job_id: str | None = None):
        super().__init__("Opportunity generation is already in progress for this search")
        self.search_id = search_id
        self.job_id = job_id


class CooldownError(JobError):
    is_warning = True

    def __init__(self, signal: CooldownSignal):
        super().__init__(signal.human_message)
        self.signal = signal


class JobTimeoutError(JobError):
    def __init__(self, job_id: str, attempts: int):
        super().__init__("Opportunity generation timed out")
        self.job_id = job_id
        self.attempts = attempts


class JobFailedError(JobError):
    def __init__(self, message: str = "Opportunity generation failed", job_id: str | None = None):
        super().__init__(message)
        self.job_id = job_id
