"""Client-side orchestration of opportunity-generation jobs."""
from opportunity_jobs.errors import (
    ApiError,
    AuthenticationError,
    ConflictError,
    CooldownError,
    DuplicateJobError,
    JobError,
    JobFailedError,
    JobTimeoutError,
    NotFoundError,
    TransportError,
)
from opportunity_jobs.schemas.common import EventKind, JobStatus, OrchestratorState, OutcomeKind, Severity
from opportunity_jobs.schemas.events import JobEvent, JobOutcome
from opportunity_jobs.schemas.jobs import GenerationResult, JobStatusResponse, JobSubmitResponse, PersistedJobRecord
from opportunity_jobs.services.cooldown import CooldownInterpreter, CooldownSignal, TextCooldownInterpreter
from opportunity_jobs.services.job_store import FileJobStore, MemoryJobStore, PersistedJobStore, RedisJobStore
from opportunity_jobs.services.jobs_api import JobServiceClient
from opportunity_jobs.services.orchestrator import JobOrchestrator
from opportunity_jobs.services.status_poller import StatusPoller

__all__ = [
    "ApiError",
    "AuthenticationError",
    "ConflictError",
    "CooldownError",
    "DuplicateJobError",
    "JobError",
    "JobFailedError",
    "JobTimeoutError",
    "NotFoundError",
    "TransportError",
    "EventKind",
    "JobStatus",
    "OrchestratorState",
    "OutcomeKind",
    "Severity",
    "JobEvent",
    "JobOutcome",
    "GenerationResult",
    "JobStatusResponse",
    "JobSubmitResponse",
    "PersistedJobRecord",
    "CooldownInterpreter",
    "CooldownSignal",
    "TextCooldownInterpreter",
    "FileJobStore",
    "MemoryJobStore",
    "PersistedJobStore",
    "RedisJobStore",
    "JobServiceClient",
    "JobOrchestrator",
    "StatusPoller",
]
