"""In-process events and outcomes emitted by the job orchestrator."""
from __future__ import annotations

from dataclasses import dataclass

from opportunity_jobs.errors import JobError
from opportunity_jobs.schemas.common import EventKind, OutcomeKind, Severity
from opportunity_jobs.schemas.jobs import JobStatusResponse
from opportunity_jobs.services.cooldown import CooldownSignal
from opportunity_jobs.utils.time_estimation import JobTimeInfo

_SEVERITY: dict[EventKind, Severity] = {
    EventKind.STARTED: Severity.INFO,
    EventKind.ATTACHED: Severity.INFO,
    EventKind.PROGRESS: Severity.INFO,
    EventKind.COMPLETED: Severity.SUCCESS,
    EventKind.COOLDOWN: Severity.WARNING,
    EventKind.CANCELLED: Severity.WARNING,
    EventKind.FAILED: Severity.ERROR,
    EventKind.TIMED_OUT: Severity.ERROR,
    EventKind.ABANDONED: Severity.ERROR,
    EventKind.TRANSPORT_ERROR: Severity.ERROR,
}


@dataclass
class JobOutcome:
    """Terminal classification of one tracked job."""
    kind: OutcomeKind
    job_id: str
    search_id: str
    status: JobStatusResponse | None = None
    opportunities_created: int = 0
    cooldown: CooldownSignal | None = None
    error: JobError | None = None

    @property
    def succeeded(self) -> bool:
        return self.kind in (OutcomeKind.COMPLETED, OutcomeKind.COOLDOWN)

    @property
    def message(self) -> str:
        if self.error is not None:
            return self.error.message
        if self.kind == OutcomeKind.COMPLETED:
            if self.opportunities_created > 0:
                return f"Generated {self.opportunities_created} new opportunities"
            return "No new opportunities found"
        if self.cooldown is not None:
            return self.cooldown.human_message
        return ""


@dataclass
class JobEvent:
    """One state transition, as seen by the presentation layer."""
    kind: EventKind
    job_id: str
    search_id: str
    progress: int = 0
    message: str = ""
    opportunities_created: int | None = None
    cooldown_message: str | None = None
    error: JobError | None = None
    time_info: JobTimeInfo | None = None

    @property
    def severity(self) -> Severity:
        return _SEVERITY[self.kind]
