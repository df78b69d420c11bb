"""Shared enums for job tracking."""
from enum import Enum


# ── Enums ──────────────────────────────────────────────────────────────

class JobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return not self.is_active


class OrchestratorState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    ACTIVE = "active"
    TERMINAL = "terminal"


class OutcomeKind(str, Enum):
    COMPLETED = "completed"
    COOLDOWN = "cooldown"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"
    TRANSPORT_ERROR = "transport_error"


class EventKind(str, Enum):
    STARTED = "started"
    ATTACHED = "attached"
    PROGRESS = "progress"
    COMPLETED = "completed"
    COOLDOWN = "cooldown"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"
    ABANDONED = "abandoned"
    TRANSPORT_ERROR = "transport_error"


class Severity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
