"""Wire schemas for the backend opportunity-generation job service."""
from datetime import datetime, timezone
from pydantic import BaseModel, Field, field_validator, model_validator
from opportunity_jobs.schemas.common import JobStatus


class GenerationResult(BaseModel):
    """Payload attached to a completed job."""
    opportunities_created: int = 0
    opportunities_skipped: int = 0
    message: str = ""
    cooldown_message: str | None = None

    model_config = {"extra": "ignore"}


class JobSubmitResponse(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.PENDING
    message: str = ""

    model_config = {"extra": "ignore"}


class JobStatusResponse(BaseModel):
    """Normalized status of one generation job.

    The backend does not guarantee a clean payload, so progress is clamped
    to 0-100 and ``result`` / ``error`` are only kept for the status they
    belong to.
    """
    job_id: str
    status: JobStatus
    progress: int = Field(default=0, ge=0, le=100)
    message: str = ""
    result: GenerationResult | None = None
    error: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"extra": "ignore"}

    @field_validator("status", mode="before")
    @classmethod
    def _lowercase_status(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("progress", mode="before")
    @classmethod
    def _clamp_progress(cls, value):
        if value is None:
            return 0
        try:
            pct = int(float(value))
        except (TypeError, ValueError):
            return 0
        return max(0, min(100, pct))

    @field_validator("message", mode="before")
    @classmethod
    def _message_or_empty(cls, value):
        return value if value is not None else ""

    @model_validator(mode="after")
    def _terminal_payloads(self):
        if self.status != JobStatus.COMPLETED:
            self.result = None
        if self.status != JobStatus.FAILED:
            self.error = None
        return self

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


class PersistedJobRecord(BaseModel):
    """Recovery checkpoint for the job currently tracked by this process."""
    job_id: str = Field(min_length=1)
    search_id: str = Field(min_length=1)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("started_at")
    @classmethod
    def _ensure_utc(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
