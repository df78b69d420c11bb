"""Lifecycle orchestration for opportunity-generation jobs.

``JobOrchestrator`` owns at most one tracked job at a time:

    idle ──generate──▶ submitting ──job id──▶ active ──terminal──▶ terminal ──▶ idle
                           │                    ▲  │
                           └── duplicate /      └──┘ poll every interval
                               cooldown / error

It submits the job, persists a recovery checkpoint, polls the status
endpoint on a fixed interval until a terminal state (or the attempt budget
runs out), classifies the outcome (including cooldowns disguised as prose)
and publishes events for the presentation layer.  Stopping local polling
never cancels the remote job.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable

from opportunity_jobs.config import Settings
from opportunity_jobs.errors import (
    ApiError,
    ConflictError,
    CooldownError,
    DuplicateJobError,
    JobError,
    JobFailedError,
    JobTimeoutError,
    NotFoundError,
    TransportError,
)
from opportunity_jobs.schemas.common import EventKind, JobStatus, OrchestratorState, OutcomeKind
from opportunity_jobs.schemas.events import JobEvent, JobOutcome
from opportunity_jobs.schemas.jobs import JobStatusResponse, JobSubmitResponse, PersistedJobRecord
from opportunity_jobs.services.cooldown import CooldownInterpreter, CooldownSignal, TextCooldownInterpreter
from opportunity_jobs.services.job_store import PersistedJobStore
from opportunity_jobs.services.jobs_api import JobServiceClient
from opportunity_jobs.services.progress_broadcaster import Listener, ProgressBroadcaster
from opportunity_jobs.services.status_poller import StatusPoller
from opportunity_jobs.utils.time_estimation import job_time_info

logger = logging.getLogger(__name__)

_OUTCOME_EVENTS: dict[OutcomeKind, EventKind] = {
    OutcomeKind.COMPLETED: EventKind.COMPLETED,
    OutcomeKind.COOLDOWN: EventKind.COOLDOWN,
    OutcomeKind.FAILED: EventKind.FAILED,
    OutcomeKind.CANCELLED: EventKind.CANCELLED,
    OutcomeKind.TIMED_OUT: EventKind.TIMED_OUT,
    OutcomeKind.ABANDONED: EventKind.ABANDONED,
    OutcomeKind.TRANSPORT_ERROR: EventKind.TRANSPORT_ERROR,
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobOrchestrator:
    """State machine for one tracked generation job.

    Inject one instance into whatever presentation layer needs it and
    subscribe to its events; all state lives on the instance.
    """

    def __init__(
        self,
        api: JobServiceClient,
        store: PersistedJobStore,
        interpreter: CooldownInterpreter | None = None,
        broadcaster: ProgressBroadcaster | None = None,
        poll_interval: float = 5.0,
        max_attempts: int = 120,
        default_limit: int = 100,
        clock: Callable[[], datetime] = _utcnow,
    ):
        if poll_interval < 0:
            raise ValueError("poll_interval must be >= 0")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.api = api
        self.poller = StatusPoller(api)
        self.store = store
        self.interpreter = interpreter or TextCooldownInterpreter()
        self.events = broadcaster or ProgressBroadcaster()
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.default_limit = default_limit
        self._clock = clock

        self._state = OrchestratorState.IDLE
        self._search_id: str | None = None
        self._job_id: str | None = None
        self._started_at: datetime | None = None
        self._progress = 0
        self._message = ""
        self._cooldown: CooldownSignal | None = None
        self._last_status: JobStatusResponse | None = None
        self._last_outcome: JobOutcome | None = None
        self._task: asyncio.Task | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: PersistedJobStore,
        api: JobServiceClient | None = None,
        **kwargs,
    ) -> "JobOrchestrator":
        return cls(
            api or JobServiceClient.from_settings(settings),
            store,
            poll_interval=settings.POLL_INTERVAL_SECONDS,
            max_attempts=settings.MAX_POLL_ATTEMPTS,
            default_limit=settings.DEFAULT_GENERATION_LIMIT,
            **kwargs,
        )

    # ── Observable state ───────────────────────────────────────────────

    @property
    def state(self) -> OrchestratorState:
        return self._state

    @property
    def search_id(self) -> str | None:
        return self._search_id

    @property
    def job_id(self) -> str | None:
        return self._job_id

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def progress(self) -> int:
        return self._progress

    @property
    def message(self) -> str:
        return self._message

    @property
    def cooldown(self) -> CooldownSignal | None:
        return self._cooldown

    @property
    def last_status(self) -> JobStatusResponse | None:
        return self._last_status

    @property
    def last_outcome(self) -> JobOutcome | None:
        return self._last_outcome

    @property
    def is_tracking(self) -> bool:
        return self._state in (OrchestratorState.SUBMITTING, OrchestratorState.ACTIVE)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        return self.events.subscribe(listener)

    # ── Public API ─────────────────────────────────────────────────────

    async def generate(
        self,
        search_id: str,
        limit: int | None = None,
        force_refresh: bool = False,
    ) -> JobSubmitResponse:
        """Submit a generation job for *search_id* and start tracking it.

        Raises ``DuplicateJobError`` if a job for the search is already
        active (locally, or according to the backend, in which case the
        orchestrator attaches to that job), ``CooldownError`` when the
        backend refuses with a cooldown, and ``JobFailedError`` /
        ``ApiError`` for other submission failures.
        """
        if not search_id:
            raise ValueError("search_id is required")
        if self.is_tracking and self._search_id == search_id:
            logger.warning("Generation already in progress for search %s (job %s)", search_id, self._job_id)
            raise DuplicateJobError(search_id, self._job_id)

        # Enter SUBMITTING before the first await so a concurrent call sees it
        previous = self._task
        self._task = None
        self._begin(search_id, OrchestratorState.SUBMITTING)
        await self._cancel(previous)

        try:
            active = await self._find_active_job(search_id)
            if active is not None:
                logger.info("Search %s already has active job %s; attaching", search_id, active.job_id)
                await self._attach(active, search_id)
                raise DuplicateJobError(search_id, active.job_id)

            submitted = await self.api.submit_job(
                search_id,
                limit if limit is not None else self.default_limit,
                force_refresh,
            )
        except DuplicateJobError:
            raise
        except ConflictError as e:
            await self._abort_submission(search_id)
            signal = self.interpreter.interpret(e.detail, source="conflict")
            if signal.active:
                logger.warning("Generation for search %s refused by cooldown: %s", search_id, signal.human_message)
                self._cooldown = signal
                raise CooldownError(signal) from e
            raise JobFailedError(e.detail or "Failed to start opportunity generation") from e
        except (JobError, asyncio.CancelledError):
            await self._abort_submission(search_id)
            raise
        except Exception:
            logger.exception("Submitting generation for search %s failed unexpectedly", search_id)
            await self._abort_submission(search_id)
            raise

        record = PersistedJobRecord(job_id=submitted.job_id, search_id=search_id, started_at=self._clock())
        if self._state != OrchestratorState.SUBMITTING or self._search_id != search_id:
            # Stopped or switched away while the request was in flight; the
            # job keeps running remotely and recovery can still find it.
            logger.info("Tracking of search %s stopped during submission; job %s left running", search_id, submitted.job_id)
            if await self.store.load() is None:
                await self.store.save(record)
            return submitted

        await self.store.save(record)
        self._track(record, EventKind.STARTED, message=submitted.message)
        return submitted

    async def wait(self) -> JobOutcome | None:
        """Wait for the current poll loop to reach an outcome.

        Returns the most recent outcome when nothing is being polled, and
        None if polling was stopped before the job finished.
        """
        task = self._task
        if task is None:
            return self._last_outcome
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    async def run(
        self,
        search_id: str,
        limit: int | None = None,
        force_refresh: bool = False,
    ) -> JobOutcome:
        """Generate and wait for completion.

        Returns the outcome for completed jobs and cooldowns; raises the
        classified error for every other terminal outcome.
        """
        await self.generate(search_id, limit, force_refresh)
        outcome = await self.wait()
        if outcome is None:
            raise JobFailedError("Tracking stopped before the job finished", self._job_id)
        if outcome.error is not None and not outcome.error.is_warning:
            raise outcome.error
        return outcome

    async def select_search(self, search_id: str | None) -> JobStatusResponse | None:
        """Switch the tracked search context.

        Local polling for a previous search stops (its checkpoint is left
        alone, the job may still be running) and the backend is asked
        whether the new search already has an active job to attach to.
        """
        if search_id == self._search_id and self.is_tracking:
            return self._last_status

        await self.stop()
        self._search_id = search_id
        self._cooldown = None
        if not search_id:
            return None

        active = await self._find_active_job(search_id)
        if active is None or self._search_id != search_id or self.is_tracking:
            return None
        await self._attach(active, search_id)
        return active

    async def recover(self) -> JobStatusResponse | None:
        """Reconcile the persisted checkpoint after a restart.

        A still-running job is resumed with its original start time.  A job
        that finished or vanished while nobody was watching is cleared
        silently: no completion or failure events are published for it.
        """
        record = await self.store.load()
        if record is None:
            return None
        if self.is_tracking:
            logger.debug("Already tracking job %s; skipping recovery", self._job_id)
            return self._last_status

        try:
            status = await self.poller.poll(record.job_id)
        except NotFoundError:
            logger.info("Stored job %s no longer exists; clearing checkpoint", record.job_id[:8])
            await self.store.clear()
            return None
        except ApiError as e:
            logger.warning("Could not reconcile stored job %s: %s", record.job_id[:8], e)
            return None

        if status.is_terminal:
            logger.info(
                "Stored job %s finished while unobserved (%s); clearing checkpoint",
                record.job_id[:8], status.status.value,
            )
            await self.store.clear()
            return status

        logger.info("Resuming job %s for search %s at %d%%", record.job_id[:8], record.search_id, status.progress)
        await self._cancel_current()
        self._begin(record.search_id, OrchestratorState.ACTIVE)
        self._track(record, EventKind.ATTACHED, status=status)
        return status

    async def stop(self) -> None:
        """Stop local polling; the checkpoint and the remote job are untouched."""
        await self._cancel_current()
        if self.is_tracking:
            logger.info("Stopped tracking job %s for search %s", self._job_id, self._search_id)
            self._state = OrchestratorState.IDLE
            self._job_id = None

    async def discard(self) -> None:
        """Explicit user dismissal: stop polling and forget the checkpoint."""
        await self.stop()
        await self.store.clear()

    async def shutdown(self) -> None:
        await self.stop()

    # ── Internal helpers ───────────────────────────────────────────────

    def _begin(self, search_id: str, state: OrchestratorState) -> None:
        self._state = state
        self._search_id = search_id
        self._job_id = None
        self._started_at = None
        self._progress = 0
        self._message = ""
        self._cooldown = None
        self._last_status = None

    async def _abort_submission(self, search_id: str) -> None:
        if self._state == OrchestratorState.SUBMITTING and self._search_id == search_id:
            self._state = OrchestratorState.IDLE
            await self.store.clear()

    async def _find_active_job(self, search_id: str) -> JobStatusResponse | None:
        try:
            active = await self.api.get_active_job_for_search(search_id)
        except TransportError as e:
            logger.warning("Could not check for an active job on search %s: %s", search_id, e)
            return None
        if active is None or not active.is_active:
            return None
        if not active.job_id:
            logger.warning("Active job reported for search %s without a job id; ignoring", search_id)
            return None
        return active

    async def _attach(self, status: JobStatusResponse, search_id: str) -> None:
        stored = await self.store.load()
        if stored is not None and stored.job_id == status.job_id:
            started_at = stored.started_at
        else:
            started_at = status.created_at or self._clock()
        record = PersistedJobRecord(job_id=status.job_id, search_id=search_id, started_at=started_at)
        await self.store.save(record)
        await self._cancel_current()
        self._begin(search_id, OrchestratorState.ACTIVE)
        self._track(record, EventKind.ATTACHED, status=status)

    def _track(
        self,
        record: PersistedJobRecord,
        kind: EventKind,
        status: JobStatusResponse | None = None,
        message: str = "",
    ) -> None:
        """Enter ACTIVE for *record* and start its poll loop."""
        self._state = OrchestratorState.ACTIVE
        self._search_id = record.search_id
        self._job_id = record.job_id
        self._started_at = record.started_at
        self._message = message
        if status is not None:
            self._apply_status(status)
        self._publish(kind)
        self._task = asyncio.create_task(
            self._run(record.job_id, record.search_id),
            name=f"poll-job-{record.job_id}",
        )

    async def _cancel_current(self) -> None:
        task, self._task = self._task, None
        await self._cancel(task)

    @staticmethod
    async def _cancel(task: asyncio.Task | None) -> None:
        if task is None or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    async def _run(self, job_id: str, search_id: str) -> JobOutcome:
        try:
            return await self._poll_loop(job_id, search_id)
        except asyncio.CancelledError:
            logger.debug("Polling cancelled for job %s", job_id[:8])
            raise
        except Exception:
            logger.exception("Polling job %s crashed", job_id[:8])
            if self._job_id == job_id:
                self._state = OrchestratorState.IDLE
                self._job_id = None
            raise

    async def _poll_loop(self, job_id: str, search_id: str) -> JobOutcome:
        for attempt in range(1, self.max_attempts + 1):
            await asyncio.sleep(self.poll_interval)
            try:
                status = await self.poller.poll(job_id)
            except NotFoundError as e:
                logger.warning("Job %s disappeared while being tracked", job_id[:8])
                return await self._finish(JobOutcome(OutcomeKind.ABANDONED, job_id, search_id, error=e), clear=True)
            except TransportError as e:
                logger.warning(
                    "Status poll %d/%d for job %s failed, retrying next tick: %s",
                    attempt, self.max_attempts, job_id[:8], e,
                )
                continue
            except ApiError as e:
                logger.error("Status poll for job %s failed permanently: %s", job_id[:8], e)
                return await self._finish(
                    JobOutcome(OutcomeKind.TRANSPORT_ERROR, job_id, search_id, error=e), clear=False,
                )

            if status.is_terminal:
                return await self._finish(self._classify(status, job_id, search_id), clear=True)
            self._apply_status(status)
            self._publish(EventKind.PROGRESS)

        logger.error(
            "Job %s still %s after %d polls; giving up",
            job_id[:8], self._last_status.status.value if self._last_status else "unknown", self.max_attempts,
        )
        return await self._finish(
            JobOutcome(
                OutcomeKind.TIMED_OUT, job_id, search_id,
                status=self._last_status,
                error=JobTimeoutError(job_id, self.max_attempts),
            ),
            clear=True,
        )

    def _apply_status(self, status: JobStatusResponse) -> None:
        self._last_status = status
        if status.progress < self._progress:
            logger.debug("Job %s progress went back %d%% -> %d%%", status.job_id[:8], self._progress, status.progress)
        self._progress = max(self._progress, status.progress)
        self._message = status.message
        signal = self.interpreter.interpret(status.message, source="message")
        self._cooldown = signal if signal.active else None

    def _classify(self, status: JobStatusResponse, job_id: str, search_id: str) -> JobOutcome:
        self._last_status = status
        signal = self.interpreter.detect(status)
        cooldown = signal if signal.active else None

        if status.status == JobStatus.COMPLETED:
            created = status.result.opportunities_created if status.result else 0
            return JobOutcome(OutcomeKind.COMPLETED, job_id, search_id, status, created, cooldown)
        if status.status == JobStatus.CANCELLED:
            return JobOutcome(
                OutcomeKind.CANCELLED, job_id, search_id, status,
                error=JobFailedError("Opportunity generation was cancelled", job_id),
            )
        if cooldown is not None:
            return JobOutcome(
                OutcomeKind.COOLDOWN, job_id, search_id, status,
                cooldown=cooldown, error=CooldownError(cooldown),
            )
        return JobOutcome(
            OutcomeKind.FAILED, job_id, search_id, status,
            error=JobFailedError(status.error or "Opportunity generation failed", job_id),
        )

    async def _finish(self, outcome: JobOutcome, clear: bool) -> JobOutcome:
        """Terminal transition: clear the checkpoint, publish, return to idle."""
        # The task handle stays set while the store is awaited so stop() can cancel it
        if clear and self._job_id == outcome.job_id:
            await self.store.clear()
        if self._task is asyncio.current_task():
            self._task = None
        if self._job_id != outcome.job_id:
            return outcome

        self._state = OrchestratorState.TERMINAL
        self._last_outcome = outcome
        if outcome.cooldown is not None:
            self._cooldown = outcome.cooldown
        if outcome.kind == OutcomeKind.COMPLETED:
            self._progress = 100

        self.events.publish(JobEvent(
            kind=_OUTCOME_EVENTS[outcome.kind],
            job_id=outcome.job_id,
            search_id=outcome.search_id,
            progress=self._progress,
            message=outcome.message,
            opportunities_created=outcome.opportunities_created if outcome.kind == OutcomeKind.COMPLETED else None,
            cooldown_message=outcome.cooldown.human_message if outcome.cooldown else None,
            error=outcome.error,
        ))

        self._state = OrchestratorState.IDLE
        self._job_id = None
        return outcome

    def _publish(self, kind: EventKind) -> None:
        time_info = None
        if self._started_at is not None:
            time_info = job_time_info(self._started_at, self._progress, self._clock())
        self.events.publish(JobEvent(
            kind=kind,
            job_id=self._job_id or "",
            search_id=self._search_id or "",
            progress=self._progress,
            message=self._message,
            cooldown_message=self._cooldown.human_message if self._cooldown else None,
            time_info=time_info,
        ))
