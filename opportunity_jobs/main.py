"""Runtime wiring and lifespan management.

Configures logging, picks the checkpoint store, builds the orchestrator,
reconciles any job left over from a previous run, and closes pooled HTTP
clients on shutdown.  Presentation layers enter ``lifespan()`` once and
subscribe to the orchestrator they are handed.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from opportunity_jobs.config import Settings, get_settings
from opportunity_jobs.services.http_client_manager import close_all_clients
from opportunity_jobs.services.job_store import (
    FileJobStore,
    MemoryJobStore,
    PersistedJobStore,
    RedisJobStore,
)
from opportunity_jobs.services.orchestrator import JobOrchestrator


def _setup_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # Suppress noisy third-party HTTP loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_job_store(settings: Settings) -> PersistedJobStore:
    backend = settings.JOB_STORE_BACKEND.lower().strip()
    if backend == "file":
        return FileJobStore(settings.job_store_path)
    if backend == "redis":
        return RedisJobStore(
            settings.REDIS_URL,
            key_prefix=settings.JOB_STORE_KEY_PREFIX,
            socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    if backend == "memory":
        return MemoryJobStore()
    raise ValueError(f"Unknown job store backend: {settings.JOB_STORE_BACKEND}")


def create_orchestrator(settings: Settings | None = None) -> JobOrchestrator:
    settings = settings or get_settings()
    return JobOrchestrator.from_settings(settings, build_job_store(settings))


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    orchestrator: JobOrchestrator | None = None,
) -> AsyncIterator[JobOrchestrator]:
    """Yield a ready orchestrator; on startup, resume or clear any stored job."""
    settings = settings or get_settings()
    _setup_logging(settings.LOG_LEVEL)
    log = logging.getLogger(__name__)

    orchestrator = orchestrator or create_orchestrator(settings)
    status = await orchestrator.recover()
    if status is not None and status.is_active:
        log.info("Resumed tracking job %s", status.job_id)

    try:
        yield orchestrator  # Application runs here
    finally:
        # Local polling stops; the backend job keeps running
        await orchestrator.shutdown()
        await orchestrator.store.close()
        await close_all_clients()
        log.info("Shutting down")
