"""Persisted recovery checkpoint for the active generation job.

Stores the triple ``(job_id, search_id, started_at)`` so a restarted process
can resume tracking.  Persistence is a recovery optimization, not a
correctness requirement: every store degrades to "no recovery" (log and
carry on) when its backend is unavailable instead of raising.

The three values are always written and removed together; a partial triple
found on load is treated as absent.
"""
from __future__ import annotations

import asyncio
import json
import logging
import os
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path

import redis
import redis.asyncio as aioredis
from pydantic import ValidationError

from opportunity_jobs.schemas.jobs import PersistedJobRecord

logger = logging.getLogger(__name__)

JOB_ID_KEY = "active_job_id"
SEARCH_ID_KEY = "active_job_search_id"
STARTED_AT_KEY = "active_job_started_at"
_KEYS = (JOB_ID_KEY, SEARCH_ID_KEY, STARTED_AT_KEY)


def _to_fields(record: PersistedJobRecord) -> dict[str, str]:
    return {
        JOB_ID_KEY: record.job_id,
        SEARCH_ID_KEY: record.search_id,
        STARTED_AT_KEY: record.started_at.isoformat(),
    }


def _from_fields(fields: dict) -> PersistedJobRecord | None:
    """Build a record from the stored triple; None if any part is missing."""
    values = [fields.get(k) for k in _KEYS]
    if not all(values):
        return None
    try:
        return PersistedJobRecord(
            job_id=str(values[0]),
            search_id=str(values[1]),
            started_at=datetime.fromisoformat(str(values[2])),
        )
    except (ValueError, ValidationError):
        return None


class PersistedJobStore(ABC):
    """Single-slot store for the job this process is tracking."""

    @abstractmethod
    async def save(self, record: PersistedJobRecord) -> None:
        ...

    @abstractmethod
    async def load(self) -> PersistedJobRecord | None:
        ...

    @abstractmethod
    async def clear(self) -> None:
        ...

    async def close(self) -> None:
        """Release backend connections; the stored record is kept."""


class MemoryJobStore(PersistedJobStore):
    """Process-local store; nothing survives a restart."""

    def __init__(self):
        self._fields: dict[str, str] = {}

    async def save(self, record: PersistedJobRecord) -> None:
        self._fields = _to_fields(record)

    async def load(self) -> PersistedJobRecord | None:
        return _from_fields(self._fields)

    async def clear(self) -> None:
        self._fields = {}


class FileJobStore(PersistedJobStore):
    """JSON document on local disk, replaced atomically on every write.

    Disk access runs in a worker thread so a slow filesystem never stalls
    the event loop.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def save(self, record: PersistedJobRecord) -> None:
        await asyncio.to_thread(self._write, _to_fields(record))

    async def load(self) -> PersistedJobRecord | None:
        return await asyncio.to_thread(self._read)

    async def clear(self) -> None:
        await asyncio.to_thread(self._remove)

    def _write(self, fields: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(fields, indent=2), encoding="utf-8")
            os.replace(tmp, self.path)
        except OSError as e:
            logger.warning("Could not persist active job to %s: %s", self.path, e)
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                logger.debug("Could not remove temporary checkpoint %s", tmp)

    def _read(self) -> PersistedJobRecord | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning("Could not read active job from %s: %s", self.path, e)
            return None

        try:
            fields = json.loads(raw)
        except ValueError:
            fields = None
        record = _from_fields(fields) if isinstance(fields, dict) else None
        if record is None:
            logger.warning("Discarding unreadable job checkpoint at %s", self.path)
            self._remove()
        return record

    def _remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove job checkpoint %s: %s", self.path, e)


class RedisJobStore(PersistedJobStore):
    """Three co-located Redis keys, written and deleted in one transaction."""

    def __init__(
        self,
        redis_url: str,
        key_prefix: str = "opportunity_jobs:",
        socket_timeout: float = 2.0,
    ):
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None
        self.key_prefix = key_prefix
        self.socket_timeout = socket_timeout

    # ── Redis connection (lazy, tolerant of failure) ───────────────────

    @property
    def redis_client(self) -> aioredis.Redis | None:
        if self._redis is None:
            try:
                self._redis = aioredis.from_url(
                    self._redis_url,
                    decode_responses=True,
                    socket_timeout=self.socket_timeout,
                    socket_connect_timeout=self.socket_timeout,
                )
            except (redis.RedisError, ValueError) as e:
                logger.warning("Could not connect to Redis for job checkpoints: %s", e)
        return self._redis

    def _key(self, name: str) -> str:
        return f"{self.key_prefix}{name}"

    # ── Public API ─────────────────────────────────────────────────────

    async def save(self, record: PersistedJobRecord) -> None:
        rc = self.redis_client
        if rc is None:
            return
        try:
            pipe = rc.pipeline(transaction=True)
            for name, value in _to_fields(record).items():
                pipe.set(self._key(name), value)
            await pipe.execute()
        except (redis.RedisError, OSError) as e:
            logger.warning("Could not persist active job to Redis: %s", e)

    async def load(self) -> PersistedJobRecord | None:
        rc = self.redis_client
        if rc is None:
            return None
        try:
            values = await rc.mget([self._key(k) for k in _KEYS])
        except (redis.RedisError, OSError) as e:
            logger.warning("Could not read active job from Redis: %s", e)
            return None

        if not any(values):
            return None
        record = _from_fields(dict(zip(_KEYS, values)))
        if record is None:
            logger.warning("Discarding partial job checkpoint in Redis")
            await self.clear()
        return record

    async def clear(self) -> None:
        rc = self.redis_client
        if rc is None:
            return
        try:
            await rc.delete(*(self._key(k) for k in _KEYS))
        except (redis.RedisError, OSError) as e:
            logger.warning("Could not clear job checkpoint in Redis: %s", e)

    async def close(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None
