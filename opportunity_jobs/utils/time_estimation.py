"""Elapsed / remaining time estimates for a running generation job."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone


@dataclass(frozen=True)
class ElapsedTime:
    minutes: int
    seconds: int
    formatted: str

    @property
    def total_seconds(self) -> int:
        return self.minutes * 60 + self.seconds


@dataclass(frozen=True)
class TimeEstimate:
    estimated_seconds: float
    formatted: str


@dataclass(frozen=True)
class JobTimeInfo:
    elapsed: ElapsedTime
    remaining: TimeEstimate
    stage: str


def _plural(n: int, unit: str) -> str:
    return f"{n} {unit}{'' if n == 1 else 's'}"


def elapsed_since(started_at: datetime, now: datetime | None = None) -> ElapsedTime:
    now = now or datetime.now(timezone.utc)
    if started_at.tzinfo is None:
        started_at = started_at.replace(tzinfo=timezone.utc)
    total = max(0, int((now - started_at).total_seconds()))
    minutes, seconds = divmod(total, 60)

    if minutes == 0:
        formatted = f"{_plural(seconds, 'second')} ago"
    elif minutes == 1:
        formatted = f"1 minute {_plural(seconds, 'second')} ago" if seconds else "1 minute ago"
    else:
        formatted = f"{minutes} minutes ago"
    return ElapsedTime(minutes, seconds, formatted)


def estimate_remaining(progress: int, elapsed_seconds: float) -> TimeEstimate:
    """Linear extrapolation of the remaining time from progress so far."""
    if progress <= 0:
        return TimeEstimate(60.0, "~1 minute")
    if progress >= 100:
        return TimeEstimate(0.0, "Almost done")

    estimated_total = elapsed_seconds / progress * 100
    remaining = max(0.0, estimated_total - elapsed_seconds)
    remaining_minutes = math.ceil(remaining / 60)

    if remaining_minutes == 0:
        formatted = "Less than a minute"
    elif remaining_minutes == 1:
        formatted = "~1 minute"
    elif remaining_minutes < 60:
        formatted = f"~{remaining_minutes} minutes"
    else:
        hours, mins = divmod(remaining_minutes, 60)
        formatted = f"~{hours}h {mins}m" if mins else f"~{_plural(hours, 'hour')}"
    return TimeEstimate(remaining, formatted)


def stage_message(progress: int) -> str:
    if progress < 10:
        return "Starting..."
    if progress < 40:
        return "Scraping Reddit..."
    if progress < 70:
        return "Analyzing posts..."
    if progress < 100:
        return "Finalizing..."
    return "Complete!"


def job_time_info(started_at: datetime, progress: int, now: datetime | None = None) -> JobTimeInfo:
    elapsed = elapsed_since(started_at, now)
    return JobTimeInfo(
        elapsed=elapsed,
        remaining=estimate_remaining(progress, elapsed.total_seconds),
        stage=stage_message(progress),
    )
