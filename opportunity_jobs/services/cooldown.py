"""Cooldown detection over free-text job messages.

The backend reports its rate limiting ("cooldown") as prose inside the job's
``message`` / ``error`` fields, or as ``result.cooldown_message`` on a
completed job.  ``CooldownInterpreter`` is the seam that turns that prose
into a ``CooldownSignal``; swap the implementation if the backend ever grows
a structured field.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass

from opportunity_jobs.schemas.common import JobStatus
from opportunity_jobs.schemas.jobs import JobStatusResponse

logger = logging.getLogger(__name__)

_COOLDOWN_WORD = "cooldown"
_WAIT_RE = re.compile(r"Wait (\d+(?:\.\d+)?) more (minutes|minute)", re.IGNORECASE)


@dataclass(frozen=True)
class CooldownSignal:
    active: bool
    human_message: str = ""
    raw_wait_expression: str | None = None
    source: str | None = None  # "result", "message", "error" or "conflict"

    @property
    def wait_minutes(self) -> float | None:
        if not self.raw_wait_expression:
            return None
        match = _WAIT_RE.search(self.raw_wait_expression)
        return float(match.group(1)) if match else None


INACTIVE = CooldownSignal(active=False)


class CooldownInterpreter(ABC):
    """Classifies backend text into a cooldown signal."""

    @abstractmethod
    def interpret(self, text: str | None, source: str | None = None) -> CooldownSignal:
        ...

    def detect(self, status: JobStatusResponse) -> CooldownSignal:
        """Check every field a cooldown can arrive through, in priority order.

        1. ``result.cooldown_message`` on a completed job (used verbatim)
        2. ``message`` (reported while processing, or alongside the result)
        3. ``error`` when the job failed
        """
        if status.result is not None and status.result.cooldown_message:
            text = status.result.cooldown_message.strip()
            if text:
                match = _WAIT_RE.search(text)
                return CooldownSignal(
                    active=True,
                    human_message=text,
                    raw_wait_expression=match.group(0) if match else None,
                    source="result",
                )

        signal = self.interpret(status.message, source="message")
        if signal.active:
            return signal

        if status.status == JobStatus.FAILED:
            signal = self.interpret(status.error, source="error")
            if signal.active:
                return signal

        return INACTIVE


class TextCooldownInterpreter(CooldownInterpreter):
    """Pattern-matching interpreter for the backend's cooldown prose."""

    def interpret(self, text: str | None, source: str | None = None) -> CooldownSignal:
        if not text:
            return INACTIVE
        lowered = text.lower()
        if _COOLDOWN_WORD not in lowered:
            return INACTIVE

        match = _WAIT_RE.search(text)
        if match:
            wait = match.group(0)
            return CooldownSignal(
                active=True,
                human_message=f"Cooldown active: {wait}. Using existing leads instead.",
                raw_wait_expression=wait,
                source=source,
            )

        logger.debug("Cooldown notice without a wait time: %r", text)
        return CooldownSignal(
            active=True,
            human_message=_cooldown_sentence(text, lowered.index(_COOLDOWN_WORD)),
            source=source,
        )


def _cooldown_sentence(text: str, at: int) -> str:
    """Return the text from the cooldown keyword at *at* through the next period."""
    end = text.find(".", at)
    if end == -1:
        return text[at:].strip()
    return text[at:end + 1].strip()
