"""Fan-out of orchestrator events to the presentation layer.

The orchestrator reports every state transition through a single
``ProgressBroadcaster``; UI code subscribes to it instead of reaching into
orchestrator state.  A misbehaving subscriber is logged and skipped so it
can never stall the poll loop.
"""
from __future__ import annotations

import logging
from typing import Callable

from opportunity_jobs.schemas.events import JobEvent

logger = logging.getLogger(__name__)

Listener = Callable[[JobEvent], None]


class ProgressBroadcaster:
    def __init__(self):
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register *listener*; returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, event: JobEvent) -> None:
        logger.info(
            "Job %s [%s] %s: %s (%d%%)",
            event.job_id[:8], event.search_id, event.kind.value, event.message, event.progress,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Progress listener %r failed on %s event", listener, event.kind.value)
