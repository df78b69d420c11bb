"""Tests for event fan-out."""
from opportunity_jobs.errors import CooldownError, DuplicateJobError, JobFailedError
from opportunity_jobs.schemas.common import EventKind, Severity
from opportunity_jobs.schemas.events import JobEvent
from opportunity_jobs.services.cooldown import CooldownSignal
from opportunity_jobs.services.progress_broadcaster import ProgressBroadcaster


def make_event(kind=EventKind.PROGRESS):
    return JobEvent(kind=kind, job_id="job-1", search_id="S1", progress=10, message="Scraping")


class TestProgressBroadcaster:
    def test_delivers_to_all_listeners(self):
        broadcaster = ProgressBroadcaster()
        first, second = [], []
        broadcaster.subscribe(first.append)
        broadcaster.subscribe(second.append)

        broadcaster.publish(make_event())

        assert len(first) == 1
        assert len(second) == 1

    def test_unsubscribe(self):
        broadcaster = ProgressBroadcaster()
        received = []
        unsubscribe = broadcaster.subscribe(received.append)
        unsubscribe()
        unsubscribe()

        broadcaster.publish(make_event())

        assert received == []

    def test_failing_listener_does_not_block_others(self, caplog):
        broadcaster = ProgressBroadcaster()
        received = []

        def broken(event):
            raise RuntimeError("render failed")

        broadcaster.subscribe(broken)
        broadcaster.subscribe(received.append)

        broadcaster.publish(make_event())

        assert len(received) == 1
        assert "Progress listener" in caplog.text


class TestSeverity:
    def test_event_severities(self):
        assert make_event(EventKind.PROGRESS).severity == Severity.INFO
        assert make_event(EventKind.COMPLETED).severity == Severity.SUCCESS
        assert make_event(EventKind.COOLDOWN).severity == Severity.WARNING
        assert make_event(EventKind.FAILED).severity == Severity.ERROR
        assert make_event(EventKind.TIMED_OUT).severity == Severity.ERROR
        assert make_event(EventKind.TRANSPORT_ERROR).severity == Severity.ERROR

    def test_warning_errors(self):
        signal = CooldownSignal(active=True, human_message="Cooldown active")
        assert CooldownError(signal).is_warning
        assert DuplicateJobError("S1").is_warning
        assert not JobFailedError().is_warning
