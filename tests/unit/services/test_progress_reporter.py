"""Tests for the research progress state machine."""

import pytest

from session_research.core.events import ResearchProgressEvent
from session_research.core.exceptions import InvalidProgressTransitionError
from session_research.models import ProgressEvent, ResearchPhase
from session_research.services import ProgressReporter
from session_research.services.progress import truncate


class TestProgressReporter:
    @pytest.mark.asyncio
    async def test_full_run_delivers_each_phase(self):
        received: list[ProgressEvent] = []
        reporter = ProgressReporter("s1", received.append)

        await reporter.emit(ResearchPhase.INITIALIZING, 0, "Starting")
        await reporter.emit(ResearchPhase.QUERIES_GENERATED, 0, total_queries=2)
        await reporter.emit(ResearchPhase.SEARCHING, 0, current_query="Hilton")
        await reporter.emit(ResearchPhase.SEARCHING, 50, completed_queries=1)
        await reporter.emit(ResearchPhase.CONSOLIDATING, 95)
        await reporter.emit(ResearchPhase.COMPLETED, final_results={"keyFindings": 3})

        assert [e.phase for e in received] == [
            ResearchPhase.INITIALIZING,
            ResearchPhase.QUERIES_GENERATED,
            ResearchPhase.SEARCHING,
            ResearchPhase.SEARCHING,
            ResearchPhase.CONSOLIDATING,
            ResearchPhase.COMPLETED,
        ]
        assert received[-1].progress == 100
        assert received[1].total_queries == 2
        assert reporter.terminated
        assert received == reporter.events

    @pytest.mark.asyncio
    async def test_progress_never_decreases_before_terminal(self):
        reporter = ProgressReporter("s1")
        await reporter.emit(ResearchPhase.INITIALIZING, 0)
        await reporter.emit(ResearchPhase.QUERIES_GENERATED, 0)
        await reporter.emit(ResearchPhase.SEARCHING, 100)
        event = await reporter.emit(ResearchPhase.CONSOLIDATING, 95)

        assert event is not None
        assert event.progress == 100
        assert [e.progress for e in reporter.events] == [0, 0, 100, 100]

    @pytest.mark.asyncio
    async def test_invalid_transition_is_rejected(self):
        reporter = ProgressReporter("s1")
        with pytest.raises(InvalidProgressTransitionError):
            await reporter.emit(ResearchPhase.SEARCHING, 10)

        await reporter.emit(ResearchPhase.INITIALIZING, 0)
        with pytest.raises(InvalidProgressTransitionError):
            await reporter.emit(ResearchPhase.COMPLETED)
        assert reporter.phase is ResearchPhase.INITIALIZING

    @pytest.mark.asyncio
    async def test_exactly_one_terminal_event(self):
        received: list[ProgressEvent] = []
        reporter = ProgressReporter("s1", received.append)
        await reporter.emit(ResearchPhase.INITIALIZING, 0)
        await reporter.emit(ResearchPhase.QUERIES_GENERATED, 0)
        await reporter.emit(ResearchPhase.SEARCHING, 40)

        failed = await reporter.fail("Research failed", error="boom")
        assert await reporter.emit(ResearchPhase.COMPLETED) is None
        assert await reporter.emit(ResearchPhase.CANCELLED) is None

        assert failed is not None
        assert failed.progress == 40
        assert failed.error == "boom"
        assert [e.phase for e in received if e.is_terminal] == [ResearchPhase.FAILED]

    @pytest.mark.asyncio
    async def test_failure_before_start_is_allowed(self):
        reporter = ProgressReporter("s1")
        event = await reporter.fail("Session not found")
        assert event is not None
        assert event.error == "Session not found"
        assert event.progress == 0

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self):
        reporter = ProgressReporter("s1", start=ResearchPhase.QUERIES_GENERATED)
        await reporter.emit(ResearchPhase.SEARCHING, 30)
        await reporter.emit(ResearchPhase.CANCELLED, message="Research cancelled")
        assert reporter.cancelled
        assert reporter.terminated

    @pytest.mark.asyncio
    async def test_failing_sink_does_not_interrupt_run(self):
        def broken(event: ProgressEvent) -> None:
            raise RuntimeError("listener went away")

        reporter = ProgressReporter("s1", broken)
        await reporter.emit(ResearchPhase.INITIALIZING, 0)
        await reporter.emit(ResearchPhase.QUERIES_GENERATED, 0)
        assert len(reporter.events) == 2

    @pytest.mark.asyncio
    async def test_async_sink_and_event_bus(self, event_bus):
        received: list[ProgressEvent] = []
        published: list[ResearchProgressEvent] = []

        async def sink(event: ProgressEvent) -> None:
            received.append(event)

        event_bus.subscribe(ResearchProgressEvent, published.append)
        reporter = ProgressReporter("s1", sink, event_bus=event_bus)
        await reporter.emit(ResearchPhase.INITIALIZING, 0, "Starting")

        assert len(received) == 1
        assert published[0].phase == "initializing"
        assert published[0].message == "Starting"


def test_truncate():
    assert truncate("short", 10) == "short"
    assert truncate("a" * 60, 50) == "a" * 50 + "..."
