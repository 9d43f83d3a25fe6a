"""Tests for session lifecycle coordination."""

import asyncio

import pytest

from fakes import FakeWorkflowExecutor, make_item, research_response
from session_research.agents.base import COMPREHENSIVE_ANALYSIS
from session_research.core.config import SessionResearchConfig
from session_research.core.events import (
    SessionActivatedEvent,
    SessionCreatedEvent,
    SessionEvent,
    SessionIntentAnalyzedEvent,
    SessionResearchCompletedEvent,
    SessionUpdatedEvent,
)
from session_research.core.exceptions import SessionNotFoundError
from session_research.models import ProgressEvent, ResearchPhase, SessionStatus, SessionType
from session_research.services import InMemorySessionRepository, ResearchConsolidator, SessionManager


def manual_config(**overrides) -> SessionResearchConfig:
    settings = {"auto_research": False, "session_type_confidence": 0.6, "research_min_items": 2}
    settings.update(overrides)
    return SessionResearchConfig(**settings)


def answer(payload: dict) -> dict:
    query = payload["content"]
    return research_response([f"Finding for {query[:25]}"], [f"https://example.com/{len(query)}"])


CONSOLIDATION = {
    "researchObjective": "Compare Hilton and Ritz hotels in Toronto",
    "summary": "Both are downtown; the Ritz costs more.",
    "primaryIntent": "Book a Toronto hotel",
}


class SlowMergeRepository(InMemorySessionRepository):
    """Pauses while research is being written back so a capture can interleave."""

    def __init__(self) -> None:
        super().__init__()
        self.merging = asyncio.Event()

    async def update_session_data(self, session_id, context_summary, intent_analysis):
        if "sessionResearch" in context_summary and not self.merging.is_set():
            self.merging.set()
            await asyncio.sleep(0.05)
        await super().update_session_data(session_id, context_summary, intent_analysis)


def session_management(payload: dict):
    if payload.get("context", {}).get("analysisType") == COMPREHENSIVE_ANALYSIS:
        return RuntimeError("analysis offline")
    if "Jazz" in payload["content"]:
        return {"belongsToSession": False, "membershipConfidence": 0.35, "sessionReasoning": "nightlife"}
    return {"belongsToSession": True, "membershipConfidence": 0.9, "sessionReasoning": "same hotels"}


class FailingConsolidator(ResearchConsolidator):
    async def consolidate(self, session_id, results, plan=None):
        raise RuntimeError("storage offline")


class TestItemProcessing:
    @pytest.mark.asyncio
    async def test_first_item_opens_standalone_session(self, repository, event_bus, hotel_items):
        events: list[SessionEvent] = []
        event_bus.subscribe(SessionEvent, events.append)
        manager = SessionManager(repository, config=manual_config(), event_bus=event_bus)

        session = await manager.process_clipboard_item(hotel_items[0])

        assert session is not None
        assert session.status is SessionStatus.INACTIVE
        assert session.session_type is SessionType.HOTEL_RESEARCH
        assert session.session_label == "Hotel Research - Toronto"
        assert session.context_summary["createdAsStandalone"] is True
        assert session.context_summary["sessionProgress"]["totalItems"] == 1
        assert session.context_summary["sessionSummary"] == (
            "hotel research session with 1 item (text content) from Google Chrome"
        )
        assert [entry["clipboardItemId"] for entry in session.context_summary["allItems"]] == [hotel_items[0].id]
        assert session.intent_analysis["awaitingSecondItem"] is True
        assert session.intent_analysis["basicAnalysis"]["totalItems"] == 1
        assert [type(e) for e in events] == [SessionCreatedEvent, SessionUpdatedEvent]

    @pytest.mark.asyncio
    async def test_second_item_joins_and_activates(self, repository, event_bus, hotel_items):
        events: list[SessionEvent] = []
        event_bus.subscribe(SessionEvent, events.append)
        manager = SessionManager(repository, config=manual_config(), event_bus=event_bus)

        first = await manager.process_clipboard_item(hotel_items[0])
        events.clear()
        second = await manager.process_clipboard_item(hotel_items[1])

        assert second.id == first.id
        assert second.status is SessionStatus.ACTIVE
        assert await repository.get_item_count(first.id) == 2
        assert second.intent_analysis["sessionIntent"]["primaryGoal"] == (
            "Researching hotel options for accommodation"
        )
        assert "awaitingSecondItem" not in second.intent_analysis
        assert "createdAsStandalone" not in second.context_summary
        assert [type(e) for e in events] == [
            SessionUpdatedEvent,
            SessionIntentAnalyzedEvent,
            SessionActivatedEvent,
        ]
        assert events[-1].item_count == 2

    @pytest.mark.asyncio
    async def test_activation_happens_once(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())
        session = await manager.process_clipboard_item(hotel_items[0])
        await manager.process_clipboard_item(hotel_items[1])

        assert await manager.activate_session(session.id) is False

    @pytest.mark.asyncio
    async def test_unrelated_item_opens_another_session(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())
        hotel = await manager.process_clipboard_item(hotel_items[0])

        other = await manager.process_clipboard_item(make_item("Quantum Computing basics"))

        assert other.id != hotel.id
        assert other.session_type is SessionType.GENERAL_RESEARCH
        assert len(await repository.list_sessions()) == 2

    @pytest.mark.asyncio
    async def test_blank_content_is_ignored(self, repository):
        manager = SessionManager(repository, config=manual_config())
        blank = make_item("   ")

        assert await manager.process_clipboard_item(blank) is None
        assert await repository.get_clipboard_item(blank.id) is None
        assert await repository.list_sessions() == []

    @pytest.mark.asyncio
    async def test_concurrent_captures_share_one_session(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())

        first, second = await asyncio.gather(
            manager.process_clipboard_item(hotel_items[0]),
            manager.process_clipboard_item(hotel_items[1]),
        )

        assert first.id == second.id
        assert len(await repository.list_sessions()) == 1
        assert await repository.get_item_count(first.id) == 2

    @pytest.mark.asyncio
    async def test_recapturing_an_item_keeps_its_session(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())
        session = await manager.process_clipboard_item(hotel_items[0])
        await manager.process_clipboard_item(hotel_items[1])

        again = await manager.process_clipboard_item(hotel_items[0])

        assert again.id == session.id
        assert await repository.get_item_count(session.id) == 2
        assert len(await repository.list_sessions()) == 1

    @pytest.mark.asyncio
    async def test_get_session(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())
        session = await manager.process_clipboard_item(hotel_items[0])

        assert (await manager.get_session(session.id)).session_label == session.session_label
        assert await manager.get_session("missing") is None


class TestSessionTypeDetection:
    @pytest.mark.asyncio
    async def test_confident_detection_wins(self, repository):
        executor = FakeWorkflowExecutor(
            {"session_type_detection": {"sessionType": "restaurant_research", "sessionConfidence": 0.9}}
        )
        manager = SessionManager(repository, executor, config=manual_config())

        detected = await manager.detect_new_session_type(make_item("Hilton Toronto Downtown"))

        assert detected is SessionType.RESTAURANT_RESEARCH
        payload = executor.calls_for("session_type_detection")[0]
        assert payload["context"]["sourceApp"] == "Google Chrome"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            {"sessionType": "restaurant_research", "sessionConfidence": 0.6},
            {"sessionType": "nightlife", "sessionConfidence": 0.9},
            RuntimeError("model unavailable"),
        ],
    )
    async def test_weak_or_failed_detection_uses_keywords(self, repository, response):
        executor = FakeWorkflowExecutor({"session_type_detection": response})
        manager = SessionManager(repository, executor, config=manual_config())

        detected = await manager.detect_new_session_type(make_item("Hilton Toronto Downtown"))

        assert detected is SessionType.HOTEL_RESEARCH

    @pytest.mark.asyncio
    async def test_unclassifiable_item_is_general(self, repository):
        manager = SessionManager(repository, config=manual_config())
        detected = await manager.detect_new_session_type(make_item("remember to call mum"))
        assert detected is SessionType.GENERAL_RESEARCH


class TestSessionResearch:
    @pytest.mark.asyncio
    async def test_research_is_merged_into_session(self, repository, event_bus, hotel_items):
        completed: list[SessionResearchCompletedEvent] = []
        event_bus.subscribe(SessionResearchCompletedEvent, completed.append)
        executor = FakeWorkflowExecutor({"research": answer, "session_research_consolidation": CONSOLIDATION})
        manager = SessionManager(repository, executor, config=manual_config(), event_bus=event_bus)
        for item in hotel_items:
            session = await manager.process_clipboard_item(item)

        artifact = await manager.perform_session_research(session.id)

        assert artifact is not None
        stored = await repository.get_session(session.id)
        research = stored.context_summary["sessionResearch"]
        assert research["researchCompleted"] is True
        assert len(research["keyFindings"]) == 4
        assert research["objective"] == "Compare Hilton and Ritz hotels in Toronto"
        assert stored.context_summary["sessionSummary"] == "Both are downtown; the Ritz costs more."
        assert stored.context_summary["comprehensiveAnalysis"]["researchedItems"] == 2

        intent = stored.intent_analysis
        assert intent["sessionIntent"]["progressStatus"] == "research_completed"
        assert intent["sessionIntent"]["primaryGoal"] == "Book a Toronto hotel"
        assert intent["researchMetrics"]["totalFindings"] == 4
        assert intent["researchBased"] is True

        assert stored.session_type is SessionType.HOTEL_RESEARCH
        assert stored.session_label == "Book a Toronto hotel"
        assert stored.type_history[-1].reason == "Focused title from research"

        assert completed[-1].success is True
        assert completed[-1].total_findings == 4

    @pytest.mark.asyncio
    async def test_no_findings(self, repository, event_bus, hotel_items):
        completed: list[SessionResearchCompletedEvent] = []
        event_bus.subscribe(SessionResearchCompletedEvent, completed.append)
        executor = FakeWorkflowExecutor({"research": ValueError("search backend down")})
        manager = SessionManager(repository, executor, config=manual_config(), event_bus=event_bus)
        for item in hotel_items:
            session = await manager.process_clipboard_item(item)

        assert await manager.perform_session_research(session.id) is None
        assert "sessionResearch" not in (await repository.get_session(session.id)).context_summary
        assert completed[-1].success is False
        assert completed[-1].error_message == "No research findings"

    @pytest.mark.asyncio
    async def test_unexpected_failure_returns_none(self, repository, event_bus, hotel_items):
        completed: list[SessionResearchCompletedEvent] = []
        event_bus.subscribe(SessionResearchCompletedEvent, completed.append)
        executor = FakeWorkflowExecutor({"research": answer})
        manager = SessionManager(repository, executor, config=manual_config(), event_bus=event_bus)
        manager.orchestrator.consolidator = FailingConsolidator(repository)
        progress: list[ProgressEvent] = []
        for item in hotel_items:
            session = await manager.process_clipboard_item(item)

        assert await manager.perform_session_research(session.id, progress.append) is None
        assert progress[-1].phase is ResearchPhase.FAILED
        assert completed[-1].error_message == "storage offline"

    @pytest.mark.asyncio
    async def test_missing_session_raises(self, repository):
        manager = SessionManager(repository, FakeWorkflowExecutor(), config=manual_config())
        with pytest.raises(SessionNotFoundError):
            await manager.perform_session_research("missing")

    @pytest.mark.asyncio
    async def test_comprehensive_update(self, repository, hotel_items):
        manager = SessionManager(repository, config=manual_config())
        for item in hotel_items:
            session = await manager.process_clipboard_item(item)

        summary = await manager.update_comprehensive_analysis(session.id)

        assert summary.total_items == 2
        assert summary.non_research_items == 2


class TestConcurrentWrites:
    @pytest.mark.asyncio
    async def test_theme_merge_during_research_write_back(self, hotel_items):
        repository = SlowMergeRepository()
        executor = FakeWorkflowExecutor(
            {
                "session_management": session_management,
                "research": answer,
                "session_research_consolidation": CONSOLIDATION,
            }
        )
        manager = SessionManager(repository, executor, config=manual_config())
        for item in hotel_items:
            session = await manager.process_clipboard_item(item)

        research = asyncio.create_task(manager.perform_session_research(session.id))
        await repository.merging.wait()
        jazz = await manager.process_clipboard_item(make_item("Jazz clubs in Toronto", minutes=8))
        assert await research is not None

        stored = await repository.get_session(session.id)
        assert stored.session_type is SessionType.TRAVEL_RESEARCH
        assert stored.session_label == "Toronto Planning"
        assert [change.new_type for change in stored.type_history] == [
            SessionType.HOTEL_RESEARCH,
            SessionType.TRAVEL_RESEARCH,
        ]
        assert stored.type_history[0].reason == "Focused title from research"
        assert stored.type_history[1].previous_label == "Book a Toronto hotel"
        assert stored.context_summary["sessionResearch"]["researchCompleted"] is True
        assert jazz.id == session.id
        assert jazz.session_label == stored.session_label
        assert await repository.get_item_count(session.id) == 3


class TestBackgroundResearch:
    @pytest.mark.asyncio
    async def test_research_is_scheduled_once_and_awaited_on_stop(self, repository, hotel_items):
        progress: list[ProgressEvent] = []
        executor = FakeWorkflowExecutor({"research": answer, "session_research_consolidation": CONSOLIDATION})
        manager = SessionManager(
            repository,
            executor,
            config=manual_config(auto_research=True),
            progress_sink=progress.append,
        )
        await manager.start()

        session = await manager.process_clipboard_item(hotel_items[0])
        assert manager.pending_research == []
        await manager.process_clipboard_item(hotel_items[1])
        assert manager.pending_research == [session.id]
        await manager.process_clipboard_item(make_item("Four Seasons Toronto spa", minutes=6))
        assert manager.pending_research == [session.id]

        await manager.stop()

        assert manager.pending_research == []
        assert progress[-1].phase is ResearchPhase.COMPLETED
        stored = await repository.get_session(session.id)
        assert stored.context_summary["sessionResearch"]["researchCompleted"] is True
        assert manager.schedule_research(session.id) is None

    @pytest.mark.asyncio
    async def test_background_run_for_missing_session(self, repository):
        manager = SessionManager(repository, FakeWorkflowExecutor(), config=manual_config())

        task = manager.schedule_research("missing")

        assert task is not None
        assert await task is None
