"""Tests for deterministic session intent analysis."""

import pytest

from fakes import make_item, seed_session
from session_research.core.events import SessionIntentAnalyzedEvent
from session_research.core.exceptions import SessionNotFoundError
from session_research.models import ProgressStatus, SessionType
from session_research.services import IntentAnalyzer
from session_research.services.intent import (
    derive_content_themes,
    derive_primary_intent,
    derive_progress_status,
    distinct_source_apps,
)


class TestIntentDerivation:
    @pytest.mark.parametrize(
        ("session_type", "contents", "expected"),
        [
            (SessionType.HOTEL_RESEARCH, ["Book Hilton Toronto"], "Planning to book hotel accommodations"),
            (SessionType.HOTEL_RESEARCH, ["Hilton vs Ritz"], "Comparing hotel options and amenities"),
            (SessionType.HOTEL_RESEARCH, ["Hilton Toronto"], "Researching hotel options for accommodation"),
            (SessionType.RESTAURANT_RESEARCH, ["Canoe reservation"], "Planning to make restaurant reservations"),
            (SessionType.PRODUCT_RESEARCH, ["Sony A7 price"], "Researching products for potential purchase"),
            (SessionType.TRAVEL_RESEARCH, ["Cheap flights"], "Planning travel arrangements and bookings"),
            (SessionType.ACADEMIC_RESEARCH, ["Attention paper"], "Researching academic research information"),
        ],
    )
    def test_primary_intent(self, session_type, contents, expected):
        items = [make_item(content) for content in contents]
        assert derive_primary_intent(session_type, items) == expected

    def test_progress_status_thresholds(self):
        assert derive_progress_status([make_item("a"), make_item("b")]) is ProgressStatus.JUST_STARTED
        three = [make_item(f"Hotel option {n}", minutes=n) for n in range(3)]
        assert derive_progress_status(three) is ProgressStatus.IN_PROGRESS

        deciding = [*three[:2], make_item("Book the Hilton", minutes=5)]
        assert derive_progress_status(deciding) is ProgressStatus.NEARLY_COMPLETE

        six = [make_item(f"Hotel option {n}", minutes=n) for n in range(6)]
        assert derive_progress_status(six) is ProgressStatus.NEARLY_COMPLETE

        long_session = [make_item(f"Hotel option {n}", minutes=n * 20) for n in range(10)]
        assert derive_progress_status(long_session) is ProgressStatus.COMPLETED

    def test_themes_and_sources(self, hotel_items):
        themes = derive_content_themes(hotel_items)
        assert themes[0] == "toronto"
        assert len(themes) <= 8
        assert len(set(themes)) == len(themes)
        assert distinct_source_apps([*hotel_items, make_item("x", source_app="Notes")]) == [
            "Google Chrome",
            "Notes",
        ]


class TestIntentAnalyzer:
    @pytest.mark.asyncio
    async def test_writes_intent_and_summary(self, repository, event_bus, hotel_items):
        session = await seed_session(repository, hotel_items)
        await repository.update_session_data(
            session.id,
            {"createdAsStandalone": True},
            {"standaloneSession": True, "awaitingSecondItem": True},
        )
        events: list[SessionIntentAnalyzedEvent] = []
        event_bus.subscribe(SessionIntentAnalyzedEvent, events.append)

        summary = await IntentAnalyzer(repository, event_bus=event_bus).analyze_intent(session.id)

        stored = await repository.get_session(session.id)
        intent = stored.intent_analysis["sessionIntent"]
        assert intent["primaryGoal"] == summary.primary_intent == "Researching hotel options for accommodation"
        assert intent["progressStatus"] == "just_started"
        assert intent["confidenceLevel"] == 0.8
        assert stored.intent_analysis["basicAnalysis"]["totalItems"] == 2
        assert stored.intent_analysis["sessionActivated"] is True
        assert "standaloneSession" not in stored.intent_analysis
        assert "awaitingSecondItem" not in stored.intent_analysis
        assert "createdAsStandalone" not in stored.context_summary
        assert stored.context_summary["sessionSummary"].startswith("hotel research session analyzing toronto")
        assert stored.context_summary["intentRecognition"]["contentThemes"] == summary.content_themes
        assert events[0].progress_status == "just_started"

    @pytest.mark.asyncio
    async def test_repeated_analysis_is_identical_apart_from_timestamps(self, repository, hotel_items):
        session = await seed_session(repository, hotel_items)
        analyzer = IntentAnalyzer(repository)

        await analyzer.analyze_intent(session.id)
        first = (await repository.get_session(session.id)).intent_analysis["sessionIntent"]
        await analyzer.analyze_intent(session.id)
        second = (await repository.get_session(session.id)).intent_analysis["sessionIntent"]

        def without_timestamps(intent: dict) -> dict:
            return {k: v for k, v in intent.items() if k != "detectedAt"}

        assert without_timestamps(first) == without_timestamps(second)

    @pytest.mark.asyncio
    async def test_missing_session(self, repository):
        with pytest.raises(SessionNotFoundError):
            await IntentAnalyzer(repository).analyze_intent("missing")
