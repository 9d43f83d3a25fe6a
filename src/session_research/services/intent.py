"""Cheap, deterministic intent analysis over a session's items."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

import logfire

from session_research.core.events import SessionEventBus, SessionIntentAnalyzedEvent
from session_research.core.exceptions import SessionNotFoundError
from session_research.models.analysis import IntentSummary, ProgressStatus
from session_research.models.clipboard import ClipboardItem
from session_research.models.session import SessionType
from session_research.services import heuristics
from session_research.services.repository import SessionRepository

THEME_LIMIT = 8
DECISION_WORDS = ("book", "buy", "purchase", "reservation")
COMPLETION_ITEMS = 10
COMPLETION_ELAPSED = timedelta(hours=2)
NEARLY_COMPLETE_ITEMS = 6


def derive_primary_intent(session_type: SessionType, items: Sequence[ClipboardItem]) -> str:
    content = " ".join(item.lowered for item in items)

    def mentions(*words: str) -> bool:
        return any(word in content for word in words)

    if session_type is SessionType.HOTEL_RESEARCH:
        if mentions("book", "reservation"):
            return "Planning to book hotel accommodations"
        if mentions("compare", "vs"):
            return "Comparing hotel options and amenities"
        return "Researching hotel options for accommodation"
    if session_type is SessionType.RESTAURANT_RESEARCH:
        if mentions("reservation", "book"):
            return "Planning to make restaurant reservations"
        return "Researching restaurant options and reviews"
    if session_type is SessionType.PRODUCT_RESEARCH:
        if mentions("buy", "purchase", "price"):
            return "Researching products for potential purchase"
        if mentions("compare", "vs"):
            return "Comparing product features and options"
        return "Researching product information and reviews"
    if session_type is SessionType.TRAVEL_RESEARCH:
        if mentions("booking", "flights"):
            return "Planning travel arrangements and bookings"
        return "Researching travel destinations and options"
    return f"Researching {session_type.display} information"


def derive_progress_status(items: Sequence[ClipboardItem]) -> ProgressStatus:
    """Progress from item count, elapsed capture time and decision vocabulary."""
    count = len(items)
    if count <= 2:
        return ProgressStatus.JUST_STARTED

    stamps = sorted(item.timestamp for item in items)
    elapsed = stamps[-1] - stamps[0]
    if count >= COMPLETION_ITEMS and elapsed >= COMPLETION_ELAPSED:
        return ProgressStatus.COMPLETED

    content = " ".join(item.lowered for item in items)
    if count >= NEARLY_COMPLETE_ITEMS or any(word in content for word in DECISION_WORDS):
        return ProgressStatus.NEARLY_COMPLETE
    return ProgressStatus.IN_PROGRESS


def derive_content_themes(items: Sequence[ClipboardItem], limit: int = THEME_LIMIT) -> list[str]:
    """City and category themes followed by frequent tokens from contents and window titles."""
    themes = heuristics.extract_content_themes(items)
    text = " ".join(f"{item.content} {item.window_title}" for item in items)
    for keyword in heuristics.extract_basic_keywords(text, limit=limit):
        if keyword not in themes:
            themes.append(keyword)
    return themes[:limit]


def distinct_source_apps(items: Sequence[ClipboardItem]) -> list[str]:
    return list(dict.fromkeys(item.source_app for item in items))


class IntentAnalyzer:
    """Derives a session's primary goal, progress and themes from its items.

    No collaborator calls are made. Apart from the ``detectedAt`` and
    ``lastUpdated`` timestamps, re-running on an unchanged session writes
    identical data.
    """

    def __init__(self, repository: SessionRepository, *, event_bus: SessionEventBus | None = None) -> None:
        self.repository = repository
        self.event_bus = event_bus

    def summarize(self, session_type: SessionType, items: Sequence[ClipboardItem]) -> IntentSummary:
        return IntentSummary(
            primary_intent=derive_primary_intent(session_type, items),
            progress_status=derive_progress_status(items),
            content_themes=derive_content_themes(items),
            source_applications=distinct_source_apps(items),
            item_count=len(items),
        )

    async def analyze_intent(self, session_id: str) -> IntentSummary:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        items = await self.repository.get_session_items(session_id)

        summary = self.summarize(session.session_type, items)
        now = datetime.now(UTC).isoformat()
        type_display = session.session_type.display

        context_summary = dict(session.context_summary)
        intent_analysis = dict(session.intent_analysis)

        if summary.content_themes:
            context_summary["sessionSummary"] = (
                f"{type_display} session analyzing {', '.join(summary.content_themes)} "
                f"with {summary.item_count} items"
            )
        else:
            context_summary["sessionSummary"] = f"{type_display} session with {summary.item_count} items"
        context_summary["sessionActivated"] = now
        context_summary["intentRecognition"] = {
            "primaryIntent": summary.primary_intent,
            "progressStatus": summary.progress_status.value,
            "contentThemes": summary.content_themes,
            "sourceApplications": summary.source_applications,
            "analysisTimestamp": now,
        }
        context_summary.pop("createdAsStandalone", None)

        intent_analysis["sessionIntent"] = {
            "primaryGoal": summary.primary_intent,
            "progressStatus": summary.progress_status.value,
            "confidenceLevel": 0.8,
            "analysisReasoning": (
                f"Intent analysis based on {summary.item_count} items showing {type_display} pattern"
            ),
            "contentThemes": summary.content_themes,
            "sourceApplications": summary.source_applications,
            "detectedAt": now,
        }
        intent_analysis["basicAnalysis"] = {
            "totalItems": summary.item_count,
            "contentTypes": [heuristics.detect_content_type(item.content) for item in items],
            "sourceApplications": summary.source_applications,
            "timespan": heuristics.calculate_session_timespan(items),
            "lastUpdated": now,
        }
        intent_analysis.pop("standaloneSession", None)
        intent_analysis.pop("awaitingSecondItem", None)
        intent_analysis["sessionActivated"] = True

        await self.repository.update_session_data(session_id, context_summary, intent_analysis)

        logfire.info(
            "Session intent analyzed",
            session_id=session_id,
            primary_intent=summary.primary_intent,
            progress_status=summary.progress_status.value,
            item_count=summary.item_count,
        )
        if self.event_bus is not None:
            await self.event_bus.emit(
                SessionIntentAnalyzedEvent(
                    session_id=session_id,
                    primary_intent=summary.primary_intent,
                    progress_status=summary.progress_status.value,
                )
            )
        return summary


__all__ = [
    "IntentAnalyzer",
    "derive_content_themes",
    "derive_primary_intent",
    "derive_progress_status",
    "distinct_source_apps",
]
