"""Decide which existing session, if any, a new clipboard item joins."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import logfire

from session_research.agents.base import WorkflowExecutor, WorkflowName
from session_research.core.config import MembershipThresholds
from session_research.core.config import config as global_config
from session_research.core.events import SessionEventBus, SessionReclassifiedEvent
from session_research.core.locks import SessionLockRegistry
from session_research.models.ai import MembershipJudgment
from session_research.models.clipboard import ClipboardItem
from session_research.models.session import Session, SessionType
from session_research.services import heuristics
from session_research.services.repository import SessionRepository


@dataclass(frozen=True)
class ThemeMatch:
    """A shared theme that justifies merging across session types."""

    label: str
    session_type: SessionType
    reasoning: str
    confidence: float


def find_theme_match(item: ClipboardItem, session_items: Sequence[ClipboardItem]) -> ThemeMatch | None:
    """First shared location, event, timeframe or project between the item and a session."""
    location = heuristics.extract_location_themes(item, session_items).get("commonLocation")
    if location:
        return ThemeMatch(
            label=f"{location} Planning",
            session_type=SessionType.TRAVEL_RESEARCH,
            reasoning=f"Both involve {location}, combining travel planning activities",
            confidence=0.8,
        )

    event = heuristics.extract_event_themes(item, session_items).get("commonEvent")
    if event:
        return ThemeMatch(
            label=f"{event.title()} Planning",
            session_type=SessionType.EVENT_PLANNING,
            reasoning=f"Both related to {event}",
            confidence=0.75,
        )

    timeframe = heuristics.extract_temporal_themes(item, session_items).get("commonTimeframe")
    if timeframe:
        return ThemeMatch(
            label=f"{timeframe.title()} Planning",
            session_type=SessionType.GENERAL_RESEARCH,
            reasoning=f"Activities planned for {timeframe}",
            confidence=0.65,
        )

    project = heuristics.extract_project_themes(item, session_items).get("commonProject")
    if project:
        return ThemeMatch(
            label=project.title(),
            session_type=SessionType.PROJECT_RESEARCH,
            reasoning=f"Related to {project} project",
            confidence=0.7,
        )
    return None


def detect_cross_session_theme(
    item: ClipboardItem, session: Session, session_items: Sequence[ClipboardItem]
) -> bool:
    """Shared location or event, or an item type complementary to the session type."""
    if heuristics.extract_location_themes(item, session_items):
        return True
    if heuristics.extract_event_themes(item, session_items):
        return True
    item_type = heuristics.detect_session_type(item)
    complementary = heuristics.COMPLEMENTARY_SESSION_TYPES.get(session.session_type, ())
    return item_type is not None and item_type in complementary


_TYPE_KEYWORD_CATEGORY: dict[SessionType, str] = {
    SessionType.HOTEL_RESEARCH: "hotel",
    SessionType.RESTAURANT_RESEARCH: "restaurant",
    SessionType.TRAVEL_RESEARCH: "travel",
}


def matches_session_type(item: ClipboardItem, session: Session) -> bool:
    """Keyword-category match of the item against the session's declared type.

    General research sessions accept any non-URL text longer than five
    characters.
    """
    content = item.lowered
    if session.session_type is SessionType.GENERAL_RESEARCH:
        return len(content) > 5 and not content.startswith("http")
    category = _TYPE_KEYWORD_CATEGORY.get(session.session_type)
    return category is not None and heuristics.has_keywords(content, category)


class MembershipEvaluator:
    """Greedy, single-pass membership evaluation.

    Candidates are tried in the order given and the first acceptable one
    wins. The returned session is always one of the candidate objects,
    possibly with its type and label rewritten by a theme merge. When
    ``locks`` is given, the rewrite happens under the session's write lock
    against the stored copy, not the candidate snapshot.
    """

    def __init__(
        self,
        repository: SessionRepository,
        executor: WorkflowExecutor | None = None,
        *,
        thresholds: MembershipThresholds | None = None,
        theme_window_seconds: int | None = None,
        clock: Callable[[], datetime] | None = None,
        event_bus: SessionEventBus | None = None,
        locks: SessionLockRegistry | None = None,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self.thresholds = thresholds or global_config.thresholds
        window = theme_window_seconds or global_config.theme_matching_window_seconds
        self.theme_window = timedelta(seconds=window)
        self._clock = clock or (lambda: datetime.now(UTC))
        self.event_bus = event_bus
        self.locks = locks

    async def evaluate_membership(
        self, item: ClipboardItem, candidates: Sequence[Session]
    ) -> Session | None:
        if not candidates:
            return None

        logfire.debug(
            "Evaluating session membership",
            item_id=item.id,
            candidates=len(candidates),
            ai_available=self.executor is not None,
        )

        if self.executor is not None:
            for session in candidates:
                try:
                    accepted = await self._evaluate_with_ai(self.executor, item, session)
                except Exception as e:
                    logfire.warning(
                        "AI membership evaluation failed",
                        item_id=item.id,
                        session_id=session.id,
                        error=str(e),
                    )
                    continue
                if accepted is not None:
                    return accepted

        return await self._evaluate_with_heuristics(item, candidates)

    async def _evaluate_with_ai(
        self, executor: WorkflowExecutor, item: ClipboardItem, session: Session
    ) -> Session | None:
        session_items = await self.repository.get_session_items(session.id)
        raw = await executor.execute_workflow(
            WorkflowName.SESSION_MANAGEMENT.value, self._membership_payload(item, session, session_items)
        )
        judgment = MembershipJudgment.from_response(raw)
        if judgment is None:
            logfire.warning("Malformed membership judgment", session_id=session.id)
            return None

        confidence = judgment.membership_confidence
        if judgment.belongs_to_session:
            if confidence > self.thresholds.accept:
                logfire.info(
                    "Item joins session",
                    session_id=session.id,
                    confidence=confidence,
                    rule="accept",
                )
                return session
            if confidence > self.thresholds.theme and detect_cross_session_theme(
                item, session, session_items
            ):
                logfire.info(
                    "Item joins session",
                    session_id=session.id,
                    confidence=confidence,
                    rule="cross_theme",
                )
                return session

        if confidence > self.thresholds.compatibility:
            match = find_theme_match(item, session_items)
            if match is not None:
                return await self._merge_on_theme(session, match)
        return None

    async def _evaluate_with_heuristics(
        self, item: ClipboardItem, candidates: Sequence[Session]
    ) -> Session | None:
        now = self._clock()
        for session in candidates:
            if matches_session_type(item, session):
                logfire.info("Item joins session", session_id=session.id, rule="keyword")
                return session

            if now - session.last_activity >= self.theme_window:
                continue
            session_items = await self.repository.get_session_items(session.id)
            match = find_theme_match(item, session_items)
            if match is not None:
                return await self._merge_on_theme(session, match)
        return None

    async def _merge_on_theme(self, session: Session, match: ThemeMatch) -> Session:
        if self.locks is None:
            return await self._reclassify_on_theme(session, match)
        lock = await self.locks.get(session.id)
        async with lock.write_locked():
            return await self._reclassify_on_theme(session, match)

    async def _reclassify_on_theme(self, session: Session, match: ThemeMatch) -> Session:
        """Rename the stored session and mirror the result onto the candidate object."""
        current = await self.repository.get_session(session.id) or session
        previous_type, previous_label = current.session_type, current.session_label
        change = current.reclassify(match.session_type, match.label, match.reasoning)
        logfire.info(
            "Item joins session on shared theme",
            session_id=session.id,
            theme=match.label,
            reclassified=change is not None,
        )
        if change is not None:
            current.touch(self._clock())
            await self.repository.save_session(current)

        session.session_type = current.session_type
        session.session_label = current.session_label
        session.type_history = list(current.type_history)
        session.touch(current.last_activity)

        if change is not None and self.event_bus is not None:
            await self.event_bus.emit(
                SessionReclassifiedEvent(
                    session_id=session.id,
                    previous_type=previous_type.value,
                    new_type=match.session_type.value,
                    previous_label=previous_label,
                    new_label=match.label,
                    reason=match.reasoning,
                )
            )
        return session

    @staticmethod
    def _membership_payload(
        item: ClipboardItem, session: Session, session_items: Sequence[ClipboardItem]
    ) -> dict[str, Any]:
        return {
            "content": item.content,
            "context": {
                "sourceApp": item.source_app,
                "windowTitle": item.window_title,
                "screenshotPath": item.screenshot_ref,
            },
            "existingSession": {
                "type": session.session_type.value,
                "label": session.session_label,
                "items": [other.snapshot() for other in session_items],
            },
        }


__all__ = [
    "MembershipEvaluator",
    "ThemeMatch",
    "detect_cross_session_theme",
    "find_theme_match",
    "matches_session_type",
]
