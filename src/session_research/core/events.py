"""Session lifecycle events and a small in-process event bus.

Events are immutable. Handlers may be plain functions or coroutines; a
failing handler is logged and never affects the emitter or other handlers.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict, deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

import logfire


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class SessionEvent:
    """Base class for everything published on the session bus."""

    session_id: str
    timestamp: datetime = field(default_factory=_now, kw_only=True)


@dataclass(frozen=True)
class SessionCreatedEvent(SessionEvent):
    session_type: str
    session_label: str
    first_item_id: str


@dataclass(frozen=True)
class SessionUpdatedEvent(SessionEvent):
    item_id: str
    item_count: int


@dataclass(frozen=True)
class SessionActivatedEvent(SessionEvent):
    item_count: int


@dataclass(frozen=True)
class SessionIntentAnalyzedEvent(SessionEvent):
    primary_intent: str
    progress_status: str


@dataclass(frozen=True)
class SessionReclassifiedEvent(SessionEvent):
    previous_type: str
    new_type: str
    previous_label: str
    new_label: str
    reason: str


@dataclass(frozen=True)
class ResearchProgressEvent(SessionEvent):
    phase: str
    progress: int
    message: str


@dataclass(frozen=True)
class SessionResearchCompletedEvent(SessionEvent):
    success: bool
    total_findings: int = 0
    research_quality: str | None = None
    error_message: str | None = None


E = TypeVar("E", bound=SessionEvent)
EventHandler = Callable[[E], Any]


class SessionEventBus:
    """Dispatch session events to subscribers by event type.

    Subscribing to ``SessionEvent`` receives every event. A bounded history
    per session is kept for inspection and replay in the CLI.
    """

    def __init__(self, max_history_per_session: int = 200) -> None:
        self._handlers: dict[type[SessionEvent], list[Callable[[Any], Any]]] = defaultdict(list)
        self._history: dict[str, deque[SessionEvent]] = {}
        self._max_history = max_history_per_session

    def subscribe(self, event_type: type[E], handler: EventHandler[E]) -> None:
        self._handlers[event_type].append(handler)
        logfire.debug(
            f"Handler subscribed to {event_type.__name__}",
            handler_name=getattr(handler, "__name__", repr(handler)),
            total_handlers=len(self._handlers[event_type]),
        )

    def unsubscribe(self, event_type: type[E], handler: EventHandler[E]) -> None:
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def _handlers_for(self, event: SessionEvent) -> list[Callable[[Any], Any]]:
        matched: list[Callable[[Any], Any]] = []
        for event_type in type(event).__mro__:
            matched.extend(self._handlers.get(event_type, []))
            if event_type is SessionEvent:
                break
        return matched

    async def emit(self, event: SessionEvent) -> None:
        history = self._history.setdefault(event.session_id, deque(maxlen=self._max_history))
        history.append(event)

        handlers = self._handlers_for(event)
        if not handlers:
            return

        logfire.debug(
            f"Emitting {type(event).__name__}",
            session_id=event.session_id,
            handler_count=len(handlers),
        )
        for handler in handlers:
            await self._safe_call_handler(handler, event)

    def history(self, session_id: str) -> list[SessionEvent]:
        return list(self._history.get(session_id, ()))

    async def _safe_call_handler(self, handler: Callable[[Any], Any], event: SessionEvent) -> None:
        try:
            result = handler(event)
            if asyncio.iscoroutine(result):
                await result
        except Exception as e:
            logfire.error(
                f"Event handler failed for {type(event).__name__}",
                handler_name=getattr(handler, "__name__", repr(handler)),
                session_id=event.session_id,
                error=str(e),
            )


__all__ = [
    "SessionEvent",
    "SessionCreatedEvent",
    "SessionUpdatedEvent",
    "SessionActivatedEvent",
    "SessionIntentAnalyzedEvent",
    "SessionReclassifiedEvent",
    "ResearchProgressEvent",
    "SessionResearchCompletedEvent",
    "SessionEventBus",
]
