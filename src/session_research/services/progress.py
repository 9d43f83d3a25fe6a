"""Progress reporting for research runs.

A :class:`ProgressReporter` owns the phase state machine of one run::

    initializing -> queries_generated -> searching* -> consolidating -> completed
                 \\-> failed | cancelled (from any non-terminal phase)

Exactly one terminal event is delivered per run; anything emitted after it
is dropped. Sink failures are logged and never reach the orchestrator.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import logfire

from session_research.core.events import ResearchProgressEvent, SessionEventBus
from session_research.core.exceptions import InvalidProgressTransitionError
from session_research.models.progress import ProgressEvent, ResearchPhase

ProgressSink = Callable[[ProgressEvent], Any]

_ABORT = {ResearchPhase.FAILED, ResearchPhase.CANCELLED}

ALLOWED_TRANSITIONS: dict[ResearchPhase | None, set[ResearchPhase]] = {
    None: {ResearchPhase.INITIALIZING} | _ABORT,
    ResearchPhase.INITIALIZING: {ResearchPhase.QUERIES_GENERATED} | _ABORT,
    ResearchPhase.QUERIES_GENERATED: {ResearchPhase.SEARCHING, ResearchPhase.CONSOLIDATING} | _ABORT,
    ResearchPhase.SEARCHING: {ResearchPhase.SEARCHING, ResearchPhase.CONSOLIDATING} | _ABORT,
    ResearchPhase.CONSOLIDATING: {ResearchPhase.COMPLETED} | _ABORT,
}


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else f"{text[:limit]}..."


class ProgressReporter:
    """Validates and delivers the progress envelope of one research run.

    Non-terminal progress never decreases. ``start`` lets a caller that
    only executes a prepared plan begin after query generation.
    """

    def __init__(
        self,
        session_id: str,
        sink: ProgressSink | None = None,
        *,
        event_bus: SessionEventBus | None = None,
        start: ResearchPhase | None = None,
    ) -> None:
        self.session_id = session_id
        self.sink = sink
        self.event_bus = event_bus
        self.phase: ResearchPhase | None = start
        self.progress = 0
        self.events: list[ProgressEvent] = []

    @property
    def terminated(self) -> bool:
        return self.phase is not None and self.phase.is_terminal

    @property
    def cancelled(self) -> bool:
        return self.phase is ResearchPhase.CANCELLED

    async def emit(
        self,
        phase: ResearchPhase,
        progress: int | None = None,
        message: str = "",
        **fields: Any,
    ) -> ProgressEvent | None:
        if self.terminated:
            logfire.debug(
                "Dropping progress event after terminal phase",
                session_id=self.session_id,
                phase=phase.value,
            )
            return None
        if phase not in ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidProgressTransitionError(
                self.phase.value if self.phase else None, phase.value
            )

        if phase is ResearchPhase.COMPLETED:
            value = 100
        elif phase.is_terminal:
            value = self.progress if progress is None else max(0, min(100, progress))
        else:
            value = max(self.progress, min(100, progress or 0))

        event = ProgressEvent(
            session_id=self.session_id,
            phase=phase,
            progress=value,
            message=message,
            **fields,
        )
        self.phase = phase
        self.progress = value
        self.events.append(event)
        await self._deliver(event)
        return event

    async def fail(self, message: str, *, error: str | None = None) -> ProgressEvent | None:
        return await self.emit(ResearchPhase.FAILED, None, message, error=error or message)

    async def _deliver(self, event: ProgressEvent) -> None:
        if self.sink is not None:
            try:
                result = self.sink(event)
                if asyncio.iscoroutine(result):
                    await result
            except Exception as e:
                logfire.warning(
                    "Progress sink failed",
                    session_id=self.session_id,
                    phase=event.phase.value,
                    error=str(e),
                )

        if self.event_bus is not None:
            await self.event_bus.emit(
                ResearchProgressEvent(
                    session_id=self.session_id,
                    phase=event.phase.value,
                    progress=event.progress,
                    message=event.message,
                )
            )


__all__ = ["ALLOWED_TRANSITIONS", "ProgressReporter", "ProgressSink", "truncate"]
