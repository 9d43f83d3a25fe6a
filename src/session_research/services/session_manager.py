"""Session lifecycle coordination for incoming clipboard items."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import logfire

from session_research.agents.base import WorkflowExecutor, WorkflowName
from session_research.core.config import SessionResearchConfig
from session_research.core.config import config as global_config
from session_research.core.events import (
    SessionActivatedEvent,
    SessionCreatedEvent,
    SessionEventBus,
    SessionResearchCompletedEvent,
    SessionUpdatedEvent,
)
from session_research.core.exceptions import SessionNotFoundError
from session_research.core.locks import SessionLockRegistry
from session_research.models.ai import SessionTypeDetection
from session_research.models.analysis import ComprehensiveSummary
from session_research.models.clipboard import ClipboardItem
from session_research.models.research import SessionResearchArtifact
from session_research.models.session import Session, SessionStatus, SessionType
from session_research.services import heuristics
from session_research.services.comprehensive import ComprehensiveSessionAnalyzer
from session_research.services.consolidator import ResearchConsolidator
from session_research.services.intent import IntentAnalyzer
from session_research.services.membership import MembershipEvaluator
from session_research.services.progress import ProgressReporter, ProgressSink
from session_research.services.query_planner import ResearchQueryPlanner
from session_research.services.repository import SessionRepository
from session_research.services.research_orchestrator import ResearchExecutionOrchestrator

ALL_ITEMS_LIMIT = 10
CONTENT_KEYWORD_LIMIT = 15


def _items_phrase(count: int) -> str:
    return f"{count} item{'s' if count != 1 else ''}"


class SessionManager:
    """Routes clipboard items into sessions and drives research over them.

    Membership evaluation and session creation run under one global lock so
    two captures never open duplicate sessions. Every read-modify-write of a
    session's JSON fields holds that session's write lock. Background
    research runs are tracked and awaited by :meth:`stop`.
    """

    def __init__(
        self,
        repository: SessionRepository,
        executor: WorkflowExecutor | None = None,
        *,
        config: SessionResearchConfig | None = None,
        event_bus: SessionEventBus | None = None,
        progress_sink: ProgressSink | None = None,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self.config = config or global_config
        self.event_bus = event_bus
        self.progress_sink = progress_sink

        self._locks = SessionLockRegistry()
        self.membership = MembershipEvaluator(
            repository,
            executor,
            thresholds=self.config.thresholds,
            theme_window_seconds=self.config.theme_matching_window_seconds,
            event_bus=event_bus,
            locks=self._locks,
        )
        self.intent_analyzer = IntentAnalyzer(repository, event_bus=event_bus)
        self.comprehensive_analyzer = ComprehensiveSessionAnalyzer(repository, executor)
        self.orchestrator = ResearchExecutionOrchestrator(
            repository,
            executor,
            planner=ResearchQueryPlanner(executor, max_queries_per_item=self.config.max_queries_per_item),
            consolidator=ResearchConsolidator(
                repository, executor, max_fallback_findings=self.config.fallback_max_findings
            ),
            retry_attempts=self.config.query_retry_attempts,
            event_bus=event_bus,
        )

        self._membership_lock = asyncio.Lock()
        self._research_tasks: dict[str, asyncio.Task[SessionResearchArtifact | None]] = {}
        self._accepting = True

    async def start(self) -> None:
        self._accepting = True
        logfire.info(
            "Session manager started",
            ai_available=self.executor is not None,
            auto_research=self.config.auto_research,
        )

    async def stop(self) -> None:
        """Stop scheduling research and wait for runs already in flight."""
        self._accepting = False
        tasks = list(self._research_tasks.values())
        if tasks:
            logfire.info("Waiting for research runs", pending=len(tasks))
            await asyncio.gather(*tasks, return_exceptions=True)
        logfire.info("Session manager stopped")

    @property
    def pending_research(self) -> list[str]:
        return [sid for sid, task in self._research_tasks.items() if not task.done()]

    async def get_session(self, session_id: str) -> Session | None:
        """Read a session without observing a half-applied write."""
        lock = await self._locks.get(session_id)
        async with lock.read_locked():
            return await self.repository.get_session(session_id)

    async def process_clipboard_item(self, item: ClipboardItem) -> Session | None:
        """Place an item in a session, creating one when no candidate accepts it.

        Returns the updated session, or None for blank content.
        """
        if not item.content.strip():
            logfire.debug("Ignoring blank clipboard item", item_id=item.id)
            return None

        with logfire.span("process clipboard item", item_id=item.id, source_app=item.source_app):
            async with self._membership_lock:
                if await self.repository.get_clipboard_item(item.id) is None:
                    await self.repository.save_clipboard_item(item)

                existing = await self.repository.get_membership(item.id)
                if existing is not None:
                    logfire.debug("Clipboard item already placed", item_id=item.id, session_id=existing.session_id)
                    return await self.repository.get_session(existing.session_id)

                since = datetime.now(UTC) - timedelta(seconds=self.config.session_timeout_seconds)
                candidates = await self.repository.list_candidate_sessions(since)
                session = await self.membership.evaluate_membership(item, candidates)
                if session is None:
                    session = await self.create_standalone_session(item)

                await self.repository.add_item_to_session(session.id, item.id)
                lock = await self._locks.get(session.id)
                async with lock.write_locked():
                    await self.update_session_metadata_for_new_item(session.id, item)
                item_count = await self.repository.get_item_count(session.id)

            logfire.info(
                "Clipboard item added to session",
                item_id=item.id,
                session_id=session.id,
                session_type=session.session_type.value,
                item_count=item_count,
            )
            if self.event_bus is not None:
                await self.event_bus.emit(
                    SessionUpdatedEvent(session_id=session.id, item_id=item.id, item_count=item_count)
                )

            if item_count >= 2:
                await self.activate_session(session.id)
            if item_count >= self.config.research_min_items and self.config.auto_research:
                self.schedule_research(session.id)

            return await self.repository.get_session(session.id)

    async def detect_new_session_type(self, item: ClipboardItem) -> SessionType:
        """AI type detection above the configured confidence, else keyword heuristics."""
        if self.executor is not None:
            payload = {
                "content": item.content,
                "context": {"sourceApp": item.source_app, "windowTitle": item.window_title},
            }
            try:
                raw = await self.executor.execute_workflow(WorkflowName.SESSION_TYPE_DETECTION.value, payload)
            except Exception as e:
                logfire.warning("Session type detection failed", item_id=item.id, error=str(e))
            else:
                detection = SessionTypeDetection.from_response(raw)
                if detection is not None and detection.session_confidence > self.config.session_type_confidence:
                    return detection.session_type

        return heuristics.detect_session_type(item, default=SessionType.GENERAL_RESEARCH) or (
            SessionType.GENERAL_RESEARCH
        )

    async def create_standalone_session(self, item: ClipboardItem) -> Session:
        session_type = await self.detect_new_session_type(item)
        now = datetime.now(UTC).isoformat()
        session = Session(
            session_type=session_type,
            session_label=heuristics.generate_session_label(session_type, item),
            status=SessionStatus.INACTIVE,
            context_summary={
                "sessionSummary": f"{session_type.display} session (standalone)",
                "sessionProgress": {
                    "totalItems": 0,
                    "researchedItems": 0,
                    "nonResearchItems": 0,
                    "lastUpdated": now,
                },
                "allItems": [],
                "createdAsStandalone": True,
            },
            intent_analysis={
                "basicAnalysis": {
                    "totalItems": 0,
                    "contentTypes": [],
                    "sourceApplications": [item.source_app],
                    "timespan": "less than a minute",
                    "lastUpdated": now,
                },
                "standaloneSession": True,
                "awaitingSecondItem": True,
            },
        )
        session = await self.repository.create_session(session)

        logfire.info(
            "Standalone session created",
            session_id=session.id,
            session_type=session_type.value,
            session_label=session.session_label,
        )
        if self.event_bus is not None:
            await self.event_bus.emit(
                SessionCreatedEvent(
                    session_id=session.id,
                    session_type=session_type.value,
                    session_label=session.session_label,
                    first_item_id=item.id,
                )
            )
        return session

    async def update_session_metadata_for_new_item(self, session_id: str, item: ClipboardItem) -> None:
        """Refresh the per-item rollup; the caller holds the session write lock."""
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        items = await self.repository.get_session_items(session_id)

        now = datetime.now(UTC).isoformat()
        context_summary = dict(session.context_summary)
        intent_analysis = dict(session.intent_analysis)
        total = len(items)
        source_apps = list(dict.fromkeys(i.source_app for i in items))
        item_types = heuristics.analyze_item_types(items)

        progress = dict(context_summary.get("sessionProgress") or {})
        researched = min(int(progress.get("researchedItems", 0)), total)
        context_summary["sessionProgress"] = {
            **progress,
            "totalItems": total,
            "researchedItems": researched,
            "nonResearchItems": total - researched,
            "lastUpdated": now,
        }

        all_items = list(context_summary.get("allItems") or [])
        all_items.append(
            {
                "clipboardItemId": item.id,
                "sourceApp": item.source_app,
                "windowTitle": item.window_title,
                "timestamp": item.timestamp.isoformat(),
                "hasResearch": False,
            }
        )
        context_summary["allItems"] = all_items[-ALL_ITEMS_LIMIT:]

        if "sessionSummary" not in context_summary or "sessionResearch" not in context_summary:
            context_summary["sessionSummary"] = (
                f"{session.session_type.display} session with {_items_phrase(total)} "
                f"({', '.join(item_types)}) from {', '.join(source_apps)}"
            )

        intent_analysis["basicAnalysis"] = {
            "totalItems": total,
            "contentTypes": item_types,
            "sourceApplications": source_apps,
            "timespan": heuristics.calculate_session_timespan(items),
            "lastUpdated": now,
        }

        keywords = list(context_summary.get("contentKeywords") or [])
        keywords.extend(heuristics.extract_basic_keywords(f"{item.source_app} {item.window_title}"))
        context_summary["contentKeywords"] = list(dict.fromkeys(keywords))[:CONTENT_KEYWORD_LIMIT]

        await self.repository.update_session_data(session_id, context_summary, intent_analysis)

    async def activate_session(self, session_id: str) -> bool:
        """Promote an inactive session once it holds two items and analyze its intent.

        Returns True when the session was activated by this call.
        """
        lock = await self._locks.get(session_id)
        async with lock.write_locked():
            session = await self.repository.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.status is not SessionStatus.INACTIVE:
                return False

            session.status = SessionStatus.ACTIVE
            session.touch()
            await self.repository.save_session(session)
            item_count = await self.repository.get_item_count(session_id)
            await self.intent_analyzer.analyze_intent(session_id)

        logfire.info("Session activated", session_id=session_id, item_count=item_count)
        if self.event_bus is not None:
            await self.event_bus.emit(SessionActivatedEvent(session_id=session_id, item_count=item_count))
        return True

    def schedule_research(self, session_id: str) -> asyncio.Task[SessionResearchArtifact | None] | None:
        """Start a background research run unless one is already in flight for the session."""
        if not self._accepting:
            logfire.debug("Research not scheduled, manager stopped", session_id=session_id)
            return None
        running = self._research_tasks.get(session_id)
        if running is not None and not running.done():
            logfire.debug("Research already running", session_id=session_id)
            return None

        task = asyncio.create_task(self._research_in_background(session_id))
        self._research_tasks[session_id] = task
        task.add_done_callback(lambda done: self._forget_task(session_id, done))
        return task

    def _forget_task(self, session_id: str, task: asyncio.Task[Any]) -> None:
        if self._research_tasks.get(session_id) is task:
            del self._research_tasks[session_id]

    async def _research_in_background(self, session_id: str) -> SessionResearchArtifact | None:
        try:
            return await self.perform_session_research(session_id, self.progress_sink)
        except SessionNotFoundError as e:
            logfire.warning("Scheduled research skipped", session_id=session_id, error=e.message)
            return None

    async def perform_session_research(
        self,
        session_id: str,
        on_progress: ProgressSink | ProgressReporter | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SessionResearchArtifact | None:
        """Research a session and merge the outcome into it.

        Raises:
            SessionNotFoundError: when the session does not exist.
        """
        try:
            artifact = await self.orchestrator.run(session_id, on_progress, cancel_event=cancel_event)
        except SessionNotFoundError:
            raise
        except Exception as e:
            logfire.error("Session research aborted", session_id=session_id, error=str(e))
            await self._emit_research_completed(session_id, None, error_message=str(e))
            return None

        if artifact is None:
            await self._emit_research_completed(session_id, None, error_message="No research findings")
            return None

        lock = await self._locks.get(session_id)
        async with lock.write_locked():
            # per-item results were recorded during the run; the artifact's summary must win
            await self.comprehensive_analyzer.recompute(session_id)
            await self.apply_research_artifact(session_id, artifact)

        await self._emit_research_completed(session_id, artifact)
        return artifact

    async def apply_research_artifact(self, session_id: str, artifact: SessionResearchArtifact) -> Session:
        """Merge a research artifact into the session; the caller holds the write lock."""
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        now = datetime.now(UTC).isoformat()
        context_summary = dict(session.context_summary)
        intent_analysis = dict(session.intent_analysis)

        context_summary["sessionResearch"] = {
            "researchCompleted": True,
            "researchType": artifact.research_type,
            "objective": artifact.research_objective,
            "keyFindings": artifact.key_findings,
            "comprehensiveSummary": artifact.comprehensive_summary,
            "totalSources": artifact.total_sources,
            "researchQuality": artifact.research_quality.value,
            "entities": artifact.entities_researched,
            "aspects": artifact.aspects_covered,
            "researchData": artifact.research_data.model_dump(mode="json", by_alias=True),
            "consolidationStrategy": artifact.consolidation_strategy.value,
            "lastResearched": artifact.last_researched.isoformat(),
        }
        context_summary["sessionSummary"] = artifact.comprehensive_summary

        intent_analysis["sessionIntent"] = {
            "primaryGoal": artifact.primary_intent,
            "researchObjective": artifact.research_objective,
            "researchGoals": artifact.research_goals,
            "nextSteps": artifact.next_steps,
            "progressStatus": "research_completed",
            "confidenceLevel": artifact.confidence_level,
            "analysisReasoning": artifact.session_insights
            or f"Research-based analysis with {len(artifact.key_findings)} findings",
        }
        intent_analysis["researchMetrics"] = {
            "totalFindings": len(artifact.key_findings),
            "totalSources": artifact.total_sources,
            "researchQuality": artifact.research_quality.value,
            "aspectsCovered": len(artifact.aspects_covered),
        }
        intent_analysis["researchBased"] = True
        intent_analysis["lastUpdated"] = now

        await self.repository.update_session_data(session_id, context_summary, intent_analysis)

        # only the label changes here; type and history come from the store
        session = await self.repository.get_session(session_id) or session
        title = heuristics.generate_focused_title(
            session.session_type,
            session.session_label,
            primary_intent=artifact.primary_intent,
            research_objective=artifact.research_objective,
        )
        if session.reclassify(session.session_type, title, "Focused title from research"):
            await self.repository.save_session(session)

        logfire.info(
            "Research merged into session",
            session_id=session_id,
            session_label=session.session_label,
            key_findings=len(artifact.key_findings),
            research_quality=artifact.research_quality.value,
        )
        return session

    async def update_comprehensive_analysis(self, session_id: str) -> ComprehensiveSummary:
        lock = await self._locks.get(session_id)
        async with lock.write_locked():
            return await self.comprehensive_analyzer.recompute(session_id)

    async def _emit_research_completed(
        self,
        session_id: str,
        artifact: SessionResearchArtifact | None,
        *,
        error_message: str | None = None,
    ) -> None:
        if self.event_bus is None:
            return
        if artifact is None:
            event = SessionResearchCompletedEvent(
                session_id=session_id, success=False, error_message=error_message
            )
        else:
            event = SessionResearchCompletedEvent(
                session_id=session_id,
                success=True,
                total_findings=len(artifact.key_findings),
                research_quality=artifact.research_quality.value,
            )
        await self.event_bus.emit(event)


__all__ = ["SessionManager"]
