"""Execute a research plan query by query and drive the progress envelope."""

from __future__ import annotations

import asyncio
from typing import Any

import logfire

from session_research.agents.base import WorkflowExecutor, WorkflowName, require_executor
from session_research.core.config import config as global_config
from session_research.core.events import SessionEventBus
from session_research.core.exceptions import CollaboratorUnavailableError, SessionNotFoundError
from session_research.core.resilience.retry import retry_async
from session_research.models.clipboard import ClipboardItem
from session_research.models.progress import ResearchPhase
from session_research.models.research import (
    ResearchPayload,
    ResearchPlan,
    ResearchPlanEntry,
    ResearchQuery,
    ResearchResult,
    SessionResearchArtifact,
)
from session_research.services.consolidator import ResearchConsolidator
from session_research.services.progress import ProgressReporter, ProgressSink, truncate
from session_research.services.query_planner import ResearchQueryPlanner
from session_research.services.repository import SessionRepository

COLLABORATOR_UNAVAILABLE = "AI collaborator not available"


class ResearchExecutionOrchestrator:
    """Runs one research pass over a session.

    Queries execute sequentially. A failing query is reported and skipped;
    the run goes on with the rest. Each successful result is also recorded
    on its item under ``workflow_results["research"]``.
    """

    def __init__(
        self,
        repository: SessionRepository,
        executor: WorkflowExecutor | None = None,
        *,
        planner: ResearchQueryPlanner | None = None,
        consolidator: ResearchConsolidator | None = None,
        retry_attempts: int | None = None,
        event_bus: SessionEventBus | None = None,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self.planner = planner or ResearchQueryPlanner(executor)
        self.consolidator = consolidator or ResearchConsolidator(repository, executor)
        self.retry_attempts = retry_attempts or global_config.query_retry_attempts
        self.event_bus = event_bus

    def _reporter(
        self,
        session_id: str,
        on_progress: ProgressSink | ProgressReporter | None,
        start: ResearchPhase | None = None,
    ) -> ProgressReporter:
        if isinstance(on_progress, ProgressReporter):
            return on_progress
        return ProgressReporter(session_id, on_progress, event_bus=self.event_bus, start=start)

    async def run(
        self,
        session_id: str,
        on_progress: ProgressSink | ProgressReporter | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> SessionResearchArtifact | None:
        """Plan, execute and consolidate research for a session.

        Returns None when there is nothing to research, the collaborator is
        unavailable, the run was cancelled, or no query produced findings.
        """
        reporter = self._reporter(session_id, on_progress)
        with logfire.span("session research", session_id=session_id):
            try:
                return await self._run(session_id, reporter, cancel_event)
            except Exception as e:
                logfire.error("Session research failed", session_id=session_id, error=str(e))
                await reporter.fail(f"Research failed: {e}", error=str(e))
                raise

    async def _run(
        self,
        session_id: str,
        reporter: ProgressReporter,
        cancel_event: asyncio.Event | None,
    ) -> SessionResearchArtifact | None:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        items = await self.repository.get_session_items(session_id)
        if not items:
            await reporter.fail("Session has no items to research")
            return None

        await reporter.emit(
            ResearchPhase.INITIALIZING,
            0,
            "Starting session research",
            session_type=session.session_type.value,
            session_label=session.session_label,
            total_items=len(items),
        )

        plan = await self.planner.plan_queries(items, session.session_type)
        await reporter.emit(
            ResearchPhase.QUERIES_GENERATED,
            0,
            f"Generated {plan.total_queries} research queries",
            total_queries=plan.total_queries,
            entries_with_queries=len(plan.entries),
        )

        try:
            require_executor(self.executor, WorkflowName.RESEARCH)
        except CollaboratorUnavailableError as e:
            logfire.warning("Research collaborator unavailable", session_id=session_id, error=e.message)
            await reporter.fail(COLLABORATOR_UNAVAILABLE)
            return None

        results = await self.execute(plan, session_id, reporter, cancel_event=cancel_event)
        if reporter.terminated:
            return None

        await reporter.emit(
            ResearchPhase.CONSOLIDATING,
            95,
            "Consolidating research findings",
            research_results_count=len(results),
        )
        artifact = await self.consolidator.consolidate(session_id, results, plan)

        if artifact is None:
            await reporter.emit(
                ResearchPhase.COMPLETED,
                100,
                "Research completed with no findings",
                final_results={"keyFindings": 0, "totalSources": 0, "researchQuality": "none"},
            )
            return None

        await reporter.emit(
            ResearchPhase.COMPLETED,
            100,
            "Session research completed",
            final_results={
                "keyFindings": len(artifact.key_findings),
                "totalSources": artifact.total_sources,
                "researchQuality": artifact.research_quality.value,
            },
        )
        return artifact

    async def execute(
        self,
        plan: ResearchPlan,
        session_id: str,
        on_progress: ProgressSink | ProgressReporter | None = None,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[ResearchResult]:
        """Run every planned query; the returned list holds successes only."""
        reporter = self._reporter(session_id, on_progress, start=ResearchPhase.QUERIES_GENERATED)
        try:
            executor = require_executor(self.executor, WorkflowName.RESEARCH)
        except CollaboratorUnavailableError:
            await reporter.fail(COLLABORATOR_UNAVAILABLE)
            return []
        if plan.is_empty:
            logfire.info("Research plan has no queries", session_id=session_id)
            return []

        total = plan.total_queries
        completed = 0
        results: list[ResearchResult] = []
        items: dict[str, ClipboardItem | None] = {}

        for entry, query in plan.iter_queries():
            if cancel_event is not None and cancel_event.is_set():
                await reporter.emit(
                    ResearchPhase.CANCELLED,
                    message="Research cancelled",
                    completed_queries=completed,
                    total_queries=total,
                )
                return results

            await reporter.emit(
                ResearchPhase.SEARCHING,
                round(completed / total * 100),
                f"Searching: {truncate(query.search_query, 60)}",
                total_queries=total,
                completed_queries=completed,
                current_query=query.search_query,
                current_aspect=query.aspect,
            )

            if entry.item_id not in items:
                items[entry.item_id] = await self.repository.get_clipboard_item(entry.item_id)
            item = items[entry.item_id]
            if item is None:
                completed += 1
                await reporter.emit(
                    ResearchPhase.SEARCHING,
                    round(completed / total * 100),
                    f"Error searching: {truncate(query.search_query, 50)}",
                    total_queries=total,
                    completed_queries=completed,
                    error=f"Clipboard item {entry.item_id} not found",
                )
                continue

            result = await self._run_query(executor, entry, query, item, session_id)
            completed += 1
            progress = round(completed / total * 100)

            if isinstance(result, Exception):
                await reporter.emit(
                    ResearchPhase.SEARCHING,
                    progress,
                    f"Error searching: {truncate(query.search_query, 50)}",
                    total_queries=total,
                    completed_queries=completed,
                    error=str(result),
                )
            elif result is None:
                await reporter.emit(
                    ResearchPhase.SEARCHING,
                    progress,
                    f"No results for: {truncate(query.search_query, 50)}",
                    total_queries=total,
                    completed_queries=completed,
                )
            else:
                results.append(result)
                await reporter.emit(
                    ResearchPhase.SEARCHING,
                    progress,
                    f"Completed: {truncate(query.search_query, 50)} "
                    f"({len(result.result.key_findings)} findings)",
                    total_queries=total,
                    completed_queries=completed,
                    last_completed_query=query.search_query,
                    findings_count=len(result.result.key_findings),
                )

        logfire.info(
            "Research queries executed",
            session_id=session_id,
            total_queries=total,
            successful=len(results),
        )
        return results

    async def _run_query(
        self,
        executor: WorkflowExecutor,
        entry: ResearchPlanEntry,
        query: ResearchQuery,
        item: ClipboardItem,
        session_id: str,
    ) -> ResearchResult | Exception | None:
        payload = self.research_payload(entry, query, item)
        try:
            raw = await retry_async(
                executor.execute_workflow,
                WorkflowName.RESEARCH.value,
                payload,
                attempts=self.retry_attempts,
                operation=WorkflowName.RESEARCH.value,
            )
        except Exception as e:
            logfire.warning(
                "Research query failed",
                session_id=session_id,
                item_id=entry.item_id,
                query=query.search_query,
                error=str(e),
            )
            return e

        research = ResearchPayload.coerce(raw)
        if research is None or not research.has_research:
            return None

        try:
            await self.repository.record_workflow_result(
                entry.item_id, WorkflowName.RESEARCH.value, research.as_stored()
            )
        except Exception as e:
            logfire.warning("Could not record research result", item_id=entry.item_id, error=str(e))

        return ResearchResult(
            entry_id=entry.item_id,
            aspect=query.aspect,
            query=query.search_query,
            result=research,
        )

    @staticmethod
    def research_payload(
        entry: ResearchPlanEntry, query: ResearchQuery, item: ClipboardItem
    ) -> dict[str, Any]:
        """Synthetic item sent to the ``research`` workflow for one query."""
        return {
            "content": query.search_query,
            "context": {
                "sourceApp": item.source_app,
                "windowTitle": f"Research: {query.aspect} - {item.window_title}",
                "surroundingText": f"{query.known_info} | Research Gap: {query.research_gap}",
                "researchContext": {
                    "originalContent": entry.content,
                    "researchAspect": query.aspect,
                    "knownInfo": query.known_info,
                    "researchGap": query.research_gap,
                },
            },
        }


__all__ = ["COLLABORATOR_UNAVAILABLE", "ResearchExecutionOrchestrator"]
