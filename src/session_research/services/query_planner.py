"""Turn stored per-item analysis into targeted research queries."""

from __future__ import annotations

from collections.abc import Sequence

import logfire

from session_research.agents.base import WorkflowExecutor, WorkflowName, require_executor
from session_research.core.config import config as global_config
from session_research.core.exceptions import CollaboratorUnavailableError
from session_research.models.ai import QueryPlanResponse
from session_research.models.clipboard import ClipboardItem
from session_research.models.research import (
    EntryAnalysis,
    ResearchPlan,
    ResearchPlanEntry,
    ResearchQuery,
)
from session_research.models.session import SessionType

ORIGINAL_CONTENT_ASPECT = "original_content_research"
CONTEXTUAL_ASPECT = "contextual_research"


def build_entry_analysis(item: ClipboardItem) -> EntryAnalysis | None:
    """Planning snapshot of an item, or None when the item has no stored analysis."""
    if item.analysis_data is None:
        return None
    analysis = item.analysis_data
    return EntryAnalysis(
        item_id=item.id,
        content=item.content,
        content_type=analysis.content_type,
        tags=list(analysis.tags),
        context_insights=analysis.context_insights,
        visual_context=analysis.visual_context,
        source_app=item.source_app,
        window_title=item.window_title,
    )


def fallback_queries(entry: EntryAnalysis, limit: int = 3) -> list[ResearchQuery]:
    """Deterministic plan: one broad query on the verbatim content, plus one folding in the top tags."""
    content = entry.content.strip()
    queries = [
        ResearchQuery(
            aspect=ORIGINAL_CONTENT_ASPECT,
            search_query=f"{content} detailed information reviews features pricing availability",
            known_info=f"Original content: {content}",
            research_gap="Comprehensive information about the specific item copied",
        )
    ]
    if entry.tags:
        queries.append(
            ResearchQuery(
                aspect=CONTEXTUAL_ASPECT,
                search_query=f"{content} {' '.join(entry.tags[:2])} information guide",
                known_info=f"Context: {', '.join(entry.tags)}",
                research_gap="Additional contextual information",
            )
        )
    return queries[:limit]


class ResearchQueryPlanner:
    """Plans up to ``max_queries_per_item`` queries for every researchable item.

    The collaborator's plan is preferred; any failure or malformed response
    falls back to :func:`fallback_queries` for that item only.
    """

    def __init__(
        self,
        executor: WorkflowExecutor | None = None,
        *,
        max_queries_per_item: int | None = None,
    ) -> None:
        self.executor = executor
        self.max_queries_per_item = max_queries_per_item or global_config.max_queries_per_item

    async def plan_queries(
        self, items: Sequence[ClipboardItem], session_type: SessionType
    ) -> ResearchPlan:
        entries: list[ResearchPlanEntry] = []
        for item in items:
            entry = build_entry_analysis(item)
            if entry is None:
                logfire.debug("Skipping item without analysis data", item_id=item.id)
                continue
            queries = await self.queries_for(entry, session_type)
            if queries:
                entries.append(ResearchPlanEntry(**entry.model_dump(), research_queries=queries))

        plan = ResearchPlan(session_type=session_type, entries=entries)
        logfire.info(
            "Research queries planned",
            session_type=session_type.value,
            entries=len(plan.entries),
            total_queries=plan.total_queries,
        )
        return plan

    async def queries_for(self, entry: EntryAnalysis, session_type: SessionType) -> list[ResearchQuery]:
        try:
            executor = require_executor(self.executor, WorkflowName.RESEARCH_QUERY_GENERATION)
        except CollaboratorUnavailableError:
            return fallback_queries(entry, self.max_queries_per_item)

        payload = {
            "content": entry.content,
            "entryAnalysis": entry.model_dump(mode="json", by_alias=True),
            "sessionType": session_type.value,
            "context": {
                "sessionType": session_type.value,
                "contentType": entry.content_type,
                "tags": entry.tags,
                "contextInsights": entry.context_insights,
                "visualContext": entry.visual_context,
                "sourceApp": entry.source_app,
                "windowTitle": entry.window_title,
            },
        }
        try:
            raw = await executor.execute_workflow(WorkflowName.RESEARCH_QUERY_GENERATION.value, payload)
        except Exception as e:
            logfire.warning("Query generation failed, using fallback", item_id=entry.item_id, error=str(e))
            return fallback_queries(entry, self.max_queries_per_item)

        response = QueryPlanResponse.from_response(raw)
        if response is None:
            logfire.warning("Malformed query plan, using fallback", item_id=entry.item_id)
            return fallback_queries(entry, self.max_queries_per_item)
        return response.research_queries[: self.max_queries_per_item]


__all__ = [
    "CONTEXTUAL_ASPECT",
    "ORIGINAL_CONTENT_ASPECT",
    "ResearchQueryPlanner",
    "build_entry_analysis",
    "fallback_queries",
]
