"""pydantic-ai agents backing each logical workflow."""

from __future__ import annotations

from typing import Any

import logfire
from pydantic import BaseModel

from session_research.core.config import config as global_config
from session_research.core.exceptions import UnknownWorkflowError
from session_research.models.ai import (
    ConsolidationResponse,
    MembershipJudgment,
    QueryPlanResponse,
    SessionAnalysisResponse,
    SessionTypeDetection,
)
from session_research.models.research import ResearchPayload

from .base import COMPREHENSIVE_ANALYSIS, AgentConfiguration, BaseWorkflowAgent, OutputT, WorkflowName

MEMBERSHIP_SYSTEM_PROMPT = """
You decide whether a newly captured clipboard item belongs to an existing
research session.

You receive the new item (content, source application, window title) and the
session (type, label and its current items). Judge whether the new item
continues the same research intent. Items about the same place, event or
decision belong together even when they are different kinds of things, for
example a hotel and a restaurant in the same city for one trip.

Return belongsToSession, a membershipConfidence between 0 and 1, and a one
sentence sessionReasoning. Use low confidence when unsure.
"""

SESSION_TYPE_SYSTEM_PROMPT = """
Classify a clipboard item into one research session type:
hotel_research, restaurant_research, product_research, academic_research,
travel_research, event_planning, project_research or general_research.

Return sessionType, a sessionConfidence between 0 and 1 and a short
reasoning. Prefer general_research with low confidence for ambiguous text.
"""

QUERY_GENERATION_SYSTEM_PROMPT = """
Plan web research for one clipboard item that belongs to a research session.

You receive the item's content, its detected content type, tags, contextual
notes and the session type. Produce at most three researchQueries. Each has
an aspect (snake_case label), a specific searchQuery, the knownInfo you are
starting from and the researchGap the query should close. Queries must be
concrete and name the entity from the content verbatim.
"""

RESEARCH_SYSTEM_PROMPT = """
Research the query given in the item content. The window title names the
aspect being researched and context.researchContext carries what is already known
and the gap to close.

Return key_findings as short factual statements, sources as URLs and a
research_summary of two or three sentences.
"""

CONSOLIDATION_SYSTEM_PROMPT = """
Consolidate the research results of one clipboard session into a single
session-level summary.

You receive every per-query result, the original research plan, the session
and its items, and a consolidation strategy:
- MERGE: all results describe one entity, merge them into one profile.
- COMPARE: results describe competing entities, compare them along the given
  comparison dimensions.
- COMPLEMENT: results describe complementary entities (e.g. a hotel and a
  restaurant), explain how they fit together.
- GENERIC: summarise independent findings.

Return researchObjective, summary, primaryIntent, researchGoals, nextSteps and
sessionInsights.
"""

SESSION_ANALYSIS_SYSTEM_PROMPT = """
Assess a whole clipboard research session from its items and any research
already attached to them. Return sessionInsights (one paragraph), the
primaryIntent, a progressStatus, up to three nextActions, a
sessionConfidence between 0 and 1 and a short sessionReasoning.
"""


class _PromptedAgent(BaseWorkflowAgent[OutputT]):
    prompt: str = ""
    output_type: type[BaseModel] = BaseModel

    def _get_default_system_prompt(self) -> str:
        return self.prompt.strip()

    def _get_output_type(self) -> type[OutputT]:
        return self.output_type  # type: ignore[return-value]


class MembershipAgent(_PromptedAgent[MembershipJudgment]):
    prompt = MEMBERSHIP_SYSTEM_PROMPT
    output_type = MembershipJudgment


class SessionTypeAgent(_PromptedAgent[SessionTypeDetection]):
    prompt = SESSION_TYPE_SYSTEM_PROMPT
    output_type = SessionTypeDetection


class QueryGenerationAgent(_PromptedAgent[QueryPlanResponse]):
    prompt = QUERY_GENERATION_SYSTEM_PROMPT
    output_type = QueryPlanResponse


class ResearchAgent(_PromptedAgent[ResearchPayload]):
    prompt = RESEARCH_SYSTEM_PROMPT
    output_type = ResearchPayload


class ConsolidationAgent(_PromptedAgent[ConsolidationResponse]):
    prompt = CONSOLIDATION_SYSTEM_PROMPT
    output_type = ConsolidationResponse


class SessionAnalysisAgent(_PromptedAgent[SessionAnalysisResponse]):
    prompt = SESSION_ANALYSIS_SYSTEM_PROMPT
    output_type = SessionAnalysisResponse


_AGENT_REGISTRY: dict[str, tuple[type[BaseWorkflowAgent[Any]], WorkflowName]] = {
    WorkflowName.SESSION_MANAGEMENT.value: (MembershipAgent, WorkflowName.SESSION_MANAGEMENT),
    COMPREHENSIVE_ANALYSIS: (SessionAnalysisAgent, WorkflowName.SESSION_MANAGEMENT),
    WorkflowName.SESSION_TYPE_DETECTION.value: (SessionTypeAgent, WorkflowName.SESSION_TYPE_DETECTION),
    WorkflowName.RESEARCH_QUERY_GENERATION.value: (
        QueryGenerationAgent,
        WorkflowName.RESEARCH_QUERY_GENERATION,
    ),
    WorkflowName.RESEARCH.value: (ResearchAgent, WorkflowName.RESEARCH),
    WorkflowName.SESSION_RESEARCH_CONSOLIDATION.value: (
        ConsolidationAgent,
        WorkflowName.SESSION_RESEARCH_CONSOLIDATION,
    ),
}


class PydanticAIWorkflowExecutor:
    """Workflow executor answering every workflow with a pydantic-ai agent.

    Agents are created lazily, one per route. ``session_management`` calls
    whose context declares ``analysisType == "comprehensive_session_analysis"``
    are routed to the session analysis agent.
    """

    def __init__(self, model: str | None = None, *, max_retries: int | None = None) -> None:
        self.model = model or global_config.model
        self.max_retries = global_config.agent_retries if max_retries is None else max_retries
        self._agents: dict[str, BaseWorkflowAgent[Any]] = {}

    @staticmethod
    def route(name: str, payload: dict[str, Any]) -> str:
        if name == WorkflowName.SESSION_MANAGEMENT.value:
            context = payload.get("context") or {}
            if isinstance(context, dict) and context.get("analysisType") == COMPREHENSIVE_ANALYSIS:
                return COMPREHENSIVE_ANALYSIS
        return name

    def get_agent(self, route: str) -> BaseWorkflowAgent[Any]:
        if route not in _AGENT_REGISTRY:
            raise UnknownWorkflowError(route, sorted(w.value for w in WorkflowName))
        agent = self._agents.get(route)
        if agent is None:
            agent_cls, workflow = _AGENT_REGISTRY[route]
            agent = agent_cls(
                AgentConfiguration(
                    agent_name=f"{route}-agent",
                    workflow=workflow,
                    model=self.model,
                    max_retries=self.max_retries,
                )
            )
            self._agents[route] = agent
        return agent

    async def execute_workflow(self, name: str, payload: dict[str, Any]) -> dict[str, Any]:
        route = self.route(name, payload)
        agent = self.get_agent(route)
        with logfire.span("workflow {name}", name=name, route=route):
            output = await agent.run(payload)
        return output.model_dump(mode="json", by_alias=True)


__all__ = [
    "COMPREHENSIVE_ANALYSIS",
    "ConsolidationAgent",
    "MembershipAgent",
    "PydanticAIWorkflowExecutor",
    "QueryGenerationAgent",
    "ResearchAgent",
    "SessionAnalysisAgent",
    "SessionTypeAgent",
]
