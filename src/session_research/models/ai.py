"""Typed views of workflow collaborator responses.

Responses from the workflow collaborator are loosely shaped. Each model here
validates and coerces one response kind; ``from_response`` returns None for
anything that cannot be trusted, so call sites fall back instead of probing
optional keys.
"""

from __future__ import annotations

from typing import Any, Self

import logfire
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from session_research.models.research import ResearchQuery
from session_research.models.session import SessionType


def _clamp_unit(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise ValueError("confidence must be a number")
    try:
        number = float(value)
    except ValueError as exc:
        raise ValueError("confidence must be a number") from exc
    if number != number:  # NaN
        raise ValueError("confidence must be a number")
    return max(0.0, min(1.0, number))


def _as_str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, list):
        return [str(v).strip() for v in value if isinstance(v, (str, int, float)) and str(v).strip()]
    return []


class WorkflowResponse(BaseModel):
    """Base for collaborator responses."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @classmethod
    def from_response(cls, raw: Any) -> Self | None:
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, BaseModel):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, dict):
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError as exc:
            logfire.debug(
                f"Discarding malformed {cls.__name__}",
                errors=exc.error_count(),
            )
            return None


class MembershipJudgment(WorkflowResponse):
    """Answer of the ``session_management`` workflow for one candidate."""

    belongs_to_session: bool
    membership_confidence: float = Field(ge=0.0, le=1.0)
    session_reasoning: str = ""

    @field_validator("membership_confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _clamp_unit(value)

    @field_validator("session_reasoning", mode="before")
    @classmethod
    def coerce_reasoning(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""


class SessionTypeDetection(WorkflowResponse):
    """Answer of the ``session_type_detection`` workflow."""

    session_type: SessionType
    session_confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("session_type", mode="before")
    @classmethod
    def known_type(cls, value: Any) -> SessionType:
        parsed = SessionType.parse(value)
        if parsed is None:
            raise ValueError(f"unknown session type {value!r}")
        return parsed

    @field_validator("session_confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _clamp_unit(value)


class QueryPlanResponse(WorkflowResponse):
    """Answer of the ``research_query_generation`` workflow.

    Individual malformed queries are dropped; the response itself is
    rejected only when no usable query remains.
    """

    research_queries: list[ResearchQuery] = Field(min_length=1)

    @field_validator("research_queries", mode="before")
    @classmethod
    def keep_valid(cls, value: Any) -> list[ResearchQuery]:
        if not isinstance(value, list):
            raise ValueError("researchQueries must be a list")
        queries: list[ResearchQuery] = []
        for raw in value:
            if isinstance(raw, ResearchQuery):
                queries.append(raw)
                continue
            if not isinstance(raw, dict):
                continue
            try:
                queries.append(ResearchQuery.model_validate(raw))
            except ValidationError:
                continue
        return queries


class ConsolidationResponse(WorkflowResponse):
    """Answer of the ``session_research_consolidation`` workflow."""

    research_objective: str = Field(
        min_length=1, validation_alias=AliasChoices("researchObjective", "research_objective", "objective")
    )
    summary: str = Field(
        min_length=1,
        validation_alias=AliasChoices("summary", "comprehensiveSummary", "comprehensive_summary"),
    )
    primary_intent: str = Field(
        default="Information gathering and analysis",
        validation_alias=AliasChoices("primaryIntent", "primary_intent", "intent"),
    )
    research_goals: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("researchGoals", "research_goals", "goals")
    )
    next_steps: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("nextSteps", "next_steps", "actions")
    )
    session_insights: str = Field(
        default="", validation_alias=AliasChoices("sessionInsights", "session_insights")
    )

    @field_validator("research_goals", "next_steps", mode="before")
    @classmethod
    def coerce_lists(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("primary_intent", "session_insights", mode="before")
    @classmethod
    def coerce_optional_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value

    @field_validator("primary_intent")
    @classmethod
    def default_intent(cls, value: str) -> str:
        return value.strip() or "Information gathering and analysis"


class SessionAnalysisResponse(WorkflowResponse):
    """Holistic session judgment used by the comprehensive analyzer."""

    session_insights: str | None = None
    primary_intent: str = "research"
    progress_status: str = "in_progress"
    next_actions: list[str] = Field(default_factory=list)
    session_confidence: float = Field(default=0.7, ge=0.0, le=1.0)
    session_reasoning: str = "Comprehensive analysis of session items"

    @model_validator(mode="before")
    @classmethod
    def flatten_intent(cls, data: Any) -> Any:
        if isinstance(data, dict) and isinstance(data.get("intentAnalysis"), dict):
            nested = data["intentAnalysis"]
            data = dict(data)
            data.setdefault("primaryIntent", nested.get("primaryIntent"))
            data.setdefault("progressStatus", nested.get("progressStatus"))
        return {k: v for k, v in data.items() if v is not None} if isinstance(data, dict) else data

    @field_validator("next_actions", mode="before")
    @classmethod
    def coerce_actions(cls, value: Any) -> list[str]:
        return _as_str_list(value)

    @field_validator("session_confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value: Any) -> float:
        return _clamp_unit(value)

    @field_validator("session_insights", mode="before")
    @classmethod
    def blank_insights(cls, value: Any) -> str | None:
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None


__all__ = [
    "WorkflowResponse",
    "MembershipJudgment",
    "SessionTypeDetection",
    "QueryPlanResponse",
    "ConsolidationResponse",
    "SessionAnalysisResponse",
]
