"""Results returned by the session analyzers."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ProgressStatus(str, Enum):
    """Coarse progress of the task a session represents."""

    JUST_STARTED = "just_started"
    IN_PROGRESS = "in_progress"
    NEARLY_COMPLETE = "nearly_complete"
    COMPLETED = "completed"


class IntentSummary(BaseModel):
    """Outcome of intent analysis for one session."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    primary_intent: str
    progress_status: ProgressStatus
    content_themes: list[str] = Field(default_factory=list)
    source_applications: list[str] = Field(default_factory=list)
    item_count: int = Field(ge=0)


class ComprehensiveSummary(BaseModel):
    """Whole-session rollup of stored per-item research."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_findings: int = Field(default=0, ge=0, description="Research results carrying a summary")
    total_sources: int = Field(default=0, ge=0)
    top_keywords: list[str] = Field(default_factory=list)
    total_items: int = Field(default=0, ge=0)
    researched_items: int = Field(default=0, ge=0)
    non_research_items: int = Field(default=0, ge=0)
    has_ai_analysis: bool = False


__all__ = ["ProgressStatus", "IntentSummary", "ComprehensiveSummary"]
