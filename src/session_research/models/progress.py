"""Progress envelope emitted during a research run."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ResearchPhase(str, Enum):
    """Phases of a research run in their allowed order."""

    INITIALIZING = "initializing"
    QUERIES_GENERATED = "queries_generated"
    SEARCHING = "searching"
    CONSOLIDATING = "consolidating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (ResearchPhase.COMPLETED, ResearchPhase.FAILED, ResearchPhase.CANCELLED)


class ProgressEvent(BaseModel):
    """Envelope shared by every phase; phase-specific fields are optional."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    session_id: str
    phase: ResearchPhase
    progress: int = Field(ge=0, le=100)
    message: str = ""

    session_type: str | None = None
    session_label: str | None = None
    total_items: int | None = None
    total_queries: int | None = None
    entries_with_queries: int | None = None
    completed_queries: int | None = None
    current_query: str | None = None
    current_aspect: str | None = None
    last_completed_query: str | None = None
    findings_count: int | None = None
    research_results_count: int | None = None
    error: str | None = None
    final_results: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.phase.is_terminal

    def to_envelope(self) -> dict[str, Any]:
        """camelCase dict without unset phase fields, for UI listeners."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
