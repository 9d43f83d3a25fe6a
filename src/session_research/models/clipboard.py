"""Clipboard item models."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

WORKFLOW_RESULT_HISTORY = 3


class AnalysisData(BaseModel):
    """Per-item analysis written by the capture pipeline.

    ``workflow_results`` maps a workflow name to its most recent results,
    newest first.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    content_type: str = "unknown"
    tags: list[str] = Field(default_factory=list)
    context_insights: str = ""
    visual_context: str | None = None
    workflow_results: dict[str, list[dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("tags", mode="before")
    @classmethod
    def coerce_tags(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(tag).strip() for tag in value if str(tag).strip()]

    @field_validator("context_insights", mode="before")
    @classmethod
    def coerce_insights(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @field_validator("workflow_results", mode="before")
    @classmethod
    def coerce_results(cls, value: Any) -> dict[str, list[dict[str, Any]]]:
        if not isinstance(value, dict):
            return {}
        return {
            str(name): [entry for entry in entries if isinstance(entry, dict)]
            for name, entries in value.items()
            if isinstance(entries, list)
        }

    def record_workflow_result(
        self,
        workflow: str,
        result: dict[str, Any],
        *,
        timestamp: datetime | None = None,
    ) -> None:
        """Prepend a result for ``workflow`` keeping only the newest three."""
        stamped = {"timestamp": (timestamp or datetime.now(UTC)).isoformat(), **result}
        history = [stamped, *self.workflow_results.get(workflow, [])]
        self.workflow_results[workflow] = history[:WORKFLOW_RESULT_HISTORY]

    def results_for(self, workflow: str) -> list[dict[str, Any]]:
        return list(self.workflow_results.get(workflow, []))


class ClipboardItem(BaseModel):
    """A single captured piece of content."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str
    source_app: str = "unknown"
    window_title: str = ""
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    screenshot_ref: str | None = None
    analysis_data: AnalysisData | None = None

    @field_validator("timestamp")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    @field_validator("window_title", "source_app", mode="before")
    @classmethod
    def none_to_default(cls, value: Any) -> Any:
        return "" if value is None else value

    @property
    def lowered(self) -> str:
        return self.content.lower()

    def snapshot(self) -> dict[str, Any]:
        """Compact representation sent to workflow collaborators."""
        return {
            "content": self.content,
            "sourceApp": self.source_app,
            "windowTitle": self.window_title,
            "timestamp": self.timestamp.isoformat(),
        }
