"""Research planning, execution and consolidation models."""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from urllib.parse import urlparse

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    computed_field,
    field_validator,
)
from pydantic.alias_generators import to_camel

from session_research.models.session import SessionType


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ResearchQuery(_CamelModel):
    """One planned external search."""

    aspect: str = Field(default="general", description="Label of the aspect being researched")
    search_query: str = Field(min_length=1, description="Text sent to the research workflow")
    known_info: str = ""
    research_gap: str = ""

    @field_validator("search_query", "aspect", mode="before")
    @classmethod
    def strip_text(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("known_info", "research_gap", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)


class EntryAnalysis(_CamelModel):
    """Snapshot of one item's stored analysis used for planning."""

    item_id: str
    content: str
    content_type: str = "unknown"
    tags: list[str] = Field(default_factory=list)
    context_insights: str = ""
    visual_context: str | None = None
    source_app: str = ""
    window_title: str = ""


class ResearchPlanEntry(EntryAnalysis):
    research_queries: list[ResearchQuery] = Field(default_factory=list)


class ResearchPlan(_CamelModel):
    """Queries planned for every researchable item of a session."""

    session_type: SessionType
    entries: list[ResearchPlanEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_queries(self) -> int:
        return sum(len(entry.research_queries) for entry in self.entries)

    def iter_queries(self) -> Iterator[tuple[ResearchPlanEntry, ResearchQuery]]:
        for entry in self.entries:
            for query in entry.research_queries:
                yield entry, query

    @property
    def is_empty(self) -> bool:
        return self.total_queries == 0


class ResearchPayload(BaseModel):
    """Normalised body of a research workflow response."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    key_findings: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("key_findings", "keyFindings"),
    )
    sources: list[Any] = Field(default_factory=list)
    research_summary: str = Field(
        default="",
        validation_alias=AliasChoices("research_summary", "researchSummary", "summary"),
    )

    @field_validator("key_findings", mode="before")
    @classmethod
    def coerce_findings(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [finding.strip() for finding in value if isinstance(finding, str) and finding.strip()]

    @field_validator("sources", mode="before")
    @classmethod
    def coerce_sources(cls, value: Any) -> list[Any]:
        if not isinstance(value, list):
            return []
        return [source for source in value if isinstance(source, (str, dict))]

    @field_validator("research_summary", mode="before")
    @classmethod
    def coerce_summary(cls, value: Any) -> str:
        return value if isinstance(value, str) else ""

    @classmethod
    def coerce(cls, raw: Any) -> ResearchPayload | None:
        """Build a payload from an arbitrary response, or None if it is not a mapping."""
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, BaseModel):
            raw = raw.model_dump(by_alias=True)
        if not isinstance(raw, dict):
            return None
        try:
            return cls.model_validate(raw)
        except ValidationError:
            return None

    @property
    def has_research(self) -> bool:
        """A response counts as research when it carries findings or a summary."""
        return bool(self.key_findings or self.research_summary)

    @property
    def source_urls(self) -> list[str]:
        urls: list[str] = []
        for source in self.sources:
            if isinstance(source, str):
                urls.append(source)
            else:
                urls.append(str(source.get("url") or source.get("link") or "unknown"))
        return urls

    def as_stored(self) -> dict[str, Any]:
        """Shape recorded under ``workflow_results['research']`` of an item."""
        return {
            "researchSummary": self.research_summary,
            "keyFindings": list(self.key_findings),
            "sources": list(self.sources),
        }


class ResearchResult(_CamelModel):
    """Outcome of one successful research query."""

    entry_id: str
    aspect: str
    query: str
    result: ResearchPayload
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ResearchQuality(str, Enum):
    NONE = "none"
    BASIC = "basic"
    MODERATE = "moderate"
    GOOD = "good"
    HIGH = "high"

    @classmethod
    def assess(cls, total_findings: int, total_sources: int) -> ResearchQuality:
        if total_findings >= 10 and total_sources >= 5:
            return cls.HIGH
        if total_findings >= 5 and total_sources >= 3:
            return cls.GOOD
        if total_findings >= 2 and total_sources >= 1:
            return cls.MODERATE
        return cls.BASIC


class ConsolidationStrategy(str, Enum):
    """How per-entity research is combined into one artifact."""

    MERGE = "MERGE"
    COMPARE = "COMPARE"
    COMPLEMENT = "COMPLEMENT"
    GENERIC = "GENERIC"


class SourceRef(_CamelModel):
    url: str
    title: str

    @classmethod
    def from_url(cls, url: str) -> SourceRef:
        host = urlparse(url).hostname if "://" in url else None
        if not host:
            return cls(url=url, title="Unknown Source")
        domain = host.removeprefix("www.")
        return cls(url=url, title=domain[:1].upper() + domain[1:])


class AspectBreakdown(_CamelModel):
    count: int = 0
    findings: list[str] = Field(default_factory=list)
    sources: int = 0


class ResearchData(_CamelModel):
    sources: list[SourceRef] = Field(default_factory=list)
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    total_sources: int = Field(default=0, ge=0)
    search_queries: list[str] = Field(default_factory=list)
    aspect_breakdown: dict[str, AspectBreakdown] = Field(default_factory=dict)


class SessionResearchArtifact(_CamelModel):
    """Session-level research outcome merged into ``contextSummary.sessionResearch``."""

    session_id: str
    research_objective: str
    comprehensive_summary: str
    primary_intent: str = "Information gathering and analysis"
    key_findings: list[str] = Field(default_factory=list)
    research_goals: list[str] = Field(default_factory=list)
    next_steps: list[str] = Field(default_factory=list)
    entities_researched: list[str] = Field(default_factory=list)
    aspects_covered: list[str] = Field(default_factory=list)
    research_data: ResearchData = Field(default_factory=ResearchData)
    session_insights: str = ""
    research_type: str = "comprehensive_session_research"
    research_quality: ResearchQuality = ResearchQuality.BASIC
    confidence_level: float = Field(default=0.5, ge=0.0, le=1.0)
    consolidation_strategy: ConsolidationStrategy = ConsolidationStrategy.GENERIC
    last_researched: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def total_sources(self) -> int:
        return self.research_data.total_sources


__all__ = [
    "ResearchQuery",
    "EntryAnalysis",
    "ResearchPlanEntry",
    "ResearchPlan",
    "ResearchPayload",
    "ResearchResult",
    "ResearchQuality",
    "ConsolidationStrategy",
    "SourceRef",
    "AspectBreakdown",
    "ResearchData",
    "SessionResearchArtifact",
]
