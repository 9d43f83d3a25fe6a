"""Reduce per-query research results into one session-level artifact."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import logfire

from session_research.agents.base import WorkflowExecutor, WorkflowName, require_executor
from session_research.core.config import config as global_config
from session_research.core.exceptions import CollaboratorUnavailableError, SessionNotFoundError
from session_research.models.ai import ConsolidationResponse
from session_research.models.clipboard import ClipboardItem
from session_research.models.research import (
    AspectBreakdown,
    ConsolidationStrategy,
    ResearchData,
    ResearchPlan,
    ResearchQuality,
    ResearchResult,
    SessionResearchArtifact,
    SourceRef,
)
from session_research.models.session import Session, SessionType
from session_research.services import heuristics
from session_research.services.repository import SessionRepository

ENTITY_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("hotel", ("hotel", "resort", "inn")),
    ("restaurant", ("restaurant", "dining", "menu")),
    ("product", ("product", "buy", "price")),
)

COMPLEMENTARY_ENTITY_PAIRS: tuple[tuple[str, str], ...] = (
    ("hotel", "restaurant"),
    ("hotel", "travel"),
    ("restaurant", "travel"),
    ("product", "service"),
    ("academic", "practical"),
)

COMPARISON_DIMENSIONS: dict[SessionType, tuple[str, ...]] = {
    SessionType.HOTEL_RESEARCH: ("price", "amenities", "location", "reviews", "availability"),
    SessionType.RESTAURANT_RESEARCH: ("cuisine", "price", "atmosphere", "reviews", "location"),
    SessionType.PRODUCT_RESEARCH: ("features", "price", "quality", "reviews", "availability"),
    SessionType.ACADEMIC_RESEARCH: ("relevance", "authority", "methodology", "findings"),
    SessionType.TRAVEL_RESEARCH: ("cost", "convenience", "experience", "reviews"),
}
DEFAULT_COMPARISON_DIMENSIONS = ("features", "quality", "value", "reviews")

FALLBACK_GOALS_AND_STEPS: dict[SessionType, tuple[tuple[str, ...], tuple[str, ...]]] = {
    SessionType.HOTEL_RESEARCH: (
        ("Select optimal accommodation", "Compare pricing and amenities"),
        ("Check availability and rates", "Make reservation"),
    ),
    SessionType.RESTAURANT_RESEARCH: (
        ("Choose best dining option", "Evaluate cuisine and atmosphere"),
        ("Check availability", "Make reservation"),
    ),
    SessionType.PRODUCT_RESEARCH: (
        ("Make informed purchase decision", "Compare features and pricing"),
        ("Finalize product selection", "Proceed with purchase"),
    ),
    SessionType.TRAVEL_RESEARCH: (
        ("Plan comprehensive itinerary", "Optimize travel logistics"),
        ("Book accommodations", "Arrange transportation"),
    ),
    SessionType.ACADEMIC_RESEARCH: (
        ("Gather comprehensive information", "Analyze research findings"),
        ("Synthesize findings", "Prepare analysis"),
    ),
}
DEFAULT_GOALS_AND_STEPS = (
    ("Complete comprehensive analysis", "Make informed decisions"),
    ("Review findings", "Take appropriate action"),
)

BASIC_RESEARCH_GOALS = ["Complete comprehensive analysis", "Gather relevant information", "Make informed decisions"]
BASIC_NEXT_STEPS = ["Review findings", "Evaluate options", "Take appropriate action"]

_NAME_STOPWORDS = frozenset({"The", "A", "An", "And", "Or", "But", "In", "On", "At", "To", "For", "With"})


@dataclass(frozen=True)
class Entity:
    item_id: str
    name: str
    entity_type: str
    source_app: str


@dataclass(frozen=True)
class EntityAnalysis:
    """Relationship between the researched entities and the strategy it implies."""

    strategy: ConsolidationStrategy
    relationship: str
    entities: tuple[Entity, ...] = ()
    comparison_dimensions: tuple[str, ...] = ()
    reasoning: str = ""
    confidence: float = 0.5

    def to_payload(self) -> dict[str, Any]:
        return {
            "consolidationStrategy": self.strategy.value,
            "relationshipType": self.relationship,
            "entities": [
                {"clipboardItemId": e.item_id, "name": e.name, "type": e.entity_type, "sourceApp": e.source_app}
                for e in self.entities
            ],
            "comparisonDimensions": list(self.comparison_dimensions),
            "reasoning": self.reasoning,
            "confidence": self.confidence,
        }


def detect_entity_type(content: str) -> str:
    lowered = content.lower()
    for entity_type, keywords in ENTITY_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return entity_type
    return "general"


def extract_entity_name(content: str) -> str:
    """Up to three capitalised words, else the first four words."""
    words = content.split(" ")
    proper = [w for w in words if len(w) > 2 and w[0].isupper() and w not in _NAME_STOPWORDS]
    if proper:
        return " ".join(proper[:3])
    return " ".join(words[:4])


def are_complementary(entity_types: Sequence[str]) -> bool:
    return any(
        all(any(wanted in entity_type for entity_type in entity_types) for wanted in pair)
        for pair in COMPLEMENTARY_ENTITY_PAIRS
    )


def analyze_entity_relationships(
    items: Sequence[ClipboardItem], session_type: SessionType
) -> EntityAnalysis:
    """Pattern-based choice between merging, comparing or complementing entities."""
    if not items:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.GENERIC,
            relationship="INDEPENDENT_ENTITIES",
            reasoning="No session items available for analysis",
            confidence=0.3,
        )

    entities = tuple(
        Entity(
            item_id=item.id,
            name=extract_entity_name(item.content) if item.content else "Unknown Item",
            entity_type=detect_entity_type(item.content),
            source_app=item.source_app,
        )
        for item in items
    )
    if len(entities) <= 1:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.MERGE,
            relationship="SAME_ENTITY",
            entities=entities,
            reasoning="Single entity or very similar entities detected",
            confidence=0.8,
        )

    entity_types = list(dict.fromkeys(e.entity_type for e in entities))
    if len(entity_types) == 1 and "research" in session_type.value:
        return EntityAnalysis(
            strategy=ConsolidationStrategy.COMPARE,
            relationship="COMPARABLE_ENTITIES",
            entities=entities,
            comparison_dimensions=COMPARISON_DIMENSIONS.get(session_type, DEFAULT_COMPARISON_DIMENSIONS),
            reasoning=f"Multiple {entity_types[0]} entities detected - comparison needed",
            confidence=0.75,
        )
    if are_complementary(entity_types):
        return EntityAnalysis(
            strategy=ConsolidationStrategy.COMPLEMENT,
            relationship="COMPLEMENTARY_ENTITIES",
            entities=entities,
            reasoning="Complementary entities detected (e.g. hotel + restaurant)",
            confidence=0.7,
        )
    return EntityAnalysis(
        strategy=ConsolidationStrategy.GENERIC,
        relationship="INDEPENDENT_ENTITIES",
        entities=entities,
        reasoning="Independent entities - generic consolidation",
        confidence=0.6,
    )


@dataclass(frozen=True)
class OrganizedFinding:
    aspect: str
    finding: str
    entry_id: str
    query: str
    sources: int


@dataclass
class ProcessedResearch:
    entities_researched: list[str] = field(default_factory=list)
    aspects_covered: list[str] = field(default_factory=list)
    findings: list[OrganizedFinding] = field(default_factory=list)
    total_sources: int = 0
    quality: ResearchQuality = ResearchQuality.NONE

    @property
    def total_findings(self) -> int:
        return len(self.findings)


def process_research_data(
    results: Sequence[ResearchResult], plan: ResearchPlan | None, session_type: SessionType
) -> ProcessedResearch:
    entities: list[str] = []
    aspects: list[str] = []

    def add(target: list[str], value: str) -> None:
        if value and value not in target:
            target.append(value)

    for entry in plan.entries if plan else ():
        for tag in entry.tags:
            add(entities, tag)
        for query in entry.research_queries:
            add(aspects, query.aspect)

    for result in results:
        add(aspects, result.aspect)
        for term in result.query.split(" ")[:3]:
            if len(term) > 3:
                add(entities, term)

    findings = [
        OrganizedFinding(
            aspect=result.aspect,
            finding=finding,
            entry_id=result.entry_id,
            query=result.query,
            sources=len(result.result.sources),
        )
        for result in results
        for finding in result.result.key_findings
    ]
    total_sources = sum(len(result.result.sources) for result in results)

    return ProcessedResearch(
        entities_researched=entities or [session_type.display],
        aspects_covered=aspects or ["general_information"],
        findings=findings,
        total_sources=total_sources,
        quality=ResearchQuality.assess(len(findings), total_sources) if results else ResearchQuality.NONE,
    )


def extract_unique_sources(results: Sequence[ResearchResult]) -> list[SourceRef]:
    urls = dict.fromkeys(url for result in results for url in result.result.source_urls)
    return [SourceRef.from_url(url) for url in urls]


def group_findings_by_aspect(findings: Sequence[OrganizedFinding]) -> dict[str, AspectBreakdown]:
    breakdown: dict[str, AspectBreakdown] = {}
    for finding in findings:
        bucket = breakdown.setdefault(finding.aspect or "general", AspectBreakdown())
        bucket.count += 1
        bucket.findings.append(finding.finding)
        bucket.sources += finding.sources
    return breakdown


def research_confidence(findings: Sequence[OrganizedFinding]) -> float:
    """Coverage-based confidence: findings up to 10, plus aspect and source bonuses of at most 0.2 each."""
    if not findings:
        return 0.0
    total = len(findings)
    aspect_coverage = len({f.aspect for f in findings})
    avg_sources = sum(f.sources for f in findings) / total
    confidence = min(total / 10, 1.0) + min(aspect_coverage / 5, 0.2) + min(avg_sources / 3, 0.2)
    return min(confidence, 1.0)


def fallback_goals_and_steps(session_type: SessionType, entities: Sequence[str]) -> tuple[list[str], list[str]]:
    goals, steps = FALLBACK_GOALS_AND_STEPS.get(session_type, DEFAULT_GOALS_AND_STEPS)
    goal_list = list(goals)
    if len(entities) > 1:
        goal_list.insert(0, f"Finalize selection between {' and '.join(entities[:2])}")
    return goal_list[:4], list(steps)[:3]


class ResearchConsolidator:
    """Builds the session research artifact.

    The ``session_research_consolidation`` collaborator is preferred. When
    it is absent, fails, or answers with something unusable, a deterministic
    reducer produces a ``basic`` quality artifact at confidence 0.5.
    """

    def __init__(
        self,
        repository: SessionRepository,
        executor: WorkflowExecutor | None = None,
        *,
        max_fallback_findings: int | None = None,
    ) -> None:
        self.repository = repository
        self.executor = executor
        self.max_fallback_findings = max_fallback_findings or global_config.fallback_max_findings

    async def consolidate(
        self,
        session_id: str,
        results: Sequence[ResearchResult],
        plan: ResearchPlan | None = None,
    ) -> SessionResearchArtifact | None:
        if not results:
            logfire.info("No research results to consolidate", session_id=session_id)
            return None

        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        items = await self.repository.get_session_items(session_id)

        entity_analysis = analyze_entity_relationships(items, session.session_type)
        processed = process_research_data(results, plan, session.session_type)

        artifact = await self._consolidate_with_ai(session, items, results, plan, processed, entity_analysis)
        if artifact is None:
            artifact = self.basic_fallback(session, results, entity_analysis.strategy)

        logfire.info(
            "Research consolidated",
            session_id=session_id,
            strategy=artifact.consolidation_strategy.value,
            key_findings=len(artifact.key_findings),
            total_sources=artifact.total_sources,
            quality=artifact.research_quality.value,
        )
        return artifact

    async def _consolidate_with_ai(
        self,
        session: Session,
        items: Sequence[ClipboardItem],
        results: Sequence[ResearchResult],
        plan: ResearchPlan | None,
        processed: ProcessedResearch,
        entity_analysis: EntityAnalysis,
    ) -> SessionResearchArtifact | None:
        try:
            executor = require_executor(self.executor, WorkflowName.SESSION_RESEARCH_CONSOLIDATION)
        except CollaboratorUnavailableError:
            logfire.debug("No collaborator, consolidating from heuristics", session_id=session.id)
            return None

        payload = self._workflow_input(session, items, results, plan, processed, entity_analysis)
        try:
            raw = await executor.execute_workflow(
                WorkflowName.SESSION_RESEARCH_CONSOLIDATION.value, payload
            )
        except Exception as e:
            logfire.warning("Consolidation workflow failed", session_id=session.id, error=str(e))
            return None

        response = ConsolidationResponse.from_response(raw)
        if response is None:
            logfire.warning("Malformed consolidation response", session_id=session.id)
            return None

        default_goals, default_steps = fallback_goals_and_steps(
            session.session_type, processed.entities_researched
        )
        confidence = research_confidence(processed.findings)
        return SessionResearchArtifact(
            session_id=session.id,
            research_objective=response.research_objective,
            comprehensive_summary=response.summary,
            primary_intent=response.primary_intent,
            key_findings=[f.finding for f in processed.findings],
            research_goals=response.research_goals or default_goals,
            next_steps=response.next_steps or default_steps,
            entities_researched=processed.entities_researched,
            aspects_covered=processed.aspects_covered,
            research_data=ResearchData(
                sources=extract_unique_sources(results),
                confidence=confidence,
                total_sources=processed.total_sources,
                search_queries=[result.query for result in results],
                aspect_breakdown=group_findings_by_aspect(processed.findings),
            ),
            session_insights=response.session_insights,
            research_quality=processed.quality,
            confidence_level=confidence,
            consolidation_strategy=entity_analysis.strategy,
        )

    def basic_fallback(
        self,
        session: Session,
        results: Sequence[ResearchResult],
        strategy: ConsolidationStrategy = ConsolidationStrategy.GENERIC,
    ) -> SessionResearchArtifact:
        """Deterministic reducer marking its output as degraded."""
        findings = [finding for result in results for finding in result.result.key_findings]
        findings = findings[: self.max_fallback_findings]
        total_sources = sum(len(result.result.sources) for result in results)
        aspects = list(dict.fromkeys(result.aspect for result in results if result.aspect))

        return SessionResearchArtifact(
            session_id=session.id,
            research_objective=f"Research for {session.session_type.display} with {len(results)} queries",
            comprehensive_summary=(
                f"Completed research analysis with {len(results)} research queries and "
                f"{len(findings)} key findings from {total_sources} sources."
            ),
            primary_intent="Information gathering and analysis",
            key_findings=findings,
            research_goals=list(BASIC_RESEARCH_GOALS),
            next_steps=list(BASIC_NEXT_STEPS),
            entities_researched=["research topics"],
            aspects_covered=aspects or ["general information"],
            research_data=ResearchData(
                confidence=0.5,
                total_sources=total_sources,
                search_queries=[result.query for result in results],
            ),
            research_quality=ResearchQuality.BASIC,
            confidence_level=0.5,
            consolidation_strategy=strategy,
        )

    @staticmethod
    def _workflow_input(
        session: Session,
        items: Sequence[ClipboardItem],
        results: Sequence[ResearchResult],
        plan: ResearchPlan | None,
        processed: ProcessedResearch,
        entity_analysis: EntityAnalysis,
    ) -> dict[str, Any]:
        entities = ", ".join(processed.entities_researched)
        aspects = ", ".join(processed.aspects_covered)
        return {
            "content": (
                f"Consolidate comprehensive session research for {session.session_type.value} "
                f"session analyzing {entities} across {aspects} aspects"
            ),
            "context": {
                "sourceApp": "ResearchConsolidator",
                "windowTitle": "Session Research Consolidation",
                "consolidationType": "complete_session_summary",
                "sessionContext": {
                    "sessionId": session.id,
                    "sessionType": session.session_type.value,
                    "sessionLabel": session.session_label,
                    "itemCount": len(items),
                    "timespan": heuristics.calculate_session_timespan(items),
                },
                "researchScope": {
                    "entitiesResearched": processed.entities_researched,
                    "aspectsCovered": processed.aspects_covered,
                    "totalSources": processed.total_sources,
                    "totalFindings": processed.total_findings,
                    "researchQuality": processed.quality.value,
                },
                "entityAnalysis": entity_analysis.to_payload(),
            },
            "researchResults": [result.model_dump(mode="json", by_alias=True) for result in results],
            "researchPlan": plan.model_dump(mode="json", by_alias=True) if plan else None,
            "session": session.snapshot(list(items)),
            "existingAnalysis": {
                "contentType": "session_research_consolidation",
                "tags": ["session", "research", "consolidation", session.session_type.value],
                "researchData": {
                    "aspectBreakdown": {
                        aspect: breakdown.model_dump(by_alias=True)
                        for aspect, breakdown in group_findings_by_aspect(processed.findings).items()
                    },
                    "uniqueSources": [
                        source.model_dump(by_alias=True) for source in extract_unique_sources(results)
                    ],
                },
            },
        }


__all__ = [
    "Entity",
    "EntityAnalysis",
    "ProcessedResearch",
    "ResearchConsolidator",
    "analyze_entity_relationships",
    "are_complementary",
    "detect_entity_type",
    "extract_entity_name",
    "extract_unique_sources",
    "fallback_goals_and_steps",
    "group_findings_by_aspect",
    "process_research_data",
    "research_confidence",
]
