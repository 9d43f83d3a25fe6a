"""Whole-session rollup of research stored on the member items."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

import logfire

from session_research.agents.base import (
    COMPREHENSIVE_ANALYSIS,
    WorkflowExecutor,
    WorkflowName,
    require_executor,
)
from session_research.core.exceptions import CollaboratorUnavailableError, SessionNotFoundError
from session_research.models.ai import SessionAnalysisResponse
from session_research.models.analysis import ComprehensiveSummary
from session_research.models.clipboard import ClipboardItem
from session_research.models.research import ResearchPayload
from session_research.models.session import Session, SessionType
from session_research.services import heuristics
from session_research.services.repository import SessionRepository

TIMELINE_LENGTH = 8
KEY_TOPIC_LIMIT = 15

# Findings that must mention one of the words, per session type, before the gap is considered closed.
KNOWLEDGE_GAP_CHECKS: dict[SessionType, tuple[tuple[str, tuple[str, ...]], ...]] = {
    SessionType.HOTEL_RESEARCH: (
        ("Location and neighborhood information", ("location", "area")),
        ("Pricing and value comparison", ("price", "cost")),
    ),
    SessionType.RESTAURANT_RESEARCH: (
        ("Menu and pricing details", ("menu", "price")),
        ("Reservation availability and opening hours", ("reservation", "hours")),
    ),
    SessionType.PRODUCT_RESEARCH: (
        ("Pricing and availability", ("price", "cost")),
        ("Customer reviews and ratings", ("review", "rating")),
    ),
}


@dataclass
class ItemFinding:
    """One stored research result of one item."""

    item_id: str
    summary: str
    key_findings: list[str]
    sources: list[str]
    timestamp: str | None
    source_app: str
    content_type: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "itemId": self.item_id,
            "summary": self.summary,
            "keyFindings": self.key_findings,
            "sources": self.sources,
            "timestamp": self.timestamp,
            "sourceApp": self.source_app,
            "contentType": self.content_type,
        }


@dataclass
class _Rollup:
    findings: list[ItemFinding] = field(default_factory=list)
    researched_ids: set[str] = field(default_factory=set)
    key_findings: list[str] = field(default_factory=list)
    sources: list[str] = field(default_factory=list)

    @property
    def distinct_sources(self) -> list[str]:
        return list(dict.fromkeys(self.sources))


def collect_findings(items: Sequence[ClipboardItem]) -> _Rollup:
    rollup = _Rollup()
    for item in items:
        if item.analysis_data is None:
            continue
        for stored in item.analysis_data.results_for("research"):
            payload = ResearchPayload.coerce(stored)
            if payload is None or not payload.has_research:
                continue
            rollup.researched_ids.add(item.id)
            rollup.findings.append(
                ItemFinding(
                    item_id=item.id,
                    summary=payload.research_summary,
                    key_findings=list(payload.key_findings),
                    sources=payload.source_urls,
                    timestamp=stored.get("timestamp") if isinstance(stored.get("timestamp"), str) else None,
                    source_app=item.source_app,
                    content_type=item.analysis_data.content_type,
                )
            )
            rollup.key_findings.extend(payload.key_findings)
            rollup.sources.extend(payload.source_urls)
    return rollup


def extract_common_themes(findings: Sequence[ItemFinding], limit: int = 5) -> list[str]:
    """Words longer than three characters repeated across findings, most frequent first."""
    counts: Counter[str] = Counter()
    for finding in findings:
        for text in finding.key_findings:
            counts.update(word for word in text.lower().split() if len(word) > 3)
    return [word for word, count in counts.most_common() if count > 1][:limit]


def identify_knowledge_gaps(findings: Sequence[ItemFinding], session_type: SessionType) -> list[str]:
    texts = [text.lower() for finding in findings for text in finding.key_findings]
    gaps = [
        gap
        for gap, words in KNOWLEDGE_GAP_CHECKS.get(session_type, ())
        if not any(word in text for text in texts for word in words)
    ]
    return gaps[:3]


def recommend_next_steps(findings: Sequence[ItemFinding], session_type: SessionType) -> list[str]:
    if session_type is SessionType.HOTEL_RESEARCH:
        steps = ["Compare pricing across identified options", "Review customer reviews and ratings"]
        if len(findings) > 2:
            steps.append("Create comparison matrix of key features")
    elif session_type is SessionType.RESTAURANT_RESEARCH:
        steps = [
            "Check availability and make reservations",
            "Review menu options and dietary accommodations",
        ]
    else:
        steps = [
            "Gather additional sources for verification",
            "Organize findings into actionable insights",
        ]
    return steps[:3]


def assess_research_coherence(findings: Sequence[ItemFinding]) -> str:
    """Keyword overlap across findings: high overlap means a coherent session."""
    texts = [text for finding in findings for text in finding.key_findings]
    ratio = len({text.lower() for text in texts}) / (len(texts) or 1)
    if ratio > 0.7:
        return "low"
    if ratio > 0.4:
        return "medium"
    return "high"


def information_density(total_sources: int) -> str:
    if total_sources > 10:
        return "high"
    if total_sources > 5:
        return "medium"
    return "low"


class ComprehensiveSessionAnalyzer:
    """Recomputes the whole-session rollup from per-item research results.

    Items without research are counted as reference items and are never
    dropped, so researched plus reference items always equals the member
    count.
    """

    def __init__(self, repository: SessionRepository, executor: WorkflowExecutor | None = None) -> None:
        self.repository = repository
        self.executor = executor

    async def recompute(self, session_id: str) -> ComprehensiveSummary:
        session = await self.repository.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        items = await self.repository.get_session_items(session_id)
        if not items:
            logfire.debug("No items in session, skipping comprehensive analysis", session_id=session_id)
            return ComprehensiveSummary()

        rollup = collect_findings(items)
        researched = len(rollup.researched_ids)
        reference = len(items) - researched
        total_sources = len(rollup.distinct_sources)
        metadata_keywords = heuristics.extract_basic_keywords(
            " ".join(f"{item.source_app} {item.window_title}" for item in items)
        )
        key_topics = list(dict.fromkeys([*rollup.key_findings, *metadata_keywords]))[:KEY_TOPIC_LIMIT]
        content_types = heuristics.analyze_item_types(items)
        source_apps = list(dict.fromkeys(item.source_app for item in items))
        timespan = heuristics.calculate_session_timespan(items)

        ai_analysis = await self._request_ai_analysis(
            session,
            items,
            rollup,
            researched=researched,
            reference=reference,
            key_topics=key_topics,
            content_types=content_types,
            source_apps=source_apps,
            timespan=timespan,
        )

        context_summary = dict(session.context_summary)
        intent_analysis = dict(session.intent_analysis)

        context_summary["comprehensiveAnalysis"] = {
            "totalItems": len(items),
            "researchedItems": researched,
            "nonResearchItems": reference,
            "researchFindings": len(rollup.findings),
            "totalSources": total_sources,
            "keyTopics": key_topics,
            "contentTypes": content_types,
            "sourceApplications": source_apps,
            "timespan": timespan,
            "lastAnalyzed": datetime.now(UTC).isoformat(),
            "sessionProgress": {
                "researchCoverage": round(researched / len(items) * 100),
                "informationDensity": information_density(total_sources),
                "analysisQuality": "ai-enhanced" if ai_analysis else "basic",
            },
        }
        progress = context_summary.get("sessionProgress")
        if isinstance(progress, dict):
            context_summary["sessionProgress"] = {
                **progress,
                "totalItems": len(items),
                "researchedItems": researched,
                "nonResearchItems": reference,
            }

        context_summary["sessionSummary"] = (
            ai_analysis.session_insights
            if ai_analysis and ai_analysis.session_insights
            else self._rollup_sentence(session, len(items), researched, reference, content_types, rollup)
        )
        researched_ids = rollup.researched_ids
        context_summary["itemTimeline"] = [
            {
                "timestamp": item.timestamp.isoformat(),
                "sourceApp": item.source_app,
                "windowTitle": item.window_title,
                "hasResearch": item.id in researched_ids,
            }
            for item in sorted(items, key=lambda i: i.timestamp, reverse=True)[:TIMELINE_LENGTH]
        ]

        if ai_analysis is not None:
            intent_analysis["sessionIntent"] = {
                "primaryGoal": ai_analysis.primary_intent,
                "progressStatus": ai_analysis.progress_status,
                "nextActions": ai_analysis.next_actions,
                "confidenceLevel": ai_analysis.session_confidence,
                "analysisReasoning": ai_analysis.session_reasoning,
            }

        if len(rollup.findings) > 1:
            intent_analysis["crossItemInsights"] = {
                "commonThemes": extract_common_themes(rollup.findings),
                "knowledgeGaps": identify_knowledge_gaps(rollup.findings, session.session_type),
                "recommendedNextSteps": recommend_next_steps(rollup.findings, session.session_type),
                "researchCoherence": assess_research_coherence(rollup.findings),
            }

        await self.repository.update_session_data(session_id, context_summary, intent_analysis)

        summary = ComprehensiveSummary(
            total_findings=len(rollup.findings),
            total_sources=total_sources,
            top_keywords=list(dict.fromkeys(rollup.key_findings))[:5],
            total_items=len(items),
            researched_items=researched,
            non_research_items=reference,
            has_ai_analysis=ai_analysis is not None,
        )
        logfire.info(
            "Comprehensive session analysis updated",
            session_id=session_id,
            total_findings=summary.total_findings,
            researched_items=researched,
            reference_items=reference,
            ai_enhanced=summary.has_ai_analysis,
        )
        return summary

    async def _request_ai_analysis(
        self,
        session: Session,
        items: Sequence[ClipboardItem],
        rollup: _Rollup,
        *,
        researched: int,
        reference: int,
        key_topics: list[str],
        content_types: list[str],
        source_apps: list[str],
        timespan: str,
    ) -> SessionAnalysisResponse | None:
        try:
            executor = require_executor(self.executor, WorkflowName.SESSION_MANAGEMENT)
        except CollaboratorUnavailableError:
            return None

        payload = {
            "content": (
                f"Comprehensive Session Analysis for {session.session_type.value}: {session.session_label}"
            ),
            "context": {
                "sourceApp": "SessionManager",
                "windowTitle": f"Session Analysis - {session.session_label}",
                "analysisType": COMPREHENSIVE_ANALYSIS,
                "sessionData": {
                    "sessionType": session.session_type.value,
                    "itemCount": len(items),
                    "researchedItems": researched,
                    "nonResearchItems": reference,
                    "researchFindings": [finding.to_payload() for finding in rollup.findings],
                    "totalSources": len(rollup.distinct_sources),
                    "keyTopics": key_topics,
                    "contentTypes": content_types,
                    "sourceApps": source_apps,
                    "timespan": timespan,
                },
            },
            "existingSession": {
                "type": session.session_type.value,
                "label": session.session_label,
                "items": [
                    {
                        "sourceApp": item.source_app,
                        "windowTitle": item.window_title,
                        "hasResearch": item.id in rollup.researched_ids,
                        "timestamp": item.timestamp.isoformat(),
                        "contentType": item.analysis_data.content_type if item.analysis_data else "unknown",
                    }
                    for item in items
                ],
            },
        }
        try:
            raw = await executor.execute_workflow(WorkflowName.SESSION_MANAGEMENT.value, payload)
        except Exception as e:
            logfire.warning(
                "Comprehensive session analysis call failed", session_id=session.id, error=str(e)
            )
            return None
        return SessionAnalysisResponse.from_response(raw)

    @staticmethod
    def _rollup_sentence(
        session: Session,
        total: int,
        researched: int,
        reference: int,
        content_types: list[str],
        rollup: _Rollup,
    ) -> str:
        parts = [f"{session.session_type.display} session with {total} items"]
        if researched and reference:
            parts.append(f"{researched} researched, {reference} reference items")
        elif researched:
            parts.append(f"{researched} researched items")
        else:
            parts.append(f"{reference} reference items")
        if content_types:
            parts.append(f"({', '.join(content_types)})")
        if rollup.findings:
            keywords = list(dict.fromkeys(rollup.key_findings))[:5]
            if keywords:
                parts.append(f"covering: {', '.join(keywords)}")
            if rollup.distinct_sources:
                parts.append(f"{len(rollup.distinct_sources)} sources referenced")
        return ". ".join(parts) + "."


__all__ = [
    "ComprehensiveSessionAnalyzer",
    "ItemFinding",
    "assess_research_coherence",
    "collect_findings",
    "extract_common_themes",
    "identify_knowledge_gaps",
    "information_density",
    "recommend_next_steps",
]
