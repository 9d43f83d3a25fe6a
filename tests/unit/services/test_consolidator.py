"""Tests for research consolidation."""

import pytest

from fakes import FakeWorkflowExecutor, make_item, seed_session
from session_research.core.exceptions import SessionNotFoundError
from session_research.models import (
    ConsolidationStrategy,
    ResearchPayload,
    ResearchQuality,
    ResearchResult,
    SessionType,
)
from session_research.services import ResearchConsolidator
from session_research.services.consolidator import (
    analyze_entity_relationships,
    extract_entity_name,
    extract_unique_sources,
    fallback_goals_and_steps,
    group_findings_by_aspect,
    process_research_data,
    research_confidence,
)


def result(entry_id: str, aspect: str, query: str, findings: list[str], sources: list[str]) -> ResearchResult:
    return ResearchResult(
        entry_id=entry_id,
        aspect=aspect,
        query=query,
        result=ResearchPayload(key_findings=findings, sources=sources, research_summary=f"{query} summary"),
    )


async def hotel_session_with_results(repository):
    hilton = make_item("Hilton Hotel Toronto")
    ritz = make_item("Ritz-Carlton Hotel Toronto", minutes=3)
    session = await seed_session(repository, [hilton, ritz])
    results = [
        result(
            hilton.id,
            "reviews",
            "Hilton Toronto reviews",
            ["Rooftop pool", "Close to Union Station"],
            ["https://hilton.com", "https://tripadvisor.com"],
        ),
        result(ritz.id, "pricing", "Ritz-Carlton Toronto price", ["Rooms from $650"], ["https://tripadvisor.com"]),
    ]
    return session, results


class TestEntityAnalysis:
    def test_no_items(self):
        analysis = analyze_entity_relationships([], SessionType.HOTEL_RESEARCH)
        assert analysis.strategy is ConsolidationStrategy.GENERIC
        assert analysis.confidence == 0.3

    def test_single_entity_merges(self):
        analysis = analyze_entity_relationships([make_item("Hilton Hotel")], SessionType.HOTEL_RESEARCH)
        assert analysis.strategy is ConsolidationStrategy.MERGE
        assert analysis.relationship == "SAME_ENTITY"

    def test_same_kind_in_research_session_compares(self):
        items = [make_item("Hilton Hotel Toronto"), make_item("Ritz-Carlton Hotel Toronto")]
        analysis = analyze_entity_relationships(items, SessionType.HOTEL_RESEARCH)

        assert analysis.strategy is ConsolidationStrategy.COMPARE
        assert analysis.comparison_dimensions == ("price", "amenities", "location", "reviews", "availability")
        payload = analysis.to_payload()
        assert payload["consolidationStrategy"] == "COMPARE"
        assert [e["name"] for e in payload["entities"]] == ["Hilton Hotel Toronto", "Ritz-Carlton Hotel Toronto"]

    def test_same_kind_outside_research_session_is_generic(self):
        items = [make_item("Grand Hotel"), make_item("Harbour Hotel")]
        analysis = analyze_entity_relationships(items, SessionType.EVENT_PLANNING)
        assert analysis.strategy is ConsolidationStrategy.GENERIC

    def test_complementary_kinds(self):
        items = [make_item("Grand Hotel"), make_item("Canoe restaurant menu")]
        analysis = analyze_entity_relationships(items, SessionType.TRAVEL_RESEARCH)
        assert analysis.strategy is ConsolidationStrategy.COMPLEMENT
        assert analysis.confidence == 0.7

    def test_unrelated_kinds(self):
        items = [make_item("Grand Hotel"), make_item("Camera price drop")]
        analysis = analyze_entity_relationships(items, SessionType.TRAVEL_RESEARCH)
        assert analysis.strategy is ConsolidationStrategy.GENERIC
        assert analysis.confidence == 0.6

    def test_entity_names(self):
        assert extract_entity_name("The Ritz-Carlton Toronto hotel") == "Ritz-Carlton Toronto"
        assert extract_entity_name("cheap eats near the lake") == "cheap eats near the"


class TestResearchProcessing:
    def test_findings_sources_and_quality(self):
        results = [
            result("i1", "reviews", "Hilton Toronto reviews", ["Pool", "Gym"], ["https://a.com", "https://b.com"]),
            result("i2", "pricing", "Ritz Toronto price", ["Expensive"], ["https://a.com"]),
        ]
        processed = process_research_data(results, None, SessionType.HOTEL_RESEARCH)

        assert processed.total_findings == 3
        assert processed.total_sources == 3
        assert processed.quality is ResearchQuality.MODERATE
        assert processed.aspects_covered == ["reviews", "pricing"]
        assert processed.entities_researched == ["Hilton", "Toronto", "reviews", "Ritz", "price"]

        breakdown = group_findings_by_aspect(processed.findings)
        assert breakdown["reviews"].count == 2
        assert breakdown["reviews"].sources == 4
        assert [s.url for s in extract_unique_sources(results)] == ["https://a.com", "https://b.com"]
        assert research_confidence(processed.findings) == pytest.approx(0.7)

    def test_no_results(self):
        processed = process_research_data([], None, SessionType.HOTEL_RESEARCH)
        assert processed.quality is ResearchQuality.NONE
        assert processed.entities_researched == ["hotel research"]
        assert processed.aspects_covered == ["general_information"]
        assert research_confidence([]) == 0.0

    def test_fallback_goals(self):
        goals, steps = fallback_goals_and_steps(SessionType.HOTEL_RESEARCH, ["Hilton", "Ritz"])
        assert goals == [
            "Finalize selection between Hilton and Ritz",
            "Select optimal accommodation",
            "Compare pricing and amenities",
        ]
        assert steps == ["Check availability and rates", "Make reservation"]
        assert fallback_goals_and_steps(SessionType.GENERAL_RESEARCH, []) == (
            ["Complete comprehensive analysis", "Make informed decisions"],
            ["Review findings", "Take appropriate action"],
        )


class TestResearchConsolidator:
    @pytest.mark.asyncio
    async def test_empty_results_make_no_calls(self, repository):
        executor = FakeWorkflowExecutor({"session_research_consolidation": {"summary": "x"}})
        consolidator = ResearchConsolidator(repository, executor)

        assert await consolidator.consolidate("any-session", []) is None
        assert executor.calls == []

    @pytest.mark.asyncio
    async def test_missing_session(self, repository):
        _, results = await hotel_session_with_results(repository)
        with pytest.raises(SessionNotFoundError):
            await ResearchConsolidator(repository).consolidate("missing", results)

    @pytest.mark.asyncio
    async def test_basic_fallback_without_collaborator(self, repository):
        session, results = await hotel_session_with_results(repository)

        artifact = await ResearchConsolidator(repository, max_fallback_findings=2).consolidate(
            session.id, results
        )

        assert artifact is not None
        assert artifact.research_quality is ResearchQuality.BASIC
        assert artifact.confidence_level == 0.5
        assert artifact.key_findings == ["Rooftop pool", "Close to Union Station"]
        assert artifact.total_sources == 3
        assert artifact.research_objective == "Research for hotel research with 2 queries"
        assert artifact.consolidation_strategy is ConsolidationStrategy.COMPARE
        assert artifact.aspects_covered == ["reviews", "pricing"]
        assert artifact.research_data.search_queries == ["Hilton Toronto reviews", "Ritz-Carlton Toronto price"]

    @pytest.mark.asyncio
    async def test_collaborator_consolidation(self, repository):
        session, results = await hotel_session_with_results(repository)
        executor = FakeWorkflowExecutor(
            {
                "session_research_consolidation": {
                    "researchObjective": "Pick a downtown Toronto hotel",
                    "summary": "The Hilton is cheaper; the Ritz is more luxurious.",
                    "sessionInsights": "Leaning towards luxury",
                }
            }
        )

        artifact = await ResearchConsolidator(repository, executor).consolidate(session.id, results)

        assert artifact is not None
        assert artifact.research_objective == "Pick a downtown Toronto hotel"
        assert artifact.comprehensive_summary.startswith("The Hilton is cheaper")
        assert artifact.primary_intent == "Information gathering and analysis"
        assert artifact.key_findings == ["Rooftop pool", "Close to Union Station", "Rooms from $650"]
        assert artifact.research_goals[0].startswith("Finalize selection between")
        assert artifact.research_goals[1:] == ["Select optimal accommodation", "Compare pricing and amenities"]
        assert artifact.next_steps == ["Check availability and rates", "Make reservation"]
        assert artifact.research_quality is ResearchQuality.MODERATE
        assert artifact.confidence_level == pytest.approx(0.7)
        assert [s.title for s in artifact.research_data.sources] == ["Hilton.com", "Tripadvisor.com"]
        assert artifact.session_insights == "Leaning towards luxury"

        payload = executor.calls_for("session_research_consolidation")[0]
        assert payload["context"]["entityAnalysis"]["consolidationStrategy"] == "COMPARE"
        assert payload["context"]["sessionContext"]["itemCount"] == 2
        assert payload["context"]["researchScope"]["totalFindings"] == 3
        assert len(payload["researchResults"]) == 2

    @pytest.mark.asyncio
    async def test_collaborator_goals_are_kept(self, repository):
        session, results = await hotel_session_with_results(repository)
        executor = FakeWorkflowExecutor(
            {
                "session_research_consolidation": {
                    "objective": "Choose a hotel",
                    "comprehensiveSummary": "Two strong options.",
                    "goals": ["Decide by Friday"],
                    "actions": "Call the Ritz",
                }
            }
        )

        artifact = await ResearchConsolidator(repository, executor).consolidate(session.id, results)

        assert artifact is not None
        assert artifact.research_goals == ["Decide by Friday"]
        assert artifact.next_steps == ["Call the Ritz"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            {"researchObjective": "", "summary": "x"},
            {"summary": "No objective"},
            "Consolidated: the Ritz wins",
            RuntimeError("consolidation timed out"),
        ],
    )
    async def test_unusable_collaborator_answer_falls_back(self, repository, response):
        session, results = await hotel_session_with_results(repository)
        executor = FakeWorkflowExecutor({"session_research_consolidation": response})

        artifact = await ResearchConsolidator(repository, executor).consolidate(session.id, results)

        assert artifact is not None
        assert artifact.research_quality is ResearchQuality.BASIC
        assert artifact.confidence_level == 0.5
