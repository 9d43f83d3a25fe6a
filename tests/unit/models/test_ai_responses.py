"""Tests for the typed views of collaborator responses."""

import pytest

from session_research.models import SessionType
from session_research.models.ai import (
    ConsolidationResponse,
    MembershipJudgment,
    QueryPlanResponse,
    SessionAnalysisResponse,
    SessionTypeDetection,
)


class TestMembershipJudgment:
    def test_camel_case_response(self):
        judgment = MembershipJudgment.from_response(
            {"belongsToSession": True, "membershipConfidence": "0.82", "sessionReasoning": "same hotel"}
        )
        assert judgment is not None
        assert judgment.belongs_to_session is True
        assert judgment.membership_confidence == 0.82

    def test_confidence_is_clamped(self):
        judgment = MembershipJudgment.from_response({"belongsToSession": False, "membershipConfidence": 7})
        assert judgment is not None
        assert judgment.membership_confidence == 1.0
        assert judgment.session_reasoning == ""

    @pytest.mark.parametrize(
        "raw",
        [
            None,
            "yes",
            {"belongsToSession": True},
            {"belongsToSession": True, "membershipConfidence": "high"},
            {"belongsToSession": True, "membershipConfidence": True},
            {"belongsToSession": True, "membershipConfidence": float("nan")},
        ],
    )
    def test_untrusted_responses_are_rejected(self, raw):
        assert MembershipJudgment.from_response(raw) is None


class TestSessionTypeDetection:
    def test_known_type(self):
        detection = SessionTypeDetection.from_response(
            {"sessionType": "RESTAURANT_RESEARCH", "sessionConfidence": 0.9}
        )
        assert detection is not None
        assert detection.session_type is SessionType.RESTAURANT_RESEARCH

    def test_unknown_type_rejected(self):
        assert SessionTypeDetection.from_response({"sessionType": "spa", "sessionConfidence": 0.9}) is None


class TestQueryPlanResponse:
    def test_keeps_only_valid_queries(self):
        plan = QueryPlanResponse.from_response(
            {
                "researchQueries": [
                    {"aspect": "price", "searchQuery": "Hilton price", "knownInfo": None},
                    {"aspect": "empty", "searchQuery": ""},
                    42,
                ]
            }
        )
        assert plan is not None
        assert [q.search_query for q in plan.research_queries] == ["Hilton price"]
        assert plan.research_queries[0].known_info == ""

    def test_rejects_plan_without_queries(self):
        assert QueryPlanResponse.from_response({"researchQueries": [{"aspect": "x"}]}) is None


class TestConsolidationResponse:
    def test_alias_choices(self):
        response = ConsolidationResponse.from_response(
            {
                "research_objective": "Pick a hotel",
                "comprehensive_summary": "Summary",
                "intent": "  ",
                "next_steps": ["Book", "", None],
            }
        )
        assert response is not None
        assert response.primary_intent == "Information gathering and analysis"
        assert response.next_steps == ["Book"]
        assert response.research_goals == []

    def test_requires_objective_and_summary(self):
        assert ConsolidationResponse.from_response({"summary": "only a summary"}) is None


class TestSessionAnalysisResponse:
    def test_nested_intent_is_flattened(self):
        analysis = SessionAnalysisResponse.from_response(
            {"sessionInsights": "  ", "intentAnalysis": {"primaryIntent": "compare", "progressStatus": None}}
        )
        assert analysis is not None
        assert analysis.session_insights is None
        assert analysis.primary_intent == "compare"
        assert analysis.progress_status == "in_progress"
        assert analysis.session_confidence == 0.7
