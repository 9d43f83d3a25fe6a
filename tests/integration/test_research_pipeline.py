"""Research pipeline from capture to merged session research, with a scripted collaborator."""

import pytest

from fakes import FakeWorkflowExecutor, make_item
from session_research.agents.base import COMPREHENSIVE_ANALYSIS
from session_research.core.config import SessionResearchConfig
from session_research.core.events import SessionEvent, SessionEventBus, SessionResearchCompletedEvent
from session_research.models import ProgressEvent, ResearchPhase, ResearchQuality
from session_research.services import InMemorySessionRepository, SessionManager

pytestmark = pytest.mark.integration


def session_management(payload: dict) -> dict:
    context = payload.get("context") or {}
    if context.get("analysisType") == COMPREHENSIVE_ANALYSIS:
        return {
            "sessionInsights": "Choosing between two downtown Toronto hotels",
            "intentAnalysis": {"primaryIntent": "Pick a hotel", "progressStatus": "nearly_complete"},
            "sessionConfidence": 0.85,
        }
    return {"belongsToSession": True, "membershipConfidence": 0.92, "sessionReasoning": "Same trip"}


def query_generation(payload: dict) -> dict:
    content = payload["content"]
    return {
        "researchQueries": [
            {"aspect": "pricing", "searchQuery": f"{content} nightly rate", "knownInfo": content},
            {"aspect": "amenities", "searchQuery": f"{content} amenities", "knownInfo": content},
            {"aspect": "location", "searchQuery": f"{content} neighbourhood", "knownInfo": content},
            {"aspect": "extra", "searchQuery": f"{content} history"},
        ]
    }


def research(payload: dict) -> dict:
    query = payload["content"]
    aspect = payload["context"]["researchContext"]["researchAspect"]
    return {
        "keyFindings": [f"{aspect} finding for {query}"],
        "sources": [f"https://{aspect}.example.com", "https://tripadvisor.com"],
        "researchSummary": f"Summary of {query}",
    }


CONSOLIDATION = {
    "researchObjective": "Compare Hilton and Ritz hotels in Toronto",
    "summary": "The Hilton is better value; the Ritz has the better spa.",
    "primaryIntent": "Choose a downtown Toronto hotel",
    "researchGoals": ["Pick one hotel"],
    "nextSteps": ["Check rates for the conference week"],
}


@pytest.mark.asyncio
async def test_capture_to_research():
    repository = InMemorySessionRepository()
    event_bus = SessionEventBus()
    seen: list[SessionEvent] = []
    event_bus.subscribe(SessionEvent, seen.append)
    executor = FakeWorkflowExecutor(
        {
            "session_type_detection": {"sessionType": "hotel_research", "sessionConfidence": 0.95},
            "session_management": session_management,
            "research_query_generation": query_generation,
            "research": research,
            "session_research_consolidation": CONSOLIDATION,
        }
    )
    manager = SessionManager(
        repository,
        executor,
        config=SessionResearchConfig(auto_research=False, max_queries_per_item=3),
        event_bus=event_bus,
    )
    progress: list[ProgressEvent] = []

    await manager.process_clipboard_item(make_item("Hilton Toronto Downtown", tags=["hotel"]))
    session = await manager.process_clipboard_item(make_item("Ritz-Carlton Toronto", minutes=4))
    artifact = await manager.perform_session_research(session.id, progress.append)

    assert artifact is not None
    assert len(executor.calls_for("research")) == 6
    assert len(artifact.key_findings) == 6
    assert artifact.research_quality is ResearchQuality.GOOD
    assert artifact.research_goals == ["Pick one hotel"]
    assert artifact.aspects_covered == ["pricing", "amenities", "location"]

    searching = [e.progress for e in progress if e.phase is ResearchPhase.SEARCHING]
    assert searching == sorted(searching)
    assert searching[-1] == 100
    assert [e.phase for e in progress][-2:] == [ResearchPhase.CONSOLIDATING, ResearchPhase.COMPLETED]
    assert progress[-1].final_results["keyFindings"] == 6

    stored = await repository.get_session(session.id)
    assert stored.session_label == "Choose a downtown Toronto hotel"
    assert stored.context_summary["sessionSummary"] == CONSOLIDATION["summary"]
    analysis = stored.context_summary["comprehensiveAnalysis"]
    assert analysis["researchedItems"] + analysis["nonResearchItems"] == analysis["totalItems"] == 2
    assert analysis["sessionProgress"]["analysisQuality"] == "ai-enhanced"
    assert stored.intent_analysis["sessionIntent"]["nextSteps"] == ["Check rates for the conference week"]

    comprehensive_calls = [
        payload
        for payload in executor.calls_for("session_management")
        if payload.get("context", {}).get("analysisType") == COMPREHENSIVE_ANALYSIS
    ]
    assert len(comprehensive_calls) == 1

    completed = [e for e in seen if isinstance(e, SessionResearchCompletedEvent)]
    assert completed[-1].success is True
    assert completed[-1].research_quality == "good"
