"""Session clustering, analysis and research services."""

from .comprehensive import ComprehensiveSessionAnalyzer
from .consolidator import ResearchConsolidator
from .intent import IntentAnalyzer
from .membership import MembershipEvaluator
from .progress import ProgressReporter, ProgressSink
from .query_planner import ResearchQueryPlanner
from .repository import InMemorySessionRepository, SessionRepository
from .research_orchestrator import ResearchExecutionOrchestrator
from .session_manager import SessionManager

__all__ = [
    "ComprehensiveSessionAnalyzer",
    "InMemorySessionRepository",
    "IntentAnalyzer",
    "MembershipEvaluator",
    "ProgressReporter",
    "ProgressSink",
    "ResearchConsolidator",
    "ResearchExecutionOrchestrator",
    "ResearchQueryPlanner",
    "SessionManager",
    "SessionRepository",
]
