"""Data models for clipboard session research."""

from .ai import (
    ConsolidationResponse,
    MembershipJudgment,
    QueryPlanResponse,
    SessionAnalysisResponse,
    SessionTypeDetection,
)
from .analysis import ComprehensiveSummary, IntentSummary, ProgressStatus
from .clipboard import AnalysisData, ClipboardItem
from .progress import ProgressEvent, ResearchPhase
from .research import (
    ConsolidationStrategy,
    EntryAnalysis,
    ResearchData,
    ResearchPayload,
    ResearchPlan,
    ResearchPlanEntry,
    ResearchQuality,
    ResearchQuery,
    ResearchResult,
    SessionResearchArtifact,
    SourceRef,
)
from .session import Session, SessionMembership, SessionStatus, SessionType, SessionTypeChange

__all__ = [
    # Clipboard
    "AnalysisData",
    "ClipboardItem",
    # Session
    "Session",
    "SessionMembership",
    "SessionStatus",
    "SessionType",
    "SessionTypeChange",
    # Analysis
    "ComprehensiveSummary",
    "IntentSummary",
    "ProgressStatus",
    # Research
    "ConsolidationStrategy",
    "EntryAnalysis",
    "ResearchData",
    "ResearchPayload",
    "ResearchPlan",
    "ResearchPlanEntry",
    "ResearchQuality",
    "ResearchQuery",
    "ResearchResult",
    "SessionResearchArtifact",
    "SourceRef",
    # Progress
    "ProgressEvent",
    "ResearchPhase",
    # Collaborator responses
    "ConsolidationResponse",
    "MembershipJudgment",
    "QueryPlanResponse",
    "SessionAnalysisResponse",
    "SessionTypeDetection",
]
