"""Clipboard session clustering and research pipeline."""

# Environment variables are loaded by session_research/core/__init__.py

__version__ = "0.1.0"

from .models import ClipboardItem, Session, SessionResearchArtifact, SessionType  # noqa: E402
from .services import InMemorySessionRepository, SessionManager  # noqa: E402

__all__ = [
    "ClipboardItem",
    "InMemorySessionRepository",
    "Session",
    "SessionManager",
    "SessionResearchArtifact",
    "SessionType",
]
