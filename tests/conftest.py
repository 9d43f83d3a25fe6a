"""Pytest configuration and fixtures for the session research tests."""

import pytest

from fakes import FakeWorkflowExecutor, make_item
from session_research.core.events import SessionEventBus
from session_research.core.logging import configure_logging
from session_research.services import InMemorySessionRepository

configure_logging()


@pytest.fixture
def repository():
    """Empty in-memory session repository."""
    return InMemorySessionRepository()


@pytest.fixture
def event_bus():
    return SessionEventBus()


@pytest.fixture
def executor():
    """Workflow collaborator with nothing scripted; every call fails as unavailable."""
    return FakeWorkflowExecutor()


@pytest.fixture
def hotel_items():
    """Two hotel captures from a browser, a few minutes apart."""
    return [
        make_item(
            "Hilton Toronto Downtown",
            window_title="Hilton Toronto - Google Chrome",
            tags=["hotel", "toronto"],
            content_type="business",
        ),
        make_item(
            "Ritz-Carlton Toronto",
            window_title="Ritz-Carlton Toronto - Google Chrome",
            minutes=4,
            tags=["luxury", "hotel"],
            content_type="business",
        ),
    ]
