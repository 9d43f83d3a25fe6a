"""Persistence abstractions for items, sessions and memberships."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from datetime import UTC, datetime
from typing import Any

from session_research.core.exceptions import ClipboardItemNotFoundError, SessionNotFoundError
from session_research.models.clipboard import AnalysisData, ClipboardItem
from session_research.models.session import Session, SessionMembership


class SessionRepository(ABC):
    """Abstract base class for session persistence backends.

    Reads return copies; callers persist changes through the write methods.
    """

    @abstractmethod
    async def get_session(self, session_id: str) -> Session | None: ...

    @abstractmethod
    async def get_session_items(self, session_id: str) -> list[ClipboardItem]:
        """Member items ordered by sequence order."""

    @abstractmethod
    async def update_session_data(
        self,
        session_id: str,
        context_summary: dict[str, Any],
        intent_analysis: dict[str, Any],
    ) -> None: ...

    @abstractmethod
    async def get_clipboard_item(self, item_id: str) -> ClipboardItem | None: ...

    @abstractmethod
    async def save_clipboard_item(self, item: ClipboardItem) -> None: ...

    @abstractmethod
    async def create_session(self, session: Session) -> Session: ...

    @abstractmethod
    async def save_session(self, session: Session) -> None:
        """Persist type, label, status, activity and type history."""

    @abstractmethod
    async def add_item_to_session(self, session_id: str, item_id: str) -> SessionMembership: ...

    @abstractmethod
    async def get_item_count(self, session_id: str) -> int: ...

    @abstractmethod
    async def list_candidate_sessions(self, since: datetime) -> list[Session]:
        """Active or inactive sessions with activity at or after ``since``, newest first."""

    @abstractmethod
    async def record_workflow_result(
        self, item_id: str, workflow: str, result: dict[str, Any]
    ) -> None: ...

    @abstractmethod
    async def list_sessions(self) -> list[Session]: ...

    @abstractmethod
    async def get_membership(self, item_id: str) -> SessionMembership | None:
        """The membership placing ``item_id`` in a session, if it has one."""


class InMemorySessionRepository(SessionRepository):
    """In-memory repository suitable for development and testing."""

    def __init__(self) -> None:
        self._items: dict[str, ClipboardItem] = {}
        self._sessions: dict[str, Session] = {}
        self._memberships: dict[str, SessionMembership] = {}
        self._lock = asyncio.Lock()

    def _require(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _members(self, session_id: str) -> list[SessionMembership]:
        members = [m for m in self._memberships.values() if m.session_id == session_id]
        return sorted(members, key=lambda m: m.sequence_order)

    async def get_session(self, session_id: str) -> Session | None:
        async with self._lock:
            session = self._sessions.get(session_id)
            return session.model_copy(deep=True) if session else None

    async def get_session_items(self, session_id: str) -> list[ClipboardItem]:
        async with self._lock:
            return [
                self._items[m.item_id].model_copy(deep=True)
                for m in self._members(session_id)
                if m.item_id in self._items
            ]

    async def update_session_data(
        self,
        session_id: str,
        context_summary: dict[str, Any],
        intent_analysis: dict[str, Any],
    ) -> None:
        async with self._lock:
            session = self._require(session_id)
            session.context_summary = dict(context_summary)
            session.intent_analysis = dict(intent_analysis)
            session.touch()

    async def get_clipboard_item(self, item_id: str) -> ClipboardItem | None:
        async with self._lock:
            item = self._items.get(item_id)
            return item.model_copy(deep=True) if item else None

    async def save_clipboard_item(self, item: ClipboardItem) -> None:
        async with self._lock:
            self._items[item.id] = item.model_copy(deep=True)

    async def create_session(self, session: Session) -> Session:
        async with self._lock:
            self._sessions[session.id] = session.model_copy(deep=True)
            return session

    async def save_session(self, session: Session) -> None:
        async with self._lock:
            stored = self._require(session.id)
            stored.session_type = session.session_type
            stored.session_label = session.session_label
            stored.status = session.status
            stored.type_history = [change.model_copy() for change in session.type_history]
            stored.touch(session.last_activity)

    async def add_item_to_session(self, session_id: str, item_id: str) -> SessionMembership:
        async with self._lock:
            session = self._require(session_id)
            if item_id not in self._items:
                raise ClipboardItemNotFoundError(item_id)
            existing = self._memberships.get(item_id)
            if existing and existing.session_id == session_id:
                return existing.model_copy()
            orders = [m.sequence_order for m in self._members(session_id)]
            membership = SessionMembership(
                session_id=session_id,
                item_id=item_id,
                sequence_order=max(orders, default=0) + 1,
            )
            # An item belongs to at most one session.
            self._memberships[item_id] = membership
            session.touch()
            return membership.model_copy()

    async def get_item_count(self, session_id: str) -> int:
        async with self._lock:
            return len(self._members(session_id))

    async def list_candidate_sessions(self, since: datetime) -> list[Session]:
        if since.tzinfo is None:
            since = since.replace(tzinfo=UTC)
        async with self._lock:
            candidates = [
                s.model_copy(deep=True)
                for s in self._sessions.values()
                if s.status.is_open and s.last_activity >= since
            ]
        return sorted(candidates, key=lambda s: s.last_activity, reverse=True)

    async def record_workflow_result(
        self, item_id: str, workflow: str, result: dict[str, Any]
    ) -> None:
        async with self._lock:
            item = self._items.get(item_id)
            if item is None:
                raise ClipboardItemNotFoundError(item_id)
            if item.analysis_data is None:
                item.analysis_data = AnalysisData()
            item.analysis_data.record_workflow_result(workflow, result)

    async def list_sessions(self) -> list[Session]:
        async with self._lock:
            sessions = [s.model_copy(deep=True) for s in self._sessions.values()]
        return sorted(sessions, key=lambda s: s.last_activity, reverse=True)

    async def get_membership(self, item_id: str) -> SessionMembership | None:
        async with self._lock:
            membership = self._memberships.get(item_id)
            return membership.model_copy() if membership else None


__all__ = ["SessionRepository", "InMemorySessionRepository"]
