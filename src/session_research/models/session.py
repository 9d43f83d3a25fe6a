"""Session aggregate models."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class SessionType(str, Enum):
    """Known session categories."""

    HOTEL_RESEARCH = "hotel_research"
    RESTAURANT_RESEARCH = "restaurant_research"
    PRODUCT_RESEARCH = "product_research"
    ACADEMIC_RESEARCH = "academic_research"
    TRAVEL_RESEARCH = "travel_research"
    EVENT_PLANNING = "event_planning"
    PROJECT_RESEARCH = "project_research"
    GENERAL_RESEARCH = "general_research"

    @classmethod
    def parse(cls, value: Any) -> SessionType | None:
        """Return the member for ``value`` or None when it is not a known type."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip().lower())
        except ValueError:
            return None

    @property
    def display(self) -> str:
        return self.value.replace("_", " ")


class SessionStatus(str, Enum):
    """Lifecycle of a session.

    A session starts ``inactive`` with a single item and becomes ``active``
    once a second item joins. ``completed`` and ``expired`` are set by
    scheduling policy outside this package.
    """

    ACTIVE = "active"
    INACTIVE = "inactive"
    COMPLETED = "completed"
    EXPIRED = "expired"

    @property
    def is_open(self) -> bool:
        return self in (SessionStatus.ACTIVE, SessionStatus.INACTIVE)


class SessionTypeChange(BaseModel):
    """Audit record of a type/label rewrite."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    previous_type: SessionType
    previous_label: str
    new_type: SessionType
    new_label: str
    reason: str
    changed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Session(BaseModel):
    """A cluster of clipboard items sharing one research intent."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, validate_assignment=True
    )

    id: str = Field(default_factory=lambda: str(uuid4()))
    session_type: SessionType = SessionType.GENERAL_RESEARCH
    session_label: str = "Research Session"
    status: SessionStatus = SessionStatus.INACTIVE
    start_time: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_activity: datetime = Field(default_factory=lambda: datetime.now(UTC))
    context_summary: dict[str, Any] = Field(default_factory=dict)
    intent_analysis: dict[str, Any] = Field(default_factory=dict)
    type_history: list[SessionTypeChange] = Field(default_factory=list)

    @field_validator("start_time", "last_activity")
    @classmethod
    def ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value

    def touch(self, at: datetime | None = None) -> None:
        """Advance ``last_activity``; it never moves backwards."""
        moment = at or datetime.now(UTC)
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=UTC)
        if moment > self.last_activity:
            self.last_activity = moment

    def reclassify(
        self, new_type: SessionType, new_label: str, reason: str
    ) -> SessionTypeChange | None:
        """Rewrite type and label in place, keeping the previous values in history.

        Returns None when nothing changes.
        """
        if new_type == self.session_type and new_label == self.session_label:
            return None
        change = SessionTypeChange(
            previous_type=self.session_type,
            previous_label=self.session_label,
            new_type=new_type,
            new_label=new_label,
            reason=reason,
        )
        self.type_history.append(change)
        self.session_type = new_type
        self.session_label = new_label
        return change

    def snapshot(self, items: list[Any] | None = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "type": self.session_type.value,
            "label": self.session_label,
            "status": self.status.value,
        }
        if items is not None:
            data["items"] = [item.snapshot() for item in items]
        return data


class SessionMembership(BaseModel):
    """Edge from an item to the session it belongs to."""

    session_id: str
    item_id: str
    sequence_order: int = Field(ge=1)
    added_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
