"""Domain-specific exception hierarchy for consistent error handling."""

from __future__ import annotations

from typing import Any


class SessionResearchError(Exception):
    """Base exception for all expected application errors."""

    def __init__(
        self,
        *,
        message: str,
        error_code: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        """Serialise the error into a structured payload."""

        return {
            "error": self.error_code,
            "message": self.message,
            "details": self.details,
        }


class SessionNotFoundError(SessionResearchError):
    """Raised when a session cannot be located.

    This is the one condition surfaced to callers of the research pipeline:
    it means the caller passed an id the store never issued.
    """

    def __init__(self, session_id: str) -> None:
        super().__init__(
            message=f"Session {session_id} not found",
            error_code="SESSION_NOT_FOUND",
            details={"session_id": session_id},
        )
        self.session_id = session_id


class ClipboardItemNotFoundError(SessionResearchError):
    """Raised by repositories when an item id is unknown."""

    def __init__(self, item_id: str) -> None:
        super().__init__(
            message=f"Clipboard item {item_id} not found",
            error_code="ITEM_NOT_FOUND",
            details={"item_id": item_id},
        )


class CollaboratorUnavailableError(SessionResearchError):
    """Raised when the AI/workflow collaborator is not configured."""

    def __init__(self, workflow: str) -> None:
        super().__init__(
            message=f"No workflow executor available for '{workflow}'",
            error_code="COLLABORATOR_UNAVAILABLE",
            details={"workflow": workflow},
        )


class MalformedResponseError(SessionResearchError):
    """Raised when a collaborator response is missing expected fields."""

    def __init__(self, workflow: str, reason: str) -> None:
        super().__init__(
            message=f"Malformed response from '{workflow}': {reason}",
            error_code="MALFORMED_RESPONSE",
            details={"workflow": workflow, "reason": reason},
        )


class ExternalServiceError(SessionResearchError):
    """Raised when an external service dependency fails."""

    def __init__(
        self,
        *,
        service: str,
        message: str,
        original_error: Exception | None = None,
    ) -> None:
        details = {"service": service}
        if original_error:
            details["original_error"] = str(original_error)
        super().__init__(
            message=f"{service} error: {message}",
            error_code="EXTERNAL_SERVICE_ERROR",
            details=details,
        )


class UnknownWorkflowError(SessionResearchError):
    """Raised when an executor is asked for a workflow it does not implement."""

    def __init__(self, workflow: str, known: list[str]) -> None:
        super().__init__(
            message=f"Unknown workflow '{workflow}'",
            error_code="UNKNOWN_WORKFLOW",
            details={"workflow": workflow, "known": known},
        )


class InvalidProgressTransitionError(SessionResearchError):
    """Raised when a research run emits a phase its current phase cannot reach."""

    def __init__(self, current: str | None, requested: str) -> None:
        super().__init__(
            message=f"Cannot move research progress from {current or 'start'} to {requested}",
            error_code="INVALID_PROGRESS_TRANSITION",
            details={"current": current, "requested": requested},
        )


__all__ = [
    "SessionResearchError",
    "SessionNotFoundError",
    "ClipboardItemNotFoundError",
    "CollaboratorUnavailableError",
    "MalformedResponseError",
    "ExternalServiceError",
    "UnknownWorkflowError",
    "InvalidProgressTransitionError",
]
