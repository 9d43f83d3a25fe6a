"""Configuration management for session clustering and research."""

import os

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Note: .env file is loaded in session_research/core/__init__.py before this module is imported


def _env_str(name: str, default: str | None = None) -> str | None:
    """Get environment variable as a stripped string, returning default if empty or unset."""
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip()
    if not v:
        return default
    return v


def _env_flag(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from environment variables.

    Accepts: "1", "true", "TRUE", "True" as True.
    """
    v = os.getenv(name)
    if v is None:
        return default
    return v.strip() in {"1", "true", "TRUE", "True"}


def _env_float_default(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_int_default(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None or not v.strip():
        return default
    try:
        return int(v)
    except ValueError:
        return default


class MembershipThresholds(BaseModel):
    """Confidence thresholds applied to AI membership judgments.

    The defaults are empirical; they are kept configurable rather than
    treated as optimal.
    """

    model_config = ConfigDict(validate_assignment=True, extra="forbid")

    accept: float = Field(
        default_factory=lambda: _env_float_default("SESSION_ACCEPT_THRESHOLD", 0.6),
        ge=0.0,
        le=1.0,
        description="Join immediately when the AI says the item belongs above this confidence",
    )
    theme: float = Field(
        default_factory=lambda: _env_float_default("SESSION_THEME_THRESHOLD", 0.4),
        ge=0.0,
        le=1.0,
        description="Join when the AI says the item belongs and a cross-session theme fires",
    )
    compatibility: float = Field(
        default_factory=lambda: _env_float_default("SESSION_COMPATIBILITY_THRESHOLD", 0.3),
        ge=0.0,
        le=1.0,
        description="Run the deeper thematic compatibility check above this confidence",
    )

    @model_validator(mode="after")
    def _check_ordering(self) -> "MembershipThresholds":
        if not self.compatibility <= self.theme <= self.accept:
            raise ValueError("thresholds must satisfy compatibility <= theme <= accept")
        return self


class SessionResearchConfig(BaseModel):
    """Runtime configuration with validation."""

    model_config = ConfigDict(str_strip_whitespace=True, validate_assignment=True, extra="forbid")

    thresholds: MembershipThresholds = Field(default_factory=MembershipThresholds)

    session_timeout_seconds: int = Field(
        default_factory=lambda: _env_int_default("SESSION_TIMEOUT_SECONDS", 3600),
        ge=60,
        description="Only sessions active within this window are membership candidates",
    )
    theme_matching_window_seconds: int = Field(
        default_factory=lambda: _env_int_default("THEME_MATCHING_WINDOW_SECONDS", 7200),
        ge=60,
        description="Widened window for theme-based fallback matches",
    )
    session_type_confidence: float = Field(
        default_factory=lambda: _env_float_default("SESSION_TYPE_CONFIDENCE", 0.6),
        ge=0.0,
        le=1.0,
        description="Minimum AI confidence to accept a detected type for a new session",
    )

    max_queries_per_item: int = Field(
        default_factory=lambda: _env_int_default("MAX_QUERIES_PER_ITEM", 3),
        ge=1,
        le=10,
        description="Upper bound on research queries planned for a single item",
    )
    fallback_max_findings: int = Field(
        default_factory=lambda: _env_int_default("FALLBACK_MAX_FINDINGS", 10),
        ge=1,
        description="Findings kept by the deterministic consolidation reducer",
    )
    research_min_items: int = Field(
        default_factory=lambda: _env_int_default("RESEARCH_MIN_ITEMS", 2),
        ge=1,
        description="Session size that activates a session and triggers research",
    )
    query_retry_attempts: int = Field(
        default_factory=lambda: _env_int_default("QUERY_RETRY_ATTEMPTS", 1),
        ge=1,
        le=5,
        description="Attempts per research query; 1 disables retries",
    )
    auto_research: bool = Field(
        default_factory=lambda: _env_flag("AUTO_RESEARCH", True),
        description="Schedule background research when a session reaches research_min_items",
    )

    model: str = Field(
        default_factory=lambda: _env_str("SESSION_RESEARCH_MODEL", "openai:gpt-4o-mini"),
        description="pydantic-ai model used by the agent-backed workflow executor",
    )
    agent_retries: int = Field(default=2, ge=0, le=10, description="Output validation retries")
    workflow_service_url: str | None = Field(
        default_factory=lambda: _env_str("WORKFLOW_SERVICE_URL"),
        description="Base URL of an HTTP workflow service, when one is used",
    )
    workflow_timeout_seconds: float = Field(
        default_factory=lambda: _env_float_default("WORKFLOW_TIMEOUT_SECONDS", 60.0),
        gt=0.0,
    )


# Global configuration instance
config = SessionResearchConfig()
