"""Workflow collaborator contract and the pydantic-ai agent wrapper behind it."""

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import logfire
from pydantic import BaseModel, ConfigDict, Field
from pydantic_ai import Agent

from session_research.core.config import config as global_config
from session_research.core.exceptions import CollaboratorUnavailableError, ExternalServiceError
from session_research.core.logging import configure_logging


class WorkflowName(str, Enum):
    """Logical workflow names understood by collaborators."""

    SESSION_MANAGEMENT = "session_management"
    SESSION_TYPE_DETECTION = "session_type_detection"
    RESEARCH_QUERY_GENERATION = "research_query_generation"
    RESEARCH = "research"
    SESSION_RESEARCH_CONSOLIDATION = "session_research_consolidation"


# session_management calls carrying this context.analysisType ask for a whole-session judgment
COMPREHENSIVE_ANALYSIS = "comprehensive_session_analysis"


@runtime_checkable
class WorkflowExecutor(Protocol):
    """Generic entry point to the external AI/workflow engine.

    Implementations return the workflow's JSON-like response. Callers treat
    any exception as a failed call and fall back.
    """

    async def execute_workflow(self, name: str, payload: dict[str, Any]) -> Any: ...


def require_executor(executor: WorkflowExecutor | None, workflow: WorkflowName) -> WorkflowExecutor:
    """Return the collaborator, or raise when none is configured for ``workflow``."""
    if executor is None:
        raise CollaboratorUnavailableError(workflow.value)
    return executor


class AgentConfiguration(BaseModel):
    """Configuration for one workflow agent."""

    model_config = ConfigDict(extra="forbid")

    agent_name: str = Field(description="Name identifier for the agent")
    workflow: WorkflowName
    model: str | None = Field(default=None, description="LLM model to use")
    system_prompt: str | None = Field(default=None, description="System prompt override")
    max_retries: int = Field(default=2, ge=0, le=10, description="Output validation retries")


class AgentMetrics(BaseModel):
    """Execution counters for a workflow agent."""

    runs: int = 0
    error_count: int = 0
    last_execution_time: float = 0.0


OutputT = TypeVar("OutputT", bound=BaseModel)


class BaseWorkflowAgent(ABC, Generic[OutputT]):
    """pydantic-ai agent answering one workflow with a structured output."""

    def __init__(self, config: AgentConfiguration) -> None:
        self.config = config
        self.name = config.agent_name
        self.model = config.model or global_config.model
        self.metrics = AgentMetrics()

        self.agent: Agent[None, OutputT] = Agent(
            model=self.model,
            output_type=self._get_output_type(),
            system_prompt=config.system_prompt or self._get_default_system_prompt(),
            retries=config.max_retries,
        )

        configure_logging()
        logfire.info(
            f"Initialized {self.name} agent",
            workflow=config.workflow.value,
            model=self.model,
        )

    @abstractmethod
    def _get_default_system_prompt(self) -> str:
        """Get the default system prompt for this agent."""

    @abstractmethod
    def _get_output_type(self) -> type[OutputT]:
        """Get the structured output type for this agent."""

    def build_prompt(self, payload: dict[str, Any]) -> str:
        """Render the workflow payload as the user prompt."""
        return "Workflow input (JSON):\n" + json.dumps(payload, indent=2, default=str)

    async def run(self, payload: dict[str, Any]) -> OutputT:
        started = time.perf_counter()
        self.metrics.runs += 1
        try:
            result = await self.agent.run(self.build_prompt(payload))
        except Exception as e:
            self.metrics.error_count += 1
            logfire.error(f"{self.name} failed", workflow=self.config.workflow.value, error=str(e))
            raise ExternalServiceError(
                service=self.name, message="agent run failed", original_error=e
            ) from e
        finally:
            self.metrics.last_execution_time = time.perf_counter() - started

        logfire.info(
            f"{self.name} completed",
            workflow=self.config.workflow.value,
            execution_time=self.metrics.last_execution_time,
        )
        return result.output


__all__ = [
    "COMPREHENSIVE_ANALYSIS",
    "AgentConfiguration",
    "AgentMetrics",
    "BaseWorkflowAgent",
    "WorkflowExecutor",
    "WorkflowName",
    "require_executor",
]
