"""Workflow collaborators: pydantic-ai agents and the HTTP workflow client."""

from .base import AgentConfiguration, BaseWorkflowAgent, WorkflowExecutor, WorkflowName
from .http_executor import HTTPWorkflowExecutor
from .workflow_agents import PydanticAIWorkflowExecutor

__all__ = [
    "AgentConfiguration",
    "BaseWorkflowAgent",
    "HTTPWorkflowExecutor",
    "PydanticAIWorkflowExecutor",
    "WorkflowExecutor",
    "WorkflowName",
]
