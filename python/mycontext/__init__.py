"""mycontext: dependency-aware orchestration of asynchronous sub-agents."""

from mycontext.exceptions import (
    AgentNotFoundError,
    AgentRunError,
    AgentTimeoutError,
    CircularDependencyError,
    InteractionDeclinedError,
    InteractionTimeoutError,
    MaxRetriesExceededError,
    MyContextError,
    ValidationFailedError,
    WorkflowAbortedError,
    WorkflowValidationError,
)
from mycontext.interfaces import Agent, AgentState, AgentStatus, EventType
from mycontext.orchestration.models import (
    DerivedInput,
    LiteralInput,
    OrchestratorStatus,
    WorkflowResult,
    WorkflowState,
    WorkflowStep,
    WorkflowStepResult,
)
from mycontext.scheduling import DependencyResolver, ExecutionTracker, RetryPolicy
from mycontext.config import Settings, get_settings
from mycontext.orchestration.registry import AgentRegistry
from mycontext.orchestration.orchestrator import SubAgentOrchestrator
from mycontext.orchestration.step_runner import WorkflowRunner
from mycontext.agents import BaseAgent, ConsolePrompt, FunctionAgent
from mycontext.event_bus import InMemoryEventBus
from mycontext.di_container import MyContextContainer, build_container

__version__ = "0.1.0"

__all__ = [
    # Errors
    "AgentNotFoundError",
    "AgentRunError",
    "AgentTimeoutError",
    "CircularDependencyError",
    "InteractionDeclinedError",
    "InteractionTimeoutError",
    "MaxRetriesExceededError",
    "MyContextError",
    "ValidationFailedError",
    "WorkflowAbortedError",
    "WorkflowValidationError",
    # Agents
    "Agent",
    "AgentState",
    "AgentStatus",
    "BaseAgent",
    "FunctionAgent",
    "ConsolePrompt",
    # Workflows
    "DerivedInput",
    "LiteralInput",
    "WorkflowStep",
    "WorkflowStepResult",
    "WorkflowResult",
    "WorkflowState",
    "OrchestratorStatus",
    # Services
    "AgentRegistry",
    "DependencyResolver",
    "ExecutionTracker",
    "RetryPolicy",
    "SubAgentOrchestrator",
    "WorkflowRunner",
    "InMemoryEventBus",
    "EventType",
    "MyContextContainer",
    "build_container",
    "Settings",
    "get_settings",
]
