"""Value objects for workflow submission and results."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from mycontext.interfaces.agent import AgentStatus


# ── Step input ───────────────────────────────────────────────────────


class StepInput(ABC):
    """Input of a workflow step: a fixed value or one derived from prior outputs."""

    @abstractmethod
    def resolve(self, outputs: Mapping[str, Any]) -> Any:
        pass


@dataclass(frozen=True)
class LiteralInput(StepInput):
    """A value passed to the agent as is."""

    value: Any = None

    def resolve(self, outputs: Mapping[str, Any]) -> Any:
        return self.value


@dataclass(frozen=True)
class DerivedInput(StepInput):
    """Input computed from the outputs of steps that already ran.

    ``fn`` receives a read-only mapping of step id to output.
    """

    fn: Callable[[Mapping[str, Any]], Any]

    def resolve(self, outputs: Mapping[str, Any]) -> Any:
        return self.fn(MappingProxyType(dict(outputs)))


# ── Workflow definition ──────────────────────────────────────────────


@dataclass
class WorkflowStep:
    """One invocation of an agent inside a workflow.

    A bare ``input`` value is wrapped in ``LiteralInput``; pass a
    ``DerivedInput`` to compute the input from upstream outputs.
    """

    id: str
    agent_name: str
    input: Any = None
    dependencies: List[str] = field(default_factory=list)
    required: bool = True
    retryable: bool = False
    interactive: bool = False
    max_retries: Optional[int] = None  # None = runner default
    name: Optional[str] = None
    description: str = ""

    def __post_init__(self) -> None:
        if not isinstance(self.input, StepInput):
            self.input = LiteralInput(self.input)
        self.dependencies = list(self.dependencies or [])

    @property
    def display_name(self) -> str:
        return self.name or self.id

    def resolve_input(self, outputs: Mapping[str, Any]) -> Any:
        return self.input.resolve(outputs)


class WorkflowState(str, Enum):
    """Lifecycle of a workflow run."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


# ── Results ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class WorkflowStepResult:
    """Outcome of one attempt at one step.  Immutable once created."""

    step_id: str
    agent_name: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)
    execution_time: float = 0.0  # seconds
    start_time: float = 0.0  # unix timestamp
    end_time: float = 0.0
    attempt: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "agent_name": self.agent_name,
            "success": self.success,
            "error": self.error,
            "execution_time": self.execution_time,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "attempt": self.attempt,
        }


@dataclass
class WorkflowResult:
    """Aggregate outcome of one workflow run.

    ``success`` is False iff a required step failed or the graph could not
    make progress.  Results of steps that finished before an abort stay in
    ``steps``.
    """

    workflow_id: str
    success: bool = False
    state: WorkflowState = WorkflowState.PENDING
    data: Any = None
    outputs: Dict[str, Any] = field(default_factory=dict)
    execution_time: float = 0.0
    steps: List[WorkflowStepResult] = field(default_factory=list)
    error: Optional[str] = None
    exception: Optional[BaseException] = field(default=None, repr=False)
    completed_steps: List[str] = field(default_factory=list)
    failed_steps: List[str] = field(default_factory=list)
    skipped_steps: List[str] = field(default_factory=list)
    incomplete_steps: List[str] = field(default_factory=list)
    total_retries: int = 0
    user_interactions: int = 0

    def results_for(self, step_id: str) -> List[WorkflowStepResult]:
        """Every recorded attempt of one step, in order."""
        return [r for r in self.steps if r.step_id == step_id]

    def raise_for_status(self) -> None:
        """Re-raise the error that failed the workflow, if any."""
        if self.exception is not None:
            raise self.exception

    def summary(self) -> Dict[str, Any]:
        return {
            "workflow_id": self.workflow_id,
            "success": self.success,
            "state": self.state.value,
            "execution_time": round(self.execution_time, 3),
            "completed": len(self.completed_steps),
            "failed": list(self.failed_steps),
            "skipped": list(self.skipped_steps),
            "incomplete": list(self.incomplete_steps),
            "total_retries": self.total_retries,
            "user_interactions": self.user_interactions,
            "error": self.error,
        }


@dataclass
class OrchestratorStatus:
    """Point-in-time view rebuilt from the registry and execution history."""

    active_workflows: int
    registered_agents: List[str]
    total_executions: int
    average_execution_time: float
    error_rate: float
    agent_statuses: List[AgentStatus] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active_workflows": self.active_workflows,
            "registered_agents": list(self.registered_agents),
            "total_executions": self.total_executions,
            "average_execution_time": self.average_execution_time,
            "error_rate": self.error_rate,
            "agent_statuses": [s.to_dict() for s in self.agent_statuses],
        }
