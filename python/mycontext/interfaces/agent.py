"""Interface for agents driven by the orchestrator.

An agent only has to expose a ``name`` and an async ``run``.  Validation,
cleanup and status reporting are optional capabilities, each declared by its
own protocol so the orchestrator can check for them with ``isinstance``.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Protocol, runtime_checkable


class AgentState(str, Enum):
    """Coarse lifecycle state reported by an agent."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class AgentStatus:
    """Status and health snapshot of one agent."""
    name: str
    state: AgentState = AgentState.IDLE
    error_count: int = 0
    success_count: int = 0
    last_run: Optional[datetime] = None
    execution_time: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "state": self.state.value,
            "error_count": self.error_count,
            "success_count": self.success_count,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "execution_time": self.execution_time,
            "metadata": self.metadata,
        }


@runtime_checkable
class Agent(Protocol):
    """A named unit of asynchronous work."""

    name: str

    async def run(self, input: Any) -> Any:
        """Do the work.  May raise; the orchestrator records and re-raises.

        A plain function returning the output is accepted too.
        """
        ...


@runtime_checkable
class Validatable(Protocol):
    """Agent that can reject its input before running.

    ``validate`` may be a plain function or a coroutine function.
    """

    def validate(self, input: Any) -> bool:
        ...


@runtime_checkable
class Cleanable(Protocol):
    """Agent that releases resources after every run, successful or not."""

    def cleanup(self) -> None:
        ...


@runtime_checkable
class Inspectable(Protocol):
    """Agent that reports its own status."""

    def get_status(self) -> AgentStatus:
        ...


@dataclass(frozen=True)
class AgentCapabilities:
    """Which optional capabilities an agent implements."""
    validate: bool = False
    cleanup: bool = False
    status: bool = False

    @classmethod
    def of(cls, agent: Any) -> "AgentCapabilities":
        return cls(
            validate=isinstance(agent, Validatable),
            cleanup=isinstance(agent, Cleanable),
            status=isinstance(agent, Inspectable),
        )
