"""
Base Agent Abstraction
Convenience base classes for agents driven by the orchestrator
"""

import inspect
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from mycontext.interfaces.agent import AgentState, AgentStatus


class BaseAgent(ABC):
    """
    Abstract base class for agents
    Subclasses implement ``execute``; ``run`` keeps the status bookkeeping
    """

    def __init__(self, name: str, **config):
        """
        Initialize agent

        Args:
            name: Registry key of the agent
            **config: Additional agent-specific configuration
        """
        self.name = name
        self.config = config
        self._state = AgentState.IDLE
        self._success_count = 0
        self._error_count = 0
        self._last_run: Optional[datetime] = None
        self._last_execution_time: Optional[float] = None

    @abstractmethod
    async def execute(self, input: Any) -> Any:
        """
        Do the agent's work

        Args:
            input: Resolved step input

        Returns:
            Agent output, handed to dependent steps
        """
        pass

    async def run(self, input: Any) -> Any:
        self._state = AgentState.RUNNING
        self._last_run = datetime.now()
        start = time.perf_counter()
        try:
            result = await self.execute(input)
        except Exception:
            self._state = AgentState.ERROR
            self._error_count += 1
            raise
        finally:
            self._last_execution_time = time.perf_counter() - start
        self._state = AgentState.COMPLETED
        self._success_count += 1
        return result

    def validate(self, input: Any) -> bool:
        """
        Check input before running

        Returns:
            True if the input is acceptable
        """
        return True

    def cleanup(self) -> None:
        """Release per-run resources"""
        pass

    def get_status(self) -> AgentStatus:
        return AgentStatus(
            name=self.name,
            state=self._state,
            error_count=self._error_count,
            success_count=self._success_count,
            last_run=self._last_run,
            execution_time=self._last_execution_time,
            metadata={
                "type": self.__class__.__name__,
                "configuration": dict(self.config),
            },
        )

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name!r})"


Validator = Callable[[Any], Union[bool, Awaitable[bool]]]


class FunctionAgent(BaseAgent):
    """
    Agent wrapping a plain or async callable

    Example:
        agent = FunctionAgent("upper", lambda text: text.upper())
    """

    def __init__(
        self,
        name: str,
        fn: Callable[[Any], Any],
        validator: Optional[Validator] = None,
        cleanup: Optional[Callable[[], Any]] = None,
        **config
    ):
        super().__init__(name, **config)
        self._fn = fn
        self._validator = validator
        self._cleanup = cleanup

    async def execute(self, input: Any) -> Any:
        result = self._fn(input)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def validate(self, input: Any) -> bool:
        if self._validator is None:
            return True
        verdict = self._validator(input)
        if inspect.isawaitable(verdict):
            verdict = await verdict
        return bool(verdict)

    async def cleanup(self) -> None:
        if self._cleanup is None:
            return
        outcome = self._cleanup()
        if inspect.isawaitable(outcome):
            await outcome

    def get_status(self) -> AgentStatus:
        status = super().get_status()
        status.metadata["function"] = getattr(self._fn, "__name__", repr(self._fn))
        return status
