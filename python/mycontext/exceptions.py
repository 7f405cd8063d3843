"""
Unified error taxonomy for the mycontext orchestration core.

Every error raised by the orchestrator derives from ``MyContextError`` and
carries an ``ErrorContext`` (id, timestamp, category, severity, details) so
callers can log, serialise or branch on it consistently.

Errors raised by agents themselves are never wrapped by ``execute_agent``;
the classes below describe failures of the orchestration layer and the
terminal outcome of a workflow step.
"""

import traceback
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


# ============================================================================
# Enums
# ============================================================================

class ErrorSeverity(Enum):
    """Error severity levels."""
    CRITICAL = "critical"      # Workflow cannot continue
    ERROR = "error"            # Step or call failed
    WARNING = "warning"        # Degraded, workflow continues
    INFO = "info"


class ErrorCategory(Enum):
    """Error categories for classification and routing."""
    VALIDATION = "validation"       # Input or workflow definition rejected
    NOT_FOUND = "not_found"         # Unknown agent
    EXECUTION = "execution"         # Agent run failed
    TIMEOUT = "timeout"             # Agent-enforced timeout
    DEPENDENCY = "dependency"       # Step graph cannot make progress
    RETRY = "retry"                 # Retry budget exhausted
    INTERACTION = "interaction"     # User declined / prompt failed
    INTERNAL = "internal"


# ============================================================================
# Context
# ============================================================================

@dataclass
class ErrorContext:
    """Rich error context with metadata."""
    error_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    severity: ErrorSeverity = ErrorSeverity.ERROR
    category: ErrorCategory = ErrorCategory.INTERNAL
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)
    stack_trace: Optional[str] = None
    is_recoverable: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (stack trace excluded)."""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity.value,
            "category": self.category.value,
            "message": self.message,
            "details": self.details,
            "is_recoverable": self.is_recoverable,
        }


# ============================================================================
# Base
# ============================================================================

class MyContextError(Exception):
    """Base exception for all orchestration errors."""

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.INTERNAL,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        details: Optional[Dict[str, Any]] = None,
        is_recoverable: bool = True,
    ):
        self.message = message
        self.category = category
        self.severity = severity
        self.details = details or {}
        self.is_recoverable = is_recoverable
        self.context = ErrorContext(
            severity=severity,
            category=category,
            message=message,
            details=self.details,
            stack_trace=traceback.format_exc(),
            is_recoverable=is_recoverable,
        )
        super().__init__(message)

    def __str__(self) -> str:
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"type": type(self).__name__, **self.context.to_dict()}


# ============================================================================
# Agent errors
# ============================================================================

class AgentNotFoundError(MyContextError):
    """Requested agent name is not registered."""

    def __init__(self, agent_name: str, available: Sequence[str] = ()):
        self.agent_name = agent_name
        self.available = list(available)
        names = ", ".join(self.available) or "<none>"
        super().__init__(
            f"Sub-agent '{agent_name}' not found. Available agents: {names}",
            category=ErrorCategory.NOT_FOUND,
            details={"agent_name": agent_name, "available": self.available},
            is_recoverable=False,
        )


class ValidationFailedError(MyContextError):
    """The agent's own ``validate`` rejected the input."""

    def __init__(self, agent_name: str):
        self.agent_name = agent_name
        super().__init__(
            f"Input validation failed for sub-agent '{agent_name}'",
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.WARNING,
            details={"agent_name": agent_name},
            is_recoverable=False,
        )


class AgentRunError(MyContextError):
    """An agent's ``run`` failed."""

    def __init__(
        self,
        message: str,
        agent_name: Optional[str] = None,
        step_id: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ):
        self.agent_name = agent_name
        self.step_id = step_id
        self.cause = cause
        kwargs.setdefault("category", ErrorCategory.EXECUTION)
        details = kwargs.pop("details", None) or {}
        details.update({"agent_name": agent_name, "step_id": step_id})
        super().__init__(message, details=details, **kwargs)


class AgentTimeoutError(AgentRunError):
    """An agent gave up waiting on its own timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs: Any):
        self.timeout = timeout
        kwargs.setdefault("category", ErrorCategory.TIMEOUT)
        super().__init__(message, **kwargs)


class InteractionTimeoutError(AgentTimeoutError):
    """A user prompt was not answered in time."""
    pass


# ============================================================================
# Workflow errors
# ============================================================================

class WorkflowValidationError(MyContextError):
    """The submitted step list is malformed."""

    def __init__(self, message: str, **kwargs: Any):
        kwargs.setdefault("category", ErrorCategory.VALIDATION)
        kwargs.setdefault("is_recoverable", False)
        super().__init__(message, **kwargs)


class CircularDependencyError(MyContextError):
    """The step graph cannot make progress."""

    def __init__(self, pending: Sequence[str], cycle: Optional[Sequence[str]] = None):
        self.pending = list(pending)
        self.cycle = list(cycle or [])
        message = "Circular dependency detected in workflow"
        if self.cycle:
            message += f": {' -> '.join(self.cycle)}"
        else:
            message += f" (stuck steps: {', '.join(self.pending)})"
        super().__init__(
            message,
            category=ErrorCategory.DEPENDENCY,
            severity=ErrorSeverity.CRITICAL,
            details={"pending": self.pending, "cycle": self.cycle},
            is_recoverable=False,
        )


class MaxRetriesExceededError(MyContextError):
    """A retryable step used up its attempt budget."""

    def __init__(self, step_id: str, attempts: int, last_error: Optional[BaseException] = None):
        self.step_id = step_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Step '{step_id}' failed after {attempts} attempts: {last_error}",
            category=ErrorCategory.RETRY,
            details={"step_id": step_id, "attempts": attempts},
            is_recoverable=False,
        )


class InteractionDeclinedError(MyContextError):
    """The user declined to retry a failed step."""

    def __init__(self, step_id: str, last_error: Optional[BaseException] = None):
        self.step_id = step_id
        self.last_error = last_error
        super().__init__(
            f"Retry of step '{step_id}' declined: {last_error}",
            category=ErrorCategory.INTERACTION,
            severity=ErrorSeverity.WARNING,
            details={"step_id": step_id},
            is_recoverable=False,
        )


class WorkflowAbortedError(MyContextError):
    """A required step failed; the workflow stopped."""

    def __init__(self, failures: Dict[str, BaseException], completed: int, total: int):
        self.failures = dict(failures)
        self.completed = completed
        self.total = total
        reasons = "; ".join(f"{step_id}: {err}" for step_id, err in self.failures.items())
        super().__init__(
            f"Workflow aborted after {completed}/{total} steps completed. {reasons}",
            category=ErrorCategory.EXECUTION,
            severity=ErrorSeverity.CRITICAL,
            details={
                "failed_steps": list(self.failures),
                "completed": completed,
                "total": total,
            },
            is_recoverable=False,
        )


# ============================================================================
# Utilities
# ============================================================================

NON_RETRYABLE_ERRORS = (AgentNotFoundError, ValidationFailedError, WorkflowValidationError)


def is_retryable_error(error: BaseException) -> bool:
    """Whether a failure could succeed if the step is attempted again."""
    if isinstance(error, NON_RETRYABLE_ERRORS):
        return False
    if isinstance(error, MyContextError) and not isinstance(error, AgentRunError):
        return error.is_recoverable
    return True


def get_exception_hierarchy() -> Dict[str, List[str]]:
    """Map each orchestration error to its direct subclasses."""
    hierarchy: Dict[str, List[str]] = {}
    pending = [MyContextError]
    while pending:
        cls = pending.pop()
        children = cls.__subclasses__()
        hierarchy[cls.__name__] = sorted(c.__name__ for c in children)
        pending.extend(children)
    return hierarchy
