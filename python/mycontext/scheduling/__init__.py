"""Workflow scheduling for mycontext.

Round-based dependency resolution, execution history and step retry policy.
"""

from mycontext.scheduling.dependency_resolver import (
    DependencyResolver,
    StepState,
    execution_waves,
    find_cycle,
    ready_steps,
    validate_steps,
)
from mycontext.scheduling.execution_tracker import (
    ExecutionRecord,
    ExecutionTracker,
)
from mycontext.scheduling.retry_strategies import (
    RetryDecision,
    RetryManager,
    RetryPolicy,
    RetryReason,
)

__all__ = [
    # Dependency resolver
    "DependencyResolver",
    "StepState",
    "execution_waves",
    "find_cycle",
    "ready_steps",
    "validate_steps",
    # Execution tracker
    "ExecutionRecord",
    "ExecutionTracker",
    # Retry strategies
    "RetryDecision",
    "RetryManager",
    "RetryPolicy",
    "RetryReason",
]
