"""Round-based dependency scheduling for workflow steps.

Standalone module: knows about ``WorkflowStep`` ids and dependencies, never
about agents or execution.

Provides:
- ``ready_steps``: the readiness rule, recomputed every round
- ``DependencyResolver``: per-run step states, failure propagation (BFS
  cancel of downstream steps) and deadlock detection
- Kahn's algorithm for cycle reporting and dry-run execution waves
"""

from __future__ import annotations

import logging
from collections import deque
from enum import Enum
from typing import Deque, Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple

from mycontext.exceptions import CircularDependencyError, WorkflowValidationError
from mycontext.orchestration.models import WorkflowStep

logger = logging.getLogger(__name__)


class StepState(str, Enum):
    """Lifecycle states tracked by the resolver."""

    PENDING = "pending"  # not yet dispatched
    RUNNING = "running"  # dispatched in the current round
    COMPLETED = "completed"  # finished successfully
    FAILED = "failed"  # finished with error (or skipped after error)
    CANCELLED = "cancelled"  # upstream failed, will never become ready


# ── Pure helpers ─────────────────────────────────────────────────────


def ready_steps(steps: Iterable[WorkflowStep], executed: Set[str]) -> List[WorkflowStep]:
    """Steps not yet executed whose dependencies have all been executed.

    Steps without dependencies are ready immediately.  Submission order is
    preserved.
    """
    return [
        step for step in steps
        if step.id not in executed and all(dep in executed for dep in step.dependencies)
    ]


def validate_steps(steps: Sequence[WorkflowStep]) -> None:
    """Reject duplicate step ids; warn about dependencies on unknown steps.

    Unknown dependencies are not an error up front, because steps can be
    added between rounds.  If they never appear, the run deadlocks and
    raises ``CircularDependencyError``.
    """
    seen: Set[str] = set()
    duplicates: List[str] = []
    for step in steps:
        if step.id in seen:
            duplicates.append(step.id)
        seen.add(step.id)
    if duplicates:
        raise WorkflowValidationError(
            f"Duplicate step ids in workflow: {', '.join(sorted(set(duplicates)))}",
            details={"duplicates": sorted(set(duplicates))},
        )
    for step in steps:
        unknown = [dep for dep in step.dependencies if dep not in seen]
        if unknown:
            logger.warning(
                "Step %s depends on unknown step(s) %s", step.id, ", ".join(unknown)
            )


def _kahn(steps: Sequence[WorkflowStep]) -> Tuple[List[List[str]], Dict[str, int]]:
    """Kahn's algorithm over known dependencies.

    Returns the execution waves and the residual in-degree map; any id with
    a positive residual in-degree sits on or behind a cycle.
    """
    ids = {step.id for step in steps}
    in_degree: Dict[str, int] = {}
    dependents: Dict[str, List[str]] = {step.id: [] for step in steps}
    for step in steps:
        known = [dep for dep in step.dependencies if dep in ids]
        in_degree[step.id] = len(known)
        for dep in known:
            dependents[dep].append(step.id)

    order = {step.id: i for i, step in enumerate(steps)}
    current = [sid for sid, deg in in_degree.items() if deg == 0]
    waves: List[List[str]] = []
    while current:
        current.sort(key=order.__getitem__)
        waves.append(current)
        next_wave: List[str] = []
        for sid in current:
            for dependent in dependents[sid]:
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    next_wave.append(dependent)
        current = next_wave
    return waves, in_degree


def find_cycle(steps: Sequence[WorkflowStep]) -> Optional[List[str]]:
    """Return one dependency cycle as a closed path (``[a, b, a]``), or ``None``."""
    _, in_degree = _kahn(steps)
    blocked = {sid for sid, deg in in_degree.items() if deg > 0}
    if not blocked:
        return None

    deps = {step.id: [d for d in step.dependencies if d in blocked] for step in steps}
    # Every blocked node has a blocked dependency, so walking deps must loop
    start = next(step.id for step in steps if step.id in blocked)
    path: List[str] = []
    position: Dict[str, int] = {}
    node = start
    while node not in position:
        position[node] = len(path)
        path.append(node)
        node = deps[node][0]
    return path[position[node]:] + [node]


def execution_waves(steps: Sequence[WorkflowStep]) -> List[List[str]]:
    """Group step ids into waves that could run concurrently.

    Raises:
        CircularDependencyError: if some steps can never run.
    """
    validate_steps(steps)
    waves, in_degree = _kahn(steps)
    scheduled = {sid for wave in waves for sid in wave}
    pending = [step.id for step in steps if step.id not in scheduled]
    unknown = [
        step.id for step in steps
        if any(dep not in in_degree for dep in step.dependencies)
    ]
    if pending or unknown:
        raise CircularDependencyError(
            pending=sorted(set(pending) | set(unknown)),
            cycle=find_cycle(steps),
        )
    return waves


# ── Resolver ─────────────────────────────────────────────────────────


class DependencyResolver:
    """Step states for a single workflow run.

    Readiness is recomputed from the executed set every round instead of
    maintaining in-degree counters, so steps may be added between rounds
    and may depend on steps that arrive later.

    Not thread-safe; designed for a single asyncio event loop.
    """

    def __init__(self, steps: Iterable[WorkflowStep] = ()) -> None:
        self._steps: Dict[str, WorkflowStep] = {}
        self._states: Dict[str, StepState] = {}
        self._executed: Set[str] = set()
        steps = list(steps)
        validate_steps(steps)
        for step in steps:
            self.add_step(step)

    # ── Graph mutation ───────────────────────────────────────────────

    def add_step(self, step: WorkflowStep) -> StepState:
        """Add a step; returns its initial state.

        Raises:
            WorkflowValidationError: if the id is already taken.
        """
        if step.id in self._steps:
            raise WorkflowValidationError(f"Step {step.id!r} already exists in the workflow")

        self._steps[step.id] = step
        failed_deps = [
            dep for dep in step.dependencies
            if self._states.get(dep) in (StepState.FAILED, StepState.CANCELLED)
        ]
        if failed_deps:
            logger.info("Dep %s failed/cancelled, auto-cancelling %s", failed_deps[0], step.id)
            self._states[step.id] = StepState.CANCELLED
        else:
            self._states[step.id] = StepState.PENDING
        return self._states[step.id]

    # ── Rounds ───────────────────────────────────────────────────────

    def next_round(self) -> List[WorkflowStep]:
        """Dispatch every pending step whose dependencies have completed.

        Returns an empty list once nothing is pending.

        Raises:
            CircularDependencyError: if steps are pending but none is ready.
        """
        pending = [s for s in self._steps.values() if self._states[s.id] == StepState.PENDING]
        if not pending:
            return []
        ready = ready_steps(pending, self._executed)
        if not ready:
            pending_ids = [s.id for s in pending]
            raise CircularDependencyError(
                pending=pending_ids,
                cycle=find_cycle(list(self._steps.values())),
            )
        for step in ready:
            self._states[step.id] = StepState.RUNNING
        return ready

    def mark_completed(self, step_id: str) -> None:
        """RUNNING → COMPLETED.  The step now satisfies its dependents."""
        self._expect(step_id, StepState.RUNNING)
        self._states[step_id] = StepState.COMPLETED
        self._executed.add(step_id)

    def mark_failed(self, step_id: str) -> List[str]:
        """RUNNING → FAILED.  BFS-cancel all transitive dependents.

        Returns the cancelled step ids in submission order.
        """
        self._expect(step_id, StepState.RUNNING)
        self._states[step_id] = StepState.FAILED

        cancelled: Set[str] = set()
        queue: Deque[str] = deque([step_id])
        while queue:
            current = queue.popleft()
            for dependent in self.get_dependents(current):
                if dependent in cancelled or self._states[dependent] != StepState.PENDING:
                    continue
                self._states[dependent] = StepState.CANCELLED
                cancelled.add(dependent)
                queue.append(dependent)
        return [sid for sid in self._steps if sid in cancelled]

    # ── Queries ──────────────────────────────────────────────────────

    @property
    def executed(self) -> FrozenSet[str]:
        return frozenset(self._executed)

    @property
    def steps(self) -> List[WorkflowStep]:
        return list(self._steps.values())

    @property
    def is_finished(self) -> bool:
        return not any(
            state in (StepState.PENDING, StepState.RUNNING) for state in self._states.values()
        )

    def get_state(self, step_id: str) -> Optional[StepState]:
        return self._states.get(step_id)

    def get_dependents(self, step_id: str) -> List[str]:
        """Steps that list *step_id* as a direct dependency."""
        return [s.id for s in self._steps.values() if step_id in s.dependencies]

    def in_state(self, state: StepState) -> List[str]:
        """Step ids in *state*, in submission order."""
        return [sid for sid, s in self._states.items() if s == state]

    @property
    def stats(self) -> Dict[str, int]:
        """Counts by state."""
        counts = {s.value: 0 for s in StepState}
        for s in self._states.values():
            counts[s.value] += 1
        return counts

    # ── Internal helpers ─────────────────────────────────────────────

    def _expect(self, step_id: str, expected: StepState) -> None:
        state = self._states.get(step_id)
        if state != expected:
            raise ValueError(
                f"Cannot transition {step_id!r}: current state is {state!r} (expected {expected.value})"
            )
