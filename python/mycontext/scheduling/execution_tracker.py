"""Execution history for the orchestrator.

Every agent invocation, ad hoc or workflow-driven, is appended here.  The
tracker keeps a bounded ring buffer of recent records and running counters
for the aggregates, so ``error_rate`` and ``average_execution_time`` stay
exact even after old records are evicted.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


# ── Value objects ────────────────────────────────────────────────────


@dataclass(frozen=True)
class ExecutionRecord:
    """Immutable record of a single agent invocation."""

    agent_name: str
    success: bool
    execution_time: float = 0.0  # seconds; 0 for failures
    start_time: float = 0.0
    end_time: float = 0.0
    error: Optional[str] = None
    step_id: Optional[str] = None
    workflow_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent_name": self.agent_name,
            "success": self.success,
            "execution_time": self.execution_time,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "error": self.error,
            "step_id": self.step_id,
            "workflow_id": self.workflow_id,
        }


# ── Tracker ──────────────────────────────────────────────────────────


class ExecutionTracker:
    """Append-only execution log with derived status metrics.

    Appends and aggregate reads are plain attribute updates with no await in
    between, which is safe under a single asyncio event loop.  Callers
    running agents on OS threads must serialise access themselves.
    """

    def __init__(self, history_limit: int = 1000) -> None:
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")
        self._records: Deque[ExecutionRecord] = deque(maxlen=history_limit)
        self._active_workflows: Set[str] = set()
        self._total_executions = 0
        self._failed_executions = 0
        self._total_execution_time = 0.0

    # ── Recording ────────────────────────────────────────────────────

    def record(
        self,
        agent_name: str,
        success: bool,
        execution_time: float = 0.0,
        error: Optional[str] = None,
        step_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> ExecutionRecord:
        """Append one invocation.  Timestamps end now and span ``execution_time``."""
        end = time.time()
        record = ExecutionRecord(
            agent_name=agent_name,
            success=success,
            execution_time=execution_time,
            start_time=end - execution_time,
            end_time=end,
            error=error,
            step_id=step_id,
            workflow_id=workflow_id,
        )
        self._records.append(record)
        self._total_executions += 1
        self._total_execution_time += execution_time
        if not success:
            self._failed_executions += 1
        return record

    def start_workflow(self, workflow_id: str) -> None:
        self._active_workflows.add(workflow_id)

    def finish_workflow(self, workflow_id: str) -> None:
        self._active_workflows.discard(workflow_id)

    # ── Derived metrics ──────────────────────────────────────────────

    @property
    def total_executions(self) -> int:
        return self._total_executions

    @property
    def failed_executions(self) -> int:
        return self._failed_executions

    @property
    def total_execution_time(self) -> float:
        return self._total_execution_time

    @property
    def average_execution_time(self) -> float:
        if not self._total_executions:
            return 0.0
        return self._total_execution_time / self._total_executions

    @property
    def error_rate(self) -> float:
        if not self._total_executions:
            return 0.0
        return self._failed_executions / self._total_executions

    @property
    def active_workflows(self) -> int:
        return len(self._active_workflows)

    @property
    def active_workflow_ids(self) -> List[str]:
        return sorted(self._active_workflows)

    # ── Queries ──────────────────────────────────────────────────────

    def recent(self, limit: int = 100) -> List[ExecutionRecord]:
        """The newest *limit* records, oldest first."""
        if limit <= 0:
            return []
        return list(self._records)[-limit:]

    def records_for(self, agent_name: str) -> List[ExecutionRecord]:
        """Retained records of one agent."""
        return [r for r in self._records if r.agent_name == agent_name]

    def __len__(self) -> int:
        return len(self._records)

    @property
    def history_limit(self) -> int:
        return self._records.maxlen or 0

    @property
    def stats(self) -> Dict[str, Any]:
        """Summary statistics."""
        return {
            "total_executions": self._total_executions,
            "failed_executions": self._failed_executions,
            "retained_records": len(self._records),
            "average_execution_time": self.average_execution_time,
            "error_rate": self.error_rate,
            "active_workflows": self.active_workflows,
        }

    def reset(self) -> None:
        """Drop all history and counters.  Active workflows are kept."""
        self._records.clear()
        self._total_executions = 0
        self._failed_executions = 0
        self._total_execution_time = 0.0
