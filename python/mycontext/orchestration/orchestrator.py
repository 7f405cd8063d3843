"""Sub-agent orchestrator.

Registers agents, executes them one at a time or in parallel, and runs
dependency-annotated workflows round by round: every round dispatches all
steps whose dependencies have completed and awaits them concurrently before
the next round's readiness is computed.

The orchestrator is constructed explicitly (see ``di_container``); there is
no process-wide instance.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mycontext.enhanced_logging import track_performance, workflow_id_context
from mycontext.exceptions import (
    AgentNotFoundError,
    MyContextError,
    ValidationFailedError,
    WorkflowAbortedError,
)
from mycontext.interfaces.agent import Agent, AgentStatus, Cleanable, Inspectable, Validatable
from mycontext.interfaces.event_bus import EventType, IEventBus
from mycontext.orchestration.models import (
    OrchestratorStatus,
    WorkflowResult,
    WorkflowState,
    WorkflowStep,
    WorkflowStepResult,
)
from mycontext.orchestration.registry import AgentRegistry
from mycontext.scheduling.dependency_resolver import DependencyResolver, execution_waves
from mycontext.scheduling.execution_tracker import ExecutionTracker

logger = logging.getLogger(__name__)


async def maybe_await(value: Any) -> Any:
    """Await *value* if it is awaitable; capabilities may be sync or async."""
    if inspect.isawaitable(value):
        return await value
    return value


def describe_error(error: BaseException) -> str:
    return str(error) or type(error).__name__


def new_workflow_id() -> str:
    return f"workflow-{uuid.uuid4().hex[:12]}"


def finalize_result(
    result: WorkflowResult,
    steps: List[WorkflowStep],
    outputs: Dict[str, Any],
    started: float,
) -> None:
    """Fill in the fields of *result* that are known once the run stops."""
    finished = set(result.completed_steps) | set(result.failed_steps) | set(result.skipped_steps)
    result.incomplete_steps = [s.id for s in steps if s.id not in finished]
    result.outputs = dict(outputs)
    result.data = outputs.get(steps[-1].id) if steps else None
    result.execution_time = time.perf_counter() - started


class SubAgentOrchestrator:
    """Executes registered agents and agent workflows.

    Args:
        registry: Agent store shared by all runs.
        tracker: Process-wide execution history.
        event_bus: Optional bus receiving task and workflow events.
    """

    def __init__(
        self,
        registry: Optional[AgentRegistry] = None,
        tracker: Optional[ExecutionTracker] = None,
        event_bus: Optional[IEventBus] = None,
    ) -> None:
        self.registry = registry if registry is not None else AgentRegistry()
        self.tracker = tracker if tracker is not None else ExecutionTracker()
        self.event_bus = event_bus

    # ── Registry ─────────────────────────────────────────────────────

    def register_agent(self, agent: Agent) -> None:
        self.registry.register(agent)

    def get_agent(self, name: str) -> Optional[Agent]:
        return self.registry.get(name)

    def list_agents(self) -> List[str]:
        return self.registry.list()

    def remove_agent(self, name: str) -> bool:
        return self.registry.remove(name)

    def clear_agents(self) -> None:
        self.registry.clear()

    # ── Single agent ─────────────────────────────────────────────────

    async def execute_agent(
        self,
        agent_name: str,
        input: Any,
        *,
        step_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
    ) -> Any:
        """Validate, run and clean up one agent.

        Every invocation is recorded in the execution history.  A failure in
        ``run`` is recorded and re-raised unchanged; a failure in
        ``cleanup`` is logged and never raised.

        Raises:
            AgentNotFoundError: no agent is registered under *agent_name*.
            ValidationFailedError: the agent's ``validate`` rejected *input*.
        """
        agent = self.registry.get(agent_name)
        if agent is None:
            raise AgentNotFoundError(agent_name, self.registry.list())

        event = {"agent_name": agent_name, "step_id": step_id, "workflow_id": workflow_id}
        logger.debug("Executing %s", agent_name)
        try:
            if isinstance(agent, Validatable):
                is_valid = await maybe_await(agent.validate(input))
                if not is_valid:
                    raise ValidationFailedError(agent_name)

            await self.publish(EventType.TASK_STARTED, event)
            start = time.perf_counter()
            result = await maybe_await(agent.run(input))
            execution_time = time.perf_counter() - start

            self.tracker.record(
                agent_name, True, execution_time, step_id=step_id, workflow_id=workflow_id
            )
            logger.info("%s completed in %.0fms", agent_name, execution_time * 1000)
            await self.publish(
                EventType.TASK_COMPLETED, {**event, "execution_time": execution_time}
            )
            return result
        except Exception as exc:
            self.tracker.record(
                agent_name,
                False,
                0.0,
                error=describe_error(exc),
                step_id=step_id,
                workflow_id=workflow_id,
            )
            logger.error("%s failed: %s", agent_name, describe_error(exc))
            await self.publish(EventType.TASK_FAILED, {**event, "error": describe_error(exc)})
            raise
        finally:
            if isinstance(agent, Cleanable):
                try:
                    await maybe_await(agent.cleanup())
                except Exception as cleanup_error:
                    logger.warning("Cleanup failed for %s: %s", agent_name, cleanup_error)

    async def execute_parallel(self, calls: Sequence[Tuple[str, Any]]) -> Dict[str, Any]:
        """Run ``(agent_name, input)`` pairs concurrently.

        Returns outputs keyed by agent name for the calls that succeeded;
        failures are logged and left out.
        """
        logger.info("Executing %d agents in parallel", len(calls))
        outcomes = await asyncio.gather(
            *(self.execute_agent(name, payload) for name, payload in calls),
            return_exceptions=True,
        )

        results: Dict[str, Any] = {}
        failures: List[str] = []
        for (name, _), outcome in zip(calls, outcomes):
            if isinstance(outcome, BaseException):
                failures.append(f"{name}: {describe_error(outcome)}")
            else:
                results[name] = outcome

        if failures:
            logger.warning("Some agents failed: %s", ", ".join(failures))
        else:
            logger.info("All %d agents completed successfully", len(calls))
        return results

    # ── Workflows ────────────────────────────────────────────────────

    def plan_workflow(self, steps: Sequence[WorkflowStep]) -> List[List[str]]:
        """Dry run: the waves of step ids that would execute concurrently."""
        return execution_waves(list(steps))

    @track_performance(operation="execute_workflow")
    async def execute_workflow(
        self,
        steps: Sequence[WorkflowStep],
        workflow_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Execute *steps* in dependency order, one concurrent round at a time.

        A failed required step aborts the workflow once its round has
        settled.  A failed optional step is skipped and every step that
        depends on it is reported as incomplete.  Workflow-level errors are
        returned in the result, never raised; use
        ``WorkflowResult.raise_for_status()`` to raise them.
        """
        steps = list(steps)
        workflow_id = workflow_id or new_workflow_id()
        result = WorkflowResult(workflow_id=workflow_id, state=WorkflowState.RUNNING)
        outputs: Dict[str, Any] = {}

        token = workflow_id_context.set(workflow_id)
        self.tracker.start_workflow(workflow_id)
        started = time.perf_counter()
        logger.info("Executing workflow with %d steps", len(steps))
        await self.publish(
            EventType.WORKFLOW_STARTED, {"workflow_id": workflow_id, "total": len(steps)}
        )

        try:
            resolver = DependencyResolver(steps)
            while True:
                ready = resolver.next_round()
                if not ready:
                    break

                round_results = await asyncio.gather(
                    *(self.run_step(step, outputs, workflow_id) for step in ready)
                )

                failures: Dict[str, BaseException] = {}
                for step, step_result in zip(ready, round_results):
                    result.steps.append(step_result)
                    if step_result.success:
                        outputs[step.id] = step_result.data
                        resolver.mark_completed(step.id)
                        result.completed_steps.append(step.id)
                        continue

                    cancelled = resolver.mark_failed(step.id)
                    if step.required:
                        result.failed_steps.append(step.id)
                        failures[step.id] = step_result.exception
                    else:
                        result.skipped_steps.append(step.id)
                        logger.warning(
                            "Optional step %s failed, skipping: %s%s",
                            step.display_name,
                            step_result.error,
                            f" (not started: {', '.join(cancelled)})" if cancelled else "",
                        )
                        await self.publish(
                            EventType.TASK_SKIPPED,
                            {
                                "workflow_id": workflow_id,
                                "step_id": step.id,
                                "error": step_result.error,
                                "cancelled": cancelled,
                            },
                        )

                if failures:
                    raise WorkflowAbortedError(
                        failures, completed=len(result.completed_steps), total=len(steps)
                    )

                await self.publish(
                    EventType.WORKFLOW_PROGRESS,
                    {
                        "workflow_id": workflow_id,
                        "completed": len(result.completed_steps),
                        "total": len(steps),
                    },
                )

            result.success = True
            result.state = WorkflowState.COMPLETED
        except MyContextError as exc:
            result.success = False
            result.state = WorkflowState.FAILED
            result.error = str(exc)
            result.exception = exc
            logger.error("Workflow failed: %s", exc)
        finally:
            finalize_result(result, steps, outputs, started)
            self.tracker.finish_workflow(workflow_id)
            workflow_id_context.reset(token)

        if result.success:
            logger.info(
                "Workflow completed in %.0fms (%d/%d steps)",
                result.execution_time * 1000,
                len(result.completed_steps),
                len(steps),
            )
        await self.publish(
            EventType.WORKFLOW_COMPLETED if result.success else EventType.WORKFLOW_FAILED,
            result.summary(),
        )
        return result

    async def run_step(
        self,
        step: WorkflowStep,
        outputs: Dict[str, Any],
        workflow_id: Optional[str],
        attempt: int = 1,
    ) -> WorkflowStepResult:
        """Resolve a step's input and execute its agent; never raises."""
        start_time = time.time()
        start = time.perf_counter()
        try:
            data = await self.execute_agent(
                step.agent_name,
                step.resolve_input(outputs),
                step_id=step.id,
                workflow_id=workflow_id,
            )
        except Exception as exc:
            return WorkflowStepResult(
                step_id=step.id,
                agent_name=step.agent_name,
                success=False,
                error=describe_error(exc),
                exception=exc,
                execution_time=time.perf_counter() - start,
                start_time=start_time,
                end_time=time.time(),
                attempt=attempt,
            )
        return WorkflowStepResult(
            step_id=step.id,
            agent_name=step.agent_name,
            success=True,
            data=data,
            execution_time=time.perf_counter() - start,
            start_time=start_time,
            end_time=time.time(),
            attempt=attempt,
        )

    # ── Status ───────────────────────────────────────────────────────

    async def get_status(self) -> OrchestratorStatus:
        """Aggregate status rebuilt from the registry and execution history."""
        statuses: List[AgentStatus] = []
        for agent in self.registry.agents():
            if isinstance(agent, Inspectable):
                statuses.append(await maybe_await(agent.get_status()))
            else:
                statuses.append(AgentStatus(name=agent.name))

        return OrchestratorStatus(
            active_workflows=self.tracker.active_workflows,
            registered_agents=self.registry.list(),
            total_executions=self.tracker.total_executions,
            average_execution_time=self.tracker.average_execution_time,
            error_rate=self.tracker.error_rate,
            agent_statuses=statuses,
        )

    # ── Internal ─────────────────────────────────────────────────────

    async def publish(self, event_type: EventType, data: Dict[str, Any]) -> None:
        if self.event_bus is not None:
            await self.event_bus.publish(event_type, data, source="orchestrator")
