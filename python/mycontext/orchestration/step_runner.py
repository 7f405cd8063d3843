"""Step-by-step workflow runner with retries.

Runs workflow steps one at a time in dependency order and gives retryable
steps further attempts when they fail.  In interactive mode the user is
asked before each retry of a step flagged ``interactive``.

Unlike ``SubAgentOrchestrator.execute_workflow`` nothing here runs
concurrently: a round's steps execute in submission order, and a step's
dependents only start after its final attempt has been resolved.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, Optional, Sequence

from mycontext.enhanced_logging import track_performance, workflow_id_context
from mycontext.exceptions import (
    AgentRunError,
    InteractionDeclinedError,
    MaxRetriesExceededError,
    MyContextError,
    WorkflowAbortedError,
)
from mycontext.interfaces.event_bus import EventType
from mycontext.interfaces.prompt import IConfirmationPrompt
from mycontext.orchestration.models import WorkflowResult, WorkflowState, WorkflowStep
from mycontext.orchestration.orchestrator import (
    SubAgentOrchestrator,
    finalize_result,
    new_workflow_id,
)
from mycontext.scheduling.dependency_resolver import DependencyResolver
from mycontext.scheduling.retry_strategies import (
    RetryDecision,
    RetryManager,
    RetryPolicy,
    RetryReason,
)

logger = logging.getLogger(__name__)


class WorkflowRunner:
    """Retrying, optionally interactive, sequential workflow runner.

    Args:
        orchestrator: Executes the agents and owns the execution history.
        prompt: Asks the user before interactive retries.  Without one,
            interactive retries are declined.
        retry_policy: Default attempt budget and backoff for every step.
        interactive: Default for ``run(interactive=...)``.
    """

    def __init__(
        self,
        orchestrator: SubAgentOrchestrator,
        prompt: Optional[IConfirmationPrompt] = None,
        retry_policy: Optional[RetryPolicy] = None,
        interactive: bool = False,
    ) -> None:
        self.orchestrator = orchestrator
        self.prompt = prompt
        self.retry_policy = retry_policy or RetryPolicy()
        self.interactive = interactive

    @track_performance(operation="run_workflow")
    async def run(
        self,
        steps: Sequence[WorkflowStep],
        *,
        interactive: Optional[bool] = None,
        workflow_id: Optional[str] = None,
    ) -> WorkflowResult:
        """Run *steps* to completion or until a required step gives up.

        Errors are returned in the result like ``execute_workflow`` does.
        """
        steps = list(steps)
        interactive = self.interactive if interactive is None else interactive
        workflow_id = workflow_id or new_workflow_id()
        retries = RetryManager(self.retry_policy)
        result = WorkflowResult(workflow_id=workflow_id, state=WorkflowState.RUNNING)
        outputs: Dict[str, Any] = {}

        token = workflow_id_context.set(workflow_id)
        tracker = self.orchestrator.tracker
        tracker.start_workflow(workflow_id)
        started = time.perf_counter()
        logger.info(
            "Running workflow with %d steps%s", len(steps), " (interactive)" if interactive else ""
        )
        await self.orchestrator.publish(
            EventType.WORKFLOW_STARTED, {"workflow_id": workflow_id, "total": len(steps)}
        )

        try:
            resolver = DependencyResolver(steps)
            while True:
                ready = resolver.next_round()
                if not ready:
                    break

                for step in ready:
                    retries.set_max_retries(step.id, step.max_retries)
                    try:
                        data = await self._run_with_retries(
                            step, outputs, retries, result, interactive
                        )
                    except MyContextError as exc:
                        cancelled = resolver.mark_failed(step.id)
                        if step.required:
                            result.failed_steps.append(step.id)
                            raise WorkflowAbortedError(
                                {step.id: exc},
                                completed=len(result.completed_steps),
                                total=len(steps),
                            ) from exc
                        result.skipped_steps.append(step.id)
                        logger.warning(
                            "Optional step %s failed, skipping: %s", step.display_name, exc
                        )
                        await self.orchestrator.publish(
                            EventType.TASK_SKIPPED,
                            {
                                "workflow_id": workflow_id,
                                "step_id": step.id,
                                "error": str(exc),
                                "cancelled": cancelled,
                            },
                        )
                        continue

                    outputs[step.id] = data
                    resolver.mark_completed(step.id)
                    result.completed_steps.append(step.id)
                    await self.orchestrator.publish(
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
            result.total_retries = retries.total_retries
            logger.debug("Retry stats: %s", retries.stats)
            tracker.finish_workflow(workflow_id)
            workflow_id_context.reset(token)

        if result.success:
            logger.info(
                "Workflow completed in %.0fms (%d/%d steps, %d retries)",
                result.execution_time * 1000,
                len(result.completed_steps),
                len(steps),
                result.total_retries,
            )
        await self.orchestrator.publish(
            EventType.WORKFLOW_COMPLETED if result.success else EventType.WORKFLOW_FAILED,
            result.summary(),
        )
        return result

    async def _run_with_retries(
        self,
        step: WorkflowStep,
        outputs: Dict[str, Any],
        retries: RetryManager,
        result: WorkflowResult,
        interactive: bool,
    ) -> Any:
        """Attempt *step* until it succeeds or the retry manager gives up.

        Every attempt is appended to ``result.steps``.

        Raises:
            AgentNotFoundError / ValidationFailedError: never retried.
            AgentRunError: the step is not retryable.
            InteractionDeclinedError: the user declined a retry.
            MaxRetriesExceededError: the attempt budget is used up.
        """
        while True:
            attempt = retries.attempts(step.id) + 1
            step_result = await self.orchestrator.run_step(
                step, outputs, result.workflow_id, attempt=attempt
            )
            result.steps.append(step_result)
            if step_result.success:
                if attempt > 1:
                    logger.info("Step %s succeeded on attempt %d", step.display_name, attempt)
                return step_result.data

            error = step_result.exception
            decision = retries.on_failure(
                step.id,
                error,
                retryable=step.retryable,
                interactive=interactive and step.interactive,
            )
            if not decision.should_retry:
                raise self._terminal_error(step, decision, error)

            if decision.needs_confirmation:
                result.user_interactions += 1
                if not await self._confirm_retry(step, decision, step_result.error):
                    retries.decline(step.id)
                    raise InteractionDeclinedError(step.id, error)

            logger.warning(
                "Step %s failed (attempt %d/%d), retrying: %s",
                step.display_name,
                decision.attempt,
                decision.max_attempts,
                step_result.error,
            )
            await self.orchestrator.publish(
                EventType.TASK_RETRYING,
                {
                    "workflow_id": result.workflow_id,
                    "step_id": step.id,
                    "attempt": decision.attempt,
                    "max_attempts": decision.max_attempts,
                    "error": step_result.error,
                },
            )
            if decision.delay > 0:
                await asyncio.sleep(decision.delay)

    @staticmethod
    def _terminal_error(
        step: WorkflowStep, decision: RetryDecision, error: BaseException
    ) -> BaseException:
        if decision.reason == RetryReason.NON_RETRYABLE_ERROR:
            return error
        if decision.reason == RetryReason.STEP_NOT_RETRYABLE:
            return AgentRunError(
                f"Step '{step.display_name}' failed: {error}",
                agent_name=step.agent_name,
                step_id=step.id,
                cause=error,
            )
        return MaxRetriesExceededError(step.id, decision.attempt, error)

    async def _confirm_retry(
        self, step: WorkflowStep, decision: RetryDecision, error: Optional[str]
    ) -> bool:
        """Ask the user whether to retry.  Any prompt failure counts as no."""
        if self.prompt is None:
            logger.warning("No confirmation prompt configured, not retrying %s", step.id)
            return False

        message = (
            f"Step '{step.display_name}' failed: {error}. "
            f"Retry? (attempt {decision.attempt + 1}/{decision.max_attempts})"
        )
        try:
            answer = await self.prompt.confirm(message, default=False)
        except Exception as exc:
            logger.warning("Confirmation for %s failed: %s", step.id, exc)
            return False
        if not answer:
            logger.info("User declined retry of %s", step.id)
        return bool(answer)
