"""Tests for the retrying step-by-step WorkflowRunner."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from mycontext.agents import FunctionAgent
from mycontext.exceptions import (
    AgentRunError,
    InteractionDeclinedError,
    InteractionTimeoutError,
    MaxRetriesExceededError,
    ValidationFailedError,
    WorkflowAbortedError,
)
from mycontext.interfaces.event_bus import EventType
from mycontext.orchestration.models import DerivedInput, WorkflowStep
from mycontext.orchestration.orchestrator import SubAgentOrchestrator
from mycontext.orchestration.step_runner import WorkflowRunner
from mycontext.scheduling.retry_strategies import RetryPolicy


class Flaky:
    """Fails the first ``failures`` calls, then succeeds."""

    def __init__(self, failures):
        self.failures = failures
        self.calls = 0

    def __call__(self, value):
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError(f"transient failure {self.calls}")
        return value


def _make_runner(*agents, prompt=None, max_retries=3, interactive=False):
    bus = AsyncMock()
    bus.publish = AsyncMock()
    orchestrator = SubAgentOrchestrator(event_bus=bus)
    for agent in agents:
        orchestrator.register_agent(agent)
    return WorkflowRunner(
        orchestrator,
        prompt=prompt,
        retry_policy=RetryPolicy(max_retries=max_retries),
        interactive=interactive,
    )


def _unwrap(result):
    """The terminal step error behind a WorkflowAbortedError."""
    assert isinstance(result.exception, WorkflowAbortedError)
    (error,) = result.exception.failures.values()
    return error


# ========================================================================
# AUTOMATIC RETRIES
# ========================================================================


class TestAutomaticRetries:

    @pytest.mark.asyncio
    async def test_retry_until_success(self):
        flaky = Flaky(failures=2)
        runner = _make_runner(FunctionAgent("flaky", flaky))
        result = await runner.run([WorkflowStep("s", "flaky", input="ok", retryable=True)])

        assert result.success is True
        assert result.data == "ok"
        assert flaky.calls == 3
        assert result.total_retries == 2
        assert [r.attempt for r in result.results_for("s")] == [1, 2, 3]
        assert runner.orchestrator.tracker.total_executions == 3

    @pytest.mark.asyncio
    async def test_exhaustion_after_max_retries_plus_one(self):
        flaky = Flaky(failures=10)
        runner = _make_runner(FunctionAgent("flaky", flaky), max_retries=2)
        result = await runner.run([WorkflowStep("s", "flaky", retryable=True)])

        assert result.success is False
        assert flaky.calls == 3
        error = _unwrap(result)
        assert isinstance(error, MaxRetriesExceededError)
        assert error.attempts == 3
        assert "transient failure 3" in str(error.last_error)

    @pytest.mark.asyncio
    async def test_step_override_of_max_retries(self):
        flaky = Flaky(failures=10)
        runner = _make_runner(FunctionAgent("flaky", flaky), max_retries=5)
        await runner.run([WorkflowStep("s", "flaky", retryable=True, max_retries=1)])
        assert flaky.calls == 2

    @pytest.mark.asyncio
    async def test_non_retryable_step_fails_once(self):
        flaky = Flaky(failures=1)
        runner = _make_runner(FunctionAgent("flaky", flaky))
        result = await runner.run([WorkflowStep("s", "flaky")])

        assert flaky.calls == 1
        error = _unwrap(result)
        assert isinstance(error, AgentRunError)
        assert isinstance(error.cause, RuntimeError)
        assert error.step_id == "s"

    @pytest.mark.asyncio
    async def test_validation_failure_never_retried(self):
        flaky = Flaky(failures=0)
        agent = FunctionAgent("picky", flaky, validator=lambda v: v is not None)
        runner = _make_runner(agent)
        result = await runner.run([WorkflowStep("s", "picky", input=None, retryable=True)])

        assert flaky.calls == 0
        assert isinstance(_unwrap(result), ValidationFailedError)
        assert result.total_retries == 0

    @pytest.mark.asyncio
    async def test_counters_reset_between_runs(self):
        flaky = Flaky(failures=2)
        runner = _make_runner(FunctionAgent("flaky", flaky), max_retries=2)
        step = WorkflowStep("s", "flaky", input=1, retryable=True)

        assert (await runner.run([step])).success
        flaky.calls, flaky.failures = 0, 2
        assert (await runner.run([step])).success

    @pytest.mark.asyncio
    async def test_backoff_delay(self, monkeypatch):
        sleeps = []

        async def fake_sleep(delay):
            sleeps.append(delay)

        monkeypatch.setattr(asyncio, "sleep", fake_sleep)
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=2)))
        runner.retry_policy = RetryPolicy(max_retries=3, initial_delay_ms=100)
        await runner.run([WorkflowStep("s", "flaky", retryable=True)])

        assert sleeps == pytest.approx([0.1, 0.2])

    @pytest.mark.asyncio
    async def test_retry_events(self):
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=1)))
        await runner.run([WorkflowStep("s", "flaky", retryable=True)])
        published = [c.args[0] for c in runner.orchestrator.event_bus.publish.call_args_list]
        assert published.count(EventType.TASK_RETRYING) == 1
        assert published[-1] == EventType.WORKFLOW_COMPLETED


# ========================================================================
# ORDERING & REQUIRED/OPTIONAL
# ========================================================================


class TestRunnerWorkflow:

    @pytest.mark.asyncio
    async def test_dependents_wait_for_final_attempt(self):
        flaky = Flaky(failures=2)
        runner = _make_runner(
            FunctionAgent("flaky", flaky),
            FunctionAgent("double", lambda x: x * 2),
        )
        steps = [
            WorkflowStep("first", "flaky", input=21, retryable=True),
            WorkflowStep(
                "second",
                "double",
                input=DerivedInput(lambda o: o["first"]),
                dependencies=["first"],
            ),
        ]
        result = await runner.run(steps)

        assert result.data == 42
        second = result.results_for("second")[0]
        last_first = result.results_for("first")[-1]
        assert last_first.end_time <= second.start_time

    @pytest.mark.asyncio
    async def test_optional_terminal_failure_is_skipped(self):
        runner = _make_runner(
            FunctionAgent("flaky", Flaky(failures=10)),
            FunctionAgent("echo", lambda x: x),
        )
        steps = [
            WorkflowStep("opt", "flaky", retryable=True, required=False, max_retries=1),
            WorkflowStep("dep", "echo", dependencies=["opt"]),
            WorkflowStep("last", "echo", input="done"),
        ]
        result = await runner.run(steps)

        assert result.success is True
        assert result.skipped_steps == ["opt"]
        assert result.incomplete_steps == ["dep"]
        assert result.data == "done"

    @pytest.mark.asyncio
    async def test_required_failure_stops_remaining_steps(self):
        echo_calls = []
        runner = _make_runner(
            FunctionAgent("flaky", Flaky(failures=10)),
            FunctionAgent("echo", echo_calls.append),
        )
        steps = [WorkflowStep("bad", "flaky"), WorkflowStep("later", "echo", input=1)]
        result = await runner.run(steps)

        assert result.success is False
        assert echo_calls == []
        assert result.incomplete_steps == ["later"]
        assert "0/2 steps completed" in result.error


# ========================================================================
# INTERACTIVE RETRIES
# ========================================================================


class TestInteractiveRetries:

    @pytest.mark.asyncio
    async def test_confirmed_retry(self):
        prompt = AsyncMock()
        prompt.confirm = AsyncMock(return_value=True)
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=1)), prompt=prompt)
        step = WorkflowStep("s", "flaky", input=1, retryable=True, interactive=True)

        result = await runner.run([step], interactive=True)

        assert result.success is True
        assert result.user_interactions == 1
        assert result.total_retries == 1
        message = prompt.confirm.call_args.args[0]
        assert "Step 's' failed" in message
        assert "attempt 2/4" in message

    @pytest.mark.asyncio
    async def test_declined_retry(self):
        prompt = AsyncMock()
        prompt.confirm = AsyncMock(return_value=False)
        flaky = Flaky(failures=1)
        runner = _make_runner(FunctionAgent("flaky", flaky), prompt=prompt)
        step = WorkflowStep("s", "flaky", retryable=True, interactive=True)

        result = await runner.run([step], interactive=True)

        assert flaky.calls == 1
        assert isinstance(_unwrap(result), InteractionDeclinedError)
        assert result.total_retries == 0
        assert result.user_interactions == 1

    @pytest.mark.asyncio
    async def test_prompt_timeout_counts_as_decline(self):
        prompt = AsyncMock()
        prompt.confirm = AsyncMock(side_effect=InteractionTimeoutError("slow user", timeout=1))
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=1)), prompt=prompt)
        step = WorkflowStep("s", "flaky", retryable=True, interactive=True)

        result = await runner.run([step], interactive=True)
        assert isinstance(_unwrap(result), InteractionDeclinedError)

    @pytest.mark.asyncio
    async def test_no_prompt_outside_interactive_mode(self):
        prompt = AsyncMock()
        prompt.confirm = AsyncMock(return_value=False)
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=1)), prompt=prompt)
        step = WorkflowStep("s", "flaky", input=1, retryable=True, interactive=True)

        result = await runner.run([step])

        assert result.success is True
        prompt.confirm.assert_not_called()

    @pytest.mark.asyncio
    async def test_no_prompt_for_non_interactive_step(self):
        prompt = AsyncMock()
        prompt.confirm = AsyncMock(return_value=False)
        runner = _make_runner(
            FunctionAgent("flaky", Flaky(failures=1)), prompt=prompt, interactive=True
        )
        result = await runner.run([WorkflowStep("s", "flaky", input=1, retryable=True)])

        assert result.success is True
        prompt.confirm.assert_not_called()

    @pytest.mark.asyncio
    async def test_missing_prompt_declines(self):
        runner = _make_runner(FunctionAgent("flaky", Flaky(failures=1)), interactive=True)
        step = WorkflowStep("s", "flaky", retryable=True, interactive=True)
        result = await runner.run([step])
        assert isinstance(_unwrap(result), InteractionDeclinedError)
