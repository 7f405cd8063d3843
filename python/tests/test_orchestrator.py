"""Tests for the agent registry and single-agent execution."""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from mycontext.agents import FunctionAgent
from mycontext.exceptions import AgentNotFoundError, ValidationFailedError
from mycontext.interfaces.agent import AgentCapabilities, AgentState, AgentStatus
from mycontext.interfaces.event_bus import EventType
from mycontext.orchestration.orchestrator import SubAgentOrchestrator
from mycontext.orchestration.registry import AgentRegistry


class EchoAgent:
    """Bare agent: a name and an async run, no optional capabilities."""

    def __init__(self, name="echo"):
        self.name = name
        self.calls = []

    async def run(self, input):
        self.calls.append(input)
        return input


class SyncAgent:
    """Agent whose run is a plain function."""

    name = "sync"

    def run(self, input):
        return input * 2


class FullAgent:
    """Agent with every optional capability, recording the call order."""

    def __init__(self, name="full", valid=True, fail=False, cleanup_fails=False):
        self.name = name
        self.valid = valid
        self.fail = fail
        self.cleanup_fails = cleanup_fails
        self.events = []

    def validate(self, input):
        self.events.append("validate")
        return self.valid

    async def run(self, input):
        self.events.append("run")
        if self.fail:
            raise RuntimeError("agent exploded")
        return {"seen": input}

    async def cleanup(self):
        self.events.append("cleanup")
        if self.cleanup_fails:
            raise OSError("temp dir busy")

    def get_status(self):
        return AgentStatus(name=self.name, state=AgentState.COMPLETED, success_count=7)


@pytest.fixture
def orchestrator():
    bus = AsyncMock()
    bus.publish = AsyncMock()
    return SubAgentOrchestrator(event_bus=bus)


# ========================================================================
# REGISTRY
# ========================================================================


class TestRegistry:

    def test_register_and_get(self):
        registry = AgentRegistry()
        agent = EchoAgent()
        registry.register(agent)
        assert registry.get("echo") is agent
        assert "echo" in registry
        assert len(registry) == 1

    def test_list_preserves_registration_order(self):
        registry = AgentRegistry()
        for name in ["b", "a", "c"]:
            registry.register(EchoAgent(name))
        assert registry.list() == ["b", "a", "c"]

    def test_duplicate_name_overwrites_with_warning(self, caplog):
        registry = AgentRegistry()
        first, second = EchoAgent(), EchoAgent()
        registry.register(first)
        with caplog.at_level(logging.WARNING):
            registry.register(second)
        assert registry.get("echo") is second
        assert len(registry) == 1
        assert "already registered" in caplog.text

    def test_register_is_idempotent(self):
        registry = AgentRegistry()
        agent = EchoAgent()
        registry.register(agent)
        registry.register(agent)
        assert registry.list() == ["echo"]

    def test_rejects_non_agents(self):
        with pytest.raises(TypeError, match="needs a .name. and a .run. method"):
            AgentRegistry().register(object())

    def test_remove_and_clear(self):
        registry = AgentRegistry()
        registry.register(EchoAgent("a"))
        registry.register(EchoAgent("b"))
        assert registry.remove("a") is True
        assert registry.remove("a") is False
        registry.clear()
        assert registry.list() == []

    def test_get_missing_returns_none(self):
        assert AgentRegistry().get("nope") is None

    def test_capabilities(self):
        assert AgentCapabilities.of(EchoAgent()) == AgentCapabilities()
        assert AgentCapabilities.of(FullAgent()) == AgentCapabilities(True, True, True)


# ========================================================================
# EXECUTE AGENT
# ========================================================================


class TestExecuteAgent:

    @pytest.mark.asyncio
    async def test_success_is_recorded(self, orchestrator):
        orchestrator.register_agent(EchoAgent())
        result = await orchestrator.execute_agent("echo", "hi")

        assert result == "hi"
        records = orchestrator.tracker.recent()
        assert len(records) == 1
        assert records[0].success is True
        assert records[0].execution_time >= 0

    @pytest.mark.asyncio
    async def test_missing_agent_names_available(self, orchestrator):
        orchestrator.register_agent(EchoAgent("writer"))
        with pytest.raises(AgentNotFoundError) as exc_info:
            await orchestrator.execute_agent("reader", None)
        assert exc_info.value.available == ["writer"]
        assert "writer" in str(exc_info.value)
        assert orchestrator.tracker.total_executions == 0

    @pytest.mark.asyncio
    async def test_validate_run_cleanup_order(self, orchestrator):
        agent = FullAgent()
        orchestrator.register_agent(agent)
        assert await orchestrator.execute_agent("full", 1) == {"seen": 1}
        assert agent.events == ["validate", "run", "cleanup"]

    @pytest.mark.asyncio
    async def test_validation_failure_skips_run(self, orchestrator):
        agent = FullAgent(valid=False)
        orchestrator.register_agent(agent)
        with pytest.raises(ValidationFailedError):
            await orchestrator.execute_agent("full", 1)
        assert agent.events == ["validate", "cleanup"]
        assert orchestrator.tracker.failed_executions == 1

    @pytest.mark.asyncio
    async def test_failure_reraised_unchanged_and_recorded(self, orchestrator):
        agent = FullAgent(fail=True)
        orchestrator.register_agent(agent)
        with pytest.raises(RuntimeError, match="agent exploded"):
            await orchestrator.execute_agent("full", 1)

        record = orchestrator.tracker.recent()[-1]
        assert record.success is False
        assert record.execution_time == 0.0
        assert record.error == "agent exploded"
        assert agent.events[-1] == "cleanup"

    @pytest.mark.asyncio
    async def test_cleanup_error_never_masks_outcome(self, orchestrator, caplog):
        orchestrator.register_agent(FullAgent(cleanup_fails=True))
        with caplog.at_level(logging.WARNING):
            result = await orchestrator.execute_agent("full", 2)
        assert result == {"seen": 2}
        assert "Cleanup failed" in caplog.text

    @pytest.mark.asyncio
    async def test_cleanup_error_after_run_failure(self, orchestrator):
        orchestrator.register_agent(FullAgent(fail=True, cleanup_fails=True))
        with pytest.raises(RuntimeError, match="agent exploded"):
            await orchestrator.execute_agent("full", 2)

    @pytest.mark.asyncio
    async def test_events_published(self, orchestrator):
        orchestrator.register_agent(EchoAgent())
        await orchestrator.execute_agent("echo", 1, step_id="s1")
        published = [call.args[0] for call in orchestrator.event_bus.publish.call_args_list]
        assert published == [EventType.TASK_STARTED, EventType.TASK_COMPLETED]

    @pytest.mark.asyncio
    async def test_function_agent_async_validator(self, orchestrator):
        async def positive(value):
            return value > 0

        orchestrator.register_agent(FunctionAgent("double", lambda x: x * 2, validator=positive))
        assert await orchestrator.execute_agent("double", 4) == 8
        with pytest.raises(ValidationFailedError):
            await orchestrator.execute_agent("double", -1)


# ========================================================================
# PARALLEL & STATUS
# ========================================================================


class TestParallelAndStatus:

    @pytest.mark.asyncio
    async def test_execute_parallel_drops_failures(self, orchestrator):
        orchestrator.register_agent(EchoAgent("a"))
        orchestrator.register_agent(FullAgent("b", fail=True))
        results = await orchestrator.execute_parallel([("a", 1), ("b", 2), ("missing", 3)])
        assert results == {"a": 1}

    @pytest.mark.asyncio
    async def test_execute_parallel_runs_concurrently(self, orchestrator):
        async def slow(value):
            await asyncio.sleep(0.1)
            return value

        for name in ["x", "y", "z"]:
            orchestrator.register_agent(FunctionAgent(name, slow))

        loop = asyncio.get_running_loop()
        start = loop.time()
        results = await orchestrator.execute_parallel([("x", 1), ("y", 2), ("z", 3)])
        assert results == {"x": 1, "y": 2, "z": 3}
        assert loop.time() - start < 0.25

    @pytest.mark.asyncio
    async def test_status(self, orchestrator):
        orchestrator.register_agent(EchoAgent())
        orchestrator.register_agent(FullAgent(fail=True))
        await orchestrator.execute_agent("echo", 1)
        with pytest.raises(RuntimeError):
            await orchestrator.execute_agent("full", 1)

        status = await orchestrator.get_status()

        assert status.registered_agents == ["echo", "full"]
        assert status.total_executions == 2
        assert status.error_rate == 0.5
        assert status.active_workflows == 0
        by_name = {s.name: s for s in status.agent_statuses}
        assert by_name["echo"].state == AgentState.IDLE
        assert by_name["full"].success_count == 7
        assert status.to_dict()["agent_statuses"][0]["state"] == "idle"

    @pytest.mark.asyncio
    async def test_base_agent_status_bookkeeping(self, orchestrator):
        agent = FunctionAgent("sum", sum)
        orchestrator.register_agent(agent)
        await orchestrator.execute_agent("sum", [1, 2, 3])

        status = agent.get_status()
        assert status.state == AgentState.COMPLETED
        assert status.success_count == 1
        assert status.metadata["function"] == "sum"


class TestSyncRun:

    @pytest.mark.asyncio
    async def test_plain_run_is_accepted(self, orchestrator):
        orchestrator.register_agent(SyncAgent())
        assert await orchestrator.execute_agent("sync", 21) == 42
        record = orchestrator.tracker.recent()[-1]
        assert record.success is True
