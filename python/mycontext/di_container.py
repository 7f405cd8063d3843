"""Dependency injection container for mycontext.

Lightweight wiring of the orchestration services at application startup.
Uses lazy initialization: services are created on first access.

There is no global container.  The entry point builds one and passes it
(or the services it needs) along; tests build their own.
"""

import logging
from typing import Any, Dict, Optional

from mycontext.config.settings import Settings

logger = logging.getLogger(__name__)


class MyContextContainer:
    """Service container for the agent orchestration core."""

    def __init__(self, settings: Optional[Settings] = None, event_bus: Any = None) -> None:
        self._settings = settings
        self._event_bus = event_bus
        self._registry = None
        self._tracker = None
        self._orchestrator = None
        self._prompt = None
        self._runner = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            from mycontext.config.settings import get_settings
            self._settings = get_settings()
        return self._settings

    @property
    def event_bus(self):
        if self._event_bus is None:
            from mycontext.event_bus import InMemoryEventBus
            self._event_bus = InMemoryEventBus()
        return self._event_bus

    @property
    def registry(self):
        if self._registry is None:
            from mycontext.orchestration.registry import AgentRegistry
            self._registry = AgentRegistry()
        return self._registry

    @property
    def tracker(self):
        if self._tracker is None:
            from mycontext.scheduling.execution_tracker import ExecutionTracker
            self._tracker = ExecutionTracker(history_limit=self.settings.history_limit)
        return self._tracker

    @property
    def orchestrator(self):
        if self._orchestrator is None:
            from mycontext.orchestration.orchestrator import SubAgentOrchestrator
            self._orchestrator = SubAgentOrchestrator(
                registry=self.registry,
                tracker=self.tracker,
                event_bus=self.event_bus,
            )
            logger.info("Orchestrator initialized")
        return self._orchestrator

    @property
    def prompt(self):
        if self._prompt is None:
            from mycontext.agents.interactive import ConsolePrompt
            self._prompt = ConsolePrompt(timeout=self.settings.confirm_timeout)
        return self._prompt

    @property
    def runner(self):
        if self._runner is None:
            from mycontext.orchestration.step_runner import WorkflowRunner
            self._runner = WorkflowRunner(
                orchestrator=self.orchestrator,
                prompt=self.prompt,
                retry_policy=self.settings.retry_policy(),
                interactive=self.settings.interactive,
            )
            logger.info(
                "WorkflowRunner initialized (max_retries=%d, interactive=%s)",
                self.settings.max_retries,
                self.settings.interactive,
            )
        return self._runner

    def status(self) -> Dict[str, Any]:
        """Report which services are initialized."""
        return {
            "settings": self._settings is not None,
            "event_bus": self._event_bus is not None,
            "registry": self._registry is not None,
            "tracker": self._tracker is not None,
            "orchestrator": self._orchestrator is not None,
            "prompt": self._prompt is not None,
            "runner": self._runner is not None,
        }


def build_container(settings: Optional[Settings] = None, configure_logs: bool = True) -> MyContextContainer:
    """Create a container and, optionally, configure logging from its settings."""
    container = MyContextContainer(settings=settings)
    if configure_logs:
        from mycontext.enhanced_logging import configure_logging
        configure_logging(container.settings)
    return container
