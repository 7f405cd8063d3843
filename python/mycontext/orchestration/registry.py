"""Keyed store of the agents known to the process.

Registration happens once at startup.  Registering during an active
workflow run is unsupported; the registry does no locking.
"""

import logging
from typing import Dict, List, Optional

from mycontext.interfaces.agent import Agent

logger = logging.getLogger(__name__)


class AgentRegistry:
    """Agents by name.  A duplicate name overwrites the earlier agent."""

    def __init__(self) -> None:
        self._agents: Dict[str, Agent] = {}

    def register(self, agent: Agent) -> None:
        if not isinstance(agent, Agent):
            raise TypeError(
                f"{type(agent).__name__} is not an agent: it needs a 'name' and a 'run' method"
            )
        if agent.name in self._agents:
            logger.warning("Sub-agent '%s' is already registered. Overwriting.", agent.name)
        self._agents[agent.name] = agent
        logger.debug("Registered sub-agent: %s", agent.name)

    def get(self, name: str) -> Optional[Agent]:
        return self._agents.get(name)

    def list(self) -> List[str]:
        return list(self._agents)

    def agents(self) -> List[Agent]:
        return list(self._agents.values())

    def remove(self, name: str) -> bool:
        return self._agents.pop(name, None) is not None

    def clear(self) -> None:
        self._agents.clear()

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def __len__(self) -> int:
        return len(self._agents)
