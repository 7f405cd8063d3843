"""Protocols the orchestration core consumes."""

from mycontext.interfaces.agent import (
    Agent,
    AgentCapabilities,
    AgentState,
    AgentStatus,
    Cleanable,
    Inspectable,
    Validatable,
)
from mycontext.interfaces.event_bus import EventType, IEventBus
from mycontext.interfaces.prompt import IConfirmationPrompt

__all__ = [
    "Agent",
    "AgentCapabilities",
    "AgentState",
    "AgentStatus",
    "Cleanable",
    "Inspectable",
    "Validatable",
    "EventType",
    "IEventBus",
    "IConfirmationPrompt",
]
