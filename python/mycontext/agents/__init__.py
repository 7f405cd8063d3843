"""Ready-made agent building blocks and the console confirmation prompt."""

from mycontext.agents.base import BaseAgent, FunctionAgent
from mycontext.agents.interactive import ConsolePrompt

__all__ = ["BaseAgent", "FunctionAgent", "ConsolePrompt"]
