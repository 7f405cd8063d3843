"""Interface for asking the user to confirm an action."""

from typing import Protocol


class IConfirmationPrompt(Protocol):
    """Yes/no question answered by a human.

    Implementations may raise ``InteractionTimeoutError`` when no answer
    arrives in time; the workflow runner treats that as a decline.
    """

    async def confirm(self, message: str, default: bool = False) -> bool:
        """Ask ``message`` and return the answer."""
        ...
