"""Terminal confirmation prompt used for interactive retries."""

import asyncio
import logging
from typing import Callable, Optional

from mycontext.exceptions import InteractionTimeoutError

logger = logging.getLogger(__name__)

YES_ANSWERS = frozenset({"y", "yes"})
NO_ANSWERS = frozenset({"n", "no"})


class ConsolePrompt:
    """Asks yes/no questions on stdin.

    The blocking ``input`` call runs in a worker thread so the event loop
    stays responsive.  A thread blocked in ``input`` cannot be interrupted,
    so a read abandoned by a timeout is kept and the next ``confirm``
    awaits it instead of starting a second reader.  Satisfies
    ``IConfirmationPrompt``.

    Args:
        timeout: Seconds to wait for an answer; ``None`` waits forever.
        input_fn: Replaces ``input`` (tests, alternative terminals).
    """

    def __init__(
        self,
        timeout: Optional[float] = 60.0,
        input_fn: Callable[[str], str] = input,
    ) -> None:
        self.timeout = timeout
        self._input = input_fn
        self._pending: Optional[asyncio.Future] = None

    async def confirm(self, message: str, default: bool = False) -> bool:
        suffix = " [Y/n] " if default else " [y/N] "
        if self._pending is None:
            self._pending = asyncio.ensure_future(
                asyncio.to_thread(self._input, message + suffix)
            )
        else:
            logger.debug("Waiting on the unanswered previous prompt")

        try:
            answer = await asyncio.wait_for(asyncio.shield(self._pending), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise InteractionTimeoutError(
                f"No answer within {self.timeout}s", timeout=self.timeout
            ) from exc
        except EOFError:
            logger.debug("No terminal input available, using default answer")
            return default
        finally:
            if self._pending is not None and self._pending.done():
                self._pending = None

        answer = answer.strip().lower()
        if answer in YES_ANSWERS:
            return True
        if answer in NO_ANSWERS:
            return False
        return default
