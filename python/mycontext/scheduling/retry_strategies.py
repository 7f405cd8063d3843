"""Step retry policy for the workflow runner.

A ``RetryPolicy`` describes how many times a failed step may be attempted
again and how long to wait in between.  A ``RetryManager`` applies the policy
to one workflow run: it counts attempts per step, records every decision and
answers "retry or give up?" after each failure.

The manager never asks the user anything itself.  It only flags decisions
that need confirmation; the runner owns the prompt.
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from mycontext.exceptions import is_retryable_error

logger = logging.getLogger(__name__)


# ── Value objects ────────────────────────────────────────────────────


class RetryReason(str, Enum):
    """Why a retry was or was not granted."""

    EXECUTION_FAILURE = "execution_failure"  # run raised, budget left
    NON_RETRYABLE_ERROR = "non_retryable_error"  # validation / not found
    STEP_NOT_RETRYABLE = "step_not_retryable"  # step.retryable is False
    EXHAUSTED = "exhausted"  # attempt budget used up
    DECLINED = "declined"  # user refused the confirmation


@dataclass(frozen=True)
class RetryDecision:
    """The manager's decision after a step failure."""

    should_retry: bool
    reason: RetryReason
    attempt: int  # Attempt that just failed (1-indexed)
    max_attempts: int
    delay: float = 0.0  # Seconds to wait before the next attempt
    needs_confirmation: bool = False
    message: str = ""


@dataclass
class RetryPolicy:
    """Attempt budget and backoff for a step.

    A step gets ``max_retries + 1`` attempts in total.  The delay before
    retry *n* (0-indexed) is ``initial_delay_ms * exponential_base ** n``,
    capped at ``max_delay_ms``.
    """

    max_retries: int = 3
    initial_delay_ms: int = 0
    max_delay_ms: int = 10000
    exponential_base: float = 2.0
    jitter: bool = False

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, retry_index: int) -> float:
        """Calculate the delay in seconds before the given retry."""
        if self.initial_delay_ms <= 0:
            return 0.0
        delay = min(
            self.initial_delay_ms * (self.exponential_base ** retry_index),
            self.max_delay_ms,
        )
        if self.jitter:
            # Add random jitter (0-25% of delay)
            delay += delay * random.uniform(0, 0.25)
        return delay / 1000.0

    def with_max_retries(self, max_retries: Optional[int]) -> "RetryPolicy":
        """Copy of this policy with a per-step attempt budget."""
        if max_retries is None or max_retries == self.max_retries:
            return self
        return RetryPolicy(
            max_retries=max_retries,
            initial_delay_ms=self.initial_delay_ms,
            max_delay_ms=self.max_delay_ms,
            exponential_base=self.exponential_base,
            jitter=self.jitter,
        )


# ── Retry Manager ────────────────────────────────────────────────────


class RetryManager:
    """Tracks retry state for a single workflow run.

    A fresh manager is created for every run, so attempt counters never
    leak from one run into the next.
    """

    def __init__(self, default_policy: Optional[RetryPolicy] = None) -> None:
        self._default_policy = default_policy or RetryPolicy()
        self._step_policies: Dict[str, RetryPolicy] = {}
        self._attempts: Dict[str, int] = {}
        self._history: Dict[str, List[RetryDecision]] = {}

    def set_max_retries(self, step_id: str, max_retries: Optional[int]) -> None:
        """Give a step its own attempt budget (``None`` keeps the default)."""
        if max_retries is None:
            self._step_policies.pop(step_id, None)
            return
        self._step_policies[step_id] = self._default_policy.with_max_retries(max_retries)

    def get_policy(self, step_id: str) -> RetryPolicy:
        return self._step_policies.get(step_id, self._default_policy)

    def attempts(self, step_id: str) -> int:
        """Failed attempts recorded so far for a step."""
        return self._attempts.get(step_id, 0)

    def on_failure(
        self,
        step_id: str,
        error: BaseException,
        retryable: bool,
        interactive: bool = False,
    ) -> RetryDecision:
        """Record a failed attempt and decide whether to try again.

        Args:
            step_id: The failed step.
            error: What the attempt raised.
            retryable: The step's ``retryable`` flag.
            interactive: Whether a granted retry must first be confirmed.
        """
        attempt = self._attempts.get(step_id, 0) + 1
        self._attempts[step_id] = attempt
        policy = self.get_policy(step_id)

        if not is_retryable_error(error):
            decision = RetryDecision(
                should_retry=False,
                reason=RetryReason.NON_RETRYABLE_ERROR,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                message=f"{type(error).__name__} is never retried",
            )
        elif not retryable:
            decision = RetryDecision(
                should_retry=False,
                reason=RetryReason.STEP_NOT_RETRYABLE,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                message="Step is not retryable",
            )
        elif attempt >= policy.max_attempts:
            decision = RetryDecision(
                should_retry=False,
                reason=RetryReason.EXHAUSTED,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                message=f"Max retries exhausted ({policy.max_retries})",
            )
        else:
            decision = RetryDecision(
                should_retry=True,
                reason=RetryReason.EXECUTION_FAILURE,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay=policy.get_delay(attempt - 1),
                needs_confirmation=interactive,
                message=f"Retry {attempt}/{policy.max_retries}",
            )

        logger.debug("Retry decision for %s: %s", step_id, decision.message)
        self._history.setdefault(step_id, []).append(decision)
        return decision

    def decline(self, step_id: str) -> RetryDecision:
        """Withdraw the retry just granted to a step because the user refused it."""
        history = self._history.get(step_id)
        if not history or not history[-1].should_retry:
            raise ValueError(f"No pending retry to decline for {step_id!r}")
        granted = history[-1]
        declined = RetryDecision(
            should_retry=False,
            reason=RetryReason.DECLINED,
            attempt=granted.attempt,
            max_attempts=granted.max_attempts,
            message="Retry declined by user",
        )
        history[-1] = declined
        return declined

    def get_history(self, step_id: str) -> List[RetryDecision]:
        """Get the retry decision history for a step."""
        return self._history.get(step_id, [])

    @property
    def total_retries(self) -> int:
        """Retries granted across all steps."""
        return sum(1 for h in self._history.values() for d in h if d.should_retry)

    @property
    def stats(self) -> Dict[str, Any]:
        """Summary statistics."""
        total = sum(len(h) for h in self._history.values())
        approved = self.total_retries
        return {
            "steps_with_failures": len(self._history),
            "total_retry_decisions": total,
            "retries_approved": approved,
            "retries_denied": total - approved,
        }
