"""
Bounded retry — a small state machine for retrying a conflicting operation.

Used by the commit publisher to retry a rejected ``git push`` after
rebasing onto the concurrent commit. The attempt budget is fixed up
front; once it is spent the state becomes ``EXHAUSTED`` and stays there.

Backoff is exponential with jitter, like the rest of the pipeline's
reliability helpers.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

logger = logging.getLogger(__name__)


class RetryState(str, Enum):
    READY = "ready"            # an attempt may be made
    SUCCEEDED = "succeeded"    # terminal
    EXHAUSTED = "exhausted"    # terminal: attempt budget spent
    ABORTED = "aborted"        # terminal: non-retryable failure


@dataclass
class BoundedRetry:
    """Track attempts for one operation.

    Usage::

        retry = BoundedRetry(name="push", max_attempts=3)
        while retry.begin():
            if try_push():
                retry.succeed()
            elif conflict:
                retry.fail(error)          # READY again, or EXHAUSTED
            else:
                retry.abort(error)
    """

    name: str
    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    sleep: Callable[[float], None] = time.sleep
    attempt: int = 0
    state: RetryState = RetryState.READY
    errors: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @property
    def terminal(self) -> bool:
        return self.state is not RetryState.READY

    @property
    def last_error(self) -> str:
        return self.errors[-1] if self.errors else ""

    def next_delay(self) -> float:
        """Delay before the next attempt (0 before the first)."""
        if self.attempt == 0:
            return 0.0
        delay = min(self.base_delay * (2 ** (self.attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * 0.3)

    def begin(self) -> bool:
        """Start the next attempt. Returns False once terminal."""
        if self.terminal:
            return False
        delay = self.next_delay()
        if delay > 0:
            logger.info(
                "%s: retrying in %.1fs (attempt %d/%d)",
                self.name, delay, self.attempt + 1, self.max_attempts,
            )
            self.sleep(delay)
        self.attempt += 1
        return True

    def succeed(self) -> None:
        self.state = RetryState.SUCCEEDED

    def fail(self, error: str = "") -> RetryState:
        """Record a retryable failure."""
        self.errors.append(error)
        if self.attempt >= self.max_attempts:
            logger.warning("%s: exhausted after %d attempts", self.name, self.attempt)
            self.state = RetryState.EXHAUSTED
        return self.state

    def abort(self, error: str = "") -> None:
        """Record a failure that must not be retried."""
        self.errors.append(error)
        self.state = RetryState.ABORTED
