"""
Bounded retry/wait primitive.

Every component that talks to the cluster polls through Retryable.waitf so
that transient API failures and not-yet-discovered resource types are
retried rather than failing immediately.

A condition returns an Outcome with one of three states:
- SUCCEED: stop, waitf returns None
- FAIL_TERMINAL: stop, waitf raises the outcome's error (fail fast)
- CONTINUE: poll again after the interval; the error (if any) is kept
  as the last error reported by RetryTimeout

Exceptions raised by the condition itself propagate immediately.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from drecipe.errors import DrecipeError, RetryTimeout

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_INTERVAL_SECONDS = 1.0


class ConditionResult(str, Enum):
    """State returned by a retry condition."""
    CONTINUE = "continue"
    SUCCEED = "succeed"
    FAIL_TERMINAL = "fail_terminal"


@dataclass(frozen=True)
class Outcome:
    """Result of a single condition evaluation."""
    result: ConditionResult
    error: Optional[BaseException] = None

    @classmethod
    def succeed(cls) -> "Outcome":
        return cls(ConditionResult.SUCCEED)

    @classmethod
    def keep_trying(cls, error: Optional[BaseException] = None) -> "Outcome":
        return cls(ConditionResult.CONTINUE, error)

    @classmethod
    def fail(cls, error: BaseException) -> "Outcome":
        return cls(ConditionResult.FAIL_TERMINAL, error)


Condition = Callable[[], Outcome]


class Retryable:
    """
    Polls a condition until it succeeds, fails terminally, or times out.

    Args:
        timeout: Total budget in seconds (default 60)
        interval: Sleep between attempts in seconds (default 1)
        sleep: Sleep function (injectable for tests)
        clock: Monotonic clock function (injectable for tests)
    """

    def __init__(
        self,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        interval: float = DEFAULT_INTERVAL_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if timeout < 0 or interval < 0:
            raise ValueError("timeout and interval must be non-negative")
        self.timeout = timeout
        self.interval = interval
        self._sleep = sleep
        self._clock = clock

    def __repr__(self) -> str:
        return f"Retryable(timeout={self.timeout}, interval={self.interval})"

    def waitf(self, condition: Condition, message: str) -> None:
        """
        Poll condition until it succeeds.

        Args:
            condition: Callable returning an Outcome
            message: Context included in log lines and timeout errors

        Raises:
            RetryTimeout: If the condition never succeeded within timeout
            Exception: The terminal error of a FAIL_TERMINAL outcome
        """
        start = self._clock()
        while True:
            outcome = condition()
            if outcome.result is ConditionResult.SUCCEED:
                logger.debug(f"Retryable condition succeeded: {message}")
                return
            if outcome.result is ConditionResult.FAIL_TERMINAL:
                logger.debug(
                    f"Retryable condition completed with error: {message}: {outcome.error}"
                )
                if outcome.error is None:
                    raise DrecipeError(f"Retryable condition failed: {message}")
                raise outcome.error

            if self._clock() - start > self.timeout:
                raise RetryTimeout(message, self.timeout, outcome.error)

            if outcome.error is not None:
                logger.debug(
                    f"Retryable condition has errors: Will retry: {message}: {outcome.error}"
                )
            else:
                logger.debug(f"Retryable condition did not succeed: Will retry: {message}")
            self._sleep(self.interval)
