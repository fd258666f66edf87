"""Tests for the bounded retry primitive.

Tests cover:
- Three-state condition outcomes
- Timeout with last error
- Interval sleeping
"""

import pytest

from drecipe.errors import DiscoveryError, DrecipeError, NotFoundError, RetryTimeout
from drecipe.retry import ConditionResult, Outcome, Retryable


class TestOutcome:
    """Tests for Outcome constructors."""

    def test_succeed(self):
        """succeed() carries no error."""
        outcome = Outcome.succeed()
        assert outcome.result is ConditionResult.SUCCEED
        assert outcome.error is None

    def test_keep_trying(self):
        """keep_trying() keeps the optional error."""
        err = NotFoundError("x")
        assert Outcome.keep_trying(err).result is ConditionResult.CONTINUE
        assert Outcome.keep_trying(err).error is err
        assert Outcome.keep_trying().error is None

    def test_fail(self):
        """fail() is terminal."""
        err = NotFoundError("x")
        outcome = Outcome.fail(err)
        assert outcome.result is ConditionResult.FAIL_TERMINAL
        assert outcome.error is err


class TestWaitf:
    """Tests for Retryable.waitf."""

    def test_succeeds_first_attempt(self, retry, clock):
        """An immediately successful condition does not sleep."""
        retry.waitf(Outcome.succeed, "ok")
        assert clock.sleeps == []

    def test_retries_until_success(self, retry, clock):
        """The condition is polled until it succeeds."""
        calls = []

        def condition():
            calls.append(1)
            if len(calls) < 3:
                return Outcome.keep_trying()
            return Outcome.succeed()

        retry.waitf(condition, "eventually")
        assert len(calls) == 3
        assert clock.sleeps == [1, 1]

    def test_timeout_raises_with_last_error(self, retry):
        """A condition that never succeeds raises RetryTimeout."""
        err = NotFoundError("still missing")
        with pytest.raises(RetryTimeout) as exc_info:
            retry.waitf(lambda: Outcome.keep_trying(err), "wait for cm")
        assert exc_info.value.last_error is err
        assert "wait for cm: still missing" in str(exc_info.value)

    def test_timeout_is_bounded(self, retry, clock):
        """Polling stops once the timeout has elapsed."""
        with pytest.raises(RetryTimeout):
            retry.waitf(Outcome.keep_trying, "never")
        assert clock.now <= retry.timeout + retry.interval

    def test_terminal_failure_raises_immediately(self, retry, clock):
        """FAIL_TERMINAL raises its error without retrying."""
        err = DiscoveryError("v1", "Widget")
        with pytest.raises(DiscoveryError):
            retry.waitf(lambda: Outcome.fail(err), "fail fast")
        assert clock.sleeps == []

    def test_condition_exception_propagates(self, retry):
        """Exceptions raised by the condition are not swallowed."""
        def condition():
            raise ValueError("bug")

        with pytest.raises(ValueError):
            retry.waitf(condition, "bug")

class TestRetryable:
    """Tests for Retryable construction."""

    def test_rejects_negative_values(self):
        """timeout and interval must be non-negative."""
        with pytest.raises(ValueError):
            Retryable(timeout=-1)
        with pytest.raises(ValueError):
            Retryable(interval=-1)

    def test_terminal_without_error(self, retry):
        """A terminal outcome without an error raises DrecipeError."""
        with pytest.raises(DrecipeError):
            retry.waitf(lambda: Outcome(ConditionResult.FAIL_TERMINAL), "no error")
