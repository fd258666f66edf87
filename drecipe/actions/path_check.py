"""
PathCheck - single-field assertions against a dot-delimited path.

Exists/NotExists test presence only (a key holding null is present).
Equals/NotEquals/GTE/LTE read the field as int64 or float64 and compare
it to the expected value. Every operator is phrased as "retry while the
relation does not hold"; a missing path or a type mismatch is retried
too. A timeout is reported in the result's `timeout` field with a
Failed phase.
"""

import logging
from typing import Any, Callable

from drecipe import unstruct
from drecipe.actions.base import ActionResult
from drecipe.context import RunContext
from drecipe.errors import DrecipeError, RetryTimeout
from drecipe.retry import Outcome
from drecipe.schemas import PathCheck, PathCheckOperator, PathValueDataType, TaskPhase

logger = logging.getLogger(__name__)

# operator -> (message prefix, predicate(got, expected) that must hold)
VALUE_OPERATORS: dict[PathCheckOperator, tuple[str, Callable[[Any, Any], bool]]] = {
    PathCheckOperator.EQUALS: ("PathCheckValueEquals", lambda got, want: got == want),
    PathCheckOperator.NOT_EQUALS: ("PathCheckValueNotEquals", lambda got, want: got != want),
    PathCheckOperator.GTE: ("PathCheckValueGTE", lambda got, want: got >= want),
    PathCheckOperator.LTE: ("PathCheckValueLTE", lambda got, want: got <= want),
}


class PathCheckFailed(DrecipeError):
    """Path missing or holding a value of the wrong type (retried)."""


class PathChecker:
    """Runs one PathCheck against the object named by `state`."""

    def __init__(self, ctx: RunContext, task_name: str, state: dict[str, Any], path_check: PathCheck):
        self.ctx = ctx
        self.task_name = task_name
        self.state = state
        self.path_check = path_check
        self.verbose = ""

    @property
    def operator(self) -> PathCheckOperator:
        return self.path_check.effective_operator

    def _message(self, prefix: str) -> str:
        return f"{prefix}: Resource {unstruct.describe(self.state)}: TaskName {self.task_name}"

    def _read_value(self, observed: dict[str, Any]) -> Any:
        got, found = unstruct.nested_field(observed, *self.path_check.fields)
        if not found:
            raise PathCheckFailed(
                f"PathCheck failed: Path {self.path_check.path!r} not found: TaskName {self.task_name}"
            )
        data_type = self.path_check.effective_data_type
        if data_type is PathValueDataType.INT64:
            ok = isinstance(got, int) and not isinstance(got, bool)
        else:
            ok = isinstance(got, (int, float)) and not isinstance(got, bool)
            got = float(got) if ok else got
        if not ok:
            raise PathCheckFailed(
                f"PathCheck failed: {got!r} is of type {type(got).__name__}, "
                f"expected {data_type.value}: TaskName {self.task_name}"
            )
        return got

    def _check(self, observed: dict[str, Any]) -> bool:
        op = self.operator
        if op is PathCheckOperator.EXISTS:
            return unstruct.nested_field(observed, *self.path_check.fields)[1]
        if op is PathCheckOperator.NOT_EXISTS:
            return not unstruct.nested_field(observed, *self.path_check.fields)[1]
        got = self._read_value(observed)
        expected = self.path_check.typed_value()
        self.verbose = f"Expected value {expected} got {got}"
        return VALUE_OPERATORS[op][1](got, expected)

    def run(self) -> ActionResult:
        """
        Execute the check.

        Raises:
            ValidationError: Invalid operator/value combination
            DrecipeError: Terminal cluster errors
        """
        self.path_check.validate(self.task_name)
        op = self.operator
        if op is PathCheckOperator.EXISTS:
            prefix = "PathCheckExists"
        elif op is PathCheckOperator.NOT_EXISTS:
            prefix = "PathCheckNotExists"
        else:
            prefix = VALUE_OPERATORS[op][0]
        message = self._message(prefix)

        def condition() -> Outcome:
            try:
                observed = self.ctx.cluster.get(
                    unstruct.api_version(self.state),
                    unstruct.kind(self.state),
                    unstruct.name(self.state),
                    unstruct.namespace(self.state),
                )
                if self._check(observed):
                    return Outcome.succeed()
            except DrecipeError as e:
                return self.ctx.on_error(e)
            return Outcome.keep_trying()

        timeout = ""
        passed = True
        try:
            self.ctx.retry.waitf(condition, message)
        except RetryTimeout as e:
            timeout = str(e)
            passed = False
        return ActionResult(
            phase=TaskPhase.PASSED if passed else TaskPhase.FAILED,
            message=message,
            verbose=self.verbose,
            timeout=timeout,
        )
