"""
StateCheck - whole-object and list-count assertions.

Operators:
- Equals / NotEquals: three-way merge(observed, desired, desired) and compare
  the merge to observed. Fields absent from desired never count as a
  difference: desired is a subset patch.
- NotFound: passes once the object is gone; an object already marked for
  deletion with no finalizers passes with a Warning.
- ListCountEquals / ListCountNotEquals: count objects matching the desired
  state's namespace and labels.

Each check is retried until the desired relation is observed. A timeout
is reported in the result's `timeout` field with a Failed phase.
"""

import logging
from typing import Any, Callable, Optional

from drecipe import unstruct
from drecipe.actions.base import ActionResult
from drecipe.context import RunContext
from drecipe.errors import DrecipeError, MergeError, NotFoundError, RetryTimeout, ValidationError
from drecipe.merge import merge
from drecipe.retry import Outcome
from drecipe.schemas import StateCheck, StateCheckOperator, TaskPhase

logger = logging.getLogger(__name__)


class StateChecker:
    """Runs one StateCheck against the desired `state`."""

    def __init__(
        self,
        ctx: RunContext,
        task_name: str,
        state: dict[str, Any],
        state_check: Optional[StateCheck] = None,
    ):
        self.ctx = ctx
        self.task_name = task_name
        self.state = state
        self.state_check = state_check or StateCheck()
        self.actual_count = 0

    @property
    def operator(self) -> StateCheckOperator:
        return self.state_check.effective_operator

    def run(self) -> ActionResult:
        """
        Execute the check.

        Raises:
            ValidationError: Operator/count mismatch
            MergeError: Observed state can't be merged with desired
            DrecipeError: Terminal cluster errors
        """
        self.state_check.validate(self.task_name)
        handlers: dict[StateCheckOperator, Callable[[], ActionResult]] = {
            StateCheckOperator.EQUALS: lambda: self._assert_merge(want_equal=True),
            StateCheckOperator.NOT_EQUALS: lambda: self._assert_merge(want_equal=False),
            StateCheckOperator.NOT_FOUND: self._assert_not_found,
            StateCheckOperator.LIST_COUNT_EQUALS: lambda: self._assert_list_count(want_match=True),
            StateCheckOperator.LIST_COUNT_NOT_EQUALS: lambda: self._assert_list_count(want_match=False),
        }
        handler = handlers.get(self.operator)
        if handler is None:
            raise ValidationError(
                f"StateCheck {self.task_name!r} failed: Invalid operator {self.operator.value!r}"
            )
        return handler()

    def _get(self) -> dict[str, Any]:
        return self.ctx.cluster.get(
            unstruct.api_version(self.state),
            unstruct.kind(self.state),
            unstruct.name(self.state),
            unstruct.namespace(self.state),
        )

    def _message(self, prefix: str) -> str:
        return f"{prefix}: Resource {unstruct.describe(self.state)}: TaskName {self.task_name}"

    def _assert_merge(self, want_equal: bool) -> ActionResult:
        prefix = "StateCheckEquals" if want_equal else "StateCheckNotEquals"
        message = self._message(prefix)
        seen: dict[str, bool] = {}

        def condition() -> Outcome:
            try:
                observed = self._get()
            except DrecipeError as e:
                return self.ctx.on_error(e)
            try:
                merged = merge(observed, self.state, self.state)
            except MergeError as e:
                return Outcome.fail(e)
            seen["equal"] = merged == observed
            if seen["equal"] == want_equal:
                return Outcome.succeed()
            return Outcome.keep_trying()

        timeout = ""
        try:
            self.ctx.retry.waitf(condition, message)
        except RetryTimeout as e:
            timeout = str(e)
        logger.debug(f"Is state equal? {seen.get('equal')}: {message}")
        passed = "equal" in seen and seen["equal"] == want_equal
        return ActionResult(
            phase=TaskPhase.PASSED if passed else TaskPhase.FAILED,
            message=message,
            timeout=timeout,
        )

    def _assert_not_found(self) -> ActionResult:
        message = self._message("StateCheckNotFound")
        outcome = {"phase": TaskPhase.FAILED, "warning": ""}

        def condition() -> Outcome:
            try:
                got = self._get()
            except NotFoundError:
                outcome["phase"] = TaskPhase.PASSED
                return Outcome.succeed()
            except DrecipeError as e:
                return self.ctx.on_error(e)
            finalizers = unstruct.finalizers(got)
            deleted_at = unstruct.deletion_timestamp(got)
            if not finalizers and deleted_at:
                outcome["phase"] = TaskPhase.WARNING
                outcome["warning"] = (
                    f"Marking StateCheck {self.task_name!r} to passed: "
                    f"Finalizer count {len(finalizers)}: Deletion timestamp {deleted_at}"
                )
                return Outcome.succeed()
            return Outcome.keep_trying()

        timeout = ""
        try:
            self.ctx.retry.waitf(condition, message)
        except RetryTimeout as e:
            timeout = str(e)
        return ActionResult(
            phase=outcome["phase"],
            message=message,
            warning=outcome["warning"],
            timeout=timeout,
        )

    def _assert_list_count(self, want_match: bool) -> ActionResult:
        prefix = "AssertListCountEquals" if want_match else "AssertListCountNotEquals"
        message = (
            f"{prefix}: Resource {unstruct.namespace(self.state)}: "
            f"GVK {unstruct.gvk(self.state)}: TaskName {self.task_name}"
        )
        expected = self.state_check.count
        outcome = {"phase": TaskPhase.FAILED}

        def condition() -> Outcome:
            try:
                items = self.ctx.cluster.list(
                    unstruct.api_version(self.state),
                    unstruct.kind(self.state),
                    namespace=unstruct.namespace(self.state),
                    labels=unstruct.labels(self.state),
                )
            except DrecipeError as e:
                return self.ctx.on_error(e)
            self.actual_count = len(items)
            if (self.actual_count == expected) == want_match:
                outcome["phase"] = TaskPhase.PASSED
                return Outcome.succeed()
            return Outcome.keep_trying()

        timeout = ""
        try:
            self.ctx.retry.waitf(condition, message)
        except RetryTimeout as e:
            timeout = str(e)
        counts = f"Expected count {expected} got {self.actual_count}"
        return ActionResult(
            phase=outcome["phase"],
            message=message,
            verbose=counts,
            warning=counts if outcome["phase"] is TaskPhase.FAILED else "",
            timeout=timeout,
        )
