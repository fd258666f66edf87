"""Assert action - routes to the StateCheck or PathCheck engine."""

from drecipe.actions.base import Action, ActionResult
from drecipe.actions.path_check import PathChecker
from drecipe.actions.state_check import StateChecker
from drecipe.errors import ValidationError
from drecipe.schemas import Task


class AssertAction(Action):
    """
    Executes a task's `assert` field.

    With neither check set the assert is a StateCheck Equals against the
    desired state.
    """

    key = "assert"

    def run(self, task: Task) -> ActionResult:
        assert_ = task.assert_
        if assert_.state_check is not None and assert_.path_check is not None:
            raise ValidationError(
                f"Invalid assert {task.name!r}: Can't use both StateCheck and PathCheck"
            )
        if assert_.path_check is not None:
            return PathChecker(self.ctx, task.name, assert_.state, assert_.path_check).run()
        return StateChecker(self.ctx, task.name, assert_.state, assert_.state_check).run()
