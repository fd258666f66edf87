"""Delete action. An object that is already gone counts as deleted."""

import logging

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult
from drecipe.errors import DrecipeError, NotFoundError
from drecipe.retry import Outcome
from drecipe.schemas import Task, TaskPhase

logger = logging.getLogger(__name__)


class DeleteAction(Action):
    """Executes a task's `delete` field."""

    key = "delete"

    def run(self, task: Task) -> ActionResult:
        state = task.delete.state
        message = f"Delete resource {unstruct.describe(state)}"
        found = {"value": True}

        def condition() -> Outcome:
            try:
                self.ctx.cluster.delete(
                    unstruct.api_version(state),
                    unstruct.kind(state),
                    unstruct.name(state),
                    unstruct.namespace(state),
                )
            except NotFoundError:
                found["value"] = False
                return Outcome.succeed()
            except DrecipeError as e:
                return self.ctx.on_error(e)
            return Outcome.succeed()

        self.ctx.retry.waitf(condition, message)
        if not found["value"]:
            logger.debug(f"Nothing to delete: {message}")
        return ActionResult(phase=TaskPhase.PASSED, message=message)
