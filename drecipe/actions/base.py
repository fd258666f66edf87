"""
Base action protocol and shared helpers.

An Action executes the single operation a Task requests (create, assert,
delete, apply, label, list, get) against the cluster reachable through
its RunContext, and reports an ActionResult. Errors are exceptions; a
result is only returned when the action ran.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from drecipe import unstruct
from drecipe.context import RunContext
from drecipe.errors import DrecipeError, NotFoundError
from drecipe.retry import Outcome
from drecipe.schemas import Task, TaskPhase


@dataclass(frozen=True)
class ActionResult:
    """Outcome of one action, before step numbering and timing are added."""
    phase: TaskPhase
    message: str = ""
    verbose: str = ""
    warning: str = ""
    timeout: str = ""


class Action(ABC):
    """
    Abstract base class for task actions.

    Subclasses set `key` to the task's wire field they execute.
    """

    key: str = ""

    def __init__(self, ctx: RunContext):
        self.ctx = ctx

    def applies_to(self, task: Task) -> bool:
        """Return True if task carries this action."""
        return task.action(self.key) is not None

    @abstractmethod
    def run(self, task: Task) -> ActionResult:
        """
        Execute the action for task.

        Raises:
            Exception: If the action fails
        """
        pass


def get_observed(ctx: RunContext, state: dict[str, Any], message: str) -> Optional[dict[str, Any]]:
    """
    Retried Get of the object described by state.

    Discovery and API errors are retried (or fail fast per ctx); not-found
    ends the loop immediately.

    Returns:
        The observed object, or None if it does not exist
    """
    observed: dict[str, Any] = {}

    def condition() -> Outcome:
        try:
            observed["obj"] = ctx.cluster.get(
                unstruct.api_version(state),
                unstruct.kind(state),
                unstruct.name(state),
                unstruct.namespace(state),
            )
        except NotFoundError as e:
            return Outcome.fail(e)
        except DrecipeError as e:
            return ctx.on_error(e)
        return Outcome.succeed()

    try:
        ctx.retry.waitf(condition, message)
    except NotFoundError:
        return None
    return observed.get("obj")


def delete_if_exists(ctx: RunContext, state: dict[str, Any]) -> bool:
    """Delete the object described by state. Returns False if it was absent."""
    try:
        ctx.cluster.delete(
            unstruct.api_version(state),
            unstruct.kind(state),
            unstruct.name(state),
            unstruct.namespace(state),
        )
    except NotFoundError:
        return False
    return True
