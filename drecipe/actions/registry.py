"""
Action Registry for dispatching tasks to their executors.

The registry maps task wire keys (create, assert, delete, ...) to Action
classes. Dispatch tries keys in registration order and runs the first
action the task carries, so the default order is:

    create -> assert -> delete -> apply -> label -> list -> get
"""

from drecipe.actions.apply import ApplyAction
from drecipe.actions.assertion import AssertAction
from drecipe.actions.base import Action, ActionResult
from drecipe.actions.create import CreateAction
from drecipe.actions.delete import DeleteAction
from drecipe.actions.getter import GetterAction
from drecipe.actions.label import LabelAction
from drecipe.actions.lister import ListerAction
from drecipe.context import RunContext
from drecipe.errors import ValidationError
from drecipe.schemas import Task


class ActionRegistry:
    """
    Registry for action dispatch by task key.

    Usage:
        registry = ActionRegistry.create_default()
        result = registry.dispatch(task, ctx)
    """

    def __init__(self) -> None:
        """Initialize an empty action registry."""
        self._actions: dict[str, type[Action]] = {}

    def register(self, key: str, action_cls: type[Action]) -> None:
        """
        Register an action class for a task key.

        Args:
            key: Task wire key (e.g. create, assert)
            action_cls: Action subclass executing that key
        """
        self._actions[key] = action_cls

    def get(self, key: str) -> type[Action]:
        """
        Get the action class for a task key.

        Raises:
            KeyError: If no action registered for this key
        """
        if key not in self._actions:
            registered = list(self._actions.keys())
            raise KeyError(
                f"No action registered for key: {key}. "
                f"Registered: {registered}"
            )
        return self._actions[key]

    def has(self, key: str) -> bool:
        return key in self._actions

    def list_keys(self) -> list[str]:
        """Registered keys in dispatch order."""
        return list(self._actions.keys())

    def dispatch(self, task: Task, ctx: RunContext) -> ActionResult:
        """
        Run the first registered action that task carries.

        Args:
            task: Task to execute
            ctx: Run context scoped to this task

        Returns:
            The action's result

        Raises:
            ValidationError: If the task carries no registered action
            Exception: Whatever the action raises
        """
        for action_cls in self._actions.values():
            action = action_cls(ctx)
            if action.applies_to(task):
                return action.run(task)
        raise ValidationError(f"Invalid task {task.name!r}: Can't determine action")

    @classmethod
    def create_default(cls) -> "ActionRegistry":
        """Create a registry with every built-in action in dispatch order."""
        registry = cls()
        for action_cls in (
            CreateAction,
            AssertAction,
            DeleteAction,
            ApplyAction,
            LabelAction,
            ListerAction,
            GetterAction,
        ):
            registry.register(action_cls.key, action_cls)
        return registry
