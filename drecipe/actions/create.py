"""
Create action.

Creates 1..N copies of the desired state. With one replica the object
keeps its name (or generateName); with N replicas each copy is named
`<base>-<i>`. Every created object is registered for teardown.
"""

import logging
from typing import Any

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult, delete_if_exists
from drecipe.actions.crd import CRDExecutor
from drecipe.cluster import CRD_KIND
from drecipe.errors import ValidationError
from drecipe.schemas import Task, TaskPhase

logger = logging.getLogger(__name__)


def build_names(state: dict[str, Any], replicas: int) -> list[str]:
    """
    Names for `replicas` copies of state.

    Raises:
        ValidationError: If state has neither name nor generateName
    """
    meta = unstruct.metadata(state)
    base = meta.get("generateName") or meta.get("name")
    if not base:
        raise ValidationError("Failed to generate names: Either name or generateName required")
    if replicas == 1:
        return [base]
    return [f"{base}-{i}" for i in range(replicas)]


class CreateAction(Action):
    """Executes a task's `create` field."""

    key = "create"

    def _message(self, state: dict[str, Any], task_name: str) -> str:
        return f"Create action: Resource {unstruct.describe(state)}: TaskName {task_name}"

    def run(self, task: Task) -> ActionResult:
        create = task.create
        state = create.state
        if unstruct.kind(state) == CRD_KIND:
            return CRDExecutor(self.ctx, state, ignore_discovery=create.ignore_discovery).create()

        message = self._message(state, task.name)
        replicas = 1 if create.replicas is None else create.replicas
        if replicas <= 0:
            raise ValidationError(f"Failed to create: Invalid replicas {replicas}: {message}")
        try:
            names = build_names(state, replicas)
        except ValidationError as e:
            raise ValidationError(f"{e}: {message}") from e

        for name in names:
            obj = unstruct.with_name(state, name)
            self.ctx.cluster.create(obj)
            logger.debug(f"Created {unstruct.describe(obj)}")
            self.ctx.add_to_teardown(
                f"Delete {unstruct.describe(obj)}",
                lambda obj=obj: delete_if_exists(self.ctx, obj),
            )
        return ActionResult(phase=TaskPhase.PASSED, message=message)
