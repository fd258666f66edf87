"""Get action - read-only, returns the observed object in `verbose`."""

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult
from drecipe.actions.lister import to_verbose
from drecipe.cluster import CRD_KIND
from drecipe.schemas import Task, TaskPhase


class GetterAction(Action):
    """Executes a task's `get` field."""

    key = "get"

    def run(self, task: Task) -> ActionResult:
        state = task.get.state
        obj = self.ctx.cluster.get(
            unstruct.api_version(state),
            unstruct.kind(state),
            unstruct.name(state),
            unstruct.namespace(state),
        )
        if unstruct.kind(state) == CRD_KIND:
            message = f"Get CRD: APIVersion {unstruct.api_version(state)}: Name {unstruct.name(state)}"
        else:
            message = (
                f"Get resource with {unstruct.namespace(state)} / {unstruct.name(state)}: "
                f"GVK {unstruct.gvk(state)}"
            )
        return ActionResult(phase=TaskPhase.PASSED, message=message, verbose=to_verbose(obj))
