"""List action - read-only, returns the observed objects in `verbose`."""

import json
import logging

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult
from drecipe.cluster import CRD_KIND
from drecipe.schemas import Task, TaskPhase

logger = logging.getLogger(__name__)


def to_verbose(data) -> str:
    """Compact JSON rendering of observed objects."""
    return json.dumps(data, separators=(",", ":"), sort_keys=True, default=str)


class ListerAction(Action):
    """Executes a task's `list` field."""

    key = "list"

    def run(self, task: Task) -> ActionResult:
        state = task.list_.state
        if unstruct.kind(state) == CRD_KIND:
            # CRDs are cluster scoped
            items = self.ctx.cluster.list(unstruct.api_version(state), CRD_KIND)
            message = f"List CRD: APIVersion {unstruct.api_version(state)}"
        else:
            items = self.ctx.cluster.list(
                unstruct.api_version(state),
                unstruct.kind(state),
                namespace=unstruct.namespace(state),
            )
            message = (
                f"List resources with {unstruct.namespace(state)} / {unstruct.name(state)}: "
                f"GVK {unstruct.gvk(state)}"
            )
        logger.debug(f"{message}: Found {len(items)} item(s)")
        return ActionResult(phase=TaskPhase.PASSED, message=message, verbose=to_verbose(items))
