"""
Apply action.

Get the object; if absent create it (and register it for teardown),
otherwise three-way merge the desired state into the observed object
and update. Applying the same state twice leaves the object unchanged.

An apply whose state has replicas=0 or an explicit `spec: null` means
"this object should not exist" and is executed as a delete.
"""

import logging
from typing import Any

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult, delete_if_exists, get_observed
from drecipe.actions.crd import CRDExecutor
from drecipe.cluster import CRD_KIND
from drecipe.errors import ConflictError, DrecipeError, MergeError, NotFoundError
from drecipe.merge import merge
from drecipe.retry import Outcome
from drecipe.schemas import Task, TaskPhase

logger = logging.getLogger(__name__)


class ApplyAction(Action):
    """Executes a task's `apply` field."""

    key = "apply"

    def run(self, task: Task) -> ActionResult:
        apply = task.apply
        state = apply.state
        if apply.is_delete:
            return self._delete(state)
        if unstruct.kind(state) == CRD_KIND:
            return CRDExecutor(self.ctx, state, ignore_discovery=apply.ignore_discovery).apply()

        observed = get_observed(
            self.ctx, state, f"Apply resource {unstruct.describe(state)}"
        )
        if observed is None:
            return self._create(state)
        return self._update(state)

    def _create(self, state: dict[str, Any]) -> ActionResult:
        message = f"Create resource {unstruct.describe(state)}"
        self.ctx.cluster.create(state)
        self.ctx.add_to_teardown(
            f"Delete {unstruct.describe(state)}",
            lambda: delete_if_exists(self.ctx, state),
        )
        return ActionResult(phase=TaskPhase.PASSED, message=message)

    def _update(self, state: dict[str, Any]) -> ActionResult:
        message = f"Update resource {unstruct.describe(state)}"

        def condition() -> Outcome:
            try:
                observed = self.ctx.cluster.get(
                    unstruct.api_version(state),
                    unstruct.kind(state),
                    unstruct.name(state),
                    unstruct.namespace(state),
                )
                merged = merge(observed, state, state)
                if merged == observed:
                    logger.debug(f"Nothing to update: {message}")
                    return Outcome.succeed()
                self.ctx.cluster.update(merged)
            except MergeError as e:
                return Outcome.fail(e)
            except (ConflictError, NotFoundError) as e:
                return Outcome.keep_trying(e)
            except DrecipeError as e:
                return self.ctx.on_error(e)
            return Outcome.succeed()

        self.ctx.retry.waitf(condition, message)
        return ActionResult(phase=TaskPhase.PASSED, message=message)

    def _delete(self, state: dict[str, Any]) -> ActionResult:
        message = f"Apply based delete: Resource {unstruct.describe(state)}"
        observed = get_observed(self.ctx, state, message)
        if observed is None:
            logger.debug(f"Nothing to delete: {message}")
            return ActionResult(phase=TaskPhase.PASSED, message=message)
        delete_if_exists(self.ctx, state)
        return ActionResult(phase=TaskPhase.PASSED, message=message)
