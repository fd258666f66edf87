"""
Label action.

Lists every object matching the desired state's namespace and labels,
then for each one:
- merges `applyLabels` into its labels, or
- with autoUnset, for objects not named in filterByNames, removes the
  `applyLabels` keys, but only when all of them are present with
  matching values

The list-and-update pass is retried as a whole.
"""

import logging
from typing import Any, Optional

from drecipe import unstruct
from drecipe.actions.base import Action, ActionResult
from drecipe.errors import DrecipeError
from drecipe.retry import Outcome
from drecipe.schemas import Label, Task, TaskPhase

logger = logging.getLogger(__name__)


def unset_labels(current: dict[str, str], apply_labels: dict[str, str]) -> Optional[dict[str, str]]:
    """
    Labels with apply_labels removed.

    Returns:
        The new labels, or None when current does not carry every
        apply_labels pair (the object is left untouched)
    """
    if not current:
        return None
    for key, value in apply_labels.items():
        if current.get(key) != value:
            return None
    return {k: v for k, v in current.items() if k not in apply_labels}


def merge_labels(current: dict[str, str], apply_labels: dict[str, str]) -> dict[str, str]:
    merged = dict(current)
    merged.update(apply_labels)
    return merged


class LabelAction(Action):
    """Executes a task's `label` field."""

    key = "label"

    def _relabel(self, label: Label, obj: dict[str, Any]) -> None:
        current = unstruct.labels(obj)
        if label.auto_unset and unstruct.name(obj) not in label.filter_by_names:
            new_labels = unset_labels(current, label.apply_labels)
            if new_labels is None:
                return
        else:
            new_labels = merge_labels(current, label.apply_labels)
        unstruct.set_labels(obj, new_labels)
        self.ctx.cluster.update(obj)

    def run(self, task: Task) -> ActionResult:
        label = task.label
        state = label.state
        message = f"Label resource {unstruct.describe(state)}"

        def condition() -> Outcome:
            try:
                items = self.ctx.cluster.list(
                    unstruct.api_version(state),
                    unstruct.kind(state),
                    namespace=unstruct.namespace(state),
                    labels=unstruct.labels(state),
                )
                for obj in items:
                    self._relabel(label, obj)
            except DrecipeError as e:
                return self.ctx.on_error(e)
            return Outcome.succeed()

        self.ctx.retry.waitf(condition, message)
        return ActionResult(phase=TaskPhase.PASSED, message=message)
