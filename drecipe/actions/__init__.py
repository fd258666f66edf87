"""
Task action executors.

Each Action executes one task field against the cluster:
- create: CreateAction (CRDs via CRDExecutor)
- assert: AssertAction (StateChecker / PathChecker)
- delete: DeleteAction
- apply: ApplyAction (CRDs via CRDExecutor, replicas=0 means delete)
- label: LabelAction
- list / get: ListerAction / GetterAction (read-only)
"""

from drecipe.actions.base import Action, ActionResult
from drecipe.actions.registry import ActionRegistry

__all__ = [
    "Action",
    "ActionResult",
    "ActionRegistry",
]
