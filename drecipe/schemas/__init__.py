"""
drecipe schemas.

Lifecycle of a run:
1. Recipe (kind Recipe or Job) is read from the cluster as a raw object
2. Recipe.from_dict parses spec.tasks into Task instances
3. Each Task runs exactly one action and yields a TaskResult
4. TaskResults aggregate into a RecipeStatus written back as `status`
"""

from drecipe.schemas.task import (
    Unstructured,
    IgnoreErrorRule,
    FailFastRule,
    StateCheckOperator,
    PathCheckOperator,
    PathValueDataType,
    StateCheck,
    PathCheck,
    Assert,
    Apply,
    Create,
    Delete,
    Label,
    ListAction,
    GetAction,
    Task,
)
from drecipe.schemas.recipe import (
    EnabledRule,
    EligibleRule,
    EligibleItemRule,
    EligibleItem,
    Eligible,
    Refresh,
    RecipeSpec,
    Recipe,
)
from drecipe.schemas.status import (
    TaskPhase,
    RecipePhase,
    ExecutionTime,
    TaskResult,
    TaskCount,
    RecipeStatus,
)

__all__ = [
    # Task
    "Unstructured",
    "IgnoreErrorRule",
    "FailFastRule",
    "StateCheckOperator",
    "PathCheckOperator",
    "PathValueDataType",
    "StateCheck",
    "PathCheck",
    "Assert",
    "Apply",
    "Create",
    "Delete",
    "Label",
    "ListAction",
    "GetAction",
    "Task",
    # Recipe
    "EnabledRule",
    "EligibleRule",
    "EligibleItemRule",
    "EligibleItem",
    "Eligible",
    "Refresh",
    "RecipeSpec",
    "Recipe",
    # Status
    "TaskPhase",
    "RecipePhase",
    "ExecutionTime",
    "TaskResult",
    "TaskCount",
    "RecipeStatus",
]
