"""
Distributed lock for Recipe/Job runs.

The lock is a ConfigMap named `<owner>-lock` in the owner's namespace.
Mutual exclusion comes from the API server's atomic create: a create
that fails with AlreadyExists means another invocation holds the lock
(or a run-once Recipe already completed and left it in place forever).

Steps reserved in the task result list:
- 0: lock
- protected_task_count + 1: unlock
"""

import logging
from typing import Any, Callable

from drecipe import unstruct
from drecipe.context import RunContext
from drecipe.errors import AlreadyExistsError, AlreadyLockedError, NotFoundError
from drecipe.schemas import EnabledRule, Recipe, TaskPhase, TaskResult

logger = logging.getLogger(__name__)

LOCK_LABEL = "recipe.dope.mayadata.io/lock"
NAME_LABEL = "recipe.dope.mayadata.io/name"
PHASE_LABEL = "recipe.dope.mayadata.io/phase"

LOCK_STEP = 0

Unlock = Callable[[], TaskResult]


class Lock:
    """
    Lock guarding one Recipe/Job.

    Args:
        ctx: Run context (cluster access)
        owner_name: Name of the owning Recipe/Job
        owner_namespace: Namespace of the owning Recipe/Job
        lock_forever: Graceful unlock leaves the lock in place
        protected_task_count: Number of steps before the unlock step
    """

    def __init__(
        self,
        ctx: RunContext,
        owner_name: str,
        owner_namespace: str,
        lock_forever: bool = False,
        protected_task_count: int = 1,
    ):
        self.ctx = ctx
        self.owner_name = owner_name
        self.owner_namespace = owner_namespace
        self.lock_forever = lock_forever
        self.protected_task_count = protected_task_count

    @classmethod
    def for_recipe(cls, ctx: RunContext, recipe: Recipe) -> "Lock":
        """Lock for recipe; run-once recipes lock forever."""
        return cls(
            ctx,
            owner_name=recipe.name,
            owner_namespace=recipe.namespace,
            lock_forever=recipe.spec.effective_enabled is EnabledRule.ONCE,
            # tasks + elapsed time entry
            protected_task_count=len(recipe.spec.tasks) + 1,
        )

    @property
    def name(self) -> str:
        return f"{self.owner_name}-lock"

    @property
    def unlock_step(self) -> int:
        return self.protected_task_count + 1

    @property
    def state(self) -> dict[str, Any]:
        return {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": self.name,
                "namespace": self.owner_namespace,
                "labels": {
                    LOCK_LABEL: "true",
                    NAME_LABEL: self.owner_name,
                },
            },
        }

    def is_locked(self) -> bool:
        """
        Return True if the lock object exists.

        Raises:
            ClusterError: Any read error other than not-found
        """
        try:
            self.ctx.cluster.get("v1", "ConfigMap", self.name, self.owner_namespace)
        except NotFoundError:
            logger.debug(f"Lock {self.owner_namespace} {self.name}: Exists=False")
            return False
        logger.debug(f"Lock {self.owner_namespace} {self.name}: Exists=True")
        return True

    def lock(self) -> tuple[TaskResult, Unlock]:
        """
        Create the lock object.

        Returns:
            (lock result, unlock function). The unlock function deletes the
            lock, or is a no-op reporting success when locked forever.

        Raises:
            AlreadyLockedError: If the lock already exists
            ClusterError: Any other creation error
        """
        state = self.state
        message = f"Create: Lock {unstruct.describe(state)}"
        try:
            self.ctx.cluster.create(state)
        except AlreadyExistsError as e:
            raise AlreadyLockedError(
                f"Lock {self.owner_namespace} {self.name} already exists"
            ) from e
        logger.debug(f"Lock created successfully: {self.owner_namespace} {self.name}")

        result = TaskResult(step=LOCK_STEP, phase=TaskPhase.PASSED, internal=True, message=message)
        if self.lock_forever:
            return result, self._keep
        return result, self._delete

    def must_unlock(self) -> TaskResult:
        """Delete the lock regardless of lock_forever."""
        return self._delete(missing_ok=True)

    def _keep(self) -> TaskResult:
        return TaskResult(
            step=self.unlock_step,
            phase=TaskPhase.PASSED,
            internal=True,
            message="Will not unlock: Locked forever",
        )

    def _delete(self, missing_ok: bool = False) -> TaskResult:
        message = f"Delete: Lock {unstruct.describe(self.state)}"
        try:
            self.ctx.cluster.delete("v1", "ConfigMap", self.name, self.owner_namespace)
        except NotFoundError:
            if not missing_ok:
                raise
            message = f"{message}: Lock not found"
        else:
            logger.debug(f"Lock deleted successfully: {self.owner_namespace} {self.name}")
        return TaskResult(
            step=self.unlock_step,
            phase=TaskPhase.PASSED,
            internal=True,
            message=message,
        )
