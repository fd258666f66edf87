"""
RecipeRunner - top-level orchestration of one Recipe/Job invocation.

Lifecycle:
1. Validate every task (nothing touches the cluster on failure)
2. Previous lock exists -> phase Locked
3. enabled=Never -> phase Disabled
4. Take the lock (forever for run-once recipes); taken by another run -> phase Locked
5. Think time, then eligibility; not eligible -> phase NotEligible and
   the lock this run took is force-removed
6. Run tasks sequentially; a task error aborts the loop
7. Teardown (when requested), then unlock: forced after an error,
   graceful otherwise
8. Aggregate the status; persist_status writes it back to the owner

Usage:
    ctx = RunContext(cluster=InMemoryCluster(), retry=Retryable(timeout=5))
    runner = RecipeRunner(ctx, Recipe.from_dict(obj))
    status, error = runner.reconcile()
"""

import logging
import time
from typing import Any, Callable, Optional

from drecipe import unstruct
from drecipe.actions import ActionRegistry
from drecipe.context import RunContext
from drecipe.eligibility import Eligibility
from drecipe.errors import AlreadyLockedError, ConflictError, DrecipeError, NotFoundError
from drecipe.lock import PHASE_LABEL, Lock, Unlock
from drecipe.retry import Outcome
from drecipe.schemas import (
    EnabledRule,
    ExecutionTime,
    Recipe,
    RecipePhase,
    RecipeStatus,
    TaskCount,
    TaskPhase,
    TaskResult,
)
from drecipe.task_runner import TaskRunner

logger = logging.getLogger(__name__)

ELAPSED_TIME_KEY = "recipe-elapsed-time"
LOCKED_REASON = "Recipe was skipped: Previous lock exists"


class RecipeRunner:
    """
    Runs one Recipe/Job.

    Args:
        ctx: Run context (cluster, retry policy, teardown registry)
        recipe: The Recipe/Job to run
        registry: Action dispatch table (default: all built-in actions)
        sleep: Used for think time (injectable for tests)
        clock: Monotonic clock used for timing (injectable for tests)
    """

    def __init__(
        self,
        ctx: RunContext,
        recipe: Recipe,
        registry: Optional[ActionRegistry] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ctx = ctx
        self.recipe = recipe
        self.task_runner = TaskRunner(ctx, registry=registry, clock=clock)
        self._sleep = sleep
        self._clock = clock

    @property
    def name(self) -> str:
        return self.recipe.name

    @property
    def total(self) -> int:
        return len(self.recipe.spec.tasks)

    def validate(self) -> None:
        """
        Pre-flight validation of every task and the eligibility criteria.

        Raises:
            ValidationError: On the first invalid task or eligibility item
        """
        for task in self.recipe.spec.tasks:
            task.validate()
        Eligibility(
            self.ctx,
            self.recipe.spec.eligible,
            recipe_name=self.name,
            api_version=self.recipe.api_version,
            kind=self.recipe.kind,
        )

    def run(self) -> RecipeStatus:
        """
        Execute the Recipe/Job.

        Returns:
            The aggregate status

        Raises:
            ValidationError: If a task or eligibility item is invalid
            TaskError: If a task errored without ignoreError
            DrecipeError: Lock or cluster errors
        """
        self.validate()
        lock = Lock.for_recipe(self.ctx, self.recipe)

        if lock.is_locked():
            logger.info(f"Will skip recipe {self.recipe.namespace} {self.name}: Previous lock exists")
            return RecipeStatus(
                phase=RecipePhase.LOCKED,
                reason=LOCKED_REASON,
                task_count=TaskCount(total=self.total),
            )

        if self.recipe.spec.effective_enabled is EnabledRule.NEVER:
            logger.info(f"Will skip recipe {self.recipe.namespace} {self.name}: It is disabled")
            return RecipeStatus(
                phase=RecipePhase.DISABLED,
                task_count=TaskCount(total=self.total),
            )

        try:
            lock_result, unlock = lock.lock()
        except AlreadyLockedError:
            logger.info(f"Will skip recipe {self.recipe.namespace} {self.name}: Lock taken by another run")
            return RecipeStatus(
                phase=RecipePhase.LOCKED,
                reason=LOCKED_REASON,
                task_count=TaskCount(total=self.total),
            )

        # From here on the lock is ours; only ours may be force-removed
        try:
            eligible = self._wait_eligible()
        except BaseException:
            self._force_unlock(lock)
            raise
        if not eligible:
            logger.info(f"Will skip recipe {self.recipe.namespace} {self.name}: Not eligible")
            self._force_unlock(lock)
            return RecipeStatus(
                phase=RecipePhase.NOT_ELIGIBLE,
                reason="Recipe is not eligible",
                task_count=TaskCount(skipped=self.total, total=self.total),
            )
        return self._run_locked(lock, lock_result, unlock)

    def _wait_eligible(self) -> bool:
        think_time = self.recipe.spec.think_time_in_seconds
        if think_time:
            self._sleep(max(0.0, think_time))
        eligibility = Eligibility(
            self.ctx,
            self.recipe.spec.eligible,
            recipe_name=self.name,
            api_version=self.recipe.api_version,
            kind=self.recipe.kind,
        )
        return eligibility.is_eligible()

    def _run_locked(self, lock: Lock, lock_result: TaskResult, unlock: Unlock) -> RecipeStatus:
        results: dict[str, TaskResult] = {f"{self.name}-lock": lock_result}
        started = self._clock()
        succeeded = False
        try:
            for step, task in enumerate(self.recipe.spec.tasks, start=1):
                results[task.name] = self.task_runner.run(task, step)
            succeeded = True
        finally:
            if self.recipe.spec.teardown:
                failures = self.ctx.teardown.run()
                if failures:
                    logger.warning(f"Teardown of recipe {self.name} had {failures} failure(s)")
            if succeeded:
                unlock_result = self._graceful_unlock(unlock)
                if unlock_result is not None:
                    results[f"{self.name}-unlock"] = unlock_result
            else:
                self._force_unlock(lock)

        elapsed = self._clock() - started
        results[ELAPSED_TIME_KEY] = TaskResult(
            step=self.total + 1,
            phase=TaskPhase.PASSED,
            execution_time=ExecutionTime.of(elapsed),
            internal=True,
        )
        return self._aggregate(results, elapsed)

    def _aggregate(self, results: dict[str, TaskResult], elapsed: float) -> RecipeStatus:
        tasks = [results[t.name] for t in self.recipe.spec.tasks if t.name in results]
        failed = sum(1 for r in tasks if r.phase is TaskPhase.FAILED)
        warning = sum(1 for r in tasks if r.phase is TaskPhase.WARNING)
        if failed:
            phase = RecipePhase.FAILED
            reason = f"{failed} task(s) failed"
        elif self.recipe.spec.effective_enabled is EnabledRule.ALWAYS:
            phase, reason = RecipePhase.PASSED, ""
        else:
            phase, reason = RecipePhase.COMPLETED, ""
        logger.info(f"Recipe {self.recipe.namespace} {self.name} finished: {phase.value}")
        return RecipeStatus(
            phase=phase,
            reason=reason,
            execution_time_in_seconds=round(elapsed, 6),
            task_count=TaskCount(failed=failed, warning=warning, total=self.total),
            task_result_list=results,
        )

    def _graceful_unlock(self, unlock: Unlock) -> Optional[TaskResult]:
        try:
            return unlock()
        except DrecipeError as e:
            logger.error(f"Failed to unlock recipe {self.recipe.namespace} {self.name}: {e}")
            return None

    def _force_unlock(self, lock: Lock) -> None:
        try:
            lock.must_unlock()
        except DrecipeError as e:
            logger.error(f"Failed to force unlock recipe {self.recipe.namespace} {self.name}: {e}")

    def reconcile(self, persist: bool = True) -> tuple[RecipeStatus, Optional[Exception]]:
        """
        Run, convert a raised error into an Error status, and optionally
        persist the status to the owner resource.

        Returns:
            (status, error). error is the exception the run raised, if any.
        """
        error: Optional[Exception] = None
        try:
            status = self.run()
        except Exception as e:
            logger.error(f"Recipe {self.recipe.namespace} {self.name} errored: {e}")
            error = e
            status = error_status(e, total=self.total)
        if persist:
            persist_status(self.ctx, self.recipe, status)
        return status, error

    def resync_after(self, status: Optional[RecipeStatus], error: Optional[BaseException] = None) -> Optional[float]:
        """Seconds after which the framework should sync this resource again."""
        return resync_after(self.recipe, status, error)


def error_status(err: BaseException, total: int = 0) -> RecipeStatus:
    """Status recorded for a run that raised."""
    return RecipeStatus(
        phase=RecipePhase.ERROR,
        reason=str(err),
        task_count=TaskCount(total=total),
    )


def resync_after(
    recipe: Recipe,
    status: Optional[RecipeStatus],
    error: Optional[BaseException] = None,
) -> Optional[float]:
    """
    Pick the applicable resync hint.

    NotEligible takes priority, then errors, then the default.
    """
    refresh = recipe.spec.refresh
    if (
        status is not None
        and status.phase is RecipePhase.NOT_ELIGIBLE
        and refresh.on_not_eligible_resync_after_seconds is not None
    ):
        return refresh.on_not_eligible_resync_after_seconds
    if error is not None and refresh.on_error_resync_after_seconds is not None:
        return refresh.on_error_resync_after_seconds
    return refresh.resync_after_seconds


def persist_status(ctx: RunContext, recipe: Recipe, status: RecipeStatus) -> dict[str, Any]:
    """
    Write status back to the owner resource.

    Read-modify-write against the latest object: set status, merge the
    phase label, update, then update the status subresource. Conflicts
    are retried.

    Returns:
        The stored owner object

    Raises:
        NotFoundError: If the owner no longer exists
        RetryTimeout: If conflicts persist past the retry budget
    """
    message = f"Update status: {recipe.kind} {recipe.namespace} {recipe.name}"
    stored: dict[str, Any] = {}

    def condition() -> Outcome:
        try:
            latest = ctx.cluster.get(recipe.api_version, recipe.kind, recipe.name, recipe.namespace)
            latest["status"] = status.to_dict()
            labels = unstruct.labels(latest)
            labels[PHASE_LABEL] = status.phase.value
            unstruct.set_labels(latest, labels)
            updated = ctx.cluster.update(latest)
            updated["status"] = status.to_dict()
            stored["obj"] = ctx.cluster.update_status(updated)
        except ConflictError as e:
            return Outcome.keep_trying(e)
        except NotFoundError as e:
            return Outcome.fail(e)
        except DrecipeError as e:
            return ctx.on_error(e)
        return Outcome.succeed()

    ctx.retry.waitf(condition, message)
    logger.debug(f"{message}: {status.phase.value}")
    return stored.get("obj", {})
