"""
TaskRunner - executes one Task and turns the outcome into a TaskResult.

The TaskRunner handles:
- Dispatch to the task's single action via ActionRegistry
- Step numbering and execution timing
- IgnoreErrorRule: AsWarning reports the error as a Warning result,
  AsPassed as a Passed result; otherwise the error aborts the run as a
  TaskError
"""

import logging
import time
from typing import Callable, Optional

from drecipe.actions import ActionRegistry
from drecipe.context import RunContext
from drecipe.errors import TaskError
from drecipe.schemas import ExecutionTime, IgnoreErrorRule, Task, TaskPhase, TaskResult

logger = logging.getLogger(__name__)


class TaskRunner:
    """
    Runs tasks through an ActionRegistry.

    Usage:
        runner = TaskRunner(ctx)
        result = runner.run(task, step=1)
    """

    def __init__(
        self,
        ctx: RunContext,
        registry: Optional[ActionRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ctx = ctx
        self.registry = registry or ActionRegistry.create_default()
        self._clock = clock

    def run(self, task: Task, step: int) -> TaskResult:
        """
        Execute task as the given 1-based step.

        Returns:
            TaskResult for the task

        Raises:
            TaskError: If the action errored and the task does not ignore errors
        """
        ctx = self.ctx.for_task(task, step)
        started = self._clock()
        try:
            got = self.registry.dispatch(task, ctx)
        except Exception as e:
            elapsed = ExecutionTime.of(self._clock() - started)
            if task.ignore_error is IgnoreErrorRule.AS_WARNING:
                logger.warning(f"Task [{step}] {task.name!r} errored, reported as warning: {e}")
                return TaskResult(
                    step=step,
                    phase=TaskPhase.WARNING,
                    execution_time=elapsed,
                    message=f"Ignored error: {task.name}",
                    warning=str(e),
                )
            if task.ignore_error is IgnoreErrorRule.AS_PASSED:
                logger.info(f"Task [{step}] {task.name!r} errored, reported as passed: {e}")
                return TaskResult(
                    step=step,
                    phase=TaskPhase.PASSED,
                    execution_time=elapsed,
                    message=f"Ignored error: {task.name}",
                    verbose=str(e),
                )
            raise TaskError(step, task.name, e) from e

        result = TaskResult(
            step=step,
            phase=got.phase,
            execution_time=ExecutionTime.of(self._clock() - started),
            message=got.message,
            verbose=got.verbose,
            warning=got.warning,
            timeout=got.timeout,
        )
        logger.debug(f"Task [{step}] {task.name!r}: {result.phase.value}: {result.message}")
        return result
