"""
RunContext - capabilities handed to every executor.

One RunContext is built per Recipe/Job invocation and passed explicitly
to the lock, eligibility evaluator, task dispatcher and action executors.
It carries:
- cluster: the Cluster capability
- retry: the Retryable policy used for every cluster poll
- teardown: undo closures registered by create/apply
- fail_fast: the current task's fail-fast rule (set per task)
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Optional

from drecipe.cluster import Cluster
from drecipe.errors import ConflictError, ErrorKind, NotFoundError, is_kind
from drecipe.retry import Outcome, Retryable
from drecipe.schemas import FailFastRule, Task

logger = logging.getLogger(__name__)


class TeardownRegistry:
    """Undo closures executed in reverse registration order."""

    def __init__(self) -> None:
        self._entries: list[tuple[str, Callable[[], None]]] = []

    def __len__(self) -> int:
        return len(self._entries)

    def add(self, description: str, fn: Callable[[], None]) -> None:
        self._entries.append((description, fn))

    def run(self) -> int:
        """
        Run and clear all closures, newest first.

        Not-found and conflict errors are ignored. Any other error is
        logged and the remaining closures still run.

        Returns:
            Number of closures that raised an unexpected error
        """
        failures = 0
        entries, self._entries = self._entries, []
        for description, fn in reversed(entries):
            try:
                fn()
            except (NotFoundError, ConflictError):
                continue
            except Exception as e:
                failures += 1
                logger.warning(f"Teardown failed: {description}: {e}")
        return failures


@dataclass
class RunContext:
    """Explicit capability object for one Recipe/Job invocation."""
    cluster: Cluster
    retry: Retryable = field(default_factory=Retryable)
    teardown: TeardownRegistry = field(default_factory=TeardownRegistry)
    fail_fast: Optional[FailFastRule] = None
    task_name: str = ""
    task_index: int = 0

    def for_task(self, task: Task, index: int) -> "RunContext":
        """Context scoped to one task; cluster, retry and teardown are shared."""
        return replace(self, fail_fast=task.fail_fast, task_name=task.name, task_index=index)

    @property
    def is_fail_fast_on_discovery(self) -> bool:
        return self.fail_fast is FailFastRule.ON_DISCOVERY_ERROR

    def is_fail_fast(self, err: BaseException) -> bool:
        """True if err must stop the current retry loop."""
        return self.is_fail_fast_on_discovery and is_kind(err, ErrorKind.DISCOVERY)

    def on_error(self, err: BaseException) -> Outcome:
        """Retry outcome for err: terminal when fail-fast applies, else keep trying."""
        if self.is_fail_fast(err):
            return Outcome.fail(err)
        return Outcome.keep_trying(err)

    def add_to_teardown(self, description: str, fn: Callable[[], None]) -> None:
        self.teardown.add(description, fn)
