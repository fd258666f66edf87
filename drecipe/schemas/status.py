"""
Status schemas - per-task results and the aggregate Recipe/Job status.

A TaskResult is built once per task (or internal step such as lock,
unlock and elapsed time) and never modified. RecipeStatus aggregates
them and is written back to the owning resource at the end of a run.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class TaskPhase(str, Enum):
    """Outcome of a single task."""
    PASSED = "Passed"
    FAILED = "Failed"
    WARNING = "Warning"


class RecipePhase(str, Enum):
    """Aggregate phase of a Recipe/Job run."""
    LOCKED = "Locked"
    DISABLED = "Disabled"
    NOT_ELIGIBLE = "NotEligible"
    PASSED = "Passed"
    COMPLETED = "Completed"
    FAILED = "Failed"
    WARNING = "Warning"
    ERROR = "Error"


def readable_duration(seconds: float) -> str:
    """Render seconds as e.g. '1m2.5s' or '0.25s'."""
    minutes, secs = divmod(max(seconds, 0.0), 60)
    hours, minutes = divmod(int(minutes), 60)
    text = f"{secs:.3g}s"
    if minutes or hours:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return text


@dataclass(frozen=True)
class ExecutionTime:
    """Wall-clock time spent executing a task."""
    value_in_seconds: float
    readable_value: str

    @classmethod
    def of(cls, seconds: float) -> "ExecutionTime":
        return cls(value_in_seconds=round(seconds, 6), readable_value=readable_duration(seconds))

    def to_dict(self) -> dict[str, Any]:
        return {
            "valueInSeconds": self.value_in_seconds,
            "readableValue": self.readable_value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionTime":
        return cls(
            value_in_seconds=float(data.get("valueInSeconds", 0.0)),
            readable_value=data.get("readableValue", ""),
        )


@dataclass(frozen=True)
class TaskResult:
    """
    Result of one task (or internal step).

    Attributes:
        step: 1-based task index; 0 is the lock, len(tasks)+1 elapsed time,
            len(tasks)+2 the unlock
        phase: Passed, Failed or Warning
        execution_time: Time spent in the task
        internal: True for engine bookkeeping entries
        message: Human readable description of the action
        verbose: Extra detail (e.g. observed objects for list/get)
        warning: Warning text (e.g. expected vs actual count)
        timeout: Set when a retried check ran out of time
    """
    step: int
    phase: TaskPhase
    execution_time: Optional[ExecutionTime] = None
    internal: bool = False
    message: str = ""
    verbose: str = ""
    warning: str = ""
    timeout: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"step": self.step, "phase": self.phase.value}
        if self.execution_time is not None:
            result["executionTime"] = self.execution_time.to_dict()
        if self.internal:
            result["internal"] = True
        for key in ("message", "verbose", "warning", "timeout"):
            value = getattr(self, key)
            if value:
                result[key] = value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskResult":
        et = data.get("executionTime")
        return cls(
            step=int(data.get("step", 0)),
            phase=TaskPhase(data["phase"]),
            execution_time=ExecutionTime.from_dict(et) if et else None,
            internal=bool(data.get("internal", False)),
            message=data.get("message", ""),
            verbose=data.get("verbose", ""),
            warning=data.get("warning", ""),
            timeout=data.get("timeout", ""),
        )


@dataclass(frozen=True)
class TaskCount:
    """Counts of task outcomes in a run."""
    failed: int = 0
    skipped: int = 0
    warning: int = 0
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "failed": self.failed,
            "skipped": self.skipped,
            "warning": self.warning,
            "total": self.total,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TaskCount":
        return cls(
            failed=int(data.get("failed", 0)),
            skipped=int(data.get("skipped", 0)),
            warning=int(data.get("warning", 0)),
            total=int(data.get("total", 0)),
        )


@dataclass(frozen=True)
class RecipeStatus:
    """Aggregate status of a Recipe/Job run."""
    phase: RecipePhase
    reason: str = ""
    message: str = ""
    execution_time_in_seconds: Optional[float] = None
    task_count: TaskCount = field(default_factory=TaskCount)
    task_result_list: dict[str, TaskResult] = field(default_factory=dict)

    @property
    def is_failed(self) -> bool:
        return self.phase in (RecipePhase.FAILED, RecipePhase.ERROR)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"phase": self.phase.value}
        if self.reason:
            result["reason"] = self.reason
        if self.message:
            result["message"] = self.message
        if self.execution_time_in_seconds is not None:
            result["executionTimeInSeconds"] = self.execution_time_in_seconds
        result["taskCount"] = self.task_count.to_dict()
        result["taskResultList"] = {
            name: tr.to_dict() for name, tr in self.task_result_list.items()
        }
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecipeStatus":
        return cls(
            phase=RecipePhase(data["phase"]),
            reason=data.get("reason", ""),
            message=data.get("message", ""),
            execution_time_in_seconds=data.get("executionTimeInSeconds"),
            task_count=TaskCount.from_dict(data.get("taskCount") or {}),
            task_result_list={
                name: TaskResult.from_dict(tr)
                for name, tr in (data.get("taskResultList") or {}).items()
            },
        )
