"""
Error classes for drecipe execution.

Every error carries an ErrorKind tag so that policy decisions are a field
read rather than an isinstance chain:
- DISCOVERY: resource type not yet known to the cluster (retryable,
  can be fast-failed via failFast.when=OnDiscoveryError)
- TIMEOUT: a retried condition never succeeded within its budget
- VALIDATION: malformed task or check (never retried)
- MERGE: three-way merge failure (never retried)
- NOT_FOUND / ALREADY_EXISTS / CONFLICT / API: cluster API errors,
  interpreted by the caller in context

Cluster adapters translate client-library exceptions into ClusterError
subclasses at the boundary. Nothing past the adapter sees client types.
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Classification tag carried by every drecipe error."""
    DISCOVERY = "discovery"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    MERGE = "merge"
    TIMEOUT = "timeout"
    API = "api"


class DrecipeError(Exception):
    """Base exception for drecipe."""

    kind: ErrorKind = ErrorKind.API


class DiscoveryError(DrecipeError):
    """
    Resource type is not (yet) served by the cluster.

    Examples:
    - Custom resource whose CRD was created moments ago
    - Typo in apiVersion/kind

    Retry loops keep polling on this error unless the task asked to
    fail fast on discovery errors.
    """

    kind = ErrorKind.DISCOVERY

    def __init__(self, api_version: str, kind_or_resource: str):
        self.api_version = api_version
        self.resource = kind_or_resource
        super().__init__(
            f"Failed to discover {kind_or_resource} with apiVersion {api_version}"
        )


class RetryTimeout(DrecipeError):
    """Raised when a retried condition does not succeed within its timeout."""

    kind = ErrorKind.TIMEOUT

    def __init__(
        self,
        message: str,
        timeout: float,
        last_error: Optional[BaseException] = None,
    ):
        self.message = message
        self.timeout = timeout
        self.last_error = last_error
        reason = str(last_error) if last_error is not None else "No errors found"
        super().__init__(
            f"Retryable condition timed out after {timeout:g}s: {message}: {reason}"
        )


class ValidationError(DrecipeError):
    """
    Invalid task or check definition - never retried.

    Examples:
    - Task with zero or more than one action
    - StateCheck count set for a non-count operator
    - PathCheck value missing for a value operator
    """

    kind = ErrorKind.VALIDATION


class MergeError(DrecipeError):
    """Three-way merge of observed and desired state failed."""

    kind = ErrorKind.MERGE


class ClusterError(DrecipeError):
    """Error returned by the cluster API."""

    kind = ErrorKind.API

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class NotFoundError(ClusterError):
    """Requested object does not exist (404)."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, message: str):
        super().__init__(message, status=404)


class AlreadyExistsError(ClusterError):
    """Object to be created already exists (409, reason AlreadyExists)."""

    kind = ErrorKind.ALREADY_EXISTS

    def __init__(self, message: str):
        super().__init__(message, status=409)


class ConflictError(ClusterError):
    """Optimistic concurrency conflict on update (409)."""

    kind = ErrorKind.CONFLICT

    def __init__(self, message: str):
        super().__init__(message, status=409)


class AlreadyLockedError(AlreadyExistsError):
    """Lock object exists, i.e. another run holds (or permanently held) the lock."""


class TaskError(DrecipeError):
    """Raised when a task fails with an error and the run must abort."""

    def __init__(self, step: int, task_name: str, cause: BaseException):
        self.step = step
        self.task_name = task_name
        self.cause = cause
        super().__init__(f"Failed to run task [{step}] {task_name!r}: {cause}")

    @property
    def kind(self) -> ErrorKind:  # type: ignore[override]
        return getattr(self.cause, "kind", ErrorKind.API)


def is_kind(err: Optional[BaseException], kind: ErrorKind) -> bool:
    """Return True if err is a drecipe error tagged with kind."""
    return getattr(err, "kind", None) is kind
