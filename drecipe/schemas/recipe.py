"""
Recipe schemas - the Recipe/Job resource and its spec.

A Recipe (kind Recipe or Job, same shape) is an ordered list of tasks
plus run-mode (`enabled`), eligibility gating, teardown, think time and
resync hints.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from drecipe.errors import ValidationError
from drecipe.schemas.task import Task, _enum_or_none


class EnabledRule(str, Enum):
    """When a Recipe/Job runs."""
    ONCE = "Once"
    ALWAYS = "Always"
    NEVER = "Never"


class EligibleRule(str, Enum):
    """How per-item grants combine."""
    ALL_CHECKS_PASS = "AllChecksPass"
    ANY_CHECK_PASS = "AnyCheckPass"


class EligibleItemRule(str, Enum):
    """Condition a single eligibility item grants on."""
    EXISTS = "Exists"
    NOT_FOUND = "NotFound"
    LIST_COUNT_EQUALS = "ListCountEquals"
    LIST_COUNT_NOT_EQUALS = "ListCountNotEquals"
    LIST_COUNT_GTE = "ListCountGreaterThanEquals"
    LIST_COUNT_LTE = "ListCountLessThanEquals"


ELIGIBLE_COUNT_RULES = frozenset({
    EligibleItemRule.LIST_COUNT_EQUALS,
    EligibleItemRule.LIST_COUNT_NOT_EQUALS,
    EligibleItemRule.LIST_COUNT_GTE,
    EligibleItemRule.LIST_COUNT_LTE,
})


@dataclass(frozen=True)
class EligibleItem:
    """
    One eligibility check.

    Attributes:
        id: Optional identifier distinguishing items of the same type
        api_version: Defaults to the Recipe's own apiVersion
        kind: Defaults to the Recipe's own kind
        label_selector: Kubernetes LabelSelector (matchLabels/matchExpressions)
        when: Grant rule; None defaults to Exists
        count: Required by the ListCount* rules
    """
    id: str = ""
    api_version: str = ""
    kind: str = ""
    label_selector: dict[str, Any] = field(default_factory=dict)
    when: Optional[EligibleItemRule] = None
    count: Optional[int] = None

    @property
    def effective_when(self) -> EligibleItemRule:
        return self.when or EligibleItemRule.EXISTS

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.id:
            result["id"] = self.id
        if self.api_version:
            result["apiVersion"] = self.api_version
        if self.kind:
            result["kind"] = self.kind
        if self.label_selector:
            result["labelSelector"] = self.label_selector
        if self.when is not None:
            result["when"] = self.when.value
        if self.count is not None:
            result["count"] = self.count
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EligibleItem":
        count = data.get("count")
        return cls(
            id=data.get("id", ""),
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            label_selector=data.get("labelSelector") or {},
            when=_enum_or_none(EligibleItemRule, data.get("when")),
            count=int(count) if count is not None else None,
        )


@dataclass(frozen=True)
class Eligible:
    """Eligibility criteria for a Recipe/Job."""
    checks: tuple[EligibleItem, ...] = ()
    when: Optional[EligibleRule] = None

    @property
    def effective_when(self) -> EligibleRule:
        return self.when or EligibleRule.ALL_CHECKS_PASS

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"checks": [c.to_dict() for c in self.checks]}
        if self.when is not None:
            result["when"] = self.when.value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Eligible":
        return cls(
            checks=tuple(EligibleItem.from_dict(c) for c in data.get("checks") or []),
            when=_enum_or_none(EligibleRule, data.get("when")),
        )


@dataclass(frozen=True)
class Refresh:
    """Resync hints handed back to the reconciliation framework."""
    resync_after_seconds: Optional[float] = None
    on_error_resync_after_seconds: Optional[float] = None
    on_not_eligible_resync_after_seconds: Optional[float] = None

    _WIRE = {
        "resync_after_seconds": "resyncAfterSeconds",
        "on_error_resync_after_seconds": "onErrorResyncAfterSeconds",
        "on_not_eligible_resync_after_seconds": "onNotEligibleResyncAfterSeconds",
    }

    def to_dict(self) -> dict[str, Any]:
        return {
            wire: getattr(self, attr)
            for attr, wire in self._WIRE.items()
            if getattr(self, attr) is not None
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Refresh":
        kwargs = {}
        for attr, wire in cls._WIRE.items():
            if data.get(wire) is not None:
                kwargs[attr] = float(data[wire])
        return cls(**kwargs)


@dataclass(frozen=True)
class RecipeSpec:
    """Desired behaviour of a Recipe/Job."""
    tasks: tuple[Task, ...] = ()
    enabled: Optional[EnabledRule] = None
    eligible: Optional[Eligible] = None
    teardown: bool = False
    think_time_in_seconds: Optional[float] = None
    refresh: Refresh = field(default_factory=Refresh)

    @property
    def effective_enabled(self) -> EnabledRule:
        return self.enabled or EnabledRule.ONCE

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"tasks": [t.to_dict() for t in self.tasks]}
        if self.enabled is not None:
            result["enabled"] = {"when": self.enabled.value}
        if self.eligible is not None:
            result["eligible"] = self.eligible.to_dict()
        if self.teardown:
            result["teardown"] = True
        if self.think_time_in_seconds is not None:
            result["thinkTimeInSeconds"] = self.think_time_in_seconds
        refresh = self.refresh.to_dict()
        if refresh:
            result["refresh"] = refresh
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RecipeSpec":
        enabled = (data.get("enabled") or {}).get("when")
        eligible = data.get("eligible")
        think = data.get("thinkTimeInSeconds")
        return cls(
            tasks=tuple(Task.from_dict(t) for t in data.get("tasks") or []),
            enabled=_enum_or_none(EnabledRule, enabled),
            eligible=Eligible.from_dict(eligible) if eligible is not None else None,
            teardown=bool(data.get("teardown", False)),
            think_time_in_seconds=float(think) if think is not None else None,
            refresh=Refresh.from_dict(data.get("refresh") or {}),
        )


@dataclass(frozen=True)
class Recipe:
    """
    A Recipe or Job resource.

    `obj` keeps the raw resource as read from the cluster so that status
    write-back can start from it.
    """
    name: str
    namespace: str
    spec: RecipeSpec
    api_version: str = "dope.mayadata.io/v1"
    kind: str = "Recipe"
    labels: dict[str, str] = field(default_factory=dict)
    obj: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    def to_dict(self) -> dict[str, Any]:
        metadata: dict[str, Any] = {"name": self.name, "namespace": self.namespace}
        if self.labels:
            metadata["labels"] = dict(self.labels)
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "metadata": metadata,
            "spec": self.spec.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Recipe":
        """
        Build a Recipe from an unstructured resource.

        Raises:
            ValidationError: If metadata.name is missing or the spec is malformed
        """
        metadata = data.get("metadata") or {}
        name = metadata.get("name")
        if not name:
            raise ValidationError("Invalid recipe: Missing metadata.name")
        return cls(
            name=name,
            namespace=metadata.get("namespace") or "default",
            spec=RecipeSpec.from_dict(data.get("spec") or {}),
            api_version=data.get("apiVersion", "dope.mayadata.io/v1"),
            kind=data.get("kind", "Recipe"),
            labels=dict(metadata.get("labels") or {}),
            obj=data,
        )
