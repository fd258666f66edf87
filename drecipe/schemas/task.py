"""
Task schemas - a Task and the single action it wraps.

A Task carries exactly one of: assert, apply, create, delete, label,
list, get. Each action holds a desired `state`, an unstructured cluster
object expressed as a plain dict.

Wire names follow the Recipe/Job custom resource shape, e.g.
`stateCheck.stateCheckOperator`, `pathCheck.pathCheckOperator`,
`ignoreError`, `failFast.when`.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from drecipe.errors import ValidationError

# Unstructured cluster object
Unstructured = dict[str, Any]


class IgnoreErrorRule(str, Enum):
    """How a task error is reported instead of aborting the run."""
    AS_PASSED = "AsPassed"
    AS_WARNING = "AsWarning"


class FailFastRule(str, Enum):
    """Error classes that stop retry loops immediately."""
    ON_DISCOVERY_ERROR = "OnDiscoveryError"


class StateCheckOperator(str, Enum):
    """Whole-object or whole-list comparison operators."""
    EQUALS = "Equals"
    NOT_EQUALS = "NotEquals"
    NOT_FOUND = "NotFound"
    LIST_COUNT_EQUALS = "ListCountEquals"
    LIST_COUNT_NOT_EQUALS = "ListCountNotEquals"


COUNT_OPERATORS = frozenset({
    StateCheckOperator.LIST_COUNT_EQUALS,
    StateCheckOperator.LIST_COUNT_NOT_EQUALS,
})


class PathCheckOperator(str, Enum):
    """Single-field comparison operators."""
    EXISTS = "Exists"
    NOT_EXISTS = "NotExists"
    EQUALS = "Equals"
    NOT_EQUALS = "NotEquals"
    GTE = "GTE"
    LTE = "LTE"


PRESENCE_OPERATORS = frozenset({
    PathCheckOperator.EXISTS,
    PathCheckOperator.NOT_EXISTS,
})


class PathValueDataType(str, Enum):
    """Data type used to read and compare a path value."""
    INT64 = "int64"
    FLOAT64 = "float64"


def _enum_or_none(enum_cls, value):
    if value is None or value == "":
        return None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [e.value for e in enum_cls]
        raise ValidationError(
            f"Invalid {enum_cls.__name__} {value!r}: expected one of {allowed}"
        )


def _state_from(data: dict[str, Any], owner: str) -> Unstructured:
    state = data.get("state")
    if state is None:
        raise ValidationError(f"Invalid {owner}: Missing state")
    if not isinstance(state, dict):
        raise ValidationError(f"Invalid {owner}: state must be an object")
    return state


@dataclass(frozen=True)
class StateCheck:
    """
    Whole-object (Equals, NotEquals, NotFound) or list-count assertion.

    Attributes:
        operator: Comparison operator; None defaults to Equals
        count: Expected number of label-matching resources for count operators
    """
    operator: Optional[StateCheckOperator] = None
    count: Optional[int] = None

    @property
    def effective_operator(self) -> StateCheckOperator:
        return self.operator or StateCheckOperator.EQUALS

    def validate(self, task_name: str = "") -> None:
        """
        Check operator against count.

        Raises:
            ValidationError: If a count operator has no count, or a
                non-count operator has one.
        """
        op = self.effective_operator
        is_count_based = self.count is not None or op in COUNT_OPERATORS
        if not is_count_based:
            return
        if self.count is None:
            raise ValidationError(
                f"Invalid StateCheck {task_name!r}: "
                f"Operator {op.value!r} can't be used with nil count"
            )
        if op not in COUNT_OPERATORS:
            raise ValidationError(
                f"Invalid StateCheck {task_name!r}: "
                f"Operator {op.value!r} can't be used with count {self.count}"
            )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.operator is not None:
            result["stateCheckOperator"] = self.operator.value
        if self.count is not None:
            result["count"] = self.count
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StateCheck":
        # `operator` is accepted as a short alias
        op = data.get("stateCheckOperator", data.get("operator"))
        count = data.get("count")
        return cls(
            operator=_enum_or_none(StateCheckOperator, op),
            count=int(count) if count is not None else None,
        )


@dataclass(frozen=True)
class PathCheck:
    """
    Single-field assertion against a dot-delimited path.

    Exists/NotExists are presence checks and take no value. Every other
    operator compares the field, read as `data_type`, against `value`.
    """
    path: str
    operator: Optional[PathCheckOperator] = None
    value: Any = None
    data_type: Optional[PathValueDataType] = None

    @property
    def effective_operator(self) -> PathCheckOperator:
        return self.operator or PathCheckOperator.EXISTS

    @property
    def effective_data_type(self) -> PathValueDataType:
        return self.data_type or PathValueDataType.INT64

    @property
    def fields(self) -> list[str]:
        return self.path.split(".")

    def typed_value(self) -> Any:
        """
        Return value as the configured data type.

        int64 takes ints only; float64 takes ints and floats. Booleans and
        strings are never converted.

        Raises:
            ValidationError: If value doesn't match the data type
        """
        value = self.value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            if self.effective_data_type is PathValueDataType.FLOAT64:
                return float(value)
            if isinstance(value, int):
                return value
        raise ValidationError(
            f"Invalid PathCheck {self.path!r}: value {value!r} "
            f"is not {self.effective_data_type.value}"
        )

    def validate(self, task_name: str = "") -> None:
        """
        Check operator against value.

        Raises:
            ValidationError: If the path is empty, a presence operator has a
                value, or a value operator has none.
        """
        if not self.path:
            raise ValidationError(f"Invalid PathCheck {task_name!r}: Missing path")
        op = self.effective_operator
        if op in PRESENCE_OPERATORS:
            if self.value is not None:
                raise ValidationError(
                    f"Invalid PathCheck {task_name!r}: "
                    f"Operator {op.value!r} can't be used with value {self.value!r}"
                )
            return
        if self.value is None:
            raise ValidationError(
                f"Invalid PathCheck {task_name!r}: "
                f"Operator {op.value!r} can't be used with nil value"
            )
        self.typed_value()

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"path": self.path}
        if self.operator is not None:
            result["pathCheckOperator"] = self.operator.value
        if self.value is not None:
            result["value"] = self.value
        if self.data_type is not None:
            result["dataType"] = self.data_type.value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PathCheck":
        op = data.get("pathCheckOperator", data.get("operator"))
        return cls(
            path=data.get("path", ""),
            operator=_enum_or_none(PathCheckOperator, op),
            value=data.get("value"),
            data_type=_enum_or_none(PathValueDataType, data.get("dataType")),
        )


@dataclass(frozen=True)
class Assert:
    """Assert action: a StateCheck or a PathCheck against `state`."""
    state: Unstructured
    state_check: Optional[StateCheck] = None
    path_check: Optional[PathCheck] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state}
        if self.state_check is not None:
            result["stateCheck"] = self.state_check.to_dict()
        if self.path_check is not None:
            result["pathCheck"] = self.path_check.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Assert":
        sc = data.get("stateCheck")
        pc = data.get("pathCheck")
        return cls(
            state=_state_from(data, "assert"),
            state_check=StateCheck.from_dict(sc) if sc is not None else None,
            path_check=PathCheck.from_dict(pc) if pc is not None else None,
        )


@dataclass(frozen=True)
class Apply:
    """Apply action: create if absent, otherwise three-way merge and update."""
    state: Unstructured
    replicas: Optional[int] = None
    ignore_discovery: bool = False

    @property
    def is_delete(self) -> bool:
        """True when this apply expresses absence (replicas=0 or spec: null)."""
        if self.replicas == 0:
            return True
        return "spec" in self.state and self.state["spec"] is None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state}
        if self.replicas is not None:
            result["replicas"] = self.replicas
        if self.ignore_discovery:
            result["ignoreDiscovery"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Apply":
        replicas = data.get("replicas")
        return cls(
            state=_state_from(data, "apply"),
            replicas=int(replicas) if replicas is not None else None,
            ignore_discovery=bool(data.get("ignoreDiscovery", False)),
        )


@dataclass(frozen=True)
class Create:
    """Create action: create 1..N copies of `state`."""
    state: Unstructured
    replicas: Optional[int] = None
    ignore_discovery: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"state": self.state}
        if self.replicas is not None:
            result["replicas"] = self.replicas
        if self.ignore_discovery:
            result["ignoreDiscovery"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Create":
        replicas = data.get("replicas")
        return cls(
            state=_state_from(data, "create"),
            replicas=int(replicas) if replicas is not None else None,
            ignore_discovery=bool(data.get("ignoreDiscovery", False)),
        )


@dataclass(frozen=True)
class Delete:
    """Delete action."""
    state: Unstructured

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Delete":
        return cls(state=_state_from(data, "delete"))


@dataclass(frozen=True)
class Label:
    """
    Label action.

    Every resource matching the namespace and labels of `state` gets
    `apply_labels` merged in. With `auto_unset`, resources not named in
    `filter_by_names` instead lose exactly those labels, provided all of
    them are currently present with matching values.
    """
    state: Unstructured
    apply_labels: dict[str, str] = field(default_factory=dict)
    filter_by_names: tuple[str, ...] = ()
    auto_unset: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "state": self.state,
            "applyLabels": dict(self.apply_labels),
        }
        if self.filter_by_names:
            result["filterByNames"] = list(self.filter_by_names)
        if self.auto_unset:
            result["autoUnset"] = True
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Label":
        names = data.get("filterByNames", data.get("includeByNames")) or []
        return cls(
            state=_state_from(data, "label"),
            apply_labels={str(k): str(v) for k, v in (data.get("applyLabels") or {}).items()},
            filter_by_names=tuple(names),
            auto_unset=bool(data.get("autoUnset", False)),
        )


@dataclass(frozen=True)
class ListAction:
    """List action: read all resources of the state's type and namespace."""
    state: Unstructured

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ListAction":
        return cls(state=_state_from(data, "list"))


@dataclass(frozen=True)
class GetAction:
    """Get action: read the single resource named by state."""
    state: Unstructured

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.state}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GetAction":
        return cls(state=_state_from(data, "get"))


# Wire key -> schema class, in the order actions are tried by the dispatcher
ACTION_TYPES: dict[str, type] = {
    "create": Create,
    "assert": Assert,
    "delete": Delete,
    "apply": Apply,
    "label": Label,
    "list": ListAction,
    "get": GetAction,
}

# Wire key -> Task attribute
ACTION_ATTRS: dict[str, str] = {
    "create": "create",
    "assert": "assert_",
    "delete": "delete",
    "apply": "apply",
    "label": "label",
    "list": "list_",
    "get": "get",
}


@dataclass(frozen=True)
class Task:
    """
    A named unit of work wrapping exactly one action.

    Attributes:
        name: Task name, unique within the Recipe/Job
        assert_ ... get: Action fields; exactly one must be set
        ignore_error: Report action errors as Passed/Warning instead of aborting
        fail_fast: Stop retrying on this error class
    """
    name: str
    assert_: Optional[Assert] = None
    apply: Optional[Apply] = None
    create: Optional[Create] = None
    delete: Optional[Delete] = None
    label: Optional[Label] = None
    list_: Optional[ListAction] = None
    get: Optional[GetAction] = None
    ignore_error: Optional[IgnoreErrorRule] = None
    fail_fast: Optional[FailFastRule] = None

    def actions(self) -> list[str]:
        """Wire names of the actions set on this task."""
        return [
            key for key, attr in ACTION_ATTRS.items()
            if getattr(self, attr) is not None
        ]

    def action(self, key: str) -> Any:
        return getattr(self, ACTION_ATTRS[key])

    def validate(self) -> None:
        """
        Pre-flight validation: name set and exactly one action.

        Assert checks are validated too, so a bad operator/count or
        operator/value combination never reaches the cluster.

        Raises:
            ValidationError: On the first problem found
        """
        if not self.name:
            raise ValidationError("Invalid task: Missing name")
        actions = self.actions()
        if not actions:
            raise ValidationError(f"Invalid task {self.name!r}: Task needs one action")
        if len(actions) > 1:
            raise ValidationError(
                f"Invalid task {self.name!r}: Task supports only one action"
            )
        if self.assert_ is not None:
            if self.assert_.state_check is not None and self.assert_.path_check is not None:
                raise ValidationError(
                    f"Invalid assert {self.name!r}: Can't use both StateCheck and PathCheck"
                )
            if self.assert_.state_check is not None:
                self.assert_.state_check.validate(self.name)
            if self.assert_.path_check is not None:
                self.assert_.path_check.validate(self.name)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name}
        for key in self.actions():
            result[key] = self.action(key).to_dict()
        if self.ignore_error is not None:
            result["ignoreError"] = self.ignore_error.value
        if self.fail_fast is not None:
            result["failFast"] = {"when": self.fail_fast.value}
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Task":
        """
        Deserialize from the wire shape.

        Raises:
            ValidationError: If an action or enum field is malformed
        """
        kwargs: dict[str, Any] = {}
        for key, schema in ACTION_TYPES.items():
            raw = data.get(key)
            if raw is not None:
                kwargs[ACTION_ATTRS[key]] = schema.from_dict(raw)
        fail_fast = (data.get("failFast") or {}).get("when")
        return cls(
            name=data.get("name", ""),
            ignore_error=_enum_or_none(IgnoreErrorRule, data.get("ignoreError")),
            fail_fast=_enum_or_none(FailFastRule, fail_fast),
            **kwargs,
        )
