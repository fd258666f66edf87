"""Helpers for unstructured (plain dict) cluster objects."""

import copy
from typing import Any, Optional

_MISSING = object()


def api_version(obj: dict[str, Any]) -> str:
    return obj.get("apiVersion", "")


def kind(obj: dict[str, Any]) -> str:
    return obj.get("kind", "")


def metadata(obj: dict[str, Any]) -> dict[str, Any]:
    return obj.get("metadata") or {}


def name(obj: dict[str, Any]) -> str:
    return metadata(obj).get("name", "") or ""


def namespace(obj: dict[str, Any]) -> str:
    return metadata(obj).get("namespace", "") or ""


def labels(obj: dict[str, Any]) -> dict[str, str]:
    return dict(metadata(obj).get("labels") or {})


def finalizers(obj: dict[str, Any]) -> list[str]:
    return list(metadata(obj).get("finalizers") or [])


def deletion_timestamp(obj: dict[str, Any]) -> Optional[str]:
    return metadata(obj).get("deletionTimestamp")


def set_labels(obj: dict[str, Any], new_labels: dict[str, str]) -> None:
    obj.setdefault("metadata", {})["labels"] = dict(new_labels)


def with_name(obj: dict[str, Any], new_name: str) -> dict[str, Any]:
    """Deep copy of obj named new_name, with generateName dropped."""
    out = copy.deepcopy(obj)
    meta = out.setdefault("metadata", {})
    meta.pop("generateName", None)
    meta["name"] = new_name
    return out


def gvk(obj: dict[str, Any]) -> str:
    """GroupVersionKind string, e.g. 'apps/v1, Kind=Deployment'."""
    return f"{api_version(obj)}, Kind={kind(obj)}"


def describe(obj: dict[str, Any]) -> str:
    """'<namespace> <name>: GVK <gvk>' as used in task messages."""
    return f"{namespace(obj)} {name(obj)}: GVK {gvk(obj)}"


def nested_field(obj: Any, *fields: str) -> tuple[Any, bool]:
    """
    Look up a nested field.

    Returns:
        (value, found). A key present with a None value is found.
    """
    current = obj
    for f in fields:
        if not isinstance(current, dict):
            return None, False
        current = current.get(f, _MISSING)
        if current is _MISSING:
            return None, False
    return current, True


def nested_string(obj: Any, *fields: str) -> tuple[str, bool]:
    value, found = nested_field(obj, *fields)
    if not found or not isinstance(value, str):
        return "", False
    return value, True
