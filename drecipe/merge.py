"""
Three-way merge of unstructured objects.

merge(observed, last_applied, desired) returns "desired applied on top of
observed":
- fields set in desired overwrite observed
- fields present in last_applied but absent from desired are removed
- fields nobody expressed an opinion on are kept from observed

Nested maps merge recursively. Lists whose items are all maps carrying a
`name` key (containers, ports, volumes, ...) merge item-by-item keyed by
name; any other list is replaced wholesale.

Callers in this package pass desired as last_applied, so desired acts as a
subset patch and merging never removes observed fields.
"""

import copy
from typing import Any, Optional

from drecipe.errors import MergeError


def _is_named_list(items: list[Any]) -> bool:
    return all(isinstance(i, dict) and "name" in i for i in items)


def _merge_list(
    observed: list[Any],
    last_applied: Optional[list[Any]],
    desired: list[Any],
) -> list[Any]:
    last_applied = last_applied or []
    if not (_is_named_list(observed) and _is_named_list(desired) and _is_named_list(last_applied)):
        return copy.deepcopy(desired)

    desired_by_name = {item["name"]: item for item in desired}
    last_by_name = {item["name"]: item for item in last_applied}
    merged: list[Any] = []
    seen = set()
    for item in observed:
        item_name = item["name"]
        if item_name in desired_by_name:
            merged.append(_merge_map(item, last_by_name.get(item_name), desired_by_name[item_name]))
            seen.add(item_name)
        elif item_name not in last_by_name:
            merged.append(copy.deepcopy(item))
    for item in desired:
        if item["name"] not in seen:
            merged.append(copy.deepcopy(item))
    return merged


def _merge_map(
    observed: dict[str, Any],
    last_applied: Optional[dict[str, Any]],
    desired: dict[str, Any],
) -> dict[str, Any]:
    last_applied = last_applied if isinstance(last_applied, dict) else {}
    merged = copy.deepcopy(observed)

    for key in last_applied:
        if key not in desired:
            merged.pop(key, None)

    for key, want in desired.items():
        have = merged.get(key)
        prev = last_applied.get(key)
        if isinstance(want, dict) and isinstance(have, dict):
            merged[key] = _merge_map(have, prev, want)
        elif isinstance(want, list) and isinstance(have, list):
            merged[key] = _merge_list(have, prev if isinstance(prev, list) else None, want)
        else:
            merged[key] = copy.deepcopy(want)
    return merged


def merge(
    observed: dict[str, Any],
    last_applied: dict[str, Any],
    desired: dict[str, Any],
) -> dict[str, Any]:
    """
    Three-way merge observed, last applied and desired state.

    Raises:
        MergeError: If any argument is not an object
    """
    for label, value in (("observed", observed), ("last applied", last_applied), ("desired", desired)):
        if not isinstance(value, dict):
            raise MergeError(
                f"Failed to merge: {label} state must be an object, got {type(value).__name__}"
            )
    return _merge_map(observed, last_applied, desired)
