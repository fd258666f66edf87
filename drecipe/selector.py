"""
Label selector matching.

Implements the Kubernetes LabelSelector semantics used by eligibility
checks: `matchLabels` plus `matchExpressions` with the operators In,
NotIn, Exists and DoesNotExist. An empty selector matches everything.
"""

from typing import Any

from drecipe.errors import ValidationError


def _match_expression(expr: dict[str, Any], labels: dict[str, str]) -> bool:
    key = expr.get("key", "")
    operator = expr.get("operator", "")
    values = expr.get("values") or []
    if operator == "In":
        return key in labels and labels[key] in values
    if operator == "NotIn":
        return key not in labels or labels[key] not in values
    if operator == "Exists":
        return key in labels
    if operator == "DoesNotExist":
        return key not in labels
    raise ValidationError(f"Invalid label selector operator {operator!r}")


def matches(selector: dict[str, Any], labels: dict[str, str]) -> bool:
    """Return True if labels satisfy selector."""
    for key, value in (selector.get("matchLabels") or {}).items():
        if labels.get(key) != value:
            return False
    return all(
        _match_expression(expr, labels)
        for expr in selector.get("matchExpressions") or []
    )


def to_selector_string(labels: dict[str, str]) -> str:
    """Equality-based selector string, e.g. 'app=web,tier=db'."""
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))


def parse_selector_string(selector: str) -> dict[str, str]:
    """Parse an equality-based selector string into a label dict."""
    result: dict[str, str] = {}
    for part in filter(None, (p.strip() for p in selector.split(","))):
        key, sep, value = part.partition("=")
        if not sep:
            raise ValidationError(f"Unsupported label selector term {part!r}")
        result[key.strip()] = value.lstrip("=").strip()
    return result
