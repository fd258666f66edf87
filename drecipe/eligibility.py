"""
Eligibility evaluator.

Decides whether a Recipe/Job may run at all, based on other cluster state.
Each EligibleItem lists every instance of its type (across namespaces),
narrows them with its label selector, and grants when the selected count
satisfies its `when` rule. Grants combine per Eligible.when.

The whole evaluation is retried so that cluster state has a chance to
converge. A timeout means "not eligible now", never an error.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

from drecipe import selector, unstruct
from drecipe.context import RunContext
from drecipe.errors import DrecipeError, RetryTimeout, ValidationError
from drecipe.retry import Outcome
from drecipe.schemas import (
    Eligible,
    EligibleItem,
    EligibleItemRule,
    EligibleRule,
)
from drecipe.schemas.recipe import ELIGIBLE_COUNT_RULES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EligibleItemKey:
    """Identity of an eligibility item: (id, apiVersion, kind)."""
    id: str
    api_version: str
    kind: str

    @classmethod
    def defaulting(cls, item: EligibleItem, api_version: str, kind: str) -> "EligibleItemKey":
        return cls(
            id=item.id,
            api_version=item.api_version or api_version,
            kind=item.kind or kind,
        )

    def __str__(self) -> str:
        parts = [self.api_version, self.kind]
        if self.id:
            parts.append(self.id)
        return "-".join(parts)


def grant(rule: EligibleItemRule, actual: int, expected: Optional[int]) -> bool:
    """Evaluate one item's rule against the selected count."""
    if rule is EligibleItemRule.EXISTS:
        return actual > 0
    if rule is EligibleItemRule.NOT_FOUND:
        return actual == 0
    if expected is None:
        raise ValidationError(f"Invalid Eligible check {rule.value!r}: Missing count")
    if rule is EligibleItemRule.LIST_COUNT_EQUALS:
        return actual == expected
    if rule is EligibleItemRule.LIST_COUNT_NOT_EQUALS:
        return actual != expected
    if rule is EligibleItemRule.LIST_COUNT_GTE:
        return actual >= expected
    if rule is EligibleItemRule.LIST_COUNT_LTE:
        return actual <= expected
    raise ValidationError(f"Invalid eligible criteria: Unsupported when {rule.value!r}")


def combine(grants: dict[str, bool], when: EligibleRule) -> bool:
    """Combine per-item grants. No grants is never eligible."""
    if not grants:
        return False
    if when is EligibleRule.ANY_CHECK_PASS:
        return any(grants.values())
    return all(grants.values())


class Eligibility:
    """
    Evaluates Eligible criteria for one Recipe/Job.

    Args:
        ctx: Run context
        eligible: Criteria; None or no checks means always eligible
        recipe_name: Used in messages
        api_version: Default apiVersion for items that don't set one
        kind: Default kind for items that don't set one

    Raises:
        ValidationError: On construction, for missing counts, duplicate
            items, or `when` set without checks
    """

    def __init__(
        self,
        ctx: RunContext,
        eligible: Optional[Eligible],
        recipe_name: str = "",
        api_version: str = "dope.mayadata.io/v1",
        kind: str = "Recipe",
    ):
        self.ctx = ctx
        self.eligible = eligible
        self.recipe_name = recipe_name
        self.items: dict[str, tuple[EligibleItemKey, EligibleItem]] = {}
        self.observed: dict[str, list[dict[str, Any]]] = {}
        self.selected: dict[str, list[str]] = {}
        self.grants: dict[str, bool] = {}
        self.attempts = 0
        self.timed_out = False
        self._validate(api_version, kind)

    def _validate(self, api_version: str, kind: str) -> None:
        if self.eligible is None:
            return
        if not self.eligible.checks and self.eligible.when is not None:
            raise ValidationError(
                f"Invalid Eligible check: When can not be set with nil checks: {self.recipe_name}"
            )
        errs = []
        for item in self.eligible.checks:
            when = item.effective_when
            if when in ELIGIBLE_COUNT_RULES and item.count is None:
                errs.append(
                    f"Invalid Eligible check {when.value!r}: Missing count: "
                    f"RecipeName {self.recipe_name!r}"
                )
                continue
            key = EligibleItemKey.defaulting(item, api_version, kind)
            if str(key) in self.items:
                errs.append(
                    f"Duplicate Eligible check {str(key)!r}: RecipeName {self.recipe_name!r}"
                )
                continue
            self.items[str(key)] = (key, item)
        if errs:
            raise ValidationError(f"{len(errs)} error(s) found: {': '.join(errs)}")

    def _observe(self) -> None:
        for key, (item_key, _) in self.items.items():
            self.observed[key] = self.ctx.cluster.list(item_key.api_version, item_key.kind)

    def _select(self) -> None:
        for key, instances in self.observed.items():
            _, item = self.items[key]
            label_selector = item.label_selector or {}
            if not label_selector.get("matchLabels") and not label_selector.get("matchExpressions"):
                chosen = instances
            else:
                chosen = [
                    obj for obj in instances
                    if selector.matches(label_selector, unstruct.labels(obj))
                ]
            self.selected[key] = [
                f"{unstruct.namespace(obj)}/{unstruct.name(obj)}" for obj in chosen
            ]

    def _grant(self) -> None:
        for key, names in self.selected.items():
            _, item = self.items[key]
            self.grants[key] = grant(item.effective_when, len(names), item.count)

    def _evaluate(self) -> Outcome:
        self.attempts += 1
        self.observed.clear()
        self.selected.clear()
        self.grants.clear()
        try:
            self._observe()
        except ValidationError as e:
            return Outcome.fail(e)
        except DrecipeError as e:
            return self.ctx.on_error(e)
        self._select()
        self._grant()
        if combine(self.grants, self.eligible.effective_when):
            return Outcome.succeed()
        return Outcome.keep_trying()

    def is_eligible(self) -> bool:
        """
        Evaluate eligibility, retrying until eligible or timed out.

        Returns:
            True if eligible; False if not eligible within the retry budget

        Raises:
            Exception: Terminal errors (e.g. fail-fast discovery errors)
        """
        if self.eligible is None or not self.eligible.checks:
            return True
        try:
            self.ctx.retry.waitf(self._evaluate, f"IsEligible check: RecipeName {self.recipe_name}")
        except RetryTimeout as e:
            self.timed_out = True
            logger.info(f"Not eligible: {self.recipe_name}: {e}")
            return False
        finally:
            logger.debug(f"Eligibility evaluation:\n{self.describe()}")
        return combine(self.grants, self.eligible.effective_when)

    def describe(self) -> str:
        """JSON summary of the last evaluation."""
        return json.dumps(
            {
                "recipeName": self.recipe_name,
                "attempts": self.attempts,
                "isTimeout": self.timed_out,
                "criteria": {k: item.to_dict() for k, (_, item) in self.items.items()},
                "selected": self.selected,
                "grants": self.grants,
            },
            indent=2,
            sort_keys=True,
        )
