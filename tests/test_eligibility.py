"""Tests for eligibility evaluation.

Tests cover:
- grant() and combine() rules
- Validation of criteria
- Label selection across namespaces
- Timeout and fail-fast behaviour
"""

import json

import pytest

from drecipe.context import RunContext
from drecipe.eligibility import Eligibility, EligibleItemKey, combine, grant
from drecipe.errors import DiscoveryError, ValidationError
from drecipe.schemas import Eligible, EligibleItem, EligibleItemRule, EligibleRule, FailFastRule

from conftest import configmap


def cm_item(**kwargs):
    return EligibleItem(api_version="v1", kind="ConfigMap", **kwargs)


class TestGrant:
    """Tests for grant()."""

    @pytest.mark.parametrize("rule,actual,expected,result", [
        (EligibleItemRule.EXISTS, 1, None, True),
        (EligibleItemRule.EXISTS, 0, None, False),
        (EligibleItemRule.NOT_FOUND, 0, None, True),
        (EligibleItemRule.LIST_COUNT_EQUALS, 2, 2, True),
        (EligibleItemRule.LIST_COUNT_NOT_EQUALS, 2, 2, False),
        (EligibleItemRule.LIST_COUNT_GTE, 3, 2, True),
        (EligibleItemRule.LIST_COUNT_LTE, 3, 2, False),
    ])
    def test_rules(self, rule, actual, expected, result):
        """Each rule compares the selected count."""
        assert grant(rule, actual, expected) is result

    def test_count_rule_without_count(self):
        """Count rules need a count."""
        with pytest.raises(ValidationError):
            grant(EligibleItemRule.LIST_COUNT_GTE, 1, None)


class TestCombine:
    """Tests for combine()."""

    def test_all(self):
        assert combine({"a": True, "b": True}, EligibleRule.ALL_CHECKS_PASS)
        assert not combine({"a": True, "b": False}, EligibleRule.ALL_CHECKS_PASS)

    def test_any(self):
        assert combine({"a": False, "b": True}, EligibleRule.ANY_CHECK_PASS)
        assert not combine({"a": False}, EligibleRule.ANY_CHECK_PASS)

    def test_empty_is_not_eligible(self):
        """No grants never passes."""
        assert not combine({}, EligibleRule.ALL_CHECKS_PASS)
        assert not combine({}, EligibleRule.ANY_CHECK_PASS)


class TestValidation:
    """Tests for criteria validated at construction."""

    def test_missing_count(self, ctx):
        with pytest.raises(ValidationError, match="Missing count"):
            Eligibility(ctx, Eligible(checks=(cm_item(when=EligibleItemRule.LIST_COUNT_EQUALS),)), "r")

    def test_duplicate_items(self, ctx):
        with pytest.raises(ValidationError, match="Duplicate Eligible check"):
            Eligibility(ctx, Eligible(checks=(cm_item(), cm_item())), "r")

    def test_ids_distinguish_items(self, ctx):
        """Items of the same type differ by id."""
        elig = Eligibility(ctx, Eligible(checks=(cm_item(id="a"), cm_item(id="b"))), "r")
        assert len(elig.items) == 2

    def test_when_without_checks(self, ctx):
        with pytest.raises(ValidationError, match="nil checks"):
            Eligibility(ctx, Eligible(when=EligibleRule.ANY_CHECK_PASS), "r")

    def test_key_defaults_to_recipe_type(self):
        """Items without apiVersion or kind default to the Recipe's."""
        key = EligibleItemKey.defaulting(EligibleItem(), "dope.mayadata.io/v1", "Job")
        assert str(key) == "dope.mayadata.io/v1-Job"


class TestIsEligible:
    """Tests for Eligibility.is_eligible."""

    def test_no_criteria(self, ctx):
        """Missing criteria are always eligible."""
        assert Eligibility(ctx, None, "r").is_eligible()
        assert Eligibility(ctx, Eligible(), "r").is_eligible()

    def test_exists_across_namespaces(self, ctx, cluster):
        """Instances in any namespace count."""
        cluster.create(configmap("a", "other"))
        assert Eligibility(ctx, Eligible(checks=(cm_item(),)), "r").is_eligible()

    def test_label_selector(self, ctx, cluster):
        """Only instances matching the selector are counted."""
        cluster.create(configmap("a", labels={"app": "db"}))
        cluster.create(configmap("b", labels={"app": "web"}))
        cluster.create(configmap("c", "ns2", labels={"app": "db"}))
        item = cm_item(
            label_selector={"matchLabels": {"app": "db"}},
            when=EligibleItemRule.LIST_COUNT_EQUALS,
            count=2,
        )
        elig = Eligibility(ctx, Eligible(checks=(item,)), "r")
        assert elig.is_eligible()
        assert elig.selected["v1-ConfigMap"] == ["default/a", "ns2/c"]

    def test_not_eligible_times_out(self, ctx, clock):
        """Unsatisfied criteria return False once the budget runs out."""
        elig = Eligibility(ctx, Eligible(checks=(cm_item(),)), "r")
        assert not elig.is_eligible()
        assert elig.timed_out
        assert elig.attempts > 1
        assert clock.sleeps

    def test_any_check_pass(self, ctx, cluster):
        """AnyCheckPass needs one granted item."""
        cluster.create(configmap("a"))
        eligible = Eligible(
            checks=(cm_item(id="x"), cm_item(id="y", when=EligibleItemRule.NOT_FOUND)),
            when=EligibleRule.ANY_CHECK_PASS,
        )
        assert Eligibility(ctx, eligible, "r").is_eligible()

    def test_discovery_error_retried(self, ctx):
        """Unknown types are retried and end as not eligible."""
        item = EligibleItem(api_version="example.com/v1", kind="Widget")
        assert not Eligibility(ctx, Eligible(checks=(item,)), "r").is_eligible()

    def test_discovery_error_fail_fast(self, cluster, retry):
        """With fail-fast on discovery the error propagates."""
        ctx = RunContext(cluster=cluster, retry=retry, fail_fast=FailFastRule.ON_DISCOVERY_ERROR)
        item = EligibleItem(api_version="example.com/v1", kind="Widget")
        with pytest.raises(DiscoveryError):
            Eligibility(ctx, Eligible(checks=(item,)), "r").is_eligible()

    def test_describe_is_json(self, ctx, cluster):
        cluster.create(configmap("a"))
        elig = Eligibility(ctx, Eligible(checks=(cm_item(),)), "r")
        elig.is_eligible()
        summary = json.loads(elig.describe())
        assert summary["grants"] == {"v1-ConfigMap": True}
        assert summary["attempts"] == 1
