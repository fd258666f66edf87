"""Tests for the drecipe CLI.

Tests cover:
- run --dry-run with table and json output
- Exit codes for failed and errored recipes
- validate
- unlock
"""

import json
from unittest.mock import patch

import pytest
import yaml
from click.testing import CliRunner

from drecipe.cli import main
from drecipe.cluster import InMemoryCluster

from conftest import configmap, recipe_obj


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def write_recipe(tmp_path):
    def _write(obj, name="recipe.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(obj))
        return path
    return _write


def json_output(output):
    return json.loads(output[output.index("{"): output.rindex("}") + 1])


class TestRun:
    """Tests for `drecipe run`."""

    def test_dry_run_table(self, runner, write_recipe):
        path = write_recipe(recipe_obj("r", [{"name": "make-cm", "create": {"state": configmap("cm")}}]))
        result = runner.invoke(main, ["run", str(path), "--dry-run"])
        assert result.exit_code == 0
        assert "make-cm" in result.output
        assert "✓ r Completed" in result.output

    def test_dry_run_json(self, runner, write_recipe):
        path = write_recipe(recipe_obj("r", [{"name": "make-cm", "create": {"state": configmap("cm")}}]))
        result = runner.invoke(main, ["run", str(path), "--dry-run", "-o", "json"])
        assert result.exit_code == 0
        status = json_output(result.output)
        assert status["phase"] == "Completed"
        assert status["taskResultList"]["make-cm"]["phase"] == "Passed"

    def test_namespace_override(self, runner, write_recipe):
        task = {"name": "make-cm", "create": {"state": configmap("cm", namespace="team-a")}}
        path = write_recipe(recipe_obj("r", [task]))
        result = runner.invoke(main, ["run", str(path), "--dry-run", "-n", "team-a", "-o", "json"])
        assert result.exit_code == 0
        assert "r-lock" in json_output(result.output)["taskResultList"]

    def test_task_error_exits_nonzero(self, runner, write_recipe):
        tasks = [
            {"name": "first", "create": {"state": configmap("cm")}},
            {"name": "second", "create": {"state": configmap("cm")}},
        ]
        path = write_recipe(recipe_obj("r", tasks))
        result = runner.invoke(main, ["run", str(path), "--dry-run", "-o", "json"])
        assert result.exit_code == 1
        assert json_output(result.output)["phase"] == "Error"
        assert "r errored" in result.output

    def test_resync_hint(self, runner, write_recipe):
        obj = recipe_obj("r", [], refresh={"resyncAfterSeconds": 30})
        result = runner.invoke(main, ["run", str(write_recipe(obj)), "--dry-run", "--no-persist"])
        assert result.exit_code == 0
        assert "Resync after 30s" in result.output

    def test_no_persist_skips_write(self, runner, write_recipe):
        cluster = InMemoryCluster()
        path = write_recipe(recipe_obj("r", []))
        with patch("drecipe.cli._build_cluster", return_value=cluster):
            result = runner.invoke(main, ["run", str(path), "--no-persist"])
        assert result.exit_code == 0
        # persisting would fail: the Recipe object doesn't exist in this cluster
        assert cluster.objects()[0]["metadata"]["name"] == "r-lock"

    def test_persist_missing_owner_fails(self, runner, write_recipe):
        path = write_recipe(recipe_obj("r", []))
        with patch("drecipe.cli._build_cluster", return_value=InMemoryCluster()):
            result = runner.invoke(main, ["run", str(path)])
        assert result.exit_code == 1
        assert "Failed to persist status" in result.output

    def test_invalid_recipe(self, runner, write_recipe):
        path = write_recipe({"kind": "Recipe", "metadata": {}})
        result = runner.invoke(main, ["run", str(path), "--dry-run"])
        assert result.exit_code == 1
        assert "Missing metadata.name" in result.output

    def test_not_a_mapping(self, runner, tmp_path):
        path = tmp_path / "recipe.yaml"
        path.write_text("- just\n- a list\n")
        result = runner.invoke(main, ["run", str(path), "--dry-run"])
        assert result.exit_code == 2


class TestValidate:
    """Tests for `drecipe validate`."""

    def test_valid(self, runner, write_recipe):
        path = write_recipe(recipe_obj("r", [{"name": "t", "delete": {"state": configmap("cm")}}]))
        result = runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 0
        assert "r: 1 task(s) valid" in result.output

    def test_invalid_task(self, runner, write_recipe):
        path = write_recipe(recipe_obj("r", [{"name": "t"}]))
        result = runner.invoke(main, ["validate", str(path)])
        assert result.exit_code == 1
        assert "Task needs one action" in result.output


class TestUnlock:
    """Tests for `drecipe unlock`."""

    def test_unlock_existing(self, runner):
        cluster = InMemoryCluster([configmap("r-lock", "team-a")])
        with patch("drecipe.cli._build_cluster", return_value=cluster):
            result = runner.invoke(main, ["unlock", "r", "-n", "team-a"])
        assert result.exit_code == 0
        assert "Delete: Lock" in result.output
        assert cluster.objects() == []

    def test_unlock_missing(self, runner):
        with patch("drecipe.cli._build_cluster", return_value=InMemoryCluster()):
            result = runner.invoke(main, ["unlock", "r"])
        assert result.exit_code == 0
        assert "Lock not found" in result.output
