"""
CLI interface for drecipe.

Provides commands to run and validate Recipe/Job files, release a stuck
lock, and initialize configuration.
"""

import json
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.table import Table

from drecipe import __version__
from drecipe.config import EngineConfig
from drecipe.errors import DrecipeError
from drecipe.schemas import Recipe, RecipeStatus, TaskPhase
from drecipe.utils import console, print_error, print_success, print_warning

PHASE_STYLES = {
    TaskPhase.PASSED: "green",
    TaskPhase.WARNING: "yellow",
    TaskPhase.FAILED: "red",
}


@click.group()
@click.version_option(version=__version__, prog_name="drecipe")
@click.pass_context
def main(ctx):
    """
    drecipe - declarative cluster task recipes.

    Run Recipe/Job resources (assert, apply, create, delete, label, list,
    get tasks) against a Kubernetes cluster.
    """
    from drecipe.config import load_config
    from drecipe.utils import setup_logging

    ctx.ensure_object(dict)
    try:
        config = load_config()
        ctx.obj["config"] = config
    except Exception as e:
        # init can still run; commands that need config check ctx.obj
        ctx.obj["config_error"] = str(e)
        config = EngineConfig()
    setup_logging(
        log_file=config.log_file,
        log_level=config.log_level,
        log_format=config.log_format,
    )


def _require_config(ctx) -> EngineConfig:
    if "config" not in ctx.obj:
        click.echo(f"✗ Config not loaded: {ctx.obj.get('config_error', 'Unknown error')}", err=True)
        click.echo("Run 'drecipe init --force' to recreate the configuration file.", err=True)
        raise SystemExit(1)
    return ctx.obj["config"]


def _load_recipe_file(path: Path, namespace: Optional[str] = None) -> dict[str, Any]:
    try:
        with open(path, "r") as f:
            obj = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise click.UsageError(f"Invalid YAML in {path}: {e}")
    if not isinstance(obj, dict):
        raise click.UsageError(f"{path} does not contain a Recipe/Job object")
    if namespace:
        obj.setdefault("metadata", {})["namespace"] = namespace
    return obj


def _build_cluster(config: EngineConfig, dry_run: bool, seed: Optional[dict[str, Any]] = None):
    if dry_run:
        from drecipe.cluster import InMemoryCluster
        return InMemoryCluster(objects=[seed] if seed else None)
    from drecipe.kube import KubernetesCluster
    return KubernetesCluster(
        kubeconfig=config.kubeconfig,
        context=config.context,
        in_cluster=config.in_cluster,
    )


def _print_status(recipe: Recipe, status: RecipeStatus) -> None:
    table = Table(title=f"{recipe.kind} {recipe.namespace}/{recipe.name}: {status.phase.value}")
    table.add_column("Step", justify="right")
    table.add_column("Task")
    table.add_column("Phase")
    table.add_column("Time")
    table.add_column("Message")
    ordered = sorted(status.task_result_list.items(), key=lambda kv: kv[1].step)
    for name, result in ordered:
        style = PHASE_STYLES.get(result.phase, "")
        elapsed = result.execution_time.readable_value if result.execution_time else ""
        detail = result.timeout or result.warning or result.message
        table.add_row(
            str(result.step),
            f"[dim]{name}[/dim]" if result.internal else name,
            f"[{style}]{result.phase.value}[/{style}]",
            elapsed,
            detail,
        )
    console.print(table)
    counts = status.task_count
    console.print(
        f"total={counts.total} failed={counts.failed} "
        f"warning={counts.warning} skipped={counts.skipped}"
    )
    if status.reason:
        console.print(f"reason: {status.reason}")


@main.command("run")
@click.argument("recipe_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--namespace", "-n", help="Override metadata.namespace of the recipe")
@click.option("--timeout", type=float, help="Retry timeout in seconds")
@click.option("--interval", type=float, help="Retry interval in seconds")
@click.option("--dry-run", is_flag=True, help="Run against an in-memory cluster")
@click.option("--no-persist", is_flag=True, help="Don't write status back to the resource")
@click.option(
    "--output", "-o",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@click.pass_context
def run(ctx, recipe_file: Path, namespace, timeout, interval, dry_run: bool, no_persist: bool, output: str):
    """
    Run a Recipe/Job from a YAML file.

    Examples:

        drecipe run recipe.yaml

        drecipe run recipe.yaml --dry-run -o json

        drecipe run recipe.yaml -n team-a --timeout 120
    """
    from drecipe.context import RunContext
    from drecipe.retry import Retryable
    from drecipe.runner import RecipeRunner

    config = _require_config(ctx)
    obj = _load_recipe_file(recipe_file, namespace)
    try:
        recipe = Recipe.from_dict(obj)
    except DrecipeError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    retry = Retryable(
        timeout=config.timeout_seconds if timeout is None else timeout,
        interval=config.interval_seconds if interval is None else interval,
    )
    try:
        cluster = _build_cluster(config, dry_run, seed=obj)
    except DrecipeError as e:
        click.echo(f"✗ Failed to connect: {e}", err=True)
        raise SystemExit(1)

    runner = RecipeRunner(RunContext(cluster=cluster, retry=retry), recipe)
    persist = config.persist_status and not no_persist
    try:
        status, error = runner.reconcile(persist=persist)
    except DrecipeError as e:
        click.echo(f"✗ Failed to persist status: {e}", err=True)
        raise SystemExit(1)

    if output == "json":
        click.echo(json.dumps(status.to_dict(), indent=2))
    else:
        _print_status(recipe, status)

    resync = runner.resync_after(status, error)
    if resync is not None:
        click.echo(f"Resync after {resync:g}s")

    if error is not None:
        click.echo(f"✗ {recipe.name} errored: {error}", err=True)
        raise SystemExit(1)
    if status.is_failed:
        click.echo(f"✗ {recipe.name} {status.phase.value}", err=True)
        raise SystemExit(1)
    click.echo(f"✓ {recipe.name} {status.phase.value}")


@main.command("validate")
@click.argument("recipe_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def validate(recipe_file: Path):
    """Validate a Recipe/Job file without touching a cluster."""
    from drecipe.cluster import InMemoryCluster
    from drecipe.context import RunContext
    from drecipe.runner import RecipeRunner

    obj = _load_recipe_file(recipe_file)
    try:
        recipe = Recipe.from_dict(obj)
        RecipeRunner(RunContext(cluster=InMemoryCluster()), recipe).validate()
    except DrecipeError as e:
        print_error(str(e))
        raise SystemExit(1)
    print_success(f"{recipe.name}: {len(recipe.spec.tasks)} task(s) valid")


@main.command("unlock")
@click.argument("name")
@click.option("--namespace", "-n", default="default", show_default=True)
@click.pass_context
def unlock(ctx, name: str, namespace: str):
    """
    Force-release the lock of Recipe/Job NAME.

    Use this to re-run a run-once Recipe, or to clear a lock left behind
    by a crashed run.
    """
    from drecipe.context import RunContext
    from drecipe.lock import Lock

    config = _require_config(ctx)
    try:
        cluster = _build_cluster(config, dry_run=False)
        result = Lock(RunContext(cluster=cluster), name, namespace).must_unlock()
    except DrecipeError as e:
        print_error(f"Failed to unlock {namespace}/{name}: {e}")
        raise SystemExit(1)
    if result.message.endswith("Lock not found"):
        print_warning(result.message)
    else:
        print_success(result.message)


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize drecipe configuration."""
    from drecipe.config import get_drecipe_home

    home = get_drecipe_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(EngineConfig().to_dict(), sort_keys=False))
    click.echo(f"Initialized drecipe config at {cfg_path}")


if __name__ == "__main__":
    main()
