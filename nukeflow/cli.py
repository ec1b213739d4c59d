"""
CLI interface for nukeflow.

Provides commands to validate and run command batches against the
simulated compositing host, and to inspect the operation registry.

Batch files are JSON or YAML: either a list of steps or a mapping with a
`steps` list and optional `failure_policy` / `max_concurrency` keys.
"""

import json
from pathlib import Path
from typing import Any, Optional

import click
import yaml
from rich.table import Table

from nukeflow import __version__
from nukeflow.errors import NukeflowError
from nukeflow.utils import (
    console,
    format_duration,
    load_batch_file,
    print_error,
    print_success,
    print_warning,
)

STATUS_STYLES = {
    "succeeded": "green",
    "failed": "red",
    "skipped": "yellow",
    "partial_success": "yellow",
}


@click.group()
@click.version_option(version=__version__, prog_name="nukeflow")
@click.pass_context
def main(ctx):
    """
    nukeflow - Command-batch execution for Nuke compositing tools.

    Validate and run batches of node-graph operations.
    """
    from nukeflow.config import load_config

    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config()
    except (FileNotFoundError, NukeflowError) as e:
        # Commands fall back to defaults; `init` creates the file
        ctx.obj["config_error"] = str(e)


def _get_config(ctx):
    from nukeflow.config import NukeflowConfig

    return ctx.obj.get("config") or NukeflowConfig()


def _first_given(*values: Any) -> Any:
    """Return the first value that is not None (CLI flag, then batch file, then config)."""
    return next((v for v in values if v is not None), None)


def _load_submission(batch_file: Path) -> tuple[Any, dict[str, Any]]:
    """Split a batch file into its steps payload and file-level options."""
    try:
        data = load_batch_file(batch_file)
    except (FileNotFoundError, ValueError) as e:
        print_error(str(e))
        raise SystemExit(1)

    options: dict[str, Any] = {}
    if isinstance(data, dict):
        for key in ("failure_policy", "max_concurrency"):
            if key in data:
                options[key] = data[key]
    return data, options


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize nukeflow configuration."""
    from nukeflow.config import default_config_dict, get_nukeflow_home

    home = get_nukeflow_home()
    if not home.exists():
        home.mkdir(parents=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(default_config_dict(home), sort_keys=False))

    env_path = home / ".env"
    if not env_path.exists():
        env_path.write_text("# NUKEFLOW_MAX_CONCURRENCY=4\n# NUKEFLOW_FAILURE_POLICY=continue_independent\n")

    click.echo(f"Initialized nukeflow config at {cfg_path}")


@main.command("run")
@click.argument("batch_file", type=click.Path(path_type=Path))
@click.option(
    "--policy",
    help="Failure policy: halt_on_first_failure or continue_independent",
)
@click.option("--concurrency", type=int, help="Maximum number of steps running at once")
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.pass_context
def run(ctx, batch_file: Path, policy: Optional[str], concurrency: Optional[int], as_json: bool):
    """
    Run a batch against the simulated host.

    Examples:

        nukeflow run comp.yaml

        nukeflow run comp.json --policy continue_independent --concurrency 4

        nukeflow run comp.json --json
    """
    from nukeflow.executor import BatchExecutor, FailurePolicy
    from nukeflow.registry import OperationRegistry
    from nukeflow.resolver import build_graph, parse_batch
    from nukeflow.schemas import BatchStatus
    from nukeflow.utils import setup_logging

    config = _get_config(ctx)
    if "config_error" in ctx.obj and not as_json:
        print_warning("No config loaded, using defaults. Run 'nukeflow init' to create one.")

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.log_path,
        console_output=not as_json,
    )

    data, file_options = _load_submission(batch_file)
    try:
        failure_policy = FailurePolicy.from_string(
            _first_given(policy, file_options.get("failure_policy"), config.failure_policy)
        )
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--policy")
    max_concurrency = _first_given(
        concurrency, file_options.get("max_concurrency"), config.max_concurrency
    )
    if isinstance(max_concurrency, bool) or not isinstance(max_concurrency, int) or max_concurrency < 1:
        raise click.BadParameter(
            f"must be an integer >= 1, got {max_concurrency!r}",
            param_hint="--concurrency",
        )

    registry = OperationRegistry.create_default()
    try:
        graph = build_graph(parse_batch(data), registry)
    except NukeflowError as e:
        if as_json:
            click.echo(json.dumps({"error": e.to_dict()}, indent=2))
        else:
            print_error(f"{e.kind.value}: {e}")
        raise SystemExit(1)

    executor = BatchExecutor(registry, max_concurrency=max_concurrency)
    report = executor.execute(graph, failure_policy)

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _print_report(report)

    if report.status == BatchStatus.FAILED:
        raise SystemExit(1)


def _print_report(report) -> None:
    table = Table(title=f"Batch {report.batch_id}")
    table.add_column("Step")
    table.add_column("Operation")
    table.add_column("Status")
    table.add_column("Duration", justify="right")
    table.add_column("Detail")

    for result in report.steps:
        style = STATUS_STYLES.get(result.status.value, "")
        if result.error is not None:
            detail = f"{result.error['kind']}: {result.error['message']}"
        else:
            detail = json.dumps(result.output, default=str)
        table.add_row(
            result.step_id,
            result.operation,
            f"[{style}]{result.status.value}[/{style}]",
            format_duration(result.duration_ms),
            detail,
        )

    console.print(table)
    summary = (
        f"{len(report.succeeded_steps)} succeeded, "
        f"{len(report.failed_steps)} failed, "
        f"{len(report.skipped_steps)} skipped"
    )
    if report.status.value == "succeeded":
        print_success(f"Batch succeeded ({summary})")
    elif report.status.value == "failed":
        print_error(f"Batch failed ({summary})")
    else:
        print_warning(f"Batch partially succeeded ({summary})")


@main.command("validate")
@click.argument("batch_file", type=click.Path(path_type=Path))
def validate(batch_file: Path):
    """Check a batch for unknown operations, bad references and invalid arguments."""
    from nukeflow.registry import OperationRegistry
    from nukeflow.resolver import build_graph, parse_batch

    data, _ = _load_submission(batch_file)
    registry = OperationRegistry.create_default()
    try:
        graph = build_graph(parse_batch(data), registry)
    except NukeflowError as e:
        print_error(f"{e.kind.value}: {e}")
        raise SystemExit(1)

    for step_id in graph.order:
        invocation = graph.get(step_id)
        deps = graph.dependencies.get(step_id, ())
        after = f"  (after {', '.join(deps)})" if deps else ""
        click.echo(f"  {step_id}: {invocation.operation}{after}")
    print_success(f"Batch is valid: {len(graph)} steps")


@main.group("ops")
def ops_group():
    """Inspect registered operations."""
    pass


@ops_group.command("list")
@click.option("--category", help="Filter by category (basic, organization, vfx, project)")
def list_ops(category: Optional[str] = None):
    """List available operations."""
    from nukeflow.registry import OperationRegistry

    registry = OperationRegistry.create_default()
    categories = registry.categories()

    if category:
        if category not in categories:
            click.echo(f"No operations in category '{category}'. Available: {', '.join(categories)}")
            return
        categories = [category]

    for cat in categories:
        click.echo(f"{cat}:")
        for spec in registry.list_operations(cat):
            marker = " (read-only)" if spec.side_effect_free else ""
            click.echo(f"  {spec.name}{marker}")


@ops_group.command("show")
@click.argument("name")
def show_op(name: str):
    """Show an operation's contract and JSON schemas."""
    from nukeflow.registry import OperationRegistry

    registry = OperationRegistry.create_default()
    try:
        spec = registry.lookup(name)
    except NukeflowError as e:
        click.echo(f"✗ {e}", err=True)
        raise SystemExit(1)

    click.echo(json.dumps(spec.describe(), indent=2))


if __name__ == "__main__":
    main()
