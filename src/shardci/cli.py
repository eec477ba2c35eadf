"""shardci CLI: top-level command group."""

from __future__ import annotations

import asyncio
import dataclasses
import json
import logging
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from shardci import __version__
from shardci.config import ShardciConfig, load_config, validate_config
from shardci.errors import ConfigurationError
from shardci.models import WorkerContext
from shardci.orchestrator import CIOrchestrator
from shardci.reporters.terminal import reporter
from shardci.runner.tasks import assign_tasks
from shardci.runner.tests import relative_test_path
from shardci.sharding.discovery import discover_test_files
from shardci.sharding.splitter import shard
from shardci.utils.ci_context import detect_ci_provider, detect_worker_context

logger = logging.getLogger(__name__)
console = Console()


def _configure_logging(*, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _resolve_worker_context(
    node_total: int | None,
    node_index: int | None,
    worker_id: str | None,
) -> WorkerContext:
    """Build the worker context from CLI flags, falling back to the environment."""
    if (node_total is None) != (node_index is None):
        msg = "--node-total and --node-index must be given together"
        raise click.UsageError(msg)

    try:
        if node_total is not None and node_index is not None:
            return WorkerContext(
                total=node_total,
                index=node_index,
                identity=worker_id or f"{detect_ci_provider()}-{node_index}",
            )
        context = detect_worker_context()
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e

    if worker_id:
        return dataclasses.replace(context, identity=worker_id)
    return context


def _load_config_or_abort(path: str) -> ShardciConfig:
    try:
        return load_config(path)
    except (ConfigurationError, yaml.YAMLError, ValueError) as e:
        reporter.print_error(f"Failed to load configuration: {e}")
        raise click.Abort from e


def _apply_overrides(
    config: ShardciConfig,
    *,
    source_root: str | None,
    results_dir: str | None,
) -> None:
    if source_root:
        config.project.source_root = source_root
    if results_dir:
        config.output.results_dir = results_dir


def _worker_options(func: Any) -> Any:
    """Attach --node-total / --node-index / --worker-id to a command."""
    func = click.option(
        "--worker-id",
        type=str,
        default=None,
        help="Worker identity used in progress lines (default: <ci>-<index>).",
    )(func)
    func = click.option(
        "--node-index",
        type=int,
        default=None,
        help="Zero-based index of this worker (default: from CI environment).",
    )(func)
    return click.option(
        "--node-total",
        type=int,
        default=None,
        help="Total number of parallel workers (default: from CI environment).",
    )(func)


_path_option = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.version_option(version=__version__, prog_name="shardci")
@click.pass_context
def cli(ctx: click.Context, *, verbose: bool) -> None:
    """shardci: sharded CI worker for package test suites."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _configure_logging(verbose=verbose)


@cli.command()
@_path_option
@click.option("--source-root", type=str, default=None, help="Directory searched for tests.")
@click.option("--results-dir", type=str, default=None, help="Directory for logs and results.")
@_worker_options
@click.pass_context
def run(ctx: click.Context, **kwargs: Any) -> None:
    """Run this worker's environment setup, pre-test tasks and test shard.

    Exits 0 when every assigned task and test passed, 1 otherwise.
    """
    context = _resolve_worker_context(
        kwargs.get("node_total"), kwargs.get("node_index"), kwargs.get("worker_id")
    )
    config = _load_config_or_abort(kwargs["path"])
    _apply_overrides(
        config,
        source_root=kwargs.get("source_root"),
        results_dir=kwargs.get("results_dir"),
    )

    errors = validate_config(config)
    if errors:
        for error in errors:
            reporter.print_error(error)
        raise click.UsageError(f"Invalid configuration ({len(errors)} error(s))")

    orchestrator = CIOrchestrator(config, context, reporter=reporter)
    exit_code = asyncio.run(orchestrator.run())
    ctx.exit(exit_code)


@cli.command("shard")
@_path_option
@click.option("--source-root", type=str, default=None, help="Directory searched for tests.")
@click.option("--json-output", "as_json", is_flag=True, help="Output a JSON list of paths.")
@_worker_options
def shard_command(**kwargs: Any) -> None:
    """List the test files this worker would run, without running them."""
    context = _resolve_worker_context(
        kwargs.get("node_total"), kwargs.get("node_index"), kwargs.get("worker_id")
    )
    config = _load_config_or_abort(kwargs["path"])
    _apply_overrides(config, source_root=kwargs.get("source_root"), results_dir=None)

    source_root = config.source_root_path
    try:
        discovered = discover_test_files(
            source_root,
            pattern=config.tests.pattern,
            include=config.tests.include,
            exclude=config.tests.exclude,
        )
    except ConfigurationError as e:
        raise click.UsageError(str(e)) from e

    assigned = [
        relative_test_path(path, source_root)
        for path in shard(discovered, context.total, context.index)
    ]

    if kwargs["as_json"]:
        click.echo(
            json.dumps(
                {
                    "worker": context.identity,
                    "index": context.index,
                    "total": context.total,
                    "discovered": len(discovered),
                    "tests": assigned,
                },
                indent=2,
            )
        )
        return

    reporter.print_shard_table(context, assigned, len(discovered))


@cli.command("tasks")
@_path_option
@click.option("--json-output", "as_json", is_flag=True, help="Output JSON instead of a table.")
@_worker_options
def tasks_command(**kwargs: Any) -> None:
    """Show how pre-test tasks are distributed across workers."""
    context = _resolve_worker_context(
        kwargs.get("node_total"), kwargs.get("node_index"), kwargs.get("worker_id")
    )
    config = _load_config_or_abort(kwargs["path"])

    assignment = {
        index: assign_tasks(config.tasks, dataclasses.replace(context, index=index))
        for index in range(context.total)
    }

    if kwargs["as_json"]:
        click.echo(
            json.dumps(
                {str(index): [t.name for t in tasks] for index, tasks in assignment.items()},
                indent=2,
            )
        )
        return

    reporter.print_task_table(context, assignment)


@cli.group("config")
def config_group() -> None:
    """Inspect `.shardci.yml` configuration."""


@config_group.command("show")
@_path_option
@click.option("--json-output", "as_json", is_flag=True, help="Output as JSON instead of YAML.")
def config_show(path: str, *, as_json: bool) -> None:
    """Display the resolved configuration."""
    config = _load_config_or_abort(path)
    config_dict = dataclasses.asdict(config)
    config_dict.pop("raw", None)

    if as_json:
        click.echo(json.dumps(config_dict, indent=2))
        return

    console.print()
    console.print("[bold cyan]Configuration:[/bold cyan]")
    console.print()
    click.echo(yaml.safe_dump(config_dict, sort_keys=False, default_flow_style=False))


@config_group.command("validate")
@_path_option
def config_validate(path: str) -> None:
    """Validate `.shardci.yml`.

    Example:
      shardci config validate
    """
    config = _load_config_or_abort(path)
    errors = validate_config(config)

    if not errors:
        reporter.print_success("Configuration is valid!")
        return

    reporter.print_error(f"Found {len(errors)} configuration error(s):")
    console.print()
    for idx, error in enumerate(errors, start=1):
        console.print(f"  {idx}. [red]{error}[/red]")
    console.print()
    raise click.Abort


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
