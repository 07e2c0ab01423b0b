# cli.py
from __future__ import annotations

import os
import sys
from pathlib import Path

import click

from rulegraph.dag import DagBuilder, Graph
from rulegraph.errors import RuleGraphError
from rulegraph.registry import RuleRegistry
from rulegraph.runner import plan_jobs, run_graph
from rulegraph.settings import DEFAULT_WORKERS, DEFAULT_WORKFLOW
from rulegraph.ui.console import Console, get_console, set_console
from rulegraph.workflow import find_workflow_files, load_workflow, parse_config_items


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    Discover workflow file from argument or default.

    Args:
        workflow_arg: Optional workflow argument from CLI

    Returns:
        Path to workflow file

    Raises:
        SystemExit: If workflow cannot be found or multiple workflows exist
    """
    console = get_console()

    # If workflow is explicitly provided, use it
    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix != ".py":
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  rulegraph run --workflow my_workflow.py",
            )
            sys.exit(1)
        return workflow_path

    # Otherwise, try to discover workflow
    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                f"  {DEFAULT_WORKFLOW}",
                "  *_workflow.py",
            ],
            suggestion=f"Create a workflow file:\n  {DEFAULT_WORKFLOW}\n\nOr specify a workflow explicitly:\n  rulegraph run --workflow my_workflow.py",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        file_list = "\n".join(f"  {f}" for f in workflow_files)
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[file_list],
            suggestion=f"Specify a workflow explicitly:\n  rulegraph run --workflow {DEFAULT_WORKFLOW}",
        )
        sys.exit(1)

    return workflow_files[0]


def _default_targets(registry: RuleRegistry, targets: tuple[str, ...]) -> list[str]:
    if targets:
        return list(targets)
    first = registry.default_target
    if first is None:
        raise click.UsageError("The workflow defines no rules.")
    return [first.name]


def _fail(ctx: click.Context, title: str, exc: Exception) -> None:
    console = get_console()
    if isinstance(exc, RuleGraphError):
        console.print_error(title, str(exc))
        if ctx.obj.get("debug", False):
            console.print_exception(exc)
    else:
        console.print_exception(exc)
    sys.exit(1)


def _load(ctx: click.Context, workflow: str | None, config_items: tuple[str, ...], directory: str | None):
    if directory:
        os.chdir(directory)
    workflow_path = discover_workflow(workflow)
    try:
        config = parse_config_items(config_items)
        registry = load_workflow(workflow_path, config=config)
    except Exception as e:
        _fail(ctx, "Failed to load workflow", e)
    return workflow_path, registry


def _build(ctx: click.Context, registry: RuleRegistry, targets: list[str], workers: int) -> Graph:
    try:
        return DagBuilder(registry, max_workers=workers).build(targets)
    except Exception as e:
        _fail(ctx, "Could not build the job graph", e)


workflow_option = click.option(
    "--workflow",
    default=None,
    help=f"Workflow file path (defaults to {DEFAULT_WORKFLOW} if present)",
)
config_option = click.option(
    "--config",
    "config_items",
    multiple=True,
    metavar="KEY=VALUE",
    help="Set a config value visible to the workflow as config[KEY] (repeatable)",
)
directory_option = click.option(
    "--directory",
    "-d",
    default=None,
    type=click.Path(exists=True, file_okay=False),
    help="Working directory; target paths are relative to it",
)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """rulegraph: wildcard rules in, job graph out."""
    # Initialize console with debug flag
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.argument("targets", nargs=-1)
@workflow_option
@config_option
@directory_option
@click.option("--workers", "-j", default=DEFAULT_WORKERS, show_default=True, type=click.IntRange(min=1), help="Number of parallel workers")
@click.option("--dry-run", "-n", is_flag=True, default=False, help="Print the job graph without running anything")
@click.option("--force", is_flag=True, default=False, help="Run every job even if its outputs are up to date")
@click.option("--keep-going", is_flag=True, default=False, help="Keep starting independent jobs after a failure")
@click.pass_context
def run(ctx, targets, workflow, config_items, directory, workers, dry_run, force, keep_going):
    """Build TARGETS (paths or rule names; defaults to the first rule)."""
    console = get_console()
    workflow_path, registry = _load(ctx, workflow, config_items, directory)

    try:
        requested = _default_targets(registry, targets)
    except click.UsageError as e:
        _fail(ctx, "Nothing to build", e)
    graph = _build(ctx, registry, requested, workers)

    if dry_run:
        console.print_plan(graph, plan_jobs(graph, force=force))
        return

    console.print_run_started(
        workflow=workflow_path.name,
        targets=requested,
        job_count=len(graph),
    )

    try:
        results = run_graph(graph, max_workers=workers, force=force, keep_going=keep_going)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        _fail(ctx, "Build failed", e)

    console.print_results(results)

    if any(v == "failed" for v in results.values()):
        sys.exit(1)


@cli.command(name="list")
@workflow_option
@config_option
@directory_option
@click.pass_context
def list_rules(ctx, workflow, config_items, directory):
    """List the workflow's rules and their output templates."""
    _workflow_path, registry = _load(ctx, workflow, config_items, directory)
    get_console().print_rules([(r.name, r.output_templates) for r in registry])


@cli.command()
@click.argument("targets", nargs=-1)
@workflow_option
@config_option
@directory_option
@click.pass_context
def dag(ctx, targets, workflow, config_items, directory):
    """Print the job graph as Graphviz DOT (pipe into `dot -Tpng`)."""
    _workflow_path, registry = _load(ctx, workflow, config_items, directory)
    try:
        requested = _default_targets(registry, targets)
    except click.UsageError as e:
        _fail(ctx, "Nothing to build", e)
    graph = _build(ctx, registry, requested, 1)
    click.echo(graph.to_dot(), nl=False)


if __name__ == "__main__":
    cli()
