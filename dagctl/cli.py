"""CLI entry point for dagctl.

Commands:
- dagctl validate: Check a graph file for structural errors
- dagctl status: Show an execution snapshot
- dagctl sync: Run one reconcile pass over snapshot files
- dagctl eval-rule: Evaluate a single match rule against a context
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from dagctl import __version__
from dagctl.cli_ui.status_renderer import StatusTableRenderer
from dagctl.config import ControllerConfig, build_engine, load_config
from dagctl.core.errors import StatusError
from dagctl.core.io import dump_model, load_execution, load_graph, load_jobs
from dagctl.core.models import MatchOperator, MatchRule
from dagctl.core.rules import rule_satisfied

console = Console()


def _parse_context(ctx: click.Context, param: click.Parameter, value: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated ``key=value`` options into a dict."""
    context = {}
    for item in value:
        key, sep, val = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got '{item}'")
        context[key] = val
    return context


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    help="Config file (default: .dagctl/config.yaml, then ~/.dagctl/config.yaml)",
)
@click.option("--log-level", help="Override the configured log level")
@click.pass_context
def main(ctx: click.Context, config_path: Path | None, log_level: str | None) -> None:
    """dagctl - execution status core for DAG workflow controllers."""
    try:
        config = load_config(config_path)
        if log_level:
            config = ControllerConfig.model_validate({**config.model_dump(), "log_level": log_level})
    except (StatusError, ValueError) as e:
        console.print(f"[red]Config error: {escape(str(e))}[/]")
        sys.exit(2)

    _setup_logging(config.log_level)
    ctx.obj = config


@main.command()
@click.argument("graph_file", type=click.Path(exists=True, path_type=Path))
def validate(graph_file: Path) -> None:
    """Validate a graph definition."""
    try:
        graph = load_graph(graph_file)
    except StatusError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        sys.exit(1)

    errors = graph.validate_graph()
    if errors:
        console.print(f"[red]Graph '{escape(graph.name)}' is invalid:[/]")
        for error in errors:
            console.print(f"  - {escape(error)}")
        sys.exit(1)

    console.print(f"[green]Graph '{escape(graph.name)}' is valid ({len(graph.vertices)} vertices)[/]")


@main.command()
@click.argument("execution_file", type=click.Path(exists=True, path_type=Path))
def status(execution_file: Path) -> None:
    """Show an execution snapshot."""
    try:
        execution = load_execution(execution_file)
    except StatusError as e:
        console.print(f"[red]{escape(str(e))}[/]")
        sys.exit(1)

    StatusTableRenderer(console).print_execution(execution)


@main.command()
@click.argument("graph_file", type=click.Path(exists=True, path_type=Path))
@click.argument("execution_file", type=click.Path(exists=True, path_type=Path))
@click.option("--jobs", "jobs_file", type=click.Path(exists=True, path_type=Path), help="Observed jobs")
@click.option(
    "--context",
    "-c",
    "context",
    multiple=True,
    callback=_parse_context,
    help="Rule context entry key=value (repeatable)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Write the updated execution here (default: overwrite EXECUTION_FILE)",
)
@click.pass_obj
def sync(
    config: ControllerConfig,
    graph_file: Path,
    execution_file: Path,
    jobs_file: Path | None,
    context: dict[str, str],
    output: Path | None,
) -> None:
    """Run one reconcile pass and write the execution back."""
    try:
        graph = load_graph(graph_file)
        errors = graph.validate_graph()
        if errors:
            console.print("[red]Graph is invalid:[/]")
            for error in errors:
                console.print(f"  - {escape(error)}")
            sys.exit(1)

        execution = load_execution(execution_file)
        jobs = load_jobs(jobs_file) if jobs_file else []

        engine = build_engine(config)
        engine.sync(execution, graph, jobs, context)
        eligible = engine.eligible_vertices(execution, graph, context)
    except StatusError as e:
        console.print(f"[red]Sync failed: {escape(str(e))}[/]")
        sys.exit(1)

    dump_model(execution, output or execution_file)

    StatusTableRenderer(console).print_execution(execution)
    if eligible:
        console.print(f"[yellow]Eligible to start:[/] {escape(', '.join(eligible))}")


@main.command("eval-rule")
@click.option("--key", "-k", required=True, help="Context key the rule inspects")
@click.option(
    "--operator",
    required=True,
    help=f"One of: {', '.join(op.value for op in MatchOperator)}",
)
@click.option("--value", "-v", "values", multiple=True, help="Rule value (repeatable)")
@click.option(
    "--context",
    "-c",
    "context",
    multiple=True,
    callback=_parse_context,
    help="Context entry key=value (repeatable)",
)
def eval_rule(key: str, operator: str, values: tuple[str, ...], context: dict[str, str]) -> None:
    """Evaluate a match rule; exit status 0 when satisfied, 1 otherwise."""
    rule = MatchRule(key=key, operator=operator, values=list(values))
    if rule_satisfied(rule, context):
        console.print("[green]satisfied[/]")
        return
    console.print("[red]not satisfied[/]")
    sys.exit(1)


if __name__ == "__main__":
    main()
