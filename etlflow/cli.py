"""Command line interface for running ETL flows."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

import typer

from .config import EtlFlowConfig, load_config
from .contracts import TaskContext
from .errors import EtlFlowError, StepExecutionError
from .flows import get_flow_repository
from .observers import LoggingObserver
from .persistence import get_run_log_store
from .runner import FlowRunner
from .steps.registry import import_step_modules

logger = logging.getLogger(__name__)

app = typer.Typer(help="CLI for etlflow data flows")

# Command groups
flow_app = typer.Typer(help="Commands for running and listing flows")
run_app = typer.Typer(help="Commands for inspecting the run log")

app.add_typer(flow_app, name="flow")
app.add_typer(run_app, name="run")

ConfigOption = typer.Option(None, "--config", "-c", help="Path to etlflow.yaml")


@app.callback()
def main() -> None:
    """etlflow CLI entry point."""
    pass


def _setup(config_path: Optional[str]) -> EtlFlowConfig:
    config = load_config(config_path)
    logging.basicConfig(level=config.log_level.upper())
    import_step_modules(config.step_modules)
    return config


def _parse_params(params: List[str]) -> dict:
    parsed = {}
    for param in params:
        name, sep, value = param.partition("=")
        if not sep or not name.strip():
            raise typer.BadParameter(f"expected name=value, got {param!r}")
        parsed[name.strip()] = value
    return parsed


@flow_app.command("run")
def flow_run(
    aliases: str = typer.Argument(..., help="Comma separated flow aliases or UIDs"),
    run_uid: Optional[str] = typer.Option(
        None, "--run-uid", help="Comma separated flow run UIDs, one per flow"
    ),
    param: List[str] = typer.Option(
        [], "--param", "-p", help="Task parameter as name=value, may be repeated"
    ),
    config_path: Optional[str] = ConfigOption,
) -> None:
    """
    Run one or more ETL flows and print their progress.

    Flows are run one after another. A step error that stops a flow ends
    the command with exit code 1; the run log keeps the details.

    Example:
        etlflow flow run load_customers
        etlflow flow run extract,load --run-uid uid-1,uid-2 -p since=2024-01-01
    """
    config = _setup(config_path)
    task = TaskContext(parameters=_parse_params(param))
    runner = FlowRunner(
        get_flow_repository(config),
        get_run_log_store(config.database_url),
        config=config,
        observers=[LoggingObserver(logging.DEBUG)],
    )

    async def _run() -> None:
        stream = runner.run(aliases, run_uid, task)
        try:
            async for message in stream:
                typer.echo(message, nl=False)
        finally:
            await stream.aclose()

    try:
        asyncio.run(_run())
    except StepExecutionError as exc:
        typer.secho(
            f"\n✗ ERROR: {exc.message} (see log-ID {exc.log_id} for details)",
            fg=typer.colors.RED,
        )
        raise typer.Exit(code=1)
    except EtlFlowError as exc:
        typer.secho(f"✗ {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@flow_app.command("list")
def flow_list(config_path: Optional[str] = ConfigOption) -> None:
    """List the flows known to the configured flow repository."""
    config = _setup(config_path)
    try:
        flows = asyncio.run(get_flow_repository(config).list_flows())
    except EtlFlowError as exc:
        typer.secho(f"✗ {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    if not flows:
        typer.echo("No flows found")
        return
    for flow in flows:
        version = f":{flow.version}" if flow.version else ""
        typer.echo(f"{flow.alias}{version}\t{flow.uid}\t{flow.display_name}")


@run_app.command("list")
def run_list(config_path: Optional[str] = ConfigOption) -> None:
    """
    List flow runs recorded in the run log, newest first.

    Example:
        etlflow run list
        # Output: 5b0c...    2024-01-01 10:00:00+00:00    3 steps    0 errors
    """
    config = _setup(config_path)
    store = get_run_log_store(config.database_url)
    runs = asyncio.run(store.list_flow_runs())
    if not runs:
        typer.echo("No flow runs found")
        return
    for summary in runs:
        typer.echo(
            f"{summary.flow_run_uid}\t{summary.started_at}\t"
            f"{summary.steps} steps\t{summary.errors} errors"
        )


@run_app.command("show")
def run_show(flow_run_uid: str, config_path: Optional[str] = ConfigOption) -> None:
    """Show the step runs of a single flow run."""
    config = _setup(config_path)
    store = get_run_log_store(config.database_url)
    records = asyncio.run(store.list_for_flow_run(flow_run_uid))
    if not records:
        typer.echo("Flow run not found")
        raise typer.Exit(code=1)
    typer.echo(f"Flow run {flow_run_uid}")
    for record in records:
        line = f"{record.position}. {record.step_name}: {record.status}"
        if record.result_count is not None:
            line += f" ({record.result_count} rows)"
        if record.error_log_id:
            line += f" [log-ID {record.error_log_id}] {record.error_message}"
        if record.invalidated_flag:
            line += " (invalidated)"
        typer.echo(f"- {line}  step_run_uid={record.step_run_uid}")


@run_app.command("invalidate")
def run_invalidate(
    step_run_uid: str, config_path: Optional[str] = ConfigOption
) -> None:
    """Exclude a step run from future incremental lookups."""
    config = _setup(config_path)
    store = get_run_log_store(config.database_url)
    if not asyncio.run(store.invalidate(step_run_uid)):
        typer.echo("Step run not found")
        raise typer.Exit(code=1)
    logger.info(f"Invalidated step run {step_run_uid}")
    typer.echo(f"Invalidated step run {step_run_uid}")
