"""CLI entry point for batch-transcription."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Annotated, Coroutine

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from temporalio.client import Client, WorkflowFailureError
from temporalio.exceptions import ApplicationError
from temporalio.service import RPCError

from core.config import ConfigError, Settings, load_settings
from core.models import TranscriptionRequest

app = typer.Typer(
    name="batch-transcription",
    help="Submit, monitor and save long-running transcription jobs on Temporal",
)
console = Console()

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

ConfigOption = Annotated[
    Path | None, typer.Option("--config", help="Path to settings YAML (default: environment)")
]


def configure_logging(level: str) -> None:
    """Route all logging through rich."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main(
    log_level: Annotated[str, typer.Option(help="Logging level")] = "INFO",
):
    """Durable batch transcription."""
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise typer.BadParameter(f"must be one of {', '.join(LOG_LEVELS)}", param_hint="--log-level")
    configure_logging(level)


# =============================================================================
# Helpers
# =============================================================================


def _load_settings(config_path: Path | None) -> Settings:
    try:
        return load_settings(config_path)
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        for detail in e.details:
            console.print(f"  [dim]• {detail}[/dim]")
        raise typer.Exit(1)


async def _connect(settings: Settings) -> Client:
    """Connect to Temporal, exiting cleanly if the server cannot be reached."""
    from orchestrators.temporal.client import get_client

    try:
        return await get_client(settings.temporal.address, settings.temporal.namespace)
    except (ConnectionError, RuntimeError) as e:
        # Client.connect reports an unreachable server as a RuntimeError
        console.print(f"[red]Error: Cannot reach Temporal server:[/red] {escape(str(e))}")
        console.print("[dim]Make sure Temporal is running: temporal server start-dev[/dim]")
        raise typer.Exit(1)


def _run(coro: Coroutine):
    """Run a coroutine, turning Temporal service errors into a clean exit."""
    try:
        return asyncio.run(coro)
    except RPCError as e:
        console.print(f"[red]Temporal error:[/red] {escape(str(e))}")
        raise typer.Exit(1)


def _print_failure(error: WorkflowFailureError) -> None:
    cause = error.cause
    if isinstance(cause, ApplicationError):
        console.print(f"[red]✗ {cause.type}:[/red] {escape(cause.message)}")
    else:
        console.print(f"[red]✗ Workflow failed:[/red] {cause or error}")


def _display_outcome(outcome: dict) -> None:
    """Display a transcription outcome.

    Args:
        outcome: TranscriptionOutcome as dict
    """
    console.print(
        Panel(
            f"[bold]Request:[/bold] {outcome.get('request_id')}\n"
            f"[bold]Status URL:[/bold] {outcome.get('status_url')}\n"
            f"[bold]Submission attempts:[/bold] {outcome.get('submission_attempts', 0)}\n"
            f"[bold]Status checks:[/bold] {outcome.get('poll_attempts', 0)}",
            title="Transcription Succeeded",
            border_style="green",
        )
    )

    saved = outcome.get("saved") or {}
    table = Table(title="Saved Outputs")
    table.add_column("Kind", style="cyan")
    table.add_column("Key", style="green")
    table.add_column("Location")
    table.add_row("json", saved.get("json_key", "-"), saved.get("json_uri", "-"))
    table.add_row("text", saved.get("text_key", "-"), saved.get("text_uri", "-"))
    console.print(table)


# =============================================================================
# Commands
# =============================================================================


@app.command()
def worker(config_path: ConfigOption = None):
    """Run a worker that executes transcription workflows and activities."""
    from orchestrators.temporal.worker import run_worker

    settings = _load_settings(config_path)

    async def _worker():
        client = await _connect(settings)
        await run_worker(settings, client=client)

    try:
        _run(_worker())
    except KeyboardInterrupt:
        # Already handled by signal handler
        pass


@app.command()
def trigger(
    event_path: Annotated[
        Path | None, typer.Option("--event", help="Notification JSON file")
    ] = None,
    event_id: Annotated[str | None, typer.Option("--id", help="Notification id")] = None,
    subject: Annotated[str | None, typer.Option(help="Audio object reference")] = None,
    url: Annotated[str | None, typer.Option(help="URL the provider reads audio from")] = None,
    wait: Annotated[bool, typer.Option(help="Wait for the workflow to finish")] = False,
    config_path: ConfigOption = None,
):
    """Start a transcription workflow for one notification."""
    if event_path is not None:
        try:
            event = json.loads(event_path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            console.print(f"[red]Cannot read notification {event_path}:[/red] {escape(str(e))}")
            raise typer.Exit(1)
    else:
        event = {"id": event_id, "subject": subject, "data": {"url": url}}

    settings = _load_settings(config_path)
    try:
        request = TranscriptionRequest.from_event(event, settings.timings)
    except ValueError as e:
        console.print(f"[red]Invalid notification:[/red] {escape(str(e))}")
        raise typer.Exit(1)

    async def _trigger():
        from orchestrators.temporal.client import start_transcription_workflow

        client = await _connect(settings)
        handle = await start_transcription_workflow(
            request, client, task_queue=settings.temporal.task_queue
        )
        console.print(f"[green]✓[/green] Workflow started: [cyan]{handle.id}[/cyan]")

        if not wait:
            return
        with console.status("Waiting for transcription..."):
            try:
                outcome = await handle.result()
            except WorkflowFailureError as e:
                _print_failure(e)
                raise typer.Exit(1)
        _display_outcome(outcome)

    _run(_trigger())


@app.command()
def consume(
    source: Annotated[
        Path | None, typer.Argument(help="File of JSON notifications, one per line (default: stdin)")
    ] = None,
    config_path: ConfigOption = None,
):
    """Start one workflow per notification read from a file or stdin."""
    settings = _load_settings(config_path)

    if source is not None:
        try:
            lines = source.read_text().splitlines()
        except OSError as e:
            console.print(f"[red]Cannot read {source}:[/red] {escape(str(e))}")
            raise typer.Exit(1)
    else:
        lines = sys.stdin.read().splitlines()

    async def _consume():
        from orchestrators.temporal.client import consume_notifications

        client = await _connect(settings)
        return await consume_notifications(
            lines, client, task_queue=settings.temporal.task_queue, timings=settings.timings
        )

    result = _run(_consume())

    for workflow_id in result.started:
        console.print(f"[green]✓[/green] {workflow_id}")
    console.print(
        f"\n[dim]Started {len(result.started)} workflows, "
        f"rejected {len(result.rejected)} notifications[/dim]"
    )
    if result.rejected:
        raise typer.Exit(1)


@app.command()
def status(
    workflow_id: Annotated[str, typer.Argument(help="Workflow ID to inspect")],
    config_path: ConfigOption = None,
):
    """Show the status of a transcription workflow."""
    settings = _load_settings(config_path)

    async def _status():
        from orchestrators.temporal.client import get_workflow_status

        client = await _connect(settings)
        return await get_workflow_status(workflow_id, client)

    info = _run(_status())

    status_style = {
        "running": "yellow",
        "completed": "green",
        "failed": "red",
    }.get(info.status.value, "dim")

    lines = [
        f"[bold]Status:[/bold] [{status_style}]{info.status.value}[/{status_style}]",
        f"[bold]Run:[/bold] {info.run_id or '-'}",
    ]
    if info.state:
        lines.append(f"[bold]State:[/bold] {info.state}")
    if info.monitor_state:
        lines.append(f"[bold]Monitor:[/bold] {info.monitor_state}")
    if info.last_status:
        lines.append(f"[bold]Provider status:[/bold] {info.last_status}")
    if info.error:
        kind = f"{info.error_type}: " if info.error_type else ""
        lines.append(f"[bold]Error:[/bold] {kind}{info.error}")

    console.print(Panel("\n".join(lines), title=info.workflow_id, border_style=status_style))

    if info.result:
        _display_outcome(info.result)


@app.command()
def result(
    workflow_id: Annotated[str, typer.Argument(help="Workflow ID")],
    config_path: ConfigOption = None,
):
    """Wait for a transcription workflow and show its outcome."""
    settings = _load_settings(config_path)

    async def _result():
        from orchestrators.temporal.client import get_workflow_result

        client = await _connect(settings)
        return await get_workflow_result(workflow_id, client)

    try:
        outcome = _run(_result())
    except WorkflowFailureError as e:
        _print_failure(e)
        raise typer.Exit(1)

    _display_outcome(outcome)


@app.command()
def cancel(
    workflow_id: Annotated[str, typer.Argument(help="Workflow ID to cancel")],
    config_path: ConfigOption = None,
):
    """Request cancellation of a transcription workflow."""
    settings = _load_settings(config_path)

    async def _cancel():
        from orchestrators.temporal.client import cancel_workflow

        client = await _connect(settings)
        return await cancel_workflow(workflow_id, client)

    if _run(_cancel()):
        console.print(f"[green]✓[/green] Cancellation requested: [cyan]{workflow_id}[/cyan]")
    else:
        console.print(f"[red]Workflow not found: {workflow_id}[/red]")
        raise typer.Exit(1)


@app.command(name="list")
def list_cmd(
    limit: Annotated[int, typer.Option(help="Maximum workflows to show")] = 20,
    config_path: ConfigOption = None,
):
    """List transcription workflows."""
    settings = _load_settings(config_path)

    async def _list():
        from orchestrators.temporal.client import list_workflows

        client = await _connect(settings)
        return await list_workflows(client, limit=limit)

    workflows = _run(_list())

    if not workflows:
        console.print("[yellow]No transcription workflows found[/yellow]")
        return

    table = Table(title="Transcription Workflows")
    table.add_column("Workflow ID", style="cyan", no_wrap=True)
    table.add_column("Run ID", style="dim")
    table.add_column("Status", justify="center")

    for info in workflows:
        table.add_row(info.workflow_id, info.run_id or "-", info.status.value)

    console.print(table)
    console.print(f"\n[dim]Showing {len(workflows)} workflows[/dim]")


if __name__ == "__main__":
    app()
