"""Command-line interface for clipboard session research."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from session_research import __version__
from session_research.agents import HTTPWorkflowExecutor, PydanticAIWorkflowExecutor, WorkflowExecutor
from session_research.core.config import config as global_config
from session_research.core.events import SessionEvent, SessionEventBus
from session_research.core.logging import configure_logging
from session_research.models import ClipboardItem, ProgressEvent, Session, SessionResearchArtifact
from session_research.services import InMemorySessionRepository, SessionManager

console = Console(force_terminal=True)


def load_items(path: Path) -> list[ClipboardItem]:
    """Read captured items from a JSON list (or ``{"items": [...]}``)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("items", [])
    if not isinstance(data, list):
        raise click.BadParameter("expected a JSON list of clipboard items", param_hint="FILE")
    try:
        items = [ClipboardItem.model_validate(raw) for raw in data]
    except ValidationError as e:
        raise click.BadParameter(f"invalid clipboard item: {e}", param_hint="FILE") from e
    return sorted(items, key=lambda item: item.timestamp)


def build_executor(kind: str, model: str | None, server_url: str | None) -> WorkflowExecutor | None:
    if kind == "agent":
        return PydanticAIWorkflowExecutor(model)
    if kind == "http":
        return HTTPWorkflowExecutor(server_url)
    return None


def sessions_table(sessions: list[Session], counts: dict[str, int]) -> Table:
    table = Table(title="Sessions", border_style="cyan")
    table.add_column("Session", style="dim")
    table.add_column("Type", style="cyan")
    table.add_column("Label", style="bold")
    table.add_column("Status", style="green")
    table.add_column("Items", justify="right")
    table.add_column("Summary")
    for session in sessions:
        table.add_row(
            session.id[:8],
            session.session_type.display,
            session.session_label,
            session.status.value,
            str(counts.get(session.id, 0)),
            str(session.context_summary.get("sessionSummary", "")),
        )
    return table


def display_artifact(session: Session, artifact: SessionResearchArtifact) -> None:
    lines = [
        f"[bold]Objective:[/bold] {artifact.research_objective}",
        f"[bold]Quality:[/bold] {artifact.research_quality.value}  "
        f"[bold]Strategy:[/bold] {artifact.consolidation_strategy.value}  "
        f"[bold]Sources:[/bold] {artifact.total_sources}",
        "",
        artifact.comprehensive_summary,
    ]
    if artifact.key_findings:
        lines.append("")
        lines.append("[bold yellow]Key findings:[/bold yellow]")
        lines.extend(f"  • {finding}" for finding in artifact.key_findings)
    if artifact.next_steps:
        lines.append("")
        lines.append("[bold green]Next steps:[/bold green]")
        lines.extend(f"  {i}. {step}" for i, step in enumerate(artifact.next_steps, 1))
    console.print(Panel("\n".join(lines), title=session.session_label, border_style="magenta"))


async def research_with_progress(manager: SessionManager, session: Session) -> SessionResearchArtifact | None:
    with Progress(
        SpinnerColumn(),
        TextColumn("[bold cyan]{task.description}"),
        BarColumn(bar_width=30),
        TextColumn("{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(session.session_label, total=100)

        def on_progress(event: ProgressEvent) -> None:
            description = f"{event.phase.value}: {event.message}" if event.message else event.phase.value
            progress.update(task_id, completed=event.progress, description=description[:80])

        return await manager.perform_session_research(session.id, on_progress)


async def replay(
    path: Path,
    *,
    research: bool,
    executor_kind: str,
    model: str | None,
    server_url: str | None,
    show_events: bool,
) -> None:
    items = load_items(path)
    repository = InMemorySessionRepository()
    event_bus = SessionEventBus()
    if show_events:

        def print_event(event: SessionEvent) -> None:
            console.print(f"[dim]{type(event).__name__} {event.session_id[:8]}[/dim]")

        event_bus.subscribe(SessionEvent, print_event)

    executor = build_executor(executor_kind, model, server_url)
    manager = SessionManager(
        repository,
        executor,
        config=global_config.model_copy(update={"auto_research": False}),
        event_bus=event_bus,
    )
    await manager.start()
    try:
        for item in items:
            await manager.process_clipboard_item(item)

        sessions = await repository.list_sessions()
        counts = {s.id: await repository.get_item_count(s.id) for s in sessions}
        console.print(sessions_table(sessions, counts))

        if research:
            for session in sessions:
                if counts[session.id] < manager.config.research_min_items:
                    continue
                artifact = await research_with_progress(manager, session)
                if artifact is None:
                    console.print(f"[yellow]No research results for {session.session_label}[/yellow]")
                    continue
                updated = await manager.get_session(session.id)
                display_artifact(updated or session, artifact)
    finally:
        await manager.stop()
        if isinstance(executor, HTTPWorkflowExecutor):
            await executor.close()


@click.group()
def cli() -> None:
    """Clipboard session research CLI."""
    pass


@cli.command("replay")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--research", "-r", is_flag=True, help="Run session research after clustering")
@click.option(
    "--executor",
    "-e",
    "executor_kind",
    type=click.Choice(["none", "agent", "http"], case_sensitive=False),
    default="none",
    help="Workflow collaborator: none (heuristics only), agent (pydantic-ai) or http",
)
@click.option("--model", "-m", default=None, help="pydantic-ai model for the agent executor")
@click.option("--server-url", "-s", default=None, help="Workflow service URL for the http executor")
@click.option("--events", is_flag=True, help="Print session events as they are emitted")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def replay_command(
    file: Path,
    research: bool,
    executor_kind: str,
    model: str | None,
    server_url: str | None,
    events: bool,
    verbose: bool,
) -> None:
    """Replay captured clipboard items from FILE through the session manager."""
    configure_logging(enable_console=verbose)
    try:
        asyncio.run(
            replay(
                file,
                research=research,
                executor_kind=executor_kind.lower(),
                model=model,
                server_url=server_url,
                show_events=events,
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Replay interrupted by user[/yellow]")
        sys.exit(130)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)


@cli.command()
def version() -> None:
    """Show version information."""
    table = Table(title="Session Research", border_style="cyan")
    table.add_column("Component", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("Session Research", __version__)
    table.add_row("Model", global_config.model or "-")
    pyver = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    table.add_row("Python", pyver)
    console.print(table)


def main(argv: list[str] | None = None) -> Any:
    return cli.main(args=argv, prog_name="session-research")


if __name__ == "__main__":
    main()
