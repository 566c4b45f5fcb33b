#!/usr/bin/env python3
"""
MissionAgent - Main CLI Entry Point

Command-line interface for creating, running and inspecting missions and
for serving the HTTP API.
"""

import asyncio
import sys
from typing import Optional

import click
from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from missionagent import __version__
from missionagent.core.config_manager import config_manager, get_config
from missionagent.core.errors import InvalidTransitionError, MissionNotFoundError
from missionagent.core.logging_config import configure_logging
from missionagent.db.database import build_engine_from_config, init_db
from missionagent.missions import MissionPriority, MissionStatus, MissionStore

console = Console()

STATUS_STYLES = {
    MissionStatus.PENDING.value: "yellow",
    MissionStatus.PLANNING.value: "cyan",
    MissionStatus.EXECUTING.value: "blue",
    MissionStatus.COMPLETED.value: "green",
    MissionStatus.FAILED.value: "red",
}


def _status(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _fmt_time(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_file",
    type=click.Path(exists=True),
    help="JSON configuration file",
)
@click.option("--log-level", type=str, help="Log level (DEBUG, INFO, WARNING, ERROR)")
def cli(config_file: Optional[str], log_level: Optional[str]):
    """
    MissionAgent - autonomous mission planning and execution.

    Missions are planned by a reasoning service, executed task by task
    through named tools and judged for completion.
    """
    config_manager.initialize(config_path=config_file)
    configure_logging(log_level)


@cli.command("init-db")
@click.option("--drop", is_flag=True, help="Drop existing tables first")
@click.option("--database-url", type=str, help="Override the configured database URL")
def init_db_command(drop: bool, database_url: Optional[str]):
    """Create the database tables."""
    engine = build_engine_from_config(database_url)
    init_db(engine, drop_existing=drop)
    console.print(f"[green]Database initialized:[/green] {engine.url}")


@cli.command()
@click.option("--host", type=str, help="Bind host (default from config)")
@click.option("--port", type=int, help="Bind port (default from config)")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    config_manager.log_config_summary()
    server = get_config().server
    uvicorn.run(
        "api.server:app",
        host=host or server.host,
        port=port or server.port,
        reload=reload,
    )


@cli.command()
@click.argument("title", type=str)
@click.argument("description", type=str)
@click.option(
    "--priority",
    type=click.Choice([p.value for p in MissionPriority]),
    default=MissionPriority.MEDIUM.value,
    show_default=True,
    help="Mission priority",
)
def run(title: str, description: str, priority: str):
    """Create a mission and execute it in the foreground."""
    from missionagent.missions.mission_orchestrator import build_orchestrator

    orchestrator = build_orchestrator()
    mission = orchestrator.create_mission(title, description, priority=priority)

    console.print(Panel(
        f"[bold]{mission.title}[/bold]\n{mission.description}",
        title=f"Mission {mission.id}",
        subtitle=f"priority: {mission.priority}",
    ))

    with console.status("Executing mission..."):
        result = asyncio.run(orchestrator.execute_mission(mission.id))

    mission = orchestrator.store.get_mission(mission.id)
    console.print(f"Status: {_status(mission.status)}")
    console.print(
        f"Tasks completed: {len(result.completed_tasks)}, "
        f"failed: {len(result.failed_tasks)}, "
        f"skipped: {len(result.skipped_tasks)}"
    )
    if result.error:
        console.print(f"[red]Error:[/red] {result.error}")

    if mission.status != MissionStatus.COMPLETED.value:
        sys.exit(1)


@cli.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in MissionStatus]),
    help="Filter by status",
)
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum number of missions")
def list_missions(status: Optional[str], limit: int):
    """List missions, newest first."""
    missions = MissionStore().list_missions(status=status, limit=limit)
    if not missions:
        console.print("No missions found.")
        return

    table = Table(title="Missions", box=box.ROUNDED)
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Status")
    table.add_column("Priority")
    table.add_column("Created")

    for mission in missions:
        table.add_row(
            mission.id,
            mission.title,
            _status(mission.status),
            mission.priority,
            _fmt_time(mission.created_at),
        )
    console.print(table)


@cli.command()
@click.argument("mission_id", type=str)
@click.option("--logs", "log_limit", type=int, default=20, show_default=True, help="Number of recent logs")
def show(mission_id: str, log_limit: int):
    """Show a mission with its current plan, tasks and recent logs."""
    store = MissionStore()
    try:
        mission = store.get_mission(mission_id)
    except MissionNotFoundError:
        console.print(f"[red]Mission not found:[/red] {mission_id}")
        sys.exit(1)

    console.print(Panel(
        f"[bold]{mission.title}[/bold]\n{mission.description}\n\n"
        f"Status: {_status(mission.status)}  Priority: {mission.priority}\n"
        f"Created: {_fmt_time(mission.created_at)}  Completed: {_fmt_time(mission.completed_at)}",
        title=f"Mission {mission.id}",
    ))

    plan = store.get_current_plan(mission_id)
    if plan is None:
        console.print("No plan yet.")
    else:
        table = Table(title=f"Plan v{plan.version}: {plan.title} ({plan.status})", box=box.SIMPLE)
        table.add_column("#", justify="right")
        table.add_column("Task")
        table.add_column("Status")
        table.add_column("Priority", justify="right")
        table.add_column("Tool")
        table.add_column("Depends on", justify="right")
        for task in plan.tasks:
            table.add_row(
                str(task.sequence),
                task.title,
                task.status,
                str(task.priority),
                task.tool_name or "-",
                str(len(task.dependencies)),
            )
        console.print(table)

    logs = store.list_logs(mission_id, limit=log_limit)
    if logs:
        log_table = Table(title="Recent logs", box=box.SIMPLE)
        log_table.add_column("Time", style="dim")
        log_table.add_column("Level")
        log_table.add_column("Message")
        for entry in logs:
            log_table.add_row(_fmt_time(entry.timestamp), entry.level, entry.message)
        console.print(log_table)


@cli.command()
@click.argument("mission_id", type=str)
def cancel(mission_id: str):
    """Cancel a pending, planning or executing mission."""
    from missionagent.missions.mission_orchestrator import build_orchestrator

    try:
        mission = build_orchestrator().cancel_mission(mission_id)
    except MissionNotFoundError:
        console.print(f"[red]Mission not found:[/red] {mission_id}")
        sys.exit(1)
    except InvalidTransitionError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    console.print(f"Mission {mission.id} is now {_status(mission.status)}")


if __name__ == "__main__":
    cli()
