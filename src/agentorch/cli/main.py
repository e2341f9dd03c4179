"""agentorch CLI - inspect and maintain the coordination store."""

import sys
from pathlib import Path
from typing import Any

import typer
from rich.table import Table

from agentorch import __version__
from agentorch.application import AgentSession, Coordinator
from agentorch.cli.memory_commands import memory_app
from agentorch.cli.utils import console, format_time, parse_enum, parse_uuid, run, short_id
from agentorch.domain.models import AgentRole, AgentStatus, EventType, TaskStatus
from agentorch.infrastructure.exceptions import LockNotFoundError

app = typer.Typer(
    name="agentorch",
    help="Multi-agent coordination store - agents, tasks, locks and shared memory",
    no_args_is_help=True,
)

app.add_typer(memory_app, name="memory")


# ===== Version =====
@app.command()
def version() -> None:
    """Show agentorch version."""
    console.print(f"[bold]agentorch[/bold] version [cyan]{__version__}[/cyan]")


@app.command()
def init() -> None:
    """Create the coordination store (safe to re-run)."""

    async def _init(coordinator: Coordinator) -> Path:
        return coordinator.db_path

    db_path = run(_init)
    console.print(f"[green]✓[/green] Coordination store ready at [cyan]{db_path}[/cyan]")


@app.command()
def status() -> None:
    """Show live agents, open tasks, held locks and memory size."""

    async def _status(coordinator: Coordinator) -> Any:
        return await AgentSession(coordinator).status()

    snapshot = run(_status)

    table = Table(title="Coordination Status", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Active agents", f"{snapshot.active_agents} / {snapshot.total_agents}")
    table.add_row("Pending tasks", str(snapshot.pending_tasks))
    table.add_row("In-progress tasks", str(snapshot.in_progress_tasks))
    table.add_row("Locks held", str(snapshot.locks_held))
    table.add_row("Memory entries", str(snapshot.memory_entries))
    console.print(table)

    for lock in snapshot.locks:
        console.print(f"  [yellow]{lock.resource}[/yellow] held by {short_id(lock.held_by)}")


@app.command()
def agents(
    status: str | None = typer.Option(None, help="Filter by status"),
    role: str | None = typer.Option(None, help="Filter by role (main|sub)"),
) -> None:
    """List registered agents."""
    agent_status = parse_enum(AgentStatus, status, "status")
    agent_role = parse_enum(AgentRole, role, "role")

    async def _list(coordinator: Coordinator) -> Any:
        return await coordinator.agents.list_agents(status=agent_status, role=agent_role)

    rows = run(_list)
    if not rows:
        console.print("[dim]No agents registered[/dim]")
        return

    table = Table(title="Agents")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name", style="magenta")
    table.add_column("Role")
    table.add_column("Status", style="green")
    table.add_column("Capabilities")
    table.add_column("Last Heartbeat")
    for agent in rows:
        table.add_row(
            short_id(agent.id),
            agent.name,
            agent.role.value,
            agent.status.value,
            ", ".join(agent.capabilities),
            format_time(agent.last_heartbeat),
        )
    console.print(table)


@app.command()
def tasks(
    status: str | None = typer.Option(None, help="Filter by status"),
    assigned_to: str | None = typer.Option(None, "--assigned-to", help="Filter by agent ID"),
) -> None:
    """List tasks in queue order (priority, then age)."""
    task_status = parse_enum(TaskStatus, status, "status")
    assignee = parse_uuid(assigned_to, "assigned-to")

    async def _list(coordinator: Coordinator) -> Any:
        return await coordinator.tasks.list_tasks(status=task_status, assigned_to=assignee)

    rows = run(_list)
    if not rows:
        console.print("[dim]No tasks found[/dim]")
        return

    table = Table(title="Tasks")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title", style="magenta")
    table.add_column("Priority")
    table.add_column("Status", style="green")
    table.add_column("Assigned")
    table.add_column("Deps", justify="right")
    table.add_column("Created")
    for task in rows:
        table.add_row(
            short_id(task.id),
            task.title[:50] + ("..." if len(task.title) > 50 else ""),
            task.priority.value,
            task.status.value,
            short_id(task.assigned_to),
            str(len(task.dependencies)),
            format_time(task.created_at),
        )
    console.print(table)


@app.command()
def locks(
    resource: str | None = typer.Argument(None, help="Show the lock on one resource"),
) -> None:
    """List held locks, or show who holds one resource."""

    async def _list(coordinator: Coordinator) -> Any:
        if resource is None:
            return await coordinator.locks.list_locks()
        lock = await coordinator.locks.check(resource)
        if lock is None:
            raise LockNotFoundError(resource)
        return [lock]

    rows = run(_list)
    if not rows:
        console.print("[dim]No locks held[/dim]")
        return

    table = Table(title="Locks")
    table.add_column("Resource", style="yellow")
    table.add_column("Held By", style="cyan")
    table.add_column("Acquired")
    table.add_column("Expires")
    table.add_column("Reason")
    for lock in rows:
        table.add_row(
            lock.resource,
            short_id(lock.held_by),
            format_time(lock.acquired_at),
            format_time(lock.expires_at),
            str(lock.metadata.get("reason") or ""),
        )
    console.print(table)


@app.command()
def events(
    agent: str | None = typer.Option(None, "--agent", help="Filter by agent ID"),
    event_type: str | None = typer.Option(None, "--type", help="Filter by event type"),
    limit: int | None = typer.Option(
        None, min=1, help="Maximum number of events (default: coordination.event_list_limit)"
    ),
) -> None:
    """Show the audit log, newest first."""
    agent_id = parse_uuid(agent, "agent")
    kind = parse_enum(EventType, event_type, "type")

    async def _list(coordinator: Coordinator) -> Any:
        return await coordinator.events.list_events(
            agent_id=agent_id, event_type=kind, limit=limit
        )

    rows = run(_list)
    if not rows:
        console.print("[dim]No events recorded[/dim]")
        return

    table = Table(title="Events")
    table.add_column("Time")
    table.add_column("Type", style="cyan")
    table.add_column("Agent")
    table.add_column("Resource", style="yellow")
    for event in rows:
        table.add_row(
            format_time(event.timestamp),
            event.event_type.value,
            short_id(event.agent_id),
            event.resource_id or "-",
        )
    console.print(table)


@app.command()
def sweep() -> None:
    """Expire locks and memory and flag stale agents now."""

    async def _sweep(coordinator: Coordinator) -> dict[str, int]:
        return await coordinator.sweep()

    counts = run(_sweep)
    console.print(
        f"[green]✓[/green] Swept {counts['locks']} lock(s), "
        f"{counts['memory']} memory entr{'y' if counts['memory'] == 1 else 'ies'}, "
        f"{counts['agents']} stale agent(s)"
    )


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        sys.exit(130)


if __name__ == "__main__":
    main()
