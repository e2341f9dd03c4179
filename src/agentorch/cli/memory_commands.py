"""Shared memory inspection commands."""

import json
from typing import Any

import typer
from rich.table import Table

from agentorch.application import AgentSession, Coordinator
from agentorch.cli.utils import console, format_time, run, short_id
from agentorch.services.memory_service import DEFAULT_NAMESPACE

memory_app = typer.Typer(help="Shared memory inspection", no_args_is_help=True)


@memory_app.command("list")
def list_memory(
    namespace: str = typer.Option(DEFAULT_NAMESPACE, help="Namespace to list"),
) -> None:
    """List live entries of a namespace."""

    async def _list(coordinator: Coordinator) -> Any:
        return await coordinator.memory.list_entries(namespace=namespace)

    entries = run(_list)
    if not entries:
        console.print(f"[dim]No entries in namespace '{namespace}'[/dim]")
        return

    table = Table(title=f"Memory: {namespace}")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_column("Writer")
    table.add_column("Updated")
    table.add_column("Expires")
    for entry in entries:
        value = json.dumps(entry.value)
        table.add_row(
            entry.key,
            value[:60] + ("..." if len(value) > 60 else ""),
            short_id(entry.created_by),
            format_time(entry.updated_at),
            format_time(entry.expires_at),
        )
    console.print(table)


@memory_app.command("get")
def get_memory(
    key: str = typer.Argument(..., help="Entry key"),
    namespace: str = typer.Option(DEFAULT_NAMESPACE, help="Entry namespace"),
) -> None:
    """Print one entry's value as JSON."""

    async def _get(coordinator: Coordinator) -> Any:
        return await AgentSession(coordinator).memory_get(key, namespace=namespace)

    entry = run(_get)
    console.print_json(json.dumps(entry.value))
