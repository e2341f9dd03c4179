"""Shared helpers for CLI commands."""

import asyncio
from collections.abc import Awaitable, Callable
from datetime import datetime
from enum import Enum
from typing import TypeVar
from uuid import UUID

import typer
from rich.console import Console

from agentorch.application import Coordinator
from agentorch.infrastructure.exceptions import CoordinationError

T = TypeVar("T")
E = TypeVar("E", bound=Enum)

console = Console()


async def open_coordinator() -> Coordinator:
    """Load configuration, set up logging and open the store."""
    from agentorch.infrastructure import ConfigManager
    from agentorch.infrastructure.logger import setup_logging

    config_manager = ConfigManager()
    config = config_manager.load_config()
    setup_logging(log_level=config.log_level, log_dir=config_manager.get_log_dir())
    return await Coordinator.open(config_manager)


def run(operation: Callable[[Coordinator], Awaitable[T]]) -> T:
    """Run an async operation against a freshly opened coordinator.

    Coordination errors are printed and turned into exit code 1.
    """

    async def _go() -> T:
        coordinator = await open_coordinator()
        try:
            return await operation(coordinator)
        finally:
            await coordinator.close()

    try:
        return asyncio.run(_go())
    except CoordinationError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e


def parse_enum(enum_cls: type[E], value: str | None, option: str) -> E | None:
    """Convert an option string to an enum member.

    Raises:
        typer.BadParameter: If the value is not a member
    """
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        valid_values = ", ".join(member.value for member in enum_cls)
        raise typer.BadParameter(
            f"Invalid {option} '{value}'. Valid values: {valid_values}"
        ) from None


def parse_uuid(value: str | None, option: str) -> UUID | None:
    if value is None:
        return None
    try:
        return UUID(value)
    except ValueError:
        raise typer.BadParameter(f"Invalid {option} '{value}': expected a UUID") from None


def short_id(value: UUID | None) -> str:
    return str(value)[:8] if value else "-"


def format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"
