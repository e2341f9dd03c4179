"""Append-only audit log of coordination actions."""

from uuid import UUID

from pydantic import JsonValue

from agentorch.domain.models import Event, EventType
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.logger import get_logger

logger = get_logger(__name__)


class EventLog:
    """Records and lists events.

    Events are never updated or deleted. Readers poll ``list_events``; there
    is no subscription mechanism.
    """

    def __init__(self, db: Database, default_limit: int = 100) -> None:
        """Initialize event log.

        Args:
            db: Database instance for storage operations
            default_limit: Row cap for list_events when no limit is given
        """
        self.db = db
        self.default_limit = default_limit

    async def record(
        self,
        event_type: EventType,
        agent_id: UUID | None = None,
        resource_id: str | None = None,
        details: dict[str, JsonValue] | None = None,
    ) -> Event:
        """Append one event.

        Args:
            event_type: Action being recorded
            agent_id: Acting agent, if known
            resource_id: Task id, memory key or lock resource the action touched
            details: Free-form JSON context

        Returns:
            The stored event
        """
        event = Event(
            event_type=event_type,
            agent_id=agent_id,
            resource_id=resource_id,
            details=details or {},
        )
        await self.db.insert_event(event)
        logger.debug(
            "event_recorded",
            event_type=event_type.value,
            agent_id=str(agent_id) if agent_id else None,
            resource_id=resource_id,
        )
        return event

    async def list_events(
        self,
        agent_id: UUID | None = None,
        event_type: EventType | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """List events newest first, optionally filtered by agent and type."""
        return await self.db.list_events(
            agent_id=agent_id, event_type=event_type, limit=limit or self.default_limit
        )
