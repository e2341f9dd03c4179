"""Shared memory store: namespaced key/value facts with optional TTL."""

from datetime import timedelta
from uuid import UUID

from pydantic import JsonValue

from agentorch.domain.models import EventType, MemoryEntry, utcnow
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import InvalidArgumentError
from agentorch.infrastructure.logger import get_logger
from agentorch.services.event_log import EventLog

logger = get_logger(__name__)

DEFAULT_NAMESPACE = "default"


class MemoryService:
    """Service for reading and writing the shared whiteboard.

    Entries are keyed by (namespace, key). Writing an existing key replaces
    its value and TTL. Expired entries are removed lazily before each read.
    """

    def __init__(self, db: Database, events: EventLog) -> None:
        """Initialize memory service.

        Args:
            db: Database instance for storage operations
            events: Event log receiving memory_set / memory_delete records
        """
        self.db = db
        self.events = events

    async def set(
        self,
        key: str,
        value: JsonValue,
        namespace: str = DEFAULT_NAMESPACE,
        created_by: UUID | None = None,
        ttl_seconds: int | None = None,
    ) -> MemoryEntry:
        """Create or replace a memory entry.

        Args:
            key: Key within the namespace
            value: Any JSON value
            namespace: Namespace (default: "default")
            created_by: Writing agent
            ttl_seconds: Lifetime in seconds; None or 0 means no expiry

        Returns:
            Stored entry (id and created_at are kept from the first write)

        Raises:
            InvalidArgumentError: If ttl_seconds is negative

        Example:
            >>> entry = await memory_service.set(
            ...     "current_focus", {"area": "auth"}, namespace="context"
            ... )
        """
        if ttl_seconds is not None and ttl_seconds < 0:
            raise InvalidArgumentError("ttl_seconds", ttl_seconds, "must be >= 0")
        ttl_seconds = ttl_seconds or None

        now = utcnow()
        entry = MemoryEntry(
            namespace=namespace,
            key=key,
            value=value,
            created_by=created_by,
            ttl_seconds=ttl_seconds,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(seconds=ttl_seconds) if ttl_seconds else None,
        )
        stored = await self.db.upsert_memory(entry)

        await self.events.record(
            EventType.MEMORY_SET,
            agent_id=created_by,
            resource_id=f"{namespace}:{key}",
            details={"namespace": namespace, "key": key, "ttl_seconds": ttl_seconds},
        )
        logger.debug("memory_set", namespace=namespace, key=key, ttl_seconds=ttl_seconds)
        return stored

    async def get(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> MemoryEntry | None:
        """Get a live entry, or None if absent or expired."""
        await self.sweep_expired()
        return await self.db.get_memory(namespace, key)

    async def list_entries(self, namespace: str = DEFAULT_NAMESPACE) -> list[MemoryEntry]:
        """List live entries of a namespace, ordered by key."""
        await self.sweep_expired()
        return await self.db.list_memory(namespace)

    async def delete(
        self, key: str, namespace: str = DEFAULT_NAMESPACE, agent_id: UUID | None = None
    ) -> bool:
        """Delete an entry.

        Returns:
            True if an entry was deleted
        """
        deleted = await self.db.delete_memory(namespace, key)
        if deleted:
            await self.events.record(
                EventType.MEMORY_DELETE,
                agent_id=agent_id,
                resource_id=f"{namespace}:{key}",
                details={"namespace": namespace, "key": key},
            )
            logger.debug("memory_deleted", namespace=namespace, key=key)
        return deleted

    async def sweep_expired(self) -> int:
        """Delete entries past their expiry."""
        count = await self.db.delete_expired_memory(utcnow())
        if count:
            logger.info("expired_memory_swept", count=count)
        return count
