"""Advisory resource locks with optional expiry.

Mutual exclusion rests on the UNIQUE constraint over ``locks.resource``: an
acquire is a plain insert, and a uniqueness violation means someone else
holds the resource. Expired locks are swept lazily before acquire, check and
list; nothing runs on a timer.
"""

from datetime import timedelta
from uuid import UUID

from pydantic import JsonValue

from agentorch.domain.models import EventType, Lock, utcnow
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import (
    ConflictError,
    InvalidArgumentError,
    LockConflictError,
)
from agentorch.infrastructure.logger import get_logger
from agentorch.services.event_log import EventLog

logger = get_logger(__name__)


class LockManager:
    """Acquire, release and inspect resource locks."""

    def __init__(self, db: Database, events: EventLog) -> None:
        self.db = db
        self.events = events

    async def acquire(
        self,
        resource: str,
        held_by: UUID,
        timeout_seconds: int | None = None,
        metadata: dict[str, JsonValue] | None = None,
    ) -> Lock:
        """Take the lock on a resource.

        Args:
            resource: Resource name (file path, service name, ...)
            held_by: Agent taking the lock
            timeout_seconds: Lock lifetime; None or 0 means it never expires
            metadata: Free-form context, e.g. ``{"reason": "..."}``

        Returns:
            The new lock

        Raises:
            LockConflictError: If a live lock already exists on the resource,
                whoever holds it
            InvalidArgumentError: If timeout_seconds is negative
        """
        if timeout_seconds is not None and timeout_seconds < 0:
            raise InvalidArgumentError("timeout_seconds", timeout_seconds, "must be >= 0")
        timeout_seconds = timeout_seconds or None

        await self.sweep_expired()

        now = utcnow()
        lock = Lock(
            resource=resource,
            held_by=held_by,
            acquired_at=now,
            expires_at=now + timedelta(seconds=timeout_seconds) if timeout_seconds else None,
            metadata=metadata or {},
        )

        try:
            await self.db.insert_lock(lock)
        except ConflictError as e:
            current = await self.db.get_lock(resource)
            holder = current.held_by if current else None
            logger.info(
                "lock_denied",
                resource=resource,
                requested_by=str(held_by),
                held_by=str(holder) if holder else None,
            )
            raise LockConflictError(resource, holder) from e

        await self.events.record(
            EventType.LOCK_ACQUIRED,
            agent_id=held_by,
            resource_id=resource,
            details={"timeout_seconds": timeout_seconds, **lock.metadata},
        )
        logger.info(
            "lock_acquired",
            resource=resource,
            held_by=str(held_by),
            expires_at=lock.expires_at.isoformat() if lock.expires_at else None,
        )
        return lock

    async def release(self, resource: str, held_by: UUID) -> bool:
        """Release a lock held by ``held_by``.

        Returns:
            False if the resource is unlocked or held by another agent
        """
        released = await self.db.delete_lock(resource, held_by)
        if released:
            await self.events.record(
                EventType.LOCK_RELEASED, agent_id=held_by, resource_id=resource
            )
            logger.info("lock_released", resource=resource, held_by=str(held_by))
        return released

    async def release_all(self, held_by: UUID) -> int:
        """Drop every lock an agent holds, without ownership checks per resource."""
        count = await self.db.delete_locks_held_by(held_by)
        if count:
            logger.info("locks_released_all", held_by=str(held_by), count=count)
        return count

    async def check(self, resource: str) -> Lock | None:
        """Return the live lock on a resource, or None if it is free."""
        await self.sweep_expired()
        return await self.db.get_lock(resource)

    async def list_locks(self, held_by: UUID | None = None) -> list[Lock]:
        """List live locks, optionally only those of one agent."""
        await self.sweep_expired()
        return await self.db.list_locks(held_by=held_by)

    async def sweep_expired(self) -> int:
        """Delete locks whose expiry has passed."""
        count = await self.db.delete_expired_locks(utcnow())
        if count:
            logger.info("expired_locks_swept", count=count)
        return count
