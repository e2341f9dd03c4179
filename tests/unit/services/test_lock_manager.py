"""Unit tests for LockManager."""

from datetime import timedelta

import pytest
from agentorch.domain.models import EventType, new_id, utcnow
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import InvalidArgumentError, LockConflictError
from agentorch.services import EventLog, LockManager


@pytest.mark.asyncio
class TestAcquire:
    """Lock acquisition."""

    async def test_acquire_free_resource(self, lock_manager: LockManager) -> None:
        """Test successful lock acquisition with a timeout."""
        holder = new_id()

        lock = await lock_manager.acquire("src/app.py", holder, timeout_seconds=60)

        assert lock.held_by == holder
        assert lock.expires_at is not None
        assert lock.expires_at - lock.acquired_at == timedelta(seconds=60)

    async def test_no_timeout_means_no_expiry(self, lock_manager: LockManager) -> None:
        """Test a lock without timeout never expires."""
        lock = await lock_manager.acquire("db", new_id())
        assert lock.expires_at is None

    async def test_zero_timeout_means_no_expiry(self, lock_manager: LockManager) -> None:
        """Test a timeout of 0 creates a lock that never expires."""
        lock = await lock_manager.acquire("db", new_id(), timeout_seconds=0)
        assert lock.expires_at is None

    async def test_negative_timeout_rejected(self, lock_manager: LockManager) -> None:
        """Test a negative timeout raises a typed error and takes no lock."""
        with pytest.raises(InvalidArgumentError):
            await lock_manager.acquire("db", new_id(), timeout_seconds=-1)

        assert await lock_manager.check("db") is None

    async def test_conflict_reports_holder(self, lock_manager: LockManager) -> None:
        """Test a conflicting acquire reports the current holder."""
        alice, bob = new_id(), new_id()
        await lock_manager.acquire("db", alice, timeout_seconds=60)

        with pytest.raises(LockConflictError) as exc_info:
            await lock_manager.acquire("db", bob, timeout_seconds=60)

        assert exc_info.value.held_by == alice
        assert (await lock_manager.check("db")).held_by == alice  # type: ignore[union-attr]

    async def test_same_holder_also_conflicts(self, lock_manager: LockManager) -> None:
        """Test the manager itself never overwrites, even for the current holder."""
        alice = new_id()
        await lock_manager.acquire("db", alice)

        with pytest.raises(LockConflictError):
            await lock_manager.acquire("db", alice)

    async def test_expired_lock_is_swept_before_acquire(
        self, memory_db: Database, lock_manager: LockManager
    ) -> None:
        """Test an expired lock does not block a new acquire."""
        alice, bob = new_id(), new_id()
        await lock_manager.acquire("db", alice, timeout_seconds=60)
        async with memory_db._get_connection() as conn:
            await conn.execute(
                "UPDATE locks SET expires_at = ?",
                ((utcnow() - timedelta(seconds=1)).isoformat(),),
            )
            await conn.commit()

        lock = await lock_manager.acquire("db", bob, timeout_seconds=60)

        assert lock.held_by == bob

    async def test_acquire_records_event(
        self, lock_manager: LockManager, event_log: EventLog
    ) -> None:
        """Test acquisition is journalled."""
        holder = new_id()
        await lock_manager.acquire("db", holder, metadata={"reason": "migrate"})

        events = await event_log.list_events(event_type=EventType.LOCK_ACQUIRED)

        assert len(events) == 1
        assert events[0].agent_id == holder
        assert events[0].resource_id == "db"
        assert events[0].details["reason"] == "migrate"


@pytest.mark.asyncio
class TestRelease:
    """Lock release."""

    async def test_release_by_holder(self, lock_manager: LockManager) -> None:
        """Test the holder can release its lock."""
        holder = new_id()
        await lock_manager.acquire("db", holder)

        assert await lock_manager.release("db", holder) is True
        assert await lock_manager.check("db") is None

    async def test_release_by_other_agent_is_refused(self, lock_manager: LockManager) -> None:
        """Test another agent cannot release the lock."""
        holder = new_id()
        await lock_manager.acquire("db", holder)

        assert await lock_manager.release("db", new_id()) is False
        assert await lock_manager.check("db") is not None

    async def test_release_unlocked_resource(self, lock_manager: LockManager) -> None:
        """Test releasing a free resource returns False."""
        assert await lock_manager.release("nothing", new_id()) is False

    async def test_release_all(self, lock_manager: LockManager) -> None:
        """Test release_all frees every lock of one agent."""
        alice, bob = new_id(), new_id()
        await lock_manager.acquire("a", alice)
        await lock_manager.acquire("b", alice)
        await lock_manager.acquire("c", bob)

        assert await lock_manager.release_all(alice) == 2
        assert [lock.resource for lock in await lock_manager.list_locks()] == ["c"]

    async def test_list_locks_by_holder(self, lock_manager: LockManager) -> None:
        """Test listing locks filtered by holder."""
        alice, bob = new_id(), new_id()
        await lock_manager.acquire("a", alice)
        await lock_manager.acquire("b", bob)

        locks = await lock_manager.list_locks(held_by=bob)

        assert [lock.resource for lock in locks] == ["b"]
