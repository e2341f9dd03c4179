"""Tests for the SQLite storage layer."""

import sqlite3
from datetime import timedelta
from pathlib import Path

import pytest
from agentorch.domain.models import (
    Agent,
    AgentStatus,
    Event,
    EventType,
    Lock,
    MemoryEntry,
    Task,
    TaskPriority,
    TaskStatus,
    new_id,
    utcnow,
)
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import ConflictError, StoreUnavailableError


class TestSchema:
    """Schema creation and pragmas."""

    @pytest.mark.asyncio
    async def test_tables_created(self, memory_db: Database) -> None:
        """Test all coordination tables are created."""
        async with memory_db._get_connection() as conn:
            cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
            tables = {row["name"] for row in await cursor.fetchall()}

        assert {"agents", "tasks", "memory", "locks", "events"} <= tables

    @pytest.mark.asyncio
    async def test_indexes_created(self, memory_db: Database) -> None:
        """Test lookup indexes are created."""
        usage = await memory_db.get_index_usage()
        names = {index["name"] for index in usage["indexes"]}

        assert "idx_tasks_status" in names
        assert "idx_tasks_assigned_to" in names
        assert "idx_events_timestamp" in names
        assert "idx_events_agent_id" in names

    @pytest.mark.asyncio
    async def test_file_db_uses_wal(self, file_db: Database) -> None:
        """Test a file database runs in WAL mode."""
        async with file_db._get_connection() as conn:
            cursor = await conn.execute("PRAGMA journal_mode")
            row = await cursor.fetchone()

        assert row[0].lower() == "wal"

    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, temp_db_path: Path) -> None:
        """Test initializing twice keeps existing rows."""
        first = Database(temp_db_path)
        await first.initialize()
        second = Database(temp_db_path)
        await second.initialize()

        assert (await second.count_rows())["tasks"] == 0


class TestAgentRows:
    """Agent persistence."""

    @pytest.mark.asyncio
    async def test_insert_and_lookup(self, memory_db: Database) -> None:
        """Test agent lookup by id and by name."""
        agent = Agent(name="alice", capabilities=["code"], metadata={"host": "a"})
        await memory_db.insert_agent(agent)

        by_id = await memory_db.get_agent(agent.id)
        by_name = await memory_db.get_agent_by_name("alice")

        assert by_id == by_name
        assert by_id is not None
        assert by_id.capabilities == ["code"]
        assert by_id.metadata == {"host": "a"}

    @pytest.mark.asyncio
    async def test_duplicate_name_raises_conflict(self, memory_db: Database) -> None:
        """Test a second agent with the same name raises ConflictError."""
        await memory_db.insert_agent(Agent(name="alice"))

        with pytest.raises(ConflictError):
            await memory_db.insert_agent(Agent(name="alice"))

    @pytest.mark.asyncio
    async def test_heartbeat_missing_agent_returns_false(self, memory_db: Database) -> None:
        """Test heartbeat on an unknown agent reports no row updated."""
        assert await memory_db.update_agent_heartbeat(new_id(), utcnow()) is False

    @pytest.mark.asyncio
    async def test_stale_agents_marked_offline(self, memory_db: Database) -> None:
        """Test agents past the cutoff are found and marked offline."""
        old = utcnow() - timedelta(minutes=10)
        stale = Agent(name="stale", status=AgentStatus.ACTIVE, last_heartbeat=old)
        fresh = Agent(name="fresh", status=AgentStatus.ACTIVE)
        await memory_db.insert_agent(stale)
        await memory_db.insert_agent(fresh)

        cutoff = utcnow() - timedelta(minutes=5)
        ids = await memory_db.get_stale_agent_ids(cutoff)
        assert ids == [stale.id]

        assert await memory_db.mark_agents_offline(ids, cutoff) == 1
        offline = await memory_db.get_agent(stale.id)
        assert offline is not None and offline.status == AgentStatus.OFFLINE
        assert await memory_db.get_stale_agent_ids(cutoff) == []


class TestTaskRows:
    """Task persistence, ordering and conditional claims."""

    @pytest.mark.asyncio
    async def test_round_trip_preserves_fields(self, memory_db: Database) -> None:
        """Test a stored task reads back with every field intact."""
        dep = new_id()
        task = Task(
            title="Build",
            description="build it",
            priority=TaskPriority.HIGH,
            dependencies=[dep],
            metadata={"progress": 10},
        )
        await memory_db.insert_task(task)

        loaded = await memory_db.get_task(task.id)

        assert loaded == task

    @pytest.mark.asyncio
    async def test_list_orders_by_priority_then_age(self, memory_db: Database) -> None:
        """Test tasks list by priority, then oldest first."""
        base = utcnow()
        titles = []
        for offset, priority in enumerate(
            [TaskPriority.LOW, TaskPriority.URGENT, TaskPriority.NORMAL, TaskPriority.HIGH]
        ):
            created = base + timedelta(milliseconds=offset)
            task = Task(title=priority.value, priority=priority, created_at=created)
            titles.append(task.title)
            await memory_db.insert_task(task)
        later_urgent = Task(
            title="urgent-2",
            priority=TaskPriority.URGENT,
            created_at=base + timedelta(seconds=1),
        )
        await memory_db.insert_task(later_urgent)

        ordered = [t.title for t in await memory_db.list_tasks()]

        assert ordered == ["urgent", "urgent-2", "high", "normal", "low"]

    @pytest.mark.asyncio
    async def test_update_never_overwrites_stamps(self, memory_db: Database) -> None:
        """Test started_at and completed_at keep their first-write values."""
        task = Task(title="t")
        await memory_db.insert_task(task)
        first = utcnow()
        await memory_db.update_task(task.id, {"started_at": first, "completed_at": first})
        await memory_db.update_task(
            task.id, {"started_at": first + timedelta(hours=1), "completed_at": utcnow()}
        )

        loaded = await memory_db.get_task(task.id)

        assert loaded is not None
        assert loaded.started_at == first
        assert loaded.completed_at == first

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_columns(self, memory_db: Database) -> None:
        """Test update_task refuses columns outside its whitelist."""
        task = Task(title="t")
        await memory_db.insert_task(task)

        with pytest.raises(ValueError):
            await memory_db.update_task(task.id, {"id": "x"})

    @pytest.mark.asyncio
    async def test_claim_only_once(self, memory_db: Database) -> None:
        """Test the conditional claim succeeds for one agent only."""
        task = Task(title="t")
        await memory_db.insert_task(task)
        alice, bob = new_id(), new_id()

        assert await memory_db.claim_task(task.id, alice, utcnow()) is True
        assert await memory_db.claim_task(task.id, bob, utcnow()) is False

        loaded = await memory_db.get_task(task.id)
        assert loaded is not None
        assert loaded.status == TaskStatus.IN_PROGRESS
        assert loaded.assigned_to == alice

    @pytest.mark.asyncio
    async def test_claim_assigned_task_only_by_assignee(self, memory_db: Database) -> None:
        """Test an assigned task is claimable only by its assignee."""
        alice, bob = new_id(), new_id()
        task = Task(title="t", status=TaskStatus.ASSIGNED, assigned_to=alice)
        await memory_db.insert_task(task)

        assert await memory_db.claim_task(task.id, bob, utcnow()) is False
        assert await memory_db.claim_task(task.id, alice, utcnow()) is True

    @pytest.mark.asyncio
    async def test_count_by_status_zero_fills(self, memory_db: Database) -> None:
        """Test status counts include zero for unused statuses."""
        await memory_db.insert_task(Task(title="a"))

        counts = await memory_db.count_tasks_by_status()

        assert counts[TaskStatus.PENDING] == 1
        assert counts[TaskStatus.COMPLETED] == 0
        assert set(counts) == set(TaskStatus)


class TestMemoryRows:
    """Memory upsert and expiry."""

    @pytest.mark.asyncio
    async def test_upsert_replaces_value_and_keeps_identity(self, memory_db: Database) -> None:
        """Test upsert replaces the value but keeps id and created_at."""
        first = await memory_db.upsert_memory(MemoryEntry(key="k", value=1, ttl_seconds=60))
        second = await memory_db.upsert_memory(MemoryEntry(key="k", value={"v": 2}))

        assert second.id == first.id
        assert second.created_at == first.created_at
        assert second.value == {"v": 2}
        assert second.ttl_seconds is None
        assert second.expires_at is None

    @pytest.mark.asyncio
    async def test_same_key_in_other_namespace_is_separate(self, memory_db: Database) -> None:
        """Test equal keys in different namespaces are separate entries."""
        await memory_db.upsert_memory(MemoryEntry(namespace="a", key="k", value=1))
        await memory_db.upsert_memory(MemoryEntry(namespace="b", key="k", value=2))

        assert (await memory_db.get_memory("a", "k")).value == 1  # type: ignore[union-attr]
        assert (await memory_db.get_memory("b", "k")).value == 2  # type: ignore[union-attr]

    @pytest.mark.asyncio
    async def test_delete_expired(self, memory_db: Database) -> None:
        """Test expired memory rows are deleted."""
        past = utcnow() - timedelta(seconds=5)
        await memory_db.upsert_memory(MemoryEntry(key="old", value=1, expires_at=past))
        await memory_db.upsert_memory(MemoryEntry(key="keep", value=2))

        assert await memory_db.delete_expired_memory(utcnow()) == 1
        assert [e.key for e in await memory_db.list_memory("default")] == ["keep"]


class TestLockRows:
    """Lock uniqueness and conditional deletes."""

    @pytest.mark.asyncio
    async def test_second_insert_conflicts(self, memory_db: Database) -> None:
        """Test a second lock on the same resource raises ConflictError."""
        await memory_db.insert_lock(Lock(resource="db", held_by=new_id()))

        with pytest.raises(ConflictError):
            await memory_db.insert_lock(Lock(resource="db", held_by=new_id()))

    @pytest.mark.asyncio
    async def test_delete_requires_holder(self, memory_db: Database) -> None:
        """Test only the holder can delete a lock row."""
        holder = new_id()
        await memory_db.insert_lock(Lock(resource="db", held_by=holder))

        assert await memory_db.delete_lock("db", new_id()) is False
        assert await memory_db.delete_lock("db", holder) is True
        assert await memory_db.get_lock("db") is None


class TestEventRows:
    """Event log persistence."""

    @pytest.mark.asyncio
    async def test_list_newest_first_with_limit(self, memory_db: Database) -> None:
        """Test events list newest first and honor the limit."""
        base = utcnow()
        for i in range(5):
            await memory_db.insert_event(
                Event(
                    event_type=EventType.TASK_CREATED,
                    resource_id=str(i),
                    timestamp=base + timedelta(seconds=i),
                )
            )

        events = await memory_db.list_events(limit=3)

        assert [e.resource_id for e in events] == ["4", "3", "2"]


class TestStoreUnavailable:
    """Operational failures map to StoreUnavailableError."""

    @pytest.mark.asyncio
    async def test_locked_database_raises_store_unavailable(self, temp_db_path: Path) -> None:
        """Test a write-locked database surfaces StoreUnavailableError."""
        db = Database(temp_db_path, busy_timeout_ms=50)
        await db.initialize()

        blocker = sqlite3.connect(str(temp_db_path))
        try:
            blocker.execute("BEGIN EXCLUSIVE")
            with pytest.raises(StoreUnavailableError):
                await db.insert_agent(Agent(name="alice"))
        finally:
            blocker.rollback()
            blocker.close()
