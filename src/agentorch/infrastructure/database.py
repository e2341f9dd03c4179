"""Database infrastructure using SQLite with WAL mode.

All coordination state lives in one SQLite file shared by every agent
process. Each public method maps to a single atomic statement (plus a
read-back where the caller needs the stored row); there are no
cross-entity transactions. Uniqueness violations are reported as
``ConflictError`` and a busy/unreachable store as ``StoreUnavailableError``.
"""

import json
import sqlite3
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

import aiosqlite
from aiosqlite import Connection

from agentorch.domain.models import (
    PRIORITY_RANK,
    Agent,
    AgentRole,
    AgentStatus,
    Event,
    EventType,
    Lock,
    MemoryEntry,
    Task,
    TaskPriority,
    TaskStatus,
)
from agentorch.infrastructure.exceptions import ConflictError, StoreUnavailableError

# Queue order: priority rank first, then FIFO by creation time
TASK_ORDER_SQL = (
    "CASE priority "
    + " ".join(f"WHEN '{p.value}' THEN {rank}" for p, rank in PRIORITY_RANK.items())
    + " ELSE 5 END, created_at ASC, id ASC"
)

# Columns update_task() may touch; stamp columns are write-once
TASK_UPDATABLE_COLUMNS = frozenset(
    {"status", "assigned_to", "output", "metadata", "updated_at", "started_at", "completed_at"}
)
WRITE_ONCE_COLUMNS = frozenset({"started_at", "completed_at"})

_UNAVAILABLE_MARKERS = ("database is locked", "database is busy", "unable to open")


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _uuid(value: UUID | None) -> str | None:
    return str(value) if value else None


class Database:
    """SQLite database with WAL mode for concurrent access."""

    def __init__(self, db_path: Path, busy_timeout_ms: int = 5000) -> None:
        """Initialize database.

        Args:
            db_path: Path to SQLite database file (``:memory:`` for tests)
            busy_timeout_ms: How long a writer waits for a busy store before failing
        """
        self.db_path = db_path
        self.busy_timeout_ms = busy_timeout_ms
        self._initialized = False
        self._shared_conn: Connection | None = None  # For :memory: databases

    @property
    def is_memory(self) -> bool:
        return str(self.db_path) == ":memory:"

    async def initialize(self) -> None:
        """Initialize database schema and settings."""
        if self._initialized:
            return

        if not self.is_memory:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._get_connection() as conn:
            # WAL lets readers proceed while one agent writes
            await conn.execute("PRAGMA journal_mode=WAL")
            await conn.execute("PRAGMA synchronous=NORMAL")
            await self._create_tables(conn)
            await self._create_indexes(conn)
            await conn.commit()

        self._initialized = True

    async def close(self) -> None:
        """Close the database connection.

        Only needed for :memory: databases to clean up the shared connection.
        File-based databases close connections automatically.
        """
        if self._shared_conn is not None:
            await self._shared_conn.close()
            self._shared_conn = None
            self._initialized = False

    @asynccontextmanager
    async def _get_connection(self) -> AsyncIterator[Connection]:
        """Get database connection with proper settings.

        For :memory: databases, maintains a shared connection to preserve data
        across multiple operations. For file databases, creates a new connection
        each time.

        Raises:
            StoreUnavailableError: If the store stayed locked past busy_timeout
                or could not be opened
        """
        try:
            if self.is_memory:
                if self._shared_conn is None:
                    self._shared_conn = await aiosqlite.connect(":memory:")
                    self._shared_conn.row_factory = aiosqlite.Row
                    await self._shared_conn.execute("PRAGMA foreign_keys=ON")
                yield self._shared_conn
            else:
                async with aiosqlite.connect(
                    str(self.db_path), timeout=self.busy_timeout_ms / 1000
                ) as conn:
                    conn.row_factory = aiosqlite.Row
                    await conn.execute("PRAGMA foreign_keys=ON")
                    await conn.execute(f"PRAGMA busy_timeout={int(self.busy_timeout_ms)}")
                    yield conn
        except sqlite3.OperationalError as e:
            message = str(e).lower()
            if any(marker in message for marker in _UNAVAILABLE_MARKERS):
                raise StoreUnavailableError(f"Coordination store unavailable: {e}") from e
            raise

    async def _create_tables(self, conn: Connection) -> None:
        """Create the five coordination tables.

        Agent references (created_by, assigned_to, held_by) are informational:
        no foreign keys, so deleting an agent never cascades into tasks.
        """
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS agents (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL UNIQUE,
                role TEXT NOT NULL DEFAULT 'sub',
                status TEXT NOT NULL DEFAULT 'idle',
                capabilities TEXT NOT NULL DEFAULT '[]',
                metadata TEXT NOT NULL DEFAULT '{}',
                registered_at TIMESTAMP NOT NULL,
                last_heartbeat TIMESTAMP NOT NULL,
                CHECK(role IN ('main', 'sub')),
                CHECK(status IN ('active', 'idle', 'busy', 'offline')),
                CHECK(json_valid(capabilities)),
                CHECK(json_valid(metadata))
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tasks (
                id TEXT PRIMARY KEY,
                title TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                status TEXT NOT NULL DEFAULT 'pending',
                priority TEXT NOT NULL DEFAULT 'normal',
                created_by TEXT,
                assigned_to TEXT,
                dependencies TEXT NOT NULL DEFAULT '[]',
                metadata TEXT NOT NULL DEFAULT '{}',
                output TEXT,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                CHECK(status IN ('pending', 'assigned', 'in_progress',
                                 'completed', 'failed', 'cancelled')),
                CHECK(priority IN ('low', 'normal', 'high', 'urgent')),
                CHECK(json_valid(dependencies)),
                CHECK(json_valid(metadata))
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS memory (
                id TEXT PRIMARY KEY,
                namespace TEXT NOT NULL DEFAULT 'default',
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                created_by TEXT,
                ttl_seconds INTEGER,
                created_at TIMESTAMP NOT NULL,
                updated_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP,
                CHECK(json_valid(value)),
                UNIQUE(namespace, key)
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS locks (
                id TEXT PRIMARY KEY,
                resource TEXT NOT NULL UNIQUE,
                held_by TEXT NOT NULL,
                acquired_at TIMESTAMP NOT NULL,
                expires_at TIMESTAMP,
                metadata TEXT NOT NULL DEFAULT '{}',
                CHECK(json_valid(metadata))
            )
            """
        )

        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS events (
                id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                agent_id TEXT,
                resource_id TEXT,
                details TEXT NOT NULL DEFAULT '{}',
                timestamp TIMESTAMP NOT NULL,
                CHECK(json_valid(details))
            )
            """
        )

    async def _create_indexes(self, conn: Connection) -> None:
        """Create indexes backing listings and sweeps."""
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_agents_status ON agents(status)")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks(status)")
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_assigned_to ON tasks(assigned_to)"
        )
        await conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_memory_namespace_key ON memory(namespace, key)"
        )
        await conn.execute(
            """
            CREATE INDEX IF NOT EXISTS idx_memory_expires_at
            ON memory(expires_at)
            WHERE expires_at IS NOT NULL
            """
        )
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_locks_resource ON locks(resource)")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_locks_held_by ON locks(held_by)")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_events_timestamp ON events(timestamp)")
        await conn.execute("CREATE INDEX IF NOT EXISTS idx_events_agent_id ON events(agent_id)")

    async def get_index_usage(self) -> dict[str, Any]:
        """Report which indexes exist.

        Returns:
            Dictionary with index information
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT name, tbl_name FROM sqlite_master WHERE type='index' ORDER BY tbl_name, name"
            )
            indexes = list(await cursor.fetchall())
            return {
                "index_count": len(indexes),
                "indexes": [{"name": row[0], "table": row[1]} for row in indexes],
            }

    # Agent operations
    async def insert_agent(self, agent: Agent) -> None:
        """Insert a new agent.

        Raises:
            ConflictError: If an agent with the same name already exists
        """
        async with self._get_connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO agents (
                        id, name, role, status, capabilities, metadata,
                        registered_at, last_heartbeat
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(agent.id),
                        agent.name,
                        agent.role.value,
                        agent.status.value,
                        json.dumps(agent.capabilities),
                        json.dumps(agent.metadata),
                        agent.registered_at.isoformat(),
                        agent.last_heartbeat.isoformat(),
                    ),
                )
                await conn.commit()
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise ConflictError(f"Agent name '{agent.name}' already registered") from e

    async def get_agent(self, agent_id: UUID) -> Agent | None:
        """Get agent by ID."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM agents WHERE id = ?", (str(agent_id),))
            row = await cursor.fetchone()
            return self._row_to_agent(row) if row else None

    async def get_agent_by_name(self, name: str) -> Agent | None:
        """Get agent by its unique name."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM agents WHERE name = ?", (name,))
            row = await cursor.fetchone()
            return self._row_to_agent(row) if row else None

    async def list_agents(
        self, status: AgentStatus | None = None, role: AgentRole | None = None
    ) -> list[Agent]:
        """List agents, most recently registered first."""
        where_clauses: list[str] = []
        params: list[Any] = []

        if status:
            where_clauses.append("status = ?")
            params.append(status.value)
        if role:
            where_clauses.append("role = ?")
            params.append(role.value)

        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM agents {where_sql} ORDER BY registered_at DESC, id DESC",
                tuple(params),
            )
            rows = await cursor.fetchall()
            return [self._row_to_agent(row) for row in rows]

    async def update_agent_heartbeat(
        self, agent_id: UUID, now: datetime, status: AgentStatus | None = None
    ) -> bool:
        """Refresh last_heartbeat (and status when given).

        Returns:
            False if the agent row no longer exists
        """
        async with self._get_connection() as conn:
            if status is not None:
                cursor = await conn.execute(
                    "UPDATE agents SET last_heartbeat = ?, status = ? WHERE id = ?",
                    (now.isoformat(), status.value, str(agent_id)),
                )
            else:
                cursor = await conn.execute(
                    "UPDATE agents SET last_heartbeat = ? WHERE id = ?",
                    (now.isoformat(), str(agent_id)),
                )
            await conn.commit()
            return cursor.rowcount > 0

    async def delete_agent(self, agent_id: UUID) -> bool:
        """Delete an agent row. Callers release its locks first."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("DELETE FROM agents WHERE id = ?", (str(agent_id),))
            await conn.commit()
            return cursor.rowcount > 0

    async def get_stale_agent_ids(self, cutoff: datetime) -> list[UUID]:
        """Agents not yet offline whose last heartbeat is older than cutoff."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT id FROM agents WHERE status != ? AND last_heartbeat < ?",
                (AgentStatus.OFFLINE.value, cutoff.isoformat()),
            )
            rows = await cursor.fetchall()
            return [UUID(row["id"]) for row in rows]

    async def mark_agents_offline(self, agent_ids: list[UUID], cutoff: datetime) -> int:
        """Flag the given agents offline unless they heartbeated since cutoff."""
        if not agent_ids:
            return 0
        placeholders = ",".join("?" for _ in agent_ids)
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"""
                UPDATE agents SET status = ?
                WHERE id IN ({placeholders}) AND status != ? AND last_heartbeat < ?
                """,
                [AgentStatus.OFFLINE.value]
                + [str(agent_id) for agent_id in agent_ids]
                + [AgentStatus.OFFLINE.value, cutoff.isoformat()],
            )
            await conn.commit()
            return cursor.rowcount

    def _row_to_agent(self, row: aiosqlite.Row) -> Agent:
        """Convert database row to Agent model."""
        return Agent(
            id=UUID(row["id"]),
            name=row["name"],
            role=AgentRole(row["role"]),
            status=AgentStatus(row["status"]),
            capabilities=json.loads(row["capabilities"]),
            metadata=json.loads(row["metadata"]),
            registered_at=datetime.fromisoformat(row["registered_at"]),
            last_heartbeat=datetime.fromisoformat(row["last_heartbeat"]),
        )

    # Task operations
    async def insert_task(self, task: Task) -> None:
        """Insert a new task into the database."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO tasks (
                    id, title, description, status, priority, created_by, assigned_to,
                    dependencies, metadata, output, created_at, updated_at,
                    started_at, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(task.id),
                    task.title,
                    task.description,
                    task.status.value,
                    task.priority.value,
                    _uuid(task.created_by),
                    _uuid(task.assigned_to),
                    json.dumps([str(dep) for dep in task.dependencies]),
                    json.dumps(task.metadata),
                    task.output,
                    task.created_at.isoformat(),
                    task.updated_at.isoformat(),
                    _dt(task.started_at),
                    _dt(task.completed_at),
                ),
            )
            await conn.commit()

    async def get_task(self, task_id: UUID) -> Task | None:
        """Get task by ID."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM tasks WHERE id = ?", (str(task_id),))
            row = await cursor.fetchone()
            return self._row_to_task(row) if row else None

    async def get_tasks(self, task_ids: list[UUID]) -> dict[UUID, Task]:
        """Fetch several tasks at once, keyed by ID. Missing IDs are absent."""
        if not task_ids:
            return {}
        placeholders = ",".join("?" for _ in task_ids)
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM tasks WHERE id IN ({placeholders})",
                tuple(str(task_id) for task_id in task_ids),
            )
            rows = await cursor.fetchall()
            tasks = [self._row_to_task(row) for row in rows]
            return {task.id: task for task in tasks}

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: UUID | None = None,
        created_by: UUID | None = None,
    ) -> list[Task]:
        """List tasks with optional filters, in queue order.

        Args:
            status: Filter by task status
            assigned_to: Filter by assignee agent ID
            created_by: Filter by creator agent ID

        Returns:
            Tasks ordered by priority rank (urgent first), then creation time
        """
        where_clauses: list[str] = []
        params: list[Any] = []

        if status:
            where_clauses.append("status = ?")
            params.append(status.value)
        if assigned_to:
            where_clauses.append("assigned_to = ?")
            params.append(str(assigned_to))
        if created_by:
            where_clauses.append("created_by = ?")
            params.append(str(created_by))

        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""

        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM tasks {where_sql} ORDER BY {TASK_ORDER_SQL}",
                tuple(params),
            )
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def list_claimable_tasks(self, agent_id: UUID) -> list[Task]:
        """Tasks that are pending, or assigned to this agent, in queue order."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"""
                SELECT * FROM tasks
                WHERE status = ? OR (status = ? AND assigned_to = ?)
                ORDER BY {TASK_ORDER_SQL}
                """,
                (TaskStatus.PENDING.value, TaskStatus.ASSIGNED.value, str(agent_id)),
            )
            rows = await cursor.fetchall()
            return [self._row_to_task(row) for row in rows]

    async def update_task(self, task_id: UUID, fields: dict[str, Any]) -> bool:
        """Apply a column update to one task.

        ``started_at`` and ``completed_at`` are written with COALESCE so an
        existing stamp is never overwritten, even by a concurrent writer.

        Args:
            task_id: Task to update
            fields: Column -> value; datetimes, UUIDs, enums and dicts are encoded

        Returns:
            True if the task existed
        """
        unknown = set(fields) - TASK_UPDATABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update task columns: {sorted(unknown)}")

        assignments: list[str] = []
        params: list[Any] = []
        for column, value in fields.items():
            if column in WRITE_ONCE_COLUMNS:
                assignments.append(f"{column} = COALESCE({column}, ?)")
            else:
                assignments.append(f"{column} = ?")
            params.append(self._encode(value))
        params.append(str(task_id))

        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"UPDATE tasks SET {', '.join(assignments)} WHERE id = ?",
                tuple(params),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def claim_task(self, task_id: UUID, agent_id: UUID, now: datetime) -> bool:
        """Atomically move a claimable task to IN_PROGRESS for agent_id.

        The row only changes if it is still PENDING, or ASSIGNED to the same
        agent, so of two racing claimants exactly one wins.

        Returns:
            True if this call claimed the task
        """
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                """
                UPDATE tasks
                SET status = ?, assigned_to = ?,
                    started_at = COALESCE(started_at, ?), updated_at = ?
                WHERE id = ?
                  AND (status = ? OR (status = ? AND assigned_to = ?))
                """,
                (
                    TaskStatus.IN_PROGRESS.value,
                    str(agent_id),
                    now.isoformat(),
                    now.isoformat(),
                    str(task_id),
                    TaskStatus.PENDING.value,
                    TaskStatus.ASSIGNED.value,
                    str(agent_id),
                ),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def count_tasks_by_status(self) -> dict[TaskStatus, int]:
        """Count tasks per status (every status present, zero-filled)."""
        counts = {status: 0 for status in TaskStatus}
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT status, COUNT(*) AS n FROM tasks GROUP BY status"
            )
            for row in await cursor.fetchall():
                counts[TaskStatus(row["status"])] = row["n"]
        return counts

    def _encode(self, value: Any) -> Any:
        """Encode a Python value for a TEXT column."""
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, UUID):
            return str(value)
        if isinstance(value, TaskStatus | TaskPriority):
            return value.value
        if isinstance(value, dict | list):
            return json.dumps(value)
        return value

    def _row_to_task(self, row: aiosqlite.Row) -> Task:
        """Convert database row to Task model."""
        return Task(
            id=UUID(row["id"]),
            title=row["title"],
            description=row["description"],
            status=TaskStatus(row["status"]),
            priority=TaskPriority(row["priority"]),
            created_by=UUID(row["created_by"]) if row["created_by"] else None,
            assigned_to=UUID(row["assigned_to"]) if row["assigned_to"] else None,
            dependencies=[UUID(dep) for dep in json.loads(row["dependencies"])],
            metadata=json.loads(row["metadata"]),
            output=row["output"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            started_at=datetime.fromisoformat(row["started_at"]) if row["started_at"] else None,
            completed_at=(
                datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None
            ),
        )

    # Memory operations
    async def upsert_memory(self, entry: MemoryEntry) -> MemoryEntry:
        """Insert or fully replace the entry at (namespace, key).

        On conflict the value, updated_at, ttl_seconds and expires_at are all
        overwritten; id, created_at and created_by keep their first-write values.

        Returns:
            The stored entry as read back from the table
        """
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO memory (
                    id, namespace, key, value, created_by, ttl_seconds,
                    created_at, updated_at, expires_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(namespace, key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at,
                    ttl_seconds = excluded.ttl_seconds,
                    expires_at = excluded.expires_at
                """,
                (
                    str(entry.id),
                    entry.namespace,
                    entry.key,
                    json.dumps(entry.value),
                    _uuid(entry.created_by),
                    entry.ttl_seconds,
                    entry.created_at.isoformat(),
                    entry.updated_at.isoformat(),
                    _dt(entry.expires_at),
                ),
            )
            await conn.commit()
            cursor = await conn.execute(
                "SELECT * FROM memory WHERE namespace = ? AND key = ?",
                (entry.namespace, entry.key),
            )
            row = await cursor.fetchone()
            return self._row_to_memory(row) if row else entry

    async def get_memory(self, namespace: str, key: str) -> MemoryEntry | None:
        """Get memory entry by (namespace, key)."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM memory WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            row = await cursor.fetchone()
            return self._row_to_memory(row) if row else None

    async def list_memory(self, namespace: str) -> list[MemoryEntry]:
        """List entries of a namespace ordered by key."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "SELECT * FROM memory WHERE namespace = ? ORDER BY key",
                (namespace,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_memory(row) for row in rows]

    async def delete_memory(self, namespace: str, key: str) -> bool:
        """Delete one memory entry."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM memory WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def delete_expired_memory(self, now: datetime) -> int:
        """Delete entries whose expires_at is in the past."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM memory WHERE expires_at IS NOT NULL AND expires_at < ?",
                (now.isoformat(),),
            )
            await conn.commit()
            return cursor.rowcount

    def _row_to_memory(self, row: aiosqlite.Row) -> MemoryEntry:
        """Convert database row to MemoryEntry model."""
        return MemoryEntry(
            id=UUID(row["id"]),
            namespace=row["namespace"],
            key=row["key"],
            value=json.loads(row["value"]),
            created_by=UUID(row["created_by"]) if row["created_by"] else None,
            ttl_seconds=row["ttl_seconds"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None,
        )

    # Lock operations
    async def insert_lock(self, lock: Lock) -> None:
        """Insert a lock row; the UNIQUE resource column is the mutex.

        Raises:
            ConflictError: If the resource is already locked
        """
        async with self._get_connection() as conn:
            try:
                await conn.execute(
                    """
                    INSERT INTO locks (id, resource, held_by, acquired_at, expires_at, metadata)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(lock.id),
                        lock.resource,
                        str(lock.held_by),
                        lock.acquired_at.isoformat(),
                        _dt(lock.expires_at),
                        json.dumps(lock.metadata),
                    ),
                )
                await conn.commit()
            except sqlite3.IntegrityError as e:
                await conn.rollback()
                raise ConflictError(f"Resource '{lock.resource}' is already locked") from e

    async def get_lock(self, resource: str) -> Lock | None:
        """Get the lock on a resource, if any."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("SELECT * FROM locks WHERE resource = ?", (resource,))
            row = await cursor.fetchone()
            return self._row_to_lock(row) if row else None

    async def list_locks(self, held_by: UUID | None = None) -> list[Lock]:
        """List locks, oldest first."""
        async with self._get_connection() as conn:
            if held_by:
                cursor = await conn.execute(
                    "SELECT * FROM locks WHERE held_by = ? ORDER BY acquired_at ASC",
                    (str(held_by),),
                )
            else:
                cursor = await conn.execute("SELECT * FROM locks ORDER BY acquired_at ASC")
            rows = await cursor.fetchall()
            return [self._row_to_lock(row) for row in rows]

    async def delete_lock(self, resource: str, held_by: UUID) -> bool:
        """Delete a lock only if held_by is the current holder."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM locks WHERE resource = ? AND held_by = ?",
                (resource, str(held_by)),
            )
            await conn.commit()
            return cursor.rowcount > 0

    async def delete_locks_held_by(self, held_by: UUID) -> int:
        """Delete every lock held by an agent."""
        async with self._get_connection() as conn:
            cursor = await conn.execute("DELETE FROM locks WHERE held_by = ?", (str(held_by),))
            await conn.commit()
            return cursor.rowcount

    async def delete_expired_locks(self, now: datetime) -> int:
        """Delete locks whose expires_at is in the past."""
        async with self._get_connection() as conn:
            cursor = await conn.execute(
                "DELETE FROM locks WHERE expires_at IS NOT NULL AND expires_at < ?",
                (now.isoformat(),),
            )
            await conn.commit()
            return cursor.rowcount

    def _row_to_lock(self, row: aiosqlite.Row) -> Lock:
        """Convert database row to Lock model."""
        return Lock(
            id=UUID(row["id"]),
            resource=row["resource"],
            held_by=UUID(row["held_by"]),
            acquired_at=datetime.fromisoformat(row["acquired_at"]),
            expires_at=datetime.fromisoformat(row["expires_at"]) if row["expires_at"] else None,
            metadata=json.loads(row["metadata"]),
        )

    # Event operations
    async def insert_event(self, event: Event) -> None:
        """Append an audit event."""
        async with self._get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO events (id, event_type, agent_id, resource_id, details, timestamp)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    str(event.id),
                    event.event_type.value,
                    _uuid(event.agent_id),
                    event.resource_id,
                    json.dumps(event.details),
                    event.timestamp.isoformat(),
                ),
            )
            await conn.commit()

    async def list_events(
        self,
        agent_id: UUID | None = None,
        event_type: EventType | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """List events newest first."""
        where_clauses: list[str] = []
        params: list[Any] = []

        if agent_id:
            where_clauses.append("agent_id = ?")
            params.append(str(agent_id))
        if event_type:
            where_clauses.append("event_type = ?")
            params.append(event_type.value)

        where_sql = f"WHERE {' AND '.join(where_clauses)}" if where_clauses else ""
        params.append(limit)

        async with self._get_connection() as conn:
            cursor = await conn.execute(
                f"SELECT * FROM events {where_sql} ORDER BY timestamp DESC, id DESC LIMIT ?",
                tuple(params),
            )
            rows = await cursor.fetchall()
            return [self._row_to_event(row) for row in rows]

    def _row_to_event(self, row: aiosqlite.Row) -> Event:
        """Convert database row to Event model."""
        return Event(
            id=UUID(row["id"]),
            event_type=EventType(row["event_type"]),
            agent_id=UUID(row["agent_id"]) if row["agent_id"] else None,
            resource_id=row["resource_id"],
            details=json.loads(row["details"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
        )

    # Stats
    async def count_rows(self) -> dict[str, int]:
        """Row counts for each coordination table."""
        counts: dict[str, int] = {}
        async with self._get_connection() as conn:
            for table in ("agents", "tasks", "memory", "locks", "events"):
                cursor = await conn.execute(f"SELECT COUNT(*) FROM {table}")
                row = await cursor.fetchone()
                counts[table] = row[0] if row else 0
        return counts
