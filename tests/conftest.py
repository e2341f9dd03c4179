"""Pytest configuration and fixtures."""

import tempfile
from collections.abc import AsyncGenerator, Generator
from pathlib import Path

import pytest
from agentorch.application import AgentSession, Coordinator
from agentorch.infrastructure.database import Database
from agentorch.services import (
    AgentRegistry,
    DependencyResolver,
    EventLog,
    LockManager,
    MemoryService,
    TaskQueueService,
)


# Database fixtures
@pytest.fixture
def temp_db_path() -> Generator[Path, None, None]:
    """Create temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup, including WAL files
    for path in (db_path, Path(f"{db_path}-wal"), Path(f"{db_path}-shm")):
        if path.exists():
            path.unlink()


@pytest.fixture
async def memory_db() -> AsyncGenerator[Database, None]:
    """Create in-memory database for fast tests."""
    db = Database(Path(":memory:"))
    await db.initialize()
    yield db
    # Cleanup: close the shared connection for :memory: databases
    await db.close()


@pytest.fixture
async def file_db(temp_db_path: Path) -> AsyncGenerator[Database, None]:
    """Create file-based database for persistence and concurrency tests."""
    db = Database(temp_db_path)
    await db.initialize()
    yield db
    # File-based databases close connections automatically, no cleanup needed


# Service fixtures
@pytest.fixture
def event_log(memory_db: Database) -> EventLog:
    """Create EventLog with in-memory database."""
    return EventLog(memory_db)


@pytest.fixture
def lock_manager(memory_db: Database, event_log: EventLog) -> LockManager:
    """Create LockManager with in-memory database."""
    return LockManager(memory_db, event_log)


@pytest.fixture
def agent_registry(
    memory_db: Database, lock_manager: LockManager, event_log: EventLog
) -> AgentRegistry:
    """Create AgentRegistry with in-memory database."""
    return AgentRegistry(memory_db, lock_manager, event_log)


@pytest.fixture
def memory_service(memory_db: Database, event_log: EventLog) -> MemoryService:
    """Create MemoryService with in-memory database."""
    return MemoryService(memory_db, event_log)


@pytest.fixture
def dependency_resolver(memory_db: Database) -> DependencyResolver:
    """Create DependencyResolver with in-memory database."""
    return DependencyResolver(memory_db)


@pytest.fixture
def task_queue_service(
    memory_db: Database, dependency_resolver: DependencyResolver, event_log: EventLog
) -> TaskQueueService:
    """Create TaskQueueService with in-memory database."""
    return TaskQueueService(memory_db, dependency_resolver, event_log)


# Application fixtures
@pytest.fixture
async def coordinator(memory_db: Database) -> Coordinator:
    """Create a Coordinator over the in-memory database."""
    coord = Coordinator(memory_db)
    await coord.initialize()
    return coord


@pytest.fixture
async def file_coordinator(file_db: Database) -> Coordinator:
    """Create a Coordinator over a temporary file database."""
    coord = Coordinator(file_db)
    await coord.initialize()
    return coord


@pytest.fixture
def session(coordinator: Coordinator) -> AgentSession:
    """Unregistered session on the shared in-memory coordinator."""
    return AgentSession(coordinator)
