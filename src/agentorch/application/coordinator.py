"""Coordinator: wires the database and services into one engine instance."""

from pathlib import Path

from agentorch.infrastructure.config import Config, ConfigManager
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.logger import get_logger
from agentorch.services import (
    AgentRegistry,
    DependencyResolver,
    EventLog,
    LockManager,
    MemoryService,
    TaskQueueService,
)

logger = get_logger(__name__)


class Coordinator:
    """Coordination engine over one SQLite store.

    Holds no caller identity: several ``AgentSession`` objects (one per agent)
    may share a coordinator.

    Usage:
        coordinator = await Coordinator.open(ConfigManager(project_root))
        session = AgentSession(coordinator)
        await session.register("alice")
        ...
        await coordinator.close()
    """

    def __init__(self, database: Database, config: Config | None = None) -> None:
        """Initialize coordinator.

        Args:
            database: Database instance (initialized by ``initialize``)
            config: Engine configuration (defaults when omitted)
        """
        self.config = config or Config()
        self.database = database

        self.events = EventLog(
            database, default_limit=self.config.coordination.event_list_limit
        )
        self.locks = LockManager(database, self.events)
        self.agents = AgentRegistry(
            database,
            self.locks,
            self.events,
            stale_after_seconds=self.config.coordination.stale_agent_seconds,
        )
        self.memory = MemoryService(database, self.events)
        self.dependency_resolver = DependencyResolver(database)
        self.tasks = TaskQueueService(database, self.dependency_resolver, self.events)

    @classmethod
    def from_config(cls, config_manager: ConfigManager) -> "Coordinator":
        """Build a coordinator from loaded configuration (not yet initialized)."""
        config = config_manager.load_config()
        database = Database(
            config_manager.get_database_path(), busy_timeout_ms=config.busy_timeout_ms
        )
        return cls(database, config)

    @classmethod
    async def open(cls, config_manager: ConfigManager | None = None) -> "Coordinator":
        """Build and initialize a coordinator from configuration."""
        coordinator = cls.from_config(config_manager or ConfigManager())
        await coordinator.initialize()
        return coordinator

    @property
    def db_path(self) -> Path:
        return self.database.db_path

    async def initialize(self) -> None:
        """Create the schema if needed."""
        await self.database.initialize()
        logger.debug("coordinator_initialized", db_path=str(self.database.db_path))

    async def close(self) -> None:
        await self.database.close()

    async def sweep(self) -> dict[str, int]:
        """Run every lazy sweep now.

        Returns:
            Rows affected per sweep
        """
        return {
            "locks": await self.locks.sweep_expired(),
            "memory": await self.memory.sweep_expired(),
            "agents": await self.agents.sweep_stale(),
        }
