"""Agent registry: identities, liveness and the stale-agent sweep."""

from datetime import timedelta
from uuid import UUID

from pydantic import JsonValue

from agentorch.domain.models import Agent, AgentRole, AgentStatus, EventType, utcnow
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import ConflictError
from agentorch.infrastructure.logger import get_logger
from agentorch.services.event_log import EventLog
from agentorch.services.lock_manager import LockManager

logger = get_logger(__name__)

DEFAULT_STALE_AFTER_SECONDS = 300


class AgentRegistry:
    """Register, look up, heartbeat and retire agents.

    Registration is idempotent by name: registering a name that already exists
    reconnects to that agent (same id, refreshed heartbeat, status ACTIVE)
    instead of failing. Agents that stop heartbeating are detected lazily by
    ``sweep_stale`` before every listing; their locks are released and they are
    flagged OFFLINE, but their rows and task assignments are kept.
    """

    def __init__(
        self,
        db: Database,
        locks: LockManager,
        events: EventLog,
        stale_after_seconds: int = DEFAULT_STALE_AFTER_SECONDS,
    ) -> None:
        self.db = db
        self.locks = locks
        self.events = events
        self.stale_after = timedelta(seconds=stale_after_seconds)

    async def register(
        self,
        name: str,
        role: AgentRole = AgentRole.SUB,
        capabilities: list[str] | None = None,
        metadata: dict[str, JsonValue] | None = None,
    ) -> Agent:
        """Register a new agent or reconnect to an existing one by name.

        Args:
            name: Unique agent name
            role: MAIN or SUB
            capabilities: Capability tags
            metadata: Free-form JSON context

        Returns:
            The registered (or reconnected) agent
        """
        existing = await self.db.get_agent_by_name(name)
        if existing is not None:
            return await self._reconnect(existing)

        now = utcnow()
        agent = Agent(
            name=name,
            role=role,
            status=AgentStatus.ACTIVE,
            capabilities=capabilities or [],
            metadata=metadata or {},
            registered_at=now,
            last_heartbeat=now,
        )
        try:
            await self.db.insert_agent(agent)
        except ConflictError:
            # Another process registered the same name between lookup and insert
            existing = await self.db.get_agent_by_name(name)
            if existing is None:
                raise
            return await self._reconnect(existing)

        await self.events.record(
            EventType.AGENT_REGISTERED,
            agent_id=agent.id,
            resource_id=str(agent.id),
            details={"name": name, "role": role.value, "capabilities": agent.capabilities},
        )
        logger.info("agent_registered", agent_id=str(agent.id), name=name, role=role.value)
        return agent

    async def _reconnect(self, agent: Agent) -> Agent:
        now = utcnow()
        await self.db.update_agent_heartbeat(agent.id, now, AgentStatus.ACTIVE)
        logger.info("agent_reconnected", agent_id=str(agent.id), name=agent.name)
        return agent.model_copy(update={"status": AgentStatus.ACTIVE, "last_heartbeat": now})

    async def get(self, agent_id: UUID) -> Agent | None:
        """Get agent by ID."""
        return await self.db.get_agent(agent_id)

    async def get_by_name(self, name: str) -> Agent | None:
        """Get agent by name."""
        return await self.db.get_agent_by_name(name)

    async def heartbeat(self, agent_id: UUID, status: AgentStatus | None = None) -> bool:
        """Refresh an agent's liveness, optionally changing its status.

        Heartbeats are not journalled in the event log.

        Returns:
            False if the agent does not exist
        """
        return await self.db.update_agent_heartbeat(agent_id, utcnow(), status)

    async def list_agents(
        self, status: AgentStatus | None = None, role: AgentRole | None = None
    ) -> list[Agent]:
        """List agents, most recently registered first, after sweeping stale ones."""
        await self.sweep_stale()
        return await self.db.list_agents(status=status, role=role)

    async def unregister(self, agent_id: UUID) -> bool:
        """Remove an agent, releasing all of its locks first.

        Locks are released even when the agent row is already gone.

        Returns:
            True if an agent row was deleted
        """
        await self.locks.release_all(agent_id)
        deleted = await self.db.delete_agent(agent_id)
        if deleted:
            await self.events.record(
                EventType.AGENT_UNREGISTERED, agent_id=agent_id, resource_id=str(agent_id)
            )
            logger.info("agent_unregistered", agent_id=str(agent_id))
        return deleted

    async def sweep_stale(self) -> int:
        """Flag silent agents OFFLINE and release their locks.

        Returns:
            Number of agents flagged offline
        """
        cutoff = utcnow() - self.stale_after
        stale_ids = await self.db.get_stale_agent_ids(cutoff)
        if not stale_ids:
            return 0

        for agent_id in stale_ids:
            await self.locks.release_all(agent_id)
        count = await self.db.mark_agents_offline(stale_ids, cutoff)
        logger.info("stale_agents_swept", count=count, agent_ids=[str(a) for a in stale_ids])
        return count
