"""Caller-facing coordination surface bound to one agent identity.

An ``AgentSession`` carries the calling agent's id explicitly; there is no
process-wide "current agent". Operations that act on behalf of an agent
(claims, locks, heartbeats) raise ``NotRegisteredError`` until ``register``
or ``bootstrap`` has run, and again if the agent row disappears.
"""

from uuid import UUID

from pydantic import BaseModel, Field, JsonValue

from agentorch.application.coordinator import Coordinator
from agentorch.domain.models import (
    Agent,
    AgentRole,
    AgentStatus,
    Lock,
    MemoryEntry,
    Task,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
    new_id,
)
from agentorch.infrastructure.exceptions import (
    AgentNotFoundError,
    CoordinationError,
    DependencyNotMetError,
    InvalidArgumentError,
    MemoryEntryNotFoundError,
    NotRegisteredError,
    TaskNotFoundError,
)
from agentorch.infrastructure.logger import get_logger
from agentorch.services.memory_service import DEFAULT_NAMESPACE

logger = get_logger(__name__)

CONTEXT_NAMESPACE = "context"
CURRENT_FOCUS_KEY = "current_focus"
DECISIONS_NAMESPACE = "decisions"
BOOTSTRAP_LIMIT = 5

LIVE_AGENT_STATUSES = frozenset({AgentStatus.ACTIVE, AgentStatus.BUSY})
OPEN_TASK_STATUSES = frozenset({TaskStatus.PENDING, TaskStatus.ASSIGNED})


class TurnCheck(BaseModel):
    """Answer to "should I work now?"."""

    my_turn: bool
    reason: str
    task: Task | None = None


class CoordinationStatus(BaseModel):
    """Aggregate snapshot of the coordination group."""

    active_agents: int
    total_agents: int
    pending_tasks: int
    in_progress_tasks: int
    locks_held: int
    memory_entries: int
    agents: list[Agent] = Field(default_factory=list)
    locks: list[Lock] = Field(default_factory=list)


class BootstrapContext(BaseModel):
    """What an agent needs to know at the start of a session."""

    agent: Agent
    current_focus: JsonValue = None
    pending_tasks: list[Task] = Field(default_factory=list)
    recent_decisions: list[MemoryEntry] = Field(default_factory=list)


def _generated_name(prefix: str) -> str:
    # Random tail of a fresh id; the leading bits are only a timestamp
    return f"{prefix}-{new_id().hex[-12:]}"


class AgentSession:
    """Coordination operations on behalf of one agent."""

    def __init__(self, coordinator: Coordinator, agent_id: UUID | None = None) -> None:
        """Initialize session.

        Args:
            coordinator: Shared engine instance
            agent_id: Existing identity to resume, if any
        """
        self.coordinator = coordinator
        self._agent_id = agent_id

    @property
    def agent_id(self) -> UUID | None:
        return self._agent_id

    @property
    def is_registered(self) -> bool:
        return self._agent_id is not None

    def _require_id(self) -> UUID:
        if self._agent_id is None:
            raise NotRegisteredError()
        return self._agent_id

    def _forget(self, agent_id: UUID) -> NotRegisteredError:
        self._agent_id = None
        logger.warning("session_identity_lost", agent_id=str(agent_id))
        return NotRegisteredError(f"Agent {agent_id} is no longer registered")

    async def _require_agent(self) -> Agent:
        agent_id = self._require_id()
        agent = await self.coordinator.agents.get(agent_id)
        if agent is None:
            raise self._forget(agent_id)
        return agent

    # Agents
    async def register(
        self,
        name: str | None = None,
        role: AgentRole | None = None,
        capabilities: list[str] | None = None,
        metadata: dict[str, JsonValue] | None = None,
    ) -> Agent:
        """Register (or reconnect) and bind this session to the agent.

        Missing arguments fall back to the configured agent defaults; with no
        configured name a unique ``agent-...`` name is generated.
        """
        defaults = self.coordinator.config.agent
        agent = await self.coordinator.agents.register(
            name=name or defaults.name or _generated_name("agent"),
            role=role or defaults.role,
            capabilities=capabilities if capabilities is not None else defaults.capabilities,
            metadata=metadata,
        )
        self._agent_id = agent.id
        return agent

    async def heartbeat(self, status: AgentStatus | None = None) -> None:
        """Signal liveness, optionally changing status."""
        agent_id = self._require_id()
        if not await self.coordinator.agents.heartbeat(agent_id, status):
            raise self._forget(agent_id)

    async def list_agents(
        self, status: AgentStatus | None = None, role: AgentRole | None = None
    ) -> list[Agent]:
        return await self.coordinator.agents.list_agents(status=status, role=role)

    async def unregister(self) -> bool:
        """Unregister this session's agent, releasing its locks."""
        agent_id = self._require_id()
        deleted = await self.coordinator.agents.unregister(agent_id)
        self._agent_id = None
        return deleted

    async def whoami(self) -> Agent:
        return await self._require_agent()

    # Memory
    async def memory_set(
        self,
        key: str,
        value: JsonValue,
        namespace: str = DEFAULT_NAMESPACE,
        ttl_seconds: int | None = None,
    ) -> MemoryEntry:
        return await self.coordinator.memory.set(
            key, value, namespace=namespace, created_by=self._agent_id, ttl_seconds=ttl_seconds
        )

    async def memory_get(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> MemoryEntry:
        """Get a live memory entry.

        Raises:
            MemoryEntryNotFoundError: If the key is absent or expired
        """
        entry = await self.coordinator.memory.get(key, namespace=namespace)
        if entry is None:
            raise MemoryEntryNotFoundError(key, namespace)
        return entry

    async def memory_list(self, namespace: str = DEFAULT_NAMESPACE) -> list[MemoryEntry]:
        return await self.coordinator.memory.list_entries(namespace=namespace)

    async def memory_delete(self, key: str, namespace: str = DEFAULT_NAMESPACE) -> bool:
        return await self.coordinator.memory.delete(
            key, namespace=namespace, agent_id=self._agent_id
        )

    # Tasks
    async def task_create(
        self,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.NORMAL,
        assigned_to: UUID | None = None,
        dependencies: list[UUID] | None = None,
        metadata: dict[str, JsonValue] | None = None,
    ) -> Task:
        """Create a task, recording this session's agent (if any) as creator.

        Raises:
            AgentNotFoundError: If ``assigned_to`` names no registered agent
        """
        if assigned_to is not None and await self.coordinator.agents.get(assigned_to) is None:
            raise AgentNotFoundError(assigned_to)
        return await self.coordinator.tasks.create_task(
            title,
            description=description,
            priority=priority,
            created_by=self._agent_id,
            assigned_to=assigned_to,
            dependencies=dependencies,
            metadata=metadata,
        )

    async def task_claim(self, task_id: UUID | None = None) -> Task | None:
        """Claim a specific task, or the next available one when no id is given.

        Returns:
            The claimed task; None only when no id was given and nothing is available
        """
        agent_id = self._require_id()
        if task_id is not None:
            return await self.coordinator.tasks.claim_task(task_id, agent_id)
        return await self.coordinator.tasks.claim_next(agent_id)

    async def task_update(
        self,
        task_id: UUID,
        status: TaskStatus | None = None,
        progress: int | None = None,
        output: str | None = None,
    ) -> Task:
        """Update status, progress (0..100, stored in metadata) or output.

        Raises:
            InvalidArgumentError: If progress is outside 0..100
            TaskNotFoundError: If the task does not exist
        """
        if progress is not None and not 0 <= progress <= 100:
            raise InvalidArgumentError("progress", progress, "must be between 0 and 100")

        changes: dict[str, object] = {}
        if status is not None:
            changes["status"] = status
        if output is not None:
            changes["output"] = output
        if progress is not None:
            changes["metadata"] = {"progress": progress}

        updated = await self.coordinator.tasks.update_task(
            task_id, TaskUpdate.model_validate(changes), agent_id=self._agent_id
        )
        if updated is None:
            raise TaskNotFoundError(task_id)
        return updated

    async def task_complete(self, task_id: UUID, output: str | None = None) -> Task:
        completed = await self.coordinator.tasks.complete_task(
            task_id, output, agent_id=self._agent_id
        )
        if completed is None:
            raise TaskNotFoundError(task_id)
        return completed

    async def task_list(
        self,
        status: TaskStatus | None = None,
        assigned_to: UUID | None = None,
        mine: bool = False,
    ) -> list[Task]:
        """List tasks in queue order; ``mine`` restricts to this agent's tasks."""
        if mine:
            assigned_to = self._require_id()
        return await self.coordinator.tasks.list_tasks(status=status, assigned_to=assigned_to)

    async def is_my_turn(self, task_id: UUID | None = None) -> TurnCheck:
        """Report whether this agent should work on a task now.

        With a task id: yes only if the task is assigned to this agent, its
        dependencies are met and it is not completed. Without one: yes if any
        task is available to claim.
        """
        agent_id = self._require_id()
        tasks = self.coordinator.tasks

        if task_id is None:
            available = await tasks.get_next_available(agent_id)
            if available is None:
                return TurnCheck(my_turn=False, reason="no tasks available")
            return TurnCheck(
                my_turn=True, reason=f"'{available.title}' is available", task=available
            )

        task = await tasks.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.assigned_to != agent_id:
            return TurnCheck(
                my_turn=False,
                reason=f"assigned to {task.assigned_to or 'no one'}",
                task=task,
            )
        if not await tasks.dependencies_met(task_id):
            return TurnCheck(my_turn=False, reason="waiting for dependencies", task=task)
        if task.status == TaskStatus.COMPLETED:
            return TurnCheck(my_turn=False, reason="already completed", task=task)
        return TurnCheck(my_turn=True, reason="task is ready for you", task=task)

    # Locks
    async def lock_acquire(
        self,
        resource: str,
        timeout_seconds: int | None = None,
        reason: str | None = None,
    ) -> Lock:
        """Lock a resource for this agent.

        Re-acquiring a lock this agent already holds returns the held lock
        unchanged (its expiry is not extended).

        Raises:
            LockConflictError: If another agent holds the resource
        """
        agent_id = self._require_id()
        locks = self.coordinator.locks

        existing = await locks.check(resource)
        if existing is not None and existing.held_by == agent_id:
            return existing

        if timeout_seconds is None:
            timeout_seconds = self.coordinator.config.coordination.default_lock_timeout_seconds
        return await locks.acquire(
            resource,
            agent_id,
            timeout_seconds=timeout_seconds,
            metadata={"reason": reason or ""},
        )

    async def lock_release(self, resource: str) -> bool:
        """Release a lock held by this agent; False if not held by it."""
        return await self.coordinator.locks.release(resource, self._require_id())

    async def lock_check(self, resource: str) -> Lock | None:
        return await self.coordinator.locks.check(resource)

    async def status(self) -> CoordinationStatus:
        """Aggregate counts: live agents, open tasks, held locks, memory entries."""
        coordinator = self.coordinator
        agents = await coordinator.agents.list_agents()
        live = [agent for agent in agents if agent.status in LIVE_AGENT_STATUSES]
        counts = await coordinator.tasks.count_by_status()
        locks = await coordinator.locks.list_locks()
        await coordinator.memory.sweep_expired()
        rows = await coordinator.database.count_rows()

        return CoordinationStatus(
            active_agents=len(live),
            total_agents=len(agents),
            pending_tasks=counts[TaskStatus.PENDING],
            in_progress_tasks=counts[TaskStatus.IN_PROGRESS],
            locks_held=len(locks),
            memory_entries=rows["memory"],
            agents=live,
            locks=locks,
        )

    # Session helpers
    async def bootstrap(
        self, name: str | None = None, role: AgentRole | None = None
    ) -> BootstrapContext:
        """Register or reconnect, then gather the session's starting context.

        The context holds the shared current focus (``context/current_focus``),
        this agent's open tasks and the most recently updated decisions.
        """
        agent = await self.register(name=name, role=role)
        memory = self.coordinator.memory

        focus = await memory.get(CURRENT_FOCUS_KEY, namespace=CONTEXT_NAMESPACE)
        my_tasks = await self.coordinator.tasks.list_tasks(assigned_to=agent.id)
        open_tasks = [task for task in my_tasks if task.status in OPEN_TASK_STATUSES]
        decisions = await memory.list_entries(namespace=DECISIONS_NAMESPACE)
        decisions.sort(key=lambda entry: entry.updated_at, reverse=True)

        logger.info(
            "session_bootstrapped",
            agent_id=str(agent.id),
            name=agent.name,
            open_tasks=len(open_tasks),
        )
        return BootstrapContext(
            agent=agent,
            current_focus=focus.value if focus else None,
            pending_tasks=open_tasks[:BOOTSTRAP_LIMIT],
            recent_decisions=decisions[:BOOTSTRAP_LIMIT],
        )

    async def claim_todo(
        self,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.NORMAL,
    ) -> Task:
        """Register as a fresh busy sub agent and claim the task with this title.

        An existing PENDING task whose title matches (case-insensitive,
        surrounding whitespace ignored) is claimed. Same-title tasks already
        assigned to or worked on by another agent are not taken over; a new
        task is created and claimed instead.

        Raises:
            DependencyNotMetError: If the matching PENDING task is blocked.
                Raised before any agent is registered.
        """
        tasks = self.coordinator.tasks
        wanted = title.strip().lower()
        match = next(
            (
                task
                for task in await tasks.list_tasks(status=TaskStatus.PENDING)
                if task.title.strip().lower() == wanted
            ),
            None,
        )
        if match is not None:
            unmet = await self.coordinator.dependency_resolver.get_unmet_dependencies(match)
            if unmet:
                raise DependencyNotMetError(match.id, unmet)

        agent = await self.register(name=_generated_name("sub"), role=AgentRole.SUB)
        try:
            await self.heartbeat(AgentStatus.BUSY)
            if match is None:
                match = await tasks.create_task(
                    title,
                    description=description,
                    priority=priority,
                    created_by=agent.id,
                    assigned_to=agent.id,
                )
            return await tasks.claim_task(match.id, agent.id)
        except CoordinationError:
            # Claim failed; drop the throwaway identity
            await self.coordinator.agents.unregister(agent.id)
            self._agent_id = None
            raise
