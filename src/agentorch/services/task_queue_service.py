"""Task queue service: priority-ordered work with dependency gating and atomic claims.

State machine:
    PENDING -> ASSIGNED -> IN_PROGRESS -> COMPLETED | FAILED | CANCELLED
    PENDING -> IN_PROGRESS (claim shortcut)

COMPLETED/FAILED/CANCELLED are terminal: any attempt to move a task out of a
terminal state raises ``InvalidTransitionError``. Other transitions are
accepted as requested.

Queue order is priority rank (URGENT, HIGH, NORMAL, LOW) then creation time,
oldest first.
"""

from uuid import UUID

from pydantic import JsonValue

from agentorch.domain.models import (
    EventType,
    Task,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
    utcnow,
)
from agentorch.infrastructure.database import Database
from agentorch.infrastructure.exceptions import (
    DependencyNotMetError,
    InvalidTransitionError,
    TaskClaimConflictError,
    TaskNotFoundError,
)
from agentorch.infrastructure.logger import get_logger
from agentorch.services.dependency_resolver import DependencyResolver
from agentorch.services.event_log import EventLog

logger = get_logger(__name__)

# Event emitted for an update, chosen by the destination status
STATUS_EVENTS = {
    TaskStatus.ASSIGNED: EventType.TASK_ASSIGNED,
    TaskStatus.IN_PROGRESS: EventType.TASK_CLAIMED,
    TaskStatus.COMPLETED: EventType.TASK_COMPLETED,
}


class TaskQueueService:
    """Task queue orchestration service.

    Usage:
        db = Database(Path(".agentorch/orchestrator.db"))
        await db.initialize()

        events = EventLog(db)
        service = TaskQueueService(db, DependencyResolver(db), events)

        design = await service.create_task("Design API", priority=TaskPriority.HIGH)
        build = await service.create_task("Build API", dependencies=[design.id])

        task = await service.claim_next(agent_id)      # -> design
        await service.complete_task(task.id, "done")
        task = await service.claim_next(agent_id)      # -> build, now unblocked
    """

    def __init__(
        self,
        database: Database,
        dependency_resolver: DependencyResolver,
        events: EventLog,
    ):
        """Initialize task queue service.

        Args:
            database: Database instance for task storage
            dependency_resolver: Checks prerequisite completion
            events: Event log receiving task_* records
        """
        self._db = database
        self._dependency_resolver = dependency_resolver
        self._events = events

    async def create_task(
        self,
        title: str,
        description: str = "",
        priority: TaskPriority = TaskPriority.NORMAL,
        created_by: UUID | None = None,
        assigned_to: UUID | None = None,
        dependencies: list[UUID] | None = None,
        metadata: dict[str, JsonValue] | None = None,
    ) -> Task:
        """Create a PENDING task.

        Dependencies are not validated here: an id matching no task simply
        keeps the new task blocked.

        Returns:
            The created task
        """
        now = utcnow()
        task = Task(
            title=title,
            description=description,
            priority=priority,
            created_by=created_by,
            assigned_to=assigned_to,
            dependencies=dependencies or [],
            metadata=metadata or {},
            created_at=now,
            updated_at=now,
        )
        await self._db.insert_task(task)

        await self._events.record(
            EventType.TASK_CREATED,
            agent_id=created_by,
            resource_id=str(task.id),
            details={
                "title": title,
                "priority": priority.value,
                "assigned_to": str(assigned_to) if assigned_to else None,
                "dependencies": [str(dep) for dep in task.dependencies],
            },
        )
        logger.info(
            "task_created",
            task_id=str(task.id),
            title=title,
            priority=priority.value,
            dependency_count=len(task.dependencies),
        )
        return task

    async def get_task(self, task_id: UUID) -> Task | None:
        """Get task by ID."""
        return await self._db.get_task(task_id)

    async def list_tasks(
        self,
        status: TaskStatus | None = None,
        assigned_to: UUID | None = None,
        created_by: UUID | None = None,
    ) -> list[Task]:
        """List tasks in queue order with optional filters."""
        return await self._db.list_tasks(
            status=status, assigned_to=assigned_to, created_by=created_by
        )

    async def dependencies_met(self, task_id: UUID) -> bool:
        """Check whether every dependency of a task is COMPLETED.

        Raises:
            TaskNotFoundError: If the task does not exist
        """
        task = await self._db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return await self._dependency_resolver.are_all_dependencies_met(task)

    async def get_next_available(self, agent_id: UUID) -> Task | None:
        """First task, in queue order, that this agent could claim now.

        Candidates are PENDING tasks plus tasks ASSIGNED to this agent; the
        first one whose dependencies are met wins. Nothing is written.
        """
        for task in await self._db.list_claimable_tasks(agent_id):
            if await self._dependency_resolver.are_all_dependencies_met(task):
                return task
        return None

    async def update_task(
        self, task_id: UUID, update: TaskUpdate, agent_id: UUID | None = None
    ) -> Task | None:
        """Apply a partial update to a task.

        started_at is stamped the first time the task enters IN_PROGRESS and
        completed_at the first time it enters a terminal state; neither is
        ever overwritten. Metadata is merged key by key into the existing map.

        Args:
            task_id: Task to update
            update: Fields to change (only explicitly set fields apply)
            agent_id: Acting agent, recorded on the event

        Returns:
            Updated task, or None if it does not exist

        Raises:
            InvalidTransitionError: If the task is terminal and a different
                status is requested
        """
        task = await self._db.get_task(task_id)
        if task is None:
            return None

        now = utcnow()
        fields: dict[str, object] = {"updated_at": now}

        new_status = update.status if update.sets("status") else None
        if new_status is not None:
            if task.status.is_terminal and new_status != task.status:
                logger.warning(
                    "invalid_transition",
                    task_id=str(task_id),
                    current=task.status.value,
                    requested=new_status.value,
                )
                raise InvalidTransitionError(task_id, task.status.value, new_status.value)
            fields["status"] = new_status
            if new_status == TaskStatus.IN_PROGRESS:
                fields["started_at"] = now
            if new_status.is_terminal and not task.status.is_terminal:
                fields["completed_at"] = now

        if update.sets("assigned_to"):
            fields["assigned_to"] = update.assigned_to
        if update.sets("output"):
            fields["output"] = update.output
        if update.metadata:
            fields["metadata"] = {**task.metadata, **update.metadata}

        await self._db.update_task(task_id, fields)
        updated = await self._db.get_task(task_id)
        if updated is None:
            return None

        event_type = (
            STATUS_EVENTS.get(new_status, EventType.TASK_UPDATED)
            if new_status is not None
            else EventType.TASK_UPDATED
        )
        details: dict[str, JsonValue] = {
            "status": updated.status.value,
            "previous_status": task.status.value,
        }
        if update.metadata:
            details["metadata"] = update.metadata
        await self._events.record(
            event_type,
            agent_id=agent_id or updated.assigned_to or task.assigned_to,
            resource_id=str(task_id),
            details=details,
        )
        logger.info(
            "task_updated",
            task_id=str(task_id),
            status=updated.status.value,
            previous_status=task.status.value,
        )
        return updated

    async def claim_task(self, task_id: UUID, agent_id: UUID) -> Task:
        """Claim a specific task for an agent, moving it to IN_PROGRESS.

        Claiming a task the agent already has in progress returns it unchanged.

        Raises:
            TaskNotFoundError: If the task does not exist
            TaskClaimConflictError: If the task is not PENDING or ASSIGNED to
                this agent, or another agent won a concurrent claim
            DependencyNotMetError: If a dependency is missing or not completed
        """
        task = await self._db.get_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)

        if task.status == TaskStatus.IN_PROGRESS and task.assigned_to == agent_id:
            return task

        if not self._is_claimable(task, agent_id):
            raise TaskClaimConflictError(task_id, task.status.value, task.assigned_to)

        unmet = await self._dependency_resolver.get_unmet_dependencies(task)
        if unmet:
            raise DependencyNotMetError(task_id, unmet)

        if not await self._db.claim_task(task_id, agent_id, utcnow()):
            current = await self._db.get_task(task_id)
            logger.info("task_claim_lost", task_id=str(task_id), agent_id=str(agent_id))
            raise TaskClaimConflictError(
                task_id,
                current.status.value if current else "missing",
                current.assigned_to if current else None,
            )

        return await self._claimed(task, agent_id)

    async def claim_next(self, agent_id: UUID) -> Task | None:
        """Claim the first available task in queue order.

        Candidates that another agent claims first are skipped.

        Returns:
            The claimed task, or None if nothing is available
        """
        for task in await self._db.list_claimable_tasks(agent_id):
            if not await self._dependency_resolver.are_all_dependencies_met(task):
                continue
            if await self._db.claim_task(task.id, agent_id, utcnow()):
                return await self._claimed(task, agent_id)
            logger.debug("task_claim_lost", task_id=str(task.id), agent_id=str(agent_id))
        return None

    async def _claimed(self, task: Task, agent_id: UUID) -> Task:
        await self._events.record(
            EventType.TASK_CLAIMED,
            agent_id=agent_id,
            resource_id=str(task.id),
            details={"title": task.title, "previous_status": task.status.value},
        )
        logger.info("task_claimed", task_id=str(task.id), agent_id=str(agent_id))
        claimed = await self._db.get_task(task.id)
        if claimed is None:
            raise TaskNotFoundError(task.id)
        return claimed

    @staticmethod
    def _is_claimable(task: Task, agent_id: UUID) -> bool:
        return task.status == TaskStatus.PENDING or (
            task.status == TaskStatus.ASSIGNED and task.assigned_to == agent_id
        )

    async def complete_task(
        self, task_id: UUID, output: str | None = None, agent_id: UUID | None = None
    ) -> Task | None:
        """Mark a task COMPLETED, optionally recording its output."""
        update = (
            TaskUpdate(status=TaskStatus.COMPLETED, output=output)
            if output is not None
            else TaskUpdate(status=TaskStatus.COMPLETED)
        )
        return await self.update_task(task_id, update, agent_id=agent_id)

    async def count_by_status(self) -> dict[TaskStatus, int]:
        """Number of tasks in each status."""
        return await self._db.count_tasks_by_status()
