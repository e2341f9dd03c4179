"""Dependency gating for the task queue.

A task is available only when every task it depends on exists and is
COMPLETED. A dependency id that matches no task counts as unmet, so a task
pointing at a deleted or mistyped prerequisite is never released.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from agentorch.domain.models import Task, TaskStatus
from agentorch.infrastructure.logger import get_logger

if TYPE_CHECKING:
    from agentorch.infrastructure.database import Database

logger = get_logger(__name__)


class DependencyResolver:
    """Evaluates whether a task's prerequisites are satisfied."""

    def __init__(self, database: "Database"):
        """Initialize dependency resolver.

        Args:
            database: Database instance for looking up prerequisite tasks
        """
        self.db = database

    async def get_unmet_dependencies(self, task: Task) -> list[UUID]:
        """Return the dependencies of ``task`` that are missing or not completed.

        Order follows ``task.dependencies``.
        """
        if not task.dependencies:
            return []

        found = await self.db.get_tasks(task.dependencies)
        unmet = [
            dep_id
            for dep_id in task.dependencies
            if dep_id not in found or found[dep_id].status != TaskStatus.COMPLETED
        ]
        if unmet:
            logger.debug(
                "dependencies_unmet",
                task_id=str(task.id),
                unmet=[str(dep_id) for dep_id in unmet],
            )
        return unmet

    async def are_all_dependencies_met(self, task: Task) -> bool:
        """Check if all dependencies of a task are met.

        Args:
            task: Task to check

        Returns:
            True for zero dependencies, or when every dependency is COMPLETED
        """
        return not await self.get_unmet_dependencies(task)
