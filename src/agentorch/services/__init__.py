"""Service layer for agents, locks, memory, tasks and the event log."""

from agentorch.services.agent_registry import AgentRegistry
from agentorch.services.dependency_resolver import DependencyResolver
from agentorch.services.event_log import EventLog
from agentorch.services.lock_manager import LockManager
from agentorch.services.memory_service import MemoryService
from agentorch.services.task_queue_service import TaskQueueService

__all__ = [
    "AgentRegistry",
    "DependencyResolver",
    "EventLog",
    "LockManager",
    "MemoryService",
    "TaskQueueService",
]
