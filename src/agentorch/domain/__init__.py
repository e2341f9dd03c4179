"""Domain models for agentorch."""

from agentorch.domain.models import (
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
    TaskUpdate,
)

__all__ = [
    "Agent",
    "AgentRole",
    "AgentStatus",
    "Event",
    "EventType",
    "Lock",
    "MemoryEntry",
    "Task",
    "TaskPriority",
    "TaskStatus",
    "TaskUpdate",
]
