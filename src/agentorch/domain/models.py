"""Core domain models for agentorch."""

import os
import time
from datetime import datetime, timezone
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, JsonValue, field_validator


def new_id() -> UUID:
    """Generate a time-ordered UUID using the version 7 bit layout.

    The leading 48 bits hold the Unix time in milliseconds, so the string form
    sorts lexically in creation order (ties within one millisecond are broken
    by the random tail).
    """
    unix_ms = time.time_ns() // 1_000_000
    rand_a = int.from_bytes(os.urandom(2), "big") & 0x0FFF
    rand_b = int.from_bytes(os.urandom(8), "big") & ((1 << 62) - 1)
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76  # version
    value |= rand_a << 64
    value |= 0b10 << 62  # RFC 4122 variant
    value |= rand_b
    return UUID(int=value)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class AgentRole(str, Enum):
    """Role an agent plays in the coordination group."""

    MAIN = "main"
    SUB = "sub"


class AgentStatus(str, Enum):
    """Agent liveness/activity states."""

    ACTIVE = "active"
    IDLE = "idle"
    BUSY = "busy"
    OFFLINE = "offline"  # Set by the stale-agent sweep


class TaskStatus(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


class TaskPriority(str, Enum):
    """Task priority levels. Lower rank is served first."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    TaskPriority.URGENT: 1,
    TaskPriority.HIGH: 2,
    TaskPriority.NORMAL: 3,
    TaskPriority.LOW: 4,
}


class EventType(str, Enum):
    """Closed set of audit actions recorded in the event log."""

    AGENT_REGISTERED = "agent_registered"
    AGENT_UNREGISTERED = "agent_unregistered"
    AGENT_HEARTBEAT = "agent_heartbeat"
    TASK_CREATED = "task_created"
    TASK_ASSIGNED = "task_assigned"
    TASK_CLAIMED = "task_claimed"
    TASK_UPDATED = "task_updated"
    TASK_COMPLETED = "task_completed"
    MEMORY_SET = "memory_set"
    MEMORY_DELETE = "memory_delete"
    LOCK_ACQUIRED = "lock_acquired"
    LOCK_RELEASED = "lock_released"


class Agent(BaseModel):
    """A registered caller identity.

    Attributes:
        name: Unique agent name; registering an existing name reconnects
        capabilities: Unordered capability tags, kept sorted and de-duplicated
        last_heartbeat: Last liveness signal, drives the stale-agent sweep
    """

    id: UUID = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    role: AgentRole = AgentRole.SUB
    status: AgentStatus = AgentStatus.IDLE
    capabilities: list[str] = Field(default_factory=list)
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    registered_at: datetime = Field(default_factory=utcnow)
    last_heartbeat: datetime = Field(default_factory=utcnow)

    @field_validator("capabilities")
    @classmethod
    def normalize_capabilities(cls, v: list[str]) -> list[str]:
        """Treat capabilities as a set: strip blanks, drop duplicates, sort."""
        return sorted({c.strip() for c in v if c.strip()})

    model_config = ConfigDict()


class Task(BaseModel):
    """A unit of work in the task queue.

    Attributes:
        dependencies: Task IDs that must be COMPLETED before this task is available
        metadata: Free-form map; updates merge into it key by key
        output: Result text, usually set on completion
        started_at: Stamped once, the first time status becomes IN_PROGRESS
        completed_at: Stamped once, the first time status becomes terminal
    """

    id: UUID = Field(default_factory=new_id)
    title: str = Field(min_length=1)
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    priority: TaskPriority = TaskPriority.NORMAL
    created_by: UUID | None = None
    assigned_to: UUID | None = None
    dependencies: list[UUID] = Field(default_factory=list)
    metadata: dict[str, JsonValue] = Field(default_factory=dict)
    output: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    model_config = ConfigDict()


class TaskUpdate(BaseModel):
    """Partial task update.

    Only fields explicitly passed are applied (see ``model_fields_set``), so
    ``TaskUpdate(assigned_to=None)`` unassigns while ``TaskUpdate()`` leaves the
    assignee untouched.
    """

    status: TaskStatus | None = None
    assigned_to: UUID | None = None
    output: str | None = None
    metadata: dict[str, JsonValue] | None = None

    def sets(self, field: str) -> bool:
        return field in self.model_fields_set


class MemoryEntry(BaseModel):
    """A namespaced key/value fact on the shared whiteboard."""

    id: UUID = Field(default_factory=new_id)
    namespace: str = "default"
    key: str = Field(min_length=1)
    value: JsonValue = None
    created_by: UUID | None = None
    ttl_seconds: int | None = Field(default=None, gt=0)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None

    model_config = ConfigDict()


class Lock(BaseModel):
    """Mutual-exclusion claim over a named resource."""

    id: UUID = Field(default_factory=new_id)
    resource: str = Field(min_length=1)
    held_by: UUID
    acquired_at: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None  # None means no expiry
    metadata: dict[str, JsonValue] = Field(default_factory=dict)

    model_config = ConfigDict()


class Event(BaseModel):
    """Append-only audit record of a state-changing operation."""

    id: UUID = Field(default_factory=new_id)
    event_type: EventType
    agent_id: UUID | None = None
    resource_id: str | None = None  # task id, memory key or lock resource
    details: dict[str, JsonValue] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

    model_config = ConfigDict()
