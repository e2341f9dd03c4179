"""Custom exception hierarchy for agentorch coordination errors."""

from uuid import UUID


class CoordinationError(Exception):
    """Base exception for all agentorch errors.

    Attributes:
        message: Error message describing what went wrong
        remediation: Optional guidance on how to fix the issue
    """

    def __init__(self, message: str, remediation: str | None = None):
        """Initialize coordination error.

        Args:
            message: Error message
            remediation: Optional remediation guidance
        """
        super().__init__(message)
        self.remediation = remediation

    def __str__(self) -> str:
        """Return formatted error message with remediation if available."""
        if self.remediation:
            return f"{self.args[0]}\n\nRemediation: {self.remediation}"
        return str(self.args[0])


class NotRegisteredError(CoordinationError):
    """Operation needs an agent identity but the caller has none.

    Raised when a session never registered, or its agent row was removed
    (unregistered elsewhere). The caller must register again.
    """

    def __init__(self, message: str = "Not registered as an agent"):
        super().__init__(
            message=message,
            remediation="Call register() or bootstrap() before this operation",
        )


class NotFoundError(CoordinationError):
    """Referenced agent, task, memory entry or lock does not exist."""

    pass


class AgentNotFoundError(NotFoundError):
    """Raised when an agent ID doesn't exist."""

    def __init__(self, agent_id: UUID | str):
        super().__init__(f"Agent {agent_id} not found")
        self.agent_id = agent_id


class TaskNotFoundError(NotFoundError):
    """Raised when a task ID doesn't exist."""

    def __init__(self, task_id: UUID | str):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class MemoryEntryNotFoundError(NotFoundError):
    """Raised when a (namespace, key) pair has no live entry."""

    def __init__(self, key: str, namespace: str):
        super().__init__(f"Key '{key}' not found in namespace '{namespace}'")
        self.key = key
        self.namespace = namespace


class LockNotFoundError(NotFoundError):
    """Raised when releasing a lock the caller does not hold."""

    def __init__(self, resource: str):
        super().__init__(
            f"No lock held on '{resource}' by this agent",
            remediation="Use lock_check() to see who holds it",
        )
        self.resource = resource


class ConflictError(CoordinationError):
    """Uniqueness violation: the row being inserted already exists.

    Storage reports this separately from other failures so callers can fail
    fast instead of overwriting.
    """

    pass


class LockConflictError(ConflictError):
    """Resource is already locked by another agent.

    Attributes:
        resource: Locked resource name
        held_by: ID of the current holder (None if it vanished meanwhile)
    """

    def __init__(self, resource: str, held_by: UUID | None):
        super().__init__(f"Lock denied on '{resource}': held by {held_by}")
        self.resource = resource
        self.held_by = held_by


class TaskClaimConflictError(ConflictError):
    """Task is no longer claimable (claimed by someone else or already finished)."""

    def __init__(self, task_id: UUID, status: str, assigned_to: UUID | None):
        super().__init__(
            f"Task {task_id} cannot be claimed: status={status}, assigned_to={assigned_to}"
        )
        self.task_id = task_id
        self.status = status
        self.assigned_to = assigned_to


class DependencyNotMetError(CoordinationError):
    """Task claim blocked by prerequisites that are missing or not completed.

    Attributes:
        task_id: Task that was being claimed
        unmet: Dependency IDs that are missing or not COMPLETED
    """

    def __init__(self, task_id: UUID, unmet: list[UUID]):
        joined = ", ".join(str(dep) for dep in unmet)
        super().__init__(f"Cannot claim task {task_id}: dependencies not met ({joined})")
        self.task_id = task_id
        self.unmet = unmet


class InvalidTransitionError(CoordinationError):
    """Raised when a status update tries to leave a terminal state."""

    def __init__(self, task_id: UUID, current: str, requested: str):
        super().__init__(
            f"Task {task_id} is {current}; cannot transition to {requested}"
        )
        self.task_id = task_id
        self.current = current
        self.requested = requested


class InvalidArgumentError(CoordinationError, ValueError):
    """Raised when an operation argument is out of range (negative TTL, bad progress)."""

    def __init__(self, name: str, value: object, expected: str):
        super().__init__(f"Invalid {name}: {value!r} ({expected})")
        self.name = name
        self.value = value


class StoreUnavailableError(CoordinationError):
    """Durable store could not be reached or stayed busy past the wait bound."""

    def __init__(self, message: str = "Coordination store unavailable"):
        super().__init__(
            message=message,
            remediation="Retry shortly; another agent may hold the write lock",
        )
