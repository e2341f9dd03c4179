"""Unit tests for domain models."""

from uuid import UUID

import pytest
from agentorch.domain.models import (
    Agent,
    MemoryEntry,
    Task,
    TaskPriority,
    TaskStatus,
    TaskUpdate,
    new_id,
)
from pydantic import ValidationError


class TestIds:
    """Tests for time-ordered identifiers."""

    def test_new_id_is_version_7(self) -> None:
        """Test new ids use the version 7 layout."""
        value = new_id()
        assert isinstance(value, UUID)
        assert value.version == 7
        assert value.variant == "specified in RFC 4122"

    def test_new_ids_sort_in_creation_order(self) -> None:
        """Test ids generated in sequence are unique and mostly ordered by time prefix."""
        ids = [new_id() for _ in range(50)]
        assert len(set(ids)) == 50
        prefixes = [str(i)[:13] for i in ids]
        assert prefixes == sorted(prefixes)


class TestTaskEnums:
    """Tests for task status and priority helpers."""

    @pytest.mark.parametrize(
        "status,terminal",
        [
            (TaskStatus.PENDING, False),
            (TaskStatus.ASSIGNED, False),
            (TaskStatus.IN_PROGRESS, False),
            (TaskStatus.COMPLETED, True),
            (TaskStatus.FAILED, True),
            (TaskStatus.CANCELLED, True),
        ],
    )
    def test_is_terminal(self, status: TaskStatus, terminal: bool) -> None:
        """Test which task statuses are terminal."""
        assert status.is_terminal is terminal

    def test_priority_rank_order(self) -> None:
        """Test priority ranks order urgent first."""
        ranked = sorted(TaskPriority, key=lambda p: p.rank)
        assert ranked == [
            TaskPriority.URGENT,
            TaskPriority.HIGH,
            TaskPriority.NORMAL,
            TaskPriority.LOW,
        ]


class TestAgent:
    """Tests for Agent model."""

    def test_capabilities_are_a_sorted_set(self) -> None:
        """Test capabilities are de-duplicated and sorted."""
        agent = Agent(name="alice", capabilities=["test", "code", " code ", ""])
        assert agent.capabilities == ["code", "test"]

    def test_empty_name_rejected(self) -> None:
        """Test an empty agent name is rejected."""
        with pytest.raises(ValidationError):
            Agent(name="")


class TestTask:
    """Tests for Task and TaskUpdate models."""

    def test_defaults(self) -> None:
        """Test task defaults."""
        task = Task(title="Write docs")
        assert task.status == TaskStatus.PENDING
        assert task.priority == TaskPriority.NORMAL
        assert task.output is None
        assert task.started_at is None
        assert task.completed_at is None
        assert task.dependencies == []

    def test_update_tracks_explicitly_set_fields(self) -> None:
        """Test that only passed fields count as set, even when passed as None."""
        update = TaskUpdate(assigned_to=None)
        assert update.sets("assigned_to")
        assert not update.sets("status")
        assert not TaskUpdate().sets("assigned_to")


class TestMemoryEntry:
    """Tests for MemoryEntry model."""

    def test_accepts_any_json_value(self) -> None:
        """Test memory values accept any JSON value."""
        for value in ({"a": [1, 2]}, [1, "x"], "text", 3.5, True, None):
            assert MemoryEntry(key="k", value=value).value == value

    def test_ttl_must_be_positive(self) -> None:
        """Test the model rejects a non-positive TTL."""
        with pytest.raises(ValidationError):
            MemoryEntry(key="k", value=1, ttl_seconds=0)
