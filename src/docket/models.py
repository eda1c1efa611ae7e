"""Task records and their version history."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

TaskPriority = Literal["low", "medium", "high"]

PRIORITIES: tuple[str, ...] = ("low", "medium", "high")

# Fallback when no configured status set is available
DEFAULT_STATUSES: tuple[str, ...] = (
    "todo",
    "in-progress",
    "in-review",
    "done",
    "blocked",
    "on-hold",
    "urgent",
)

# Task attribute -> key used in frontmatter, partial records and history JSON
FIELD_KEYS: dict[str, str] = {
    "id": "id",
    "title": "title",
    "status": "status",
    "priority": "priority",
    "assignee": "assignee",
    "labels": "labels",
    "parent": "parent",
    "subtasks": "subtasks",
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "time_spent": "timeSpent",
    "time_entries": "timeEntries",
    "description": "description",
    "acceptance_criteria": "acceptanceCriteria",
    "implementation_plan": "implementationPlan",
    "implementation_notes": "implementationNotes",
}


def is_valid_task_status(status: Any, allowed: list[str] | tuple[str, ...] | None = None) -> bool:
    """Check status against the configured set, or DEFAULT_STATUSES."""
    return isinstance(status, str) and status in (allowed or DEFAULT_STATUSES)


def is_valid_task_priority(priority: Any) -> bool:
    return isinstance(priority, str) and priority in PRIORITIES


@dataclass
class AcceptanceCriterion:
    text: str
    completed: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "completed": self.completed}

    @classmethod
    def coerce(cls, value: Any) -> AcceptanceCriterion:
        """Accept either an instance or a ``{text, completed}`` mapping."""
        if isinstance(value, cls):
            return value
        return cls(text=str(value.get("text", "")), completed=bool(value.get("completed", False)))


@dataclass
class Task:
    """A persisted work item: frontmatter metadata plus prose sections."""

    id: str
    title: str
    status: str = "todo"
    priority: TaskPriority = "medium"
    assignee: str | None = None
    labels: list[str] = field(default_factory=list)
    parent: str | None = None
    subtasks: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    time_spent: float = 0
    time_entries: list[dict[str, Any]] = field(default_factory=list)
    description: str | None = None
    acceptance_criteria: list[AcceptanceCriterion] = field(default_factory=list)
    implementation_plan: str | None = None
    implementation_notes: str | None = None

    def to_partial(self) -> dict[str, Any]:
        """Return the camelCase partial-record view of this task."""
        return {key: getattr(self, attr) for attr, key in FIELD_KEYS.items()}

    @classmethod
    def from_partial(cls, data: dict[str, Any]) -> Task:
        """Build a Task from a partial record, filling documented defaults."""
        kwargs: dict[str, Any] = {}
        for attr, key in FIELD_KEYS.items():
            if data.get(key) is not None:
                kwargs[attr] = data[key]
        kwargs.setdefault("id", "")
        kwargs.setdefault("title", "")
        kwargs["labels"] = list(kwargs.get("labels", []))
        kwargs["acceptance_criteria"] = [
            AcceptanceCriterion.coerce(ac) for ac in kwargs.get("acceptance_criteria", [])
        ]
        return cls(**kwargs)


@dataclass(frozen=True)
class TaskChange:
    """One field-level delta. Produced only by the diff engine."""

    field: str
    old_value: Any
    new_value: Any

    def to_dict(self) -> dict[str, Any]:
        return {"field": self.field, "oldValue": self.old_value, "newValue": self.new_value}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskChange:
        return cls(field=data["field"], old_value=data.get("oldValue"), new_value=data.get("newValue"))


@dataclass
class TaskVersion:
    id: str  # "v1", "v2", ...
    task_id: str
    version: int
    timestamp: datetime
    changes: list[TaskChange]
    snapshot: dict[str, Any]
    author: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "id": self.id,
            "taskId": self.task_id,
            "version": self.version,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.author is not None:
            data["author"] = self.author
        data["changes"] = [c.to_dict() for c in self.changes]
        data["snapshot"] = self.snapshot
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any], task_id: str = "") -> TaskVersion:
        timestamp = data["timestamp"]
        if isinstance(timestamp, str):
            timestamp = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
        return cls(
            id=data.get("id", f"v{data['version']}"),
            task_id=data.get("taskId", task_id),
            version=int(data["version"]),
            timestamp=timestamp,
            author=data.get("author"),
            changes=[TaskChange.from_dict(c) for c in data.get("changes", [])],
            snapshot=dict(data.get("snapshot") or {}),
        )


@dataclass
class TaskVersionHistory:
    task_id: str
    current_version: int = 0
    versions: list[TaskVersion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "taskId": self.task_id,
            "currentVersion": self.current_version,
            "versions": [v.to_dict() for v in self.versions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskVersionHistory:
        task_id = str(data["taskId"])
        return cls(
            task_id=task_id,
            current_version=int(data.get("currentVersion", 0)),
            versions=[TaskVersion.from_dict(v, task_id) for v in data.get("versions", [])],
        )
