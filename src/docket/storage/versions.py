"""Field-level diffs and the per-task version history store.

Layout:
    <root>/.docket/versions/
    └── task-<id>.json       # {taskId, currentVersion, versions: [...]}

History is append-only. A version is recorded only when the diff between
the old and new task state is non-empty; version numbers start at 1 and
increase by one per recorded change set. History is a derived log, so an
unreadable or corrupt file is treated as empty history rather than an error.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Literal

from docket.config import DocketConfig
from docket.models import (
    FIELD_KEYS,
    AcceptanceCriterion,
    Task,
    TaskChange,
    TaskVersion,
    TaskVersionHistory,
)

logger = logging.getLogger(__name__)

TRACKED_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "status",
    "priority",
    "assignee",
    "labels",
    "acceptanceCriteria",
    "implementationPlan",
    "implementationNotes",
)

# Compared as sets rather than sequences
UNORDERED_FIELDS = frozenset({"labels"})

_ATTRS = {key: attr for attr, key in FIELD_KEYS.items()}


# ── Diff engine ───────────────────────────────────────────


def to_jsonable(value: Any) -> Any:
    """Normalize a field value to the shape it has in history JSON."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_jsonable(dataclasses.asdict(value))
    if isinstance(value, dict):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        return sorted(to_jsonable(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [to_jsonable(v) for v in value]
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def _comparable(field_name: str, value: Any) -> Any:
    value = to_jsonable(value)
    if field_name in UNORDERED_FIELDS and isinstance(value, list):
        unique = {json.dumps(v, sort_keys=True): v for v in value}
        return [unique[k] for k in sorted(unique)]
    return value


def _as_partial(task: Task | dict[str, Any]) -> dict[str, Any]:
    return task.to_partial() if isinstance(task, Task) else task


def create_task_diff(old: Task | dict[str, Any], new: Task | dict[str, Any]) -> list[TaskChange]:
    """Return changes for tracked fields that differ, in TRACKED_FIELDS order.

    A field missing from a partial record counts as None, so None -> ""
    is a change.
    """
    old, new = _as_partial(old), _as_partial(new)
    changes: list[TaskChange] = []
    for name in TRACKED_FIELDS:
        old_value, new_value = old.get(name), new.get(name)
        if _comparable(name, old_value) != _comparable(name, new_value):
            changes.append(
                TaskChange(field=name, old_value=to_jsonable(old_value), new_value=to_jsonable(new_value))
            )
    return changes


def create_snapshot(task: Task | dict[str, Any]) -> dict[str, Any]:
    """Tracked fields present (not None) in ``task``."""
    task = _as_partial(task)
    return {name: to_jsonable(task[name]) for name in TRACKED_FIELDS if task.get(name) is not None}


def apply_version_snapshot(task: Task, snapshot: dict[str, Any]) -> Task:
    """Restore tracked fields from a snapshot onto ``task``.

    Fields missing from the snapshot were empty at that version. id,
    createdAt, subtasks, timeSpent and timeEntries are kept from ``task``.
    """
    changes: dict[str, Any] = {"updated_at": datetime.now(timezone.utc)}
    for name in TRACKED_FIELDS:
        attr = _ATTRS[name]
        value = snapshot.get(name)
        if name == "labels":
            value = list(value or [])
        elif name == "acceptanceCriteria":
            value = [AcceptanceCriterion.coerce(ac) for ac in value or []]
        elif value is None and name in ("title", "status", "priority"):
            continue
        changes[attr] = value
    return dataclasses.replace(task, **changes)


# ── Version store ─────────────────────────────────────────


@dataclass(frozen=True)
class HistoryDiagnostic:
    """Reported when history had to be discarded or could not be saved."""

    task_id: str
    path: Path
    kind: Literal["recovered-empty", "write-failed", "delete-failed"]
    message: str


@dataclass
class HistoryLoad:
    history: TaskVersionHistory
    status: Literal["ok", "missing", "recovered-empty"]


class VersionStore:
    """Read/write access to per-task version history files."""

    def __init__(
        self,
        root: Path,
        dirname: str = ".docket/versions",
        on_diagnostic: Callable[[HistoryDiagnostic], None] | None = None,
    ) -> None:
        self.root = root
        self.versions_path = root / dirname
        self.on_diagnostic = on_diagnostic

    @classmethod
    def from_config(
        cls,
        config: DocketConfig,
        on_diagnostic: Callable[[HistoryDiagnostic], None] | None = None,
    ) -> VersionStore:
        return cls(config.root, config.versions.dirname, on_diagnostic)

    def init(self) -> None:
        """Create the versions directory. Idempotent."""
        self.versions_path.mkdir(parents=True, exist_ok=True)

    def _history_path(self, task_id: str) -> Path:
        return self.versions_path / f"task-{task_id}.json"

    def _report(self, diagnostic: HistoryDiagnostic) -> None:
        logger.warning(
            "Version history %s for task %s: %s", diagnostic.kind, diagnostic.task_id, diagnostic.message
        )
        if self.on_diagnostic is not None:
            self.on_diagnostic(diagnostic)

    # ── Loading / saving ──────────────────────────────────

    def load_history(self, task_id: str) -> HistoryLoad:
        """Load history, tagging whether it was found, absent or discarded."""
        path = self._history_path(task_id)
        if not path.exists():
            return HistoryLoad(TaskVersionHistory(task_id=task_id), "missing")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            history = TaskVersionHistory.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            self._report(HistoryDiagnostic(task_id, path, "recovered-empty", str(e)))
            return HistoryLoad(TaskVersionHistory(task_id=task_id), "recovered-empty")
        return HistoryLoad(history, "ok")

    def get_version_history(self, task_id: str) -> TaskVersionHistory:
        return self.load_history(task_id).history

    def _save_history(self, history: TaskVersionHistory) -> bool:
        path = self._history_path(history.task_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(history.to_dict(), ensure_ascii=False, indent=2), encoding="utf-8")
        except (OSError, TypeError, ValueError) as e:
            self._report(HistoryDiagnostic(history.task_id, path, "write-failed", str(e)))
            return False
        return True

    # ── Recording ─────────────────────────────────────────

    def record_version(
        self,
        task_id: str,
        old_task: Task | dict[str, Any],
        new_task: Task | dict[str, Any],
        author: str | None = None,
    ) -> TaskVersion | None:
        """Append a version if the tracked fields changed.

        Returns None when nothing changed, or when the history file could
        not be written (reported through ``on_diagnostic``).
        """
        changes = create_task_diff(old_task, new_task)
        if not changes:
            return None

        history = self.get_version_history(task_id)
        number = history.current_version + 1
        version = TaskVersion(
            id=f"v{number}",
            task_id=task_id,
            version=number,
            timestamp=datetime.now(timezone.utc),
            author=author,
            changes=changes,
            snapshot=create_snapshot(new_task),
        )
        history.versions.append(version)
        history.current_version = number

        if not self._save_history(history):
            return None
        logger.info("Recorded %s for task %s (%d changes)", version.id, task_id, len(changes))
        return version

    # ── Queries ───────────────────────────────────────────

    def get_version(self, task_id: str, version_number: int) -> TaskVersion | None:
        history = self.get_version_history(task_id)
        for version in history.versions:
            if version.version == version_number:
                return version
        return None

    def get_versions(self, task_id: str) -> list[TaskVersion]:
        return self.get_version_history(task_id).versions

    def get_current_version(self, task_id: str) -> int:
        return self.get_version_history(task_id).current_version

    def get_changes_between(self, task_id: str, from_version: int, to_version: int) -> list[TaskChange]:
        """Changes of versions in (from_version, to_version], oldest first."""
        history = self.get_version_history(task_id)
        changes: list[TaskChange] = []
        for version in sorted(history.versions, key=lambda v: v.version):
            if from_version < version.version <= to_version:
                changes.extend(version.changes)
        return changes

    def get_snapshot_at(self, task_id: str, version_number: int) -> dict[str, Any] | None:
        version = self.get_version(task_id, version_number)
        return version.snapshot if version else None

    def delete_version_history(self, task_id: str) -> None:
        """Remove the history file. A missing file is not an error."""
        path = self._history_path(task_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self._report(HistoryDiagnostic(task_id, path, "delete-failed", str(e)))
            return
        logger.info("Deleted version history for task %s", task_id)
