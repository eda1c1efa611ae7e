"""Frontmatter field contract shared by the codec, validator and repairer.

Each field is described once: whether it is required, how the codec
coerces it, its default when absent, and how the validator checks it.
Decoding a header is a fold over the schema; unknown keys are ignored.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Literal

from docket.models import (
    DEFAULT_STATUSES,
    PRIORITIES,
    is_valid_task_priority,
    is_valid_task_status,
)

TASK_ID_PATTERN = re.compile(r"^[A-Za-z0-9]+(\.[A-Za-z0-9]+)*$")


@dataclass(frozen=True)
class FieldIssue:
    severity: Literal["error", "warning"]
    message: str


Check = Callable[[Any, Sequence[str]], "FieldIssue | None"]


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce YAML timestamps or ISO-8601 strings to datetime; None if invalid."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        return datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None


def format_timestamp(value: datetime | str) -> str:
    if isinstance(value, str):
        return value
    return value.isoformat()


def is_non_negative_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0


def _as_id(value: Any) -> str:
    # YAML reads bare `id: 7` as int and `id: 7.1` as float
    return str(value)


def _as_optional_str(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _as_labels(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, (list, tuple, set)):
        return [str(v) for v in value]
    return []


def _as_time_spent(value: Any) -> float:
    return value if is_non_negative_number(value) else 0


def _check_id(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
    if not TASK_ID_PATTERN.match(_as_id(value)):
        return FieldIssue(
            "error", "Invalid ID format (expected: number, hierarchical like 7.1.2, or token)"
        )
    return None


def _check_title(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
    if not isinstance(value, str):
        return FieldIssue("error", "Title must be a string")
    return None


def _check_status(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
    if not is_valid_task_status(value, statuses):
        return FieldIssue(
            "error", f"Invalid status: {value}. Expected one of: {', '.join(statuses)}"
        )
    return None


def _check_priority(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
    if not is_valid_task_priority(value):
        return FieldIssue(
            "error", f"Invalid priority: {value}. Expected one of: {', '.join(PRIORITIES)}"
        )
    return None


def _check_date(key: str) -> Check:
    def check(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
        if parse_timestamp(value) is None:
            return FieldIssue("error", f"{key} must be a valid ISO date")
        return None

    return check


def _check_string_list(key: str) -> Check:
    def check(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
        if isinstance(value, str):
            return FieldIssue("warning", f"{key.capitalize()} should be an array, not a string")
        if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
            return FieldIssue("error", f"{key.capitalize()} must be an array of strings")
        return None

    return check


def _check_time_spent(value: Any, statuses: Sequence[str]) -> FieldIssue | None:
    if not is_non_negative_number(value):
        return FieldIssue("error", "timeSpent must be a non-negative number")
    return None


@dataclass(frozen=True)
class FieldSpec:
    key: str
    required: bool = False  # reported missing by the validator
    written: bool = True  # always emitted by the serializer, even when empty
    fixable: bool = True
    decode: Callable[[Any], Any] | None = None
    default: Callable[[], Any] | None = None
    check: Check | None = None


TASK_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("id", required=True, fixable=False, decode=_as_id, check=_check_id),
    FieldSpec("title", required=True, decode=str, check=_check_title),
    FieldSpec("status", required=True, check=_check_status),
    FieldSpec("priority", required=True, check=_check_priority),
    FieldSpec("assignee", written=False, decode=_as_optional_str),
    FieldSpec("labels", decode=_as_labels, default=list, check=_check_string_list("labels")),
    FieldSpec("parent", written=False, decode=_as_optional_str),
    FieldSpec("createdAt", required=True, decode=parse_timestamp, check=_check_date("createdAt")),
    FieldSpec("updatedAt", required=True, decode=parse_timestamp, check=_check_date("updatedAt")),
    FieldSpec("timeSpent", decode=_as_time_spent, default=lambda: 0, check=_check_time_spent),
)

DOC_SCHEMA: tuple[FieldSpec, ...] = (
    FieldSpec("title", required=True, decode=str, check=_check_title),
    FieldSpec("description", written=False, decode=_as_optional_str),
    FieldSpec("createdAt", required=True, decode=parse_timestamp, check=_check_date("createdAt")),
    FieldSpec("updatedAt", required=True, decode=parse_timestamp, check=_check_date("updatedAt")),
    FieldSpec("tags", written=False, decode=_as_labels, check=_check_string_list("tags")),
)


def decode_header(metadata: dict[str, Any], schema: Sequence[FieldSpec] = TASK_SCHEMA) -> dict[str, Any]:
    """Fold raw frontmatter into typed fields, applying defaults for absent keys."""
    decoded: dict[str, Any] = {}
    for spec in schema:
        value = metadata.get(spec.key)
        if value is None:
            decoded[spec.key] = spec.default() if spec.default else None
        else:
            decoded[spec.key] = spec.decode(value) if spec.decode else value
    return decoded


def check_header(
    metadata: dict[str, Any],
    schema: Sequence[FieldSpec] = TASK_SCHEMA,
    statuses: Sequence[str] = DEFAULT_STATUSES,
) -> list[tuple[FieldSpec, FieldIssue]]:
    """Return (field, issue) pairs for missing or malformed header fields."""
    issues: list[tuple[FieldSpec, FieldIssue]] = []
    for spec in schema:
        if spec.required and metadata.get(spec.key) is None:
            issues.append((spec, FieldIssue("error", f"Missing required field: {spec.key}")))
    for spec in schema:
        value = metadata.get(spec.key)
        if value is None or spec.check is None:
            continue
        issue = spec.check(value, statuses)
        if issue is not None:
            issues.append((spec, issue))
    return issues
