"""Validation and repair of task and doc Markdown files.

Validation works on raw text and re-derives the frontmatter itself, so it
can diagnose documents the codec would reject. Repair always backs the file
up to ``<path>.bak`` before touching it and reports every correction it
makes; no exception escapes a repair call.
"""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml

from docket.config import TaskConfig
from docket.models import DEFAULT_STATUSES, is_valid_task_priority, is_valid_task_status
from docket.storage.markdown import TaskParseError, dump_frontmatter, load_frontmatter
from docket.storage.schema import (
    DOC_SCHEMA,
    TASK_SCHEMA,
    FieldSpec,
    check_header,
    is_non_negative_number,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

TITLE_HEADING = re.compile(r"^#\s+(.+)$", re.MULTILINE)
TASK_FILENAME = re.compile(r"^task-([a-z0-9]+(?:\.[a-z0-9]+)*)\s*-", re.IGNORECASE)


@dataclass
class ValidationError:
    field: str
    message: str
    fixable: bool


@dataclass
class ValidationWarning:
    field: str
    message: str


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationError] = field(default_factory=list)
    warnings: list[ValidationWarning] = field(default_factory=list)


@dataclass
class RepairResult:
    success: bool
    backup_path: Path | None = None
    fixes: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


# ── Validation ────────────────────────────────────────────


def _validate(
    content: str, schema: Sequence[FieldSpec], statuses: Sequence[str]
) -> tuple[ValidationResult, str]:
    try:
        metadata, body = load_frontmatter(content)
    except TaskParseError as e:
        error = ValidationError(field="frontmatter", message=str(e), fixable=False)
        return ValidationResult(valid=False, errors=[error]), ""

    errors: list[ValidationError] = []
    warnings: list[ValidationWarning] = []
    for spec, issue in check_header(metadata, schema, statuses):
        if issue.severity == "warning":
            warnings.append(ValidationWarning(field=spec.key, message=issue.message))
        else:
            errors.append(ValidationError(field=spec.key, message=issue.message, fixable=spec.fixable))
    return ValidationResult(valid=not errors, errors=errors, warnings=warnings), body


def validate_task(content: str, statuses: Sequence[str] | None = None) -> ValidationResult:
    """Check a task document's frontmatter and body structure."""
    result, body = _validate(content, TASK_SCHEMA, statuses or DEFAULT_STATUSES)
    if result.errors and result.errors[0].field == "frontmatter":
        return result

    if not TITLE_HEADING.search(body):
        result.warnings.append(ValidationWarning(field="content", message="Missing title heading in body"))
    return result


def validate_doc(content: str) -> ValidationResult:
    """Check a documentation file (title, dates, tags)."""
    result, body = _validate(content, DOC_SCHEMA, DEFAULT_STATUSES)
    if result.errors and result.errors[0].field == "frontmatter":
        return result

    if not body.strip():
        result.warnings.append(ValidationWarning(field="content", message="Document has no content"))
    return result


# ── Repair ────────────────────────────────────────────────


def extract_task_id_from_filename(filename: str) -> str | None:
    """``task-7.1 - Some Title.md`` -> ``7.1``; ``task-a7f3k9 - X.md`` -> ``a7f3k9``."""
    m = TASK_FILENAME.match(filename)
    return m.group(1) if m else None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _strip_frontmatter_remnants(content: str) -> str:
    end = content.find("---", 3)
    if end > 0:
        return content[end + 3 :].strip()
    return re.sub(r"^---[\s\S]*?---", "", content).strip()


def _backup(path: Path) -> Path:
    backup_path = path.with_name(path.name + ".bak")
    shutil.copyfile(path, backup_path)
    return backup_path


def _read_for_repair(path: Path) -> tuple[RepairResult | None, Path | None, str]:
    """Back up then read. Returns a failed result if either step fails."""
    if not path.exists():
        return RepairResult(success=False, errors=["File not found"]), None, ""

    try:
        backup_path = _backup(path)
    except OSError as e:
        logger.warning("Backup of %s failed: %s", path, e)
        return RepairResult(success=False, errors=[f"Failed to create backup: {e}"]), None, ""

    try:
        content = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        return (
            RepairResult(success=False, backup_path=backup_path, errors=[f"Failed to read file: {e}"]),
            backup_path,
            "",
        )
    return None, backup_path, content


def _write_repaired(
    path: Path, backup_path: Path, data: dict[str, Any], body: str, fixes: list[str]
) -> RepairResult:
    try:
        path.write_text(dump_frontmatter(data, body), encoding="utf-8")
    except (OSError, yaml.YAMLError) as e:
        logger.warning("Writing repaired %s failed, original kept at %s", path, backup_path)
        return RepairResult(
            success=False,
            backup_path=backup_path,
            fixes=fixes,
            errors=[f"Failed to write repaired file: {e}"],
        )
    logger.info("Repaired %s (%d fixes)", path, len(fixes))
    return RepairResult(success=True, backup_path=backup_path, fixes=fixes)


def _fix_dates(data: dict[str, Any], fixes: list[str]) -> None:
    now = _now()
    for key in ("createdAt", "updatedAt"):
        if parse_timestamp(data.get(key)) is None:
            data[key] = now
            fixes.append(f"Fixed {key} date")


def _fix_string_list(data: dict[str, Any], key: str, fixes: list[str]) -> None:
    value = data.get(key)
    if isinstance(value, str):
        data[key] = [part.strip() for part in value.split(",") if part.strip()]
        fixes.append(f"Converted {key} from string to array")
    elif not isinstance(value, list):
        data[key] = []
        fixes.append(f"Reset invalid {key} to empty array")
    elif not all(isinstance(v, str) for v in value):
        data[key] = [str(v) for v in value]
        fixes.append(f"Converted {key} entries to strings")


def _fix_title(data: dict[str, Any], body: str, placeholder: str, fixes: list[str]) -> None:
    title = data.get("title")
    if not title:
        m = TITLE_HEADING.search(body)
        data["title"] = m.group(1).strip() if m else placeholder
        fixes.append(f'Added missing title: "{data["title"]}"')
    elif not isinstance(title, str):
        data["title"] = str(title)
        fixes.append("Converted title to string")


def repair_task(
    file_path: Path | str,
    extracted_id: str | None = None,
    config: TaskConfig | None = None,
) -> RepairResult:
    """Back up and heal a task document in place.

    ``extracted_id`` (usually from ``extract_task_id_from_filename``) fills a
    missing id; an id is never invented otherwise.
    """
    path = Path(file_path)
    config = config or TaskConfig()
    failed, backup_path, content = _read_for_repair(path)
    if failed is not None:
        return failed

    fixes: list[str] = []
    try:
        data, body = load_frontmatter(content)
    except TaskParseError:
        m = TITLE_HEADING.search(content)
        now = _now()
        data = {"id": extracted_id} if extracted_id else {}
        data.update(
            title=m.group(1).strip() if m else "Untitled Task",
            status=config.default_status,
            priority=config.default_priority,
            labels=[],
            createdAt=now,
            updatedAt=now,
            timeSpent=0,
        )
        body = _strip_frontmatter_remnants(content)
        fixes.append("Rebuilt corrupted frontmatter")

    if not data.get("id") and extracted_id:
        data["id"] = extracted_id
        fixes.append(f"Set ID from filename: {extracted_id}")

    _fix_title(data, body, "Untitled Task", fixes)

    if not is_valid_task_status(data.get("status"), config.statuses):
        data["status"] = config.default_status
        fixes.append(f"Set status to '{config.default_status}'")

    if not is_valid_task_priority(data.get("priority")):
        data["priority"] = config.default_priority
        fixes.append(f"Set priority to '{config.default_priority}'")

    _fix_dates(data, fixes)
    _fix_string_list(data, "labels", fixes)

    if not is_non_negative_number(data.get("timeSpent")):
        data["timeSpent"] = 0
        fixes.append("Reset timeSpent to 0")

    if not TITLE_HEADING.search(body) and data.get("title"):
        body = f"# {data['title']}\n\n{body}"
        fixes.append("Added title heading to body")

    return _write_repaired(path, backup_path, data, body, fixes)


def repair_doc(file_path: Path | str) -> RepairResult:
    """Back up and heal a documentation file in place."""
    path = Path(file_path)
    failed, backup_path, content = _read_for_repair(path)
    if failed is not None:
        return failed

    fixes: list[str] = []
    try:
        data, body = load_frontmatter(content)
    except TaskParseError:
        m = TITLE_HEADING.search(content)
        now = _now()
        data = {
            "title": m.group(1).strip() if m else "Untitled",
            "createdAt": now,
            "updatedAt": now,
        }
        body = _strip_frontmatter_remnants(content)
        fixes.append("Rebuilt corrupted frontmatter")

    _fix_title(data, body, "Untitled Document", fixes)
    _fix_dates(data, fixes)
    if "tags" in data and data["tags"] is not None:
        _fix_string_list(data, "tags", fixes)

    return _write_repaired(path, backup_path, data, body, fixes)
