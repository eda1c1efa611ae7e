"""Task document codec: YAML frontmatter + Markdown body <-> partial record.

Body sections are located by section markers first. Documents written
before the marker convention are segmented by ``## `` headings instead;
marker content always wins when both are present.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any

import frontmatter
import yaml

from docket.models import Task
from docket.storage.schema import TASK_SCHEMA, FieldSpec, decode_header, format_timestamp
from docket.storage.sections import (
    DEFAULT_MARKERS,
    SectionMarkers,
    extract_section_content,
    format_acceptance_criteria,
    has_section_markers,
    parse_acceptance_criteria,
    wrap_section_content,
)

logger = logging.getLogger(__name__)

SECTION_TITLE_KEYS = {
    "Description": "description",
    "Acceptance Criteria": "acceptanceCriteria",
    "Implementation Plan": "implementationPlan",
    "Implementation Notes": "implementationNotes",
}

# (record key, marker type, heading) in body order
BODY_SECTIONS = (
    ("description", "description", "Description"),
    ("acceptanceCriteria", "ac", "Acceptance Criteria"),
    ("implementationPlan", "plan", "Implementation Plan"),
    ("implementationNotes", "notes", "Implementation Notes"),
)


class TaskParseError(ValueError):
    """The frontmatter header could not be decoded at all."""


def load_frontmatter(content: str) -> tuple[dict[str, Any], str]:
    """Split a document into (metadata, body). Raises TaskParseError."""
    try:
        post = frontmatter.loads(content)
    except (yaml.YAMLError, ValueError, TypeError) as e:
        raise TaskParseError(f"Invalid YAML frontmatter: {e}") from e
    return dict(post.metadata), post.content


def dump_frontmatter(metadata: dict[str, Any], body: str) -> str:
    """Encode metadata + body, preserving metadata key order."""
    post = frontmatter.Post(body)
    post.metadata.update(metadata)
    return frontmatter.dumps(post, sort_keys=False) + "\n"


def section_title_to_key(title: str) -> str:
    return SECTION_TITLE_KEYS.get(title) or "".join(title.lower().split())


def _parse_heading_sections(body: str) -> dict[str, str]:
    """Legacy segmentation: every ``## `` line starts a new section."""
    sections: dict[str, str] = {}
    current: str | None = None
    lines: list[str] = []
    seen_title = False

    for line in body.split("\n"):
        if line.startswith("## "):
            if current and lines:
                sections[current] = "\n".join(lines).strip()
            current = section_title_to_key(line[3:].strip())
            lines = []
        elif current:
            # Nested headings, including later "# " lines, are plain content
            lines.append(line)
        elif line.startswith("# ") and not seen_title:
            seen_title = True

    if current and lines:
        sections[current] = "\n".join(lines).strip()
    return sections


def _outside_markers(body: str, markers: SectionMarkers) -> str:
    """Drop every complete marker region so only unmarked text remains."""
    for pair in markers.values():
        body = re.sub(re.escape(pair.begin) + r"[\s\S]*?" + re.escape(pair.end), "", body)
    return body


def _parse_body_sections(body: str, markers: SectionMarkers) -> dict[str, str | None]:
    found: dict[str, str | None] = {}
    for key, marker_type, _ in BODY_SECTIONS:
        if not has_section_markers(body, marker_type, markers):
            found[key] = None
        elif marker_type == "ac":
            # Keep the markers so the checkbox parser scopes to this region
            pair = markers["ac"]
            start = body.find(pair.begin)
            found[key] = body[start : body.find(pair.end) + len(pair.end)]
        else:
            found[key] = extract_section_content(body, marker_type, markers)

    if any(value is None for value in found.values()):
        legacy = _parse_heading_sections(_outside_markers(body, markers))
        for key in found:
            if found[key] is None:
                found[key] = legacy.get(key)

    return {key: value or None for key, value in found.items()}


def parse_task_markdown(content: str, markers: SectionMarkers = DEFAULT_MARKERS) -> dict[str, Any]:
    """Parse a task document into a partial record keyed by on-disk field names."""
    metadata, body = load_frontmatter(content)
    record = decode_header(metadata, TASK_SCHEMA)
    sections = _parse_body_sections(body, markers)

    record["subtasks"] = []
    record["timeEntries"] = []
    record["description"] = sections["description"]
    record["acceptanceCriteria"] = parse_acceptance_criteria(
        sections["acceptanceCriteria"] or "", markers
    )
    record["implementationPlan"] = sections["implementationPlan"]
    record["implementationNotes"] = sections["implementationNotes"]
    return record


def task_from_markdown(content: str, markers: SectionMarkers = DEFAULT_MARKERS) -> Task:
    return Task.from_partial(parse_task_markdown(content, markers))


def _header_value(spec: FieldSpec, value: Any) -> Any:
    if spec.key in ("createdAt", "updatedAt"):
        return format_timestamp(value) if value is not None else None
    if spec.key == "labels":
        return sorted(value) if isinstance(value, (set, frozenset)) else list(value or [])
    if spec.key == "timeSpent":
        return value or 0
    return value


def serialize_task_markdown(task: Task | dict[str, Any], markers: SectionMarkers = DEFAULT_MARKERS) -> str:
    """Render a task as frontmatter + Markdown body.

    Optional header fields (assignee, parent) are omitted when empty rather
    than written as null, and empty body sections get no heading.
    """
    record = task.to_partial() if isinstance(task, Task) else task

    header: dict[str, Any] = {}
    for spec in TASK_SCHEMA:
        if spec.written:
            header[spec.key] = _header_value(spec, record.get(spec.key))
    for spec in TASK_SCHEMA:
        if not spec.written and record.get(spec.key):
            header[spec.key] = record[spec.key]

    body = f"# {record.get('title') or ''}\n\n"
    for key, marker_type, heading in BODY_SECTIONS:
        value = record.get(key)
        if not value:
            continue
        if marker_type == "ac":
            body += f"## {heading}\n{format_acceptance_criteria(value, markers)}\n\n"
        else:
            wrapped = wrap_section_content(value, marker_type, markers)
            if wrapped:
                body += f"## {heading}\n\n{wrapped}\n\n"

    return dump_frontmatter(header, body)


def parse_task_file(path: Path, markers: SectionMarkers = DEFAULT_MARKERS) -> dict[str, Any]:
    return parse_task_markdown(path.read_text(encoding="utf-8"), markers)


def write_task_file(path: Path, task: Task | dict[str, Any], markers: SectionMarkers = DEFAULT_MARKERS) -> None:
    """Serialize and write a task document. Concurrent writers: last write wins."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_task_markdown(task, markers), encoding="utf-8")
    logger.debug("Wrote task document %s", path)
