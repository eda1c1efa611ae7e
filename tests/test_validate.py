"""Tests for task/doc validation and repair."""

from __future__ import annotations

from pathlib import Path

import pytest

from docket.config import TaskConfig
from docket.storage.markdown import parse_task_file
from docket.storage.validate import (
    extract_task_id_from_filename,
    repair_doc,
    repair_task,
    validate_doc,
    validate_task,
)

VALID_TASK = """\
---
id: "7"
title: Valid task
status: todo
priority: high
labels: [a, b]
createdAt: "2026-01-01T00:00:00+00:00"
updatedAt: "2026-01-02T00:00:00+00:00"
timeSpent: 0
---

# Valid task
"""


def _fields(items) -> list[str]:
    return [i.field for i in items]


class TestValidateTask:
    def test_valid(self):
        result = validate_task(VALID_TASK)
        assert result.valid
        assert result.errors == []
        assert result.warnings == []

    def test_bogus_status(self):
        result = validate_task(VALID_TASK.replace("status: todo", "status: bogus"))
        assert not result.valid
        assert _fields(result.errors) == ["status"]
        assert result.errors[0].fixable

    def test_missing_fields(self):
        doc = "---\ntitle: Only title\n---\n\n# Only title\n"
        result = validate_task(doc)
        missing = {e.field: e.fixable for e in result.errors}
        assert missing == {
            "id": False,
            "status": True,
            "priority": True,
            "createdAt": True,
            "updatedAt": True,
        }

    def test_invalid_frontmatter(self):
        result = validate_task("---\nid: [broken\n---\n\n# x\n")
        assert not result.valid
        assert len(result.errors) == 1
        assert result.errors[0].field == "frontmatter"
        assert not result.errors[0].fixable

    @pytest.mark.parametrize("task_id", ["7", "7.1.2", "a7f3k9"])
    def test_id_grammar_accepts(self, task_id: str):
        assert validate_task(VALID_TASK.replace('id: "7"', f'id: "{task_id}"')).valid

    def test_id_grammar_rejects(self):
        result = validate_task(VALID_TASK.replace('id: "7"', 'id: "7..1"'))
        assert _fields(result.errors) == ["id"]
        assert not result.errors[0].fixable

    def test_bad_values(self):
        doc = (
            VALID_TASK.replace("priority: high", "priority: urgent")
            .replace('createdAt: "2026-01-01T00:00:00+00:00"', "createdAt: yesterday")
            .replace("timeSpent: 0", "timeSpent: -5")
        )
        assert _fields(validate_task(doc).errors) == ["priority", "createdAt", "timeSpent"]

    def test_labels_string_is_warning(self):
        result = validate_task(VALID_TASK.replace("labels: [a, b]", "labels: a, b"))
        assert result.valid
        assert _fields(result.warnings) == ["labels"]

    def test_labels_mapping_is_error(self):
        result = validate_task(VALID_TASK.replace("labels: [a, b]", "labels: {a: 1}"))
        assert _fields(result.errors) == ["labels"]

    def test_missing_title_heading_warns(self):
        result = validate_task(VALID_TASK.replace("# Valid task\n", "No heading\n"))
        assert result.valid
        assert _fields(result.warnings) == ["content"]

    def test_configured_statuses(self):
        doc = VALID_TASK.replace("status: todo", "status: triage")
        assert not validate_task(doc).valid
        assert validate_task(doc, statuses=["triage", "done"]).valid

    def test_does_not_touch_input(self):
        text = VALID_TASK.replace("status: todo", "status: bogus")
        validate_task(text)
        assert "status: bogus" in text


class TestRepairTask:
    def test_missing_file(self, tmp_path: Path):
        result = repair_task(tmp_path / "nope.md")
        assert not result.success
        assert result.errors == ["File not found"]
        assert result.backup_path is None

    def test_missing_status(self, tmp_path: Path):
        path = tmp_path / "task-7 - Valid task.md"
        original = VALID_TASK.replace("status: todo\n", "")
        path.write_text(original, encoding="utf-8")

        result = repair_task(path)

        assert result.success
        assert "Set status to 'todo'" in result.fixes
        assert validate_task(path.read_text(encoding="utf-8")).valid
        assert result.backup_path == tmp_path / "task-7 - Valid task.md.bak"
        assert result.backup_path.read_bytes() == original.encode("utf-8")

    def test_bogus_status_high_priority(self, tmp_path: Path):
        path = tmp_path / "t.md"
        path.write_text(VALID_TASK.replace("status: todo", "status: bogus"), encoding="utf-8")

        errors = validate_task(path.read_text(encoding="utf-8")).errors
        assert [(e.field, e.fixable) for e in errors] == [("status", True)]

        result = repair_task(path)
        assert result.fixes == ["Set status to 'todo'"]
        parsed = parse_task_file(path)
        assert parsed["status"] == "todo"
        assert parsed["priority"] == "high"

    def test_field_fixes(self, tmp_path: Path):
        path = tmp_path / "t.md"
        path.write_text(
            "---\nid: '3'\npriority: nope\nlabels: x, y\ncreatedAt: never\ntimeSpent: -1\n---\n\n"
            "# Heading title\n\nbody\n",
            encoding="utf-8",
        )
        result = repair_task(path)
        assert result.fixes == [
            'Added missing title: "Heading title"',
            "Set status to 'todo'",
            "Set priority to 'medium'",
            "Fixed createdAt date",
            "Fixed updatedAt date",
            "Converted labels from string to array",
            "Reset timeSpent to 0",
        ]
        parsed = parse_task_file(path)
        assert parsed["labels"] == ["x", "y"]
        assert validate_task(path.read_text(encoding="utf-8")).valid

    def test_rebuilds_corrupt_frontmatter(self, tmp_path: Path):
        path = tmp_path / "task-42 - Broken.md"
        path.write_text("---\nid: [oops\n---\n\n# Broken task\n\nSome body.\n", encoding="utf-8")

        task_id = extract_task_id_from_filename(path.name)
        result = repair_task(path, extracted_id=task_id)

        assert result.success
        assert result.fixes == ["Rebuilt corrupted frontmatter"]
        parsed = parse_task_file(path)
        assert parsed["id"] == "42"
        assert parsed["title"] == "Broken task"
        assert validate_task(path.read_text(encoding="utf-8")).valid

    def test_adds_id_and_heading(self, tmp_path: Path):
        path = tmp_path / "t.md"
        doc = VALID_TASK.replace('id: "7"\n', "").replace("# Valid task\n", "plain body\n")
        path.write_text(doc, encoding="utf-8")

        result = repair_task(path, extracted_id="7.2")
        assert result.fixes == ["Set ID from filename: 7.2", "Added title heading to body"]
        text = path.read_text(encoding="utf-8")
        assert "# Valid task" in text
        assert validate_task(text).valid

    def test_custom_default_status(self, tmp_path: Path):
        path = tmp_path / "t.md"
        path.write_text(VALID_TASK.replace("status: todo", "status: bogus"), encoding="utf-8")
        config = TaskConfig(statuses=["backlog", "done"], default_status="backlog")
        result = repair_task(path, config=config)
        assert result.fixes == ["Set status to 'backlog'"]

    def test_backup_failure_aborts(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "t.md"
        path.write_text(VALID_TASK, encoding="utf-8")

        def fail(*args, **kwargs):
            raise PermissionError("read-only")

        monkeypatch.setattr("docket.storage.validate.shutil.copyfile", fail)
        result = repair_task(path)
        assert not result.success
        assert result.errors[0].startswith("Failed to create backup")
        assert path.read_text(encoding="utf-8") == VALID_TASK

    def test_write_failure_keeps_backup(self, tmp_path: Path, monkeypatch):
        path = tmp_path / "t.md"
        path.write_text(VALID_TASK.replace("status: todo", "status: bogus"), encoding="utf-8")

        original_write = Path.write_text

        def fail_on_target(self, *args, **kwargs):
            if self == path:
                raise OSError("disk full")
            return original_write(self, *args, **kwargs)

        monkeypatch.setattr(Path, "write_text", fail_on_target)
        result = repair_task(path)
        assert not result.success
        assert result.backup_path is not None and result.backup_path.exists()
        assert result.fixes == ["Set status to 'todo'"]
        assert result.errors[0].startswith("Failed to write repaired file")


class TestDocs:
    def test_validate_doc(self):
        doc = "---\ntitle: Guide\ncreatedAt: '2026-01-01'\nupdatedAt: '2026-01-01'\ntags: x\n---\n\nText\n"
        result = validate_doc(doc)
        assert result.valid
        assert _fields(result.warnings) == ["tags"]

    def test_validate_doc_empty_body(self):
        result = validate_doc("---\ntitle: Guide\n---\n")
        assert _fields(result.errors) == ["createdAt", "updatedAt"]
        assert _fields(result.warnings) == ["content"]

    def test_repair_doc(self, tmp_path: Path):
        path = tmp_path / "guide.md"
        path.write_text("---\ntags: a, b\n---\n\n# Guide\n\nText\n", encoding="utf-8")
        result = repair_doc(path)
        assert result.fixes == [
            'Added missing title: "Guide"',
            "Fixed createdAt date",
            "Fixed updatedAt date",
            "Converted tags from string to array",
        ]
        assert validate_doc(path.read_text(encoding="utf-8")).valid


class TestExtractTaskId:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("task-7 - Some Title.md", "7"),
            ("task-7.1 - Some Title.md", "7.1"),
            ("task-a7f3k9 - Some Title.md", "a7f3k9"),
            ("notes.md", None),
        ],
    )
    def test_filenames(self, filename: str, expected: str | None):
        assert extract_task_id_from_filename(filename) == expected
