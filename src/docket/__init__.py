"""docket: task documents as Markdown with YAML frontmatter, plus per-task version history."""

__version__ = "0.1.0"
