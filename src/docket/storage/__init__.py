"""Task persistence: Markdown documents + JSON version history.

Layout:
    <root>/
    ├── tasks/
    │   ├── task-7 - Some Title.md     # YAML frontmatter + marker-wrapped sections
    │   └── task-7 - Some Title.md.bak # Written by repair before any change
    └── .docket/versions/
        └── task-7.json                # Append-only change log with snapshots

A document and its history are separate files with no shared lock; writing
the document and recording the version are two independent steps.
"""
