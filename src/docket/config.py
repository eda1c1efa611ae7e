"""Configuration loading from environment variables and docket.toml."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass, field

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib
from pathlib import Path

from docket.models import DEFAULT_STATUSES

_CONFIG_FILENAME = "docket.toml"


@dataclass
class TaskConfig:
    """Status set and repair defaults for task documents."""

    statuses: list[str] = field(default_factory=lambda: list(DEFAULT_STATUSES))
    default_status: str = "todo"
    default_priority: str = "medium"


@dataclass
class VersionConfig:
    """Where per-task version history lives, relative to the project root."""

    dirname: str = ".docket/versions"


@dataclass
class DocketConfig:
    """Top-level docket configuration."""

    tasks: TaskConfig = field(default_factory=TaskConfig)
    versions: VersionConfig = field(default_factory=VersionConfig)
    root: Path = field(default_factory=Path.cwd)
    log_level: str = "INFO"

    @property
    def versions_dir(self) -> Path:
        return self.root / self.versions.dirname


def _split_statuses(raw: str) -> list[str]:
    return [s.strip() for s in raw.split(",") if s.strip()]


def load_config(config_path: Path | None = None) -> DocketConfig:
    """Load configuration from environment variables and optional docket.toml.

    Priority: environment variables > docket.toml > defaults.
    """
    file_data: dict = {}
    if config_path and config_path.exists():
        file_data = tomllib.loads(config_path.read_text())
    else:
        # Search current dir and ~/.docket/
        for candidate in [Path.cwd() / _CONFIG_FILENAME, Path.home() / ".docket" / _CONFIG_FILENAME]:
            if candidate.exists():
                file_data = tomllib.loads(candidate.read_text())
                break

    tasks_data = file_data.get("tasks", {})
    versions_data = file_data.get("versions", {})

    env_statuses = os.getenv("DOCKET_STATUSES")
    statuses = (
        _split_statuses(env_statuses)
        if env_statuses
        else list(tasks_data.get("statuses", DEFAULT_STATUSES))
    )

    config = DocketConfig(
        tasks=TaskConfig(
            statuses=statuses,
            default_status=os.getenv(
                "DOCKET_DEFAULT_STATUS", tasks_data.get("default_status", "todo")
            ),
            default_priority=os.getenv(
                "DOCKET_DEFAULT_PRIORITY", tasks_data.get("default_priority", "medium")
            ),
        ),
        versions=VersionConfig(
            dirname=versions_data.get("dirname", ".docket/versions"),
        ),
        root=Path(os.getenv("DOCKET_ROOT", file_data.get("root", str(Path.cwd())))),
        log_level=os.getenv("DOCKET_LOG_LEVEL", file_data.get("log_level", "INFO")),
    )
    return config


def setup_logging(level: str) -> None:
    """Configure root logging for applications embedding docket."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
