"""Backlog sources and the configuration-keyed factory that selects one."""

from __future__ import annotations

from pathlib import Path

from ..commands import CommandRunner
from ..config import RunConfig
from .base import Task, TaskSource, TaskSourceError, TaskSourceUnavailableError
from .checklist import ChecklistTaskSource
from .issues import IssueTaskSource
from .structured import StructuredTaskSource


def get_task_source(
    config: RunConfig,
    directory: Path,
    *,
    gh_path: str = "gh",
    commands: CommandRunner | None = None,
) -> TaskSource:
    """Build the backlog source named by ``config.backlog_source``."""

    if config.backlog_source == "structured":
        return StructuredTaskSource(directory, config.backlog_file)
    if config.backlog_source == "remote-issue":
        return IssueTaskSource(
            config.remote_repo,
            config.remote_label,
            gh_path=gh_path,
            commands=commands,
        )
    return ChecklistTaskSource(directory, config.backlog_file)


__all__ = [
    "ChecklistTaskSource",
    "IssueTaskSource",
    "StructuredTaskSource",
    "Task",
    "TaskSource",
    "TaskSourceError",
    "TaskSourceUnavailableError",
    "get_task_source",
]
