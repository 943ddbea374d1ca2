"""Structured backlog: a YAML ``tasks:`` list with optional parallel groups.

Example document::

    tasks:
      - title: Build the login form
        completed: false
        parallel_group: 1

The document is read with PyYAML's ``BaseLoader`` so every scalar arrives as
a string; ``completed`` counts as done only for the literal token ``true``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .base import Task, read_document, write_document

logger = logging.getLogger(__name__)


class StructuredTaskEntry(BaseModel):
    """One entry of the ``tasks:`` list. Unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., description="Task text; also the task identity.")
    completed: bool = Field(default=False)
    parallel_group: int | None = Field(
        default=None,
        description="Group id; tasks of a lower group finish before higher ones start.",
    )

    @field_validator("title", mode="before")
    @classmethod
    def _require_title(cls, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("Task title must be a non-empty string")
        return value.strip()

    @field_validator("completed", mode="before")
    @classmethod
    def _literal_true(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        return isinstance(value, str) and value.strip() == "true"

    @field_validator("parallel_group", mode="before")
    @classmethod
    def _parse_group(cls, value: Any) -> int | None:
        if value is None or isinstance(value, int):
            return value
        try:
            return int(str(value).strip())
        except ValueError:
            return 0

    @property
    def group(self) -> int:
        return self.parallel_group or 0


def parse_structured(content: str) -> list[StructuredTaskEntry]:
    """Parse a structured backlog document, skipping entries that do not validate."""

    if not content.strip():
        return []
    try:
        document = yaml.load(content, Loader=yaml.BaseLoader)
    except yaml.YAMLError as exc:
        logger.warning("Failed to parse structured backlog", extra={"error": str(exc)})
        return []

    if not isinstance(document, dict):
        return []
    raw_tasks = document.get("tasks")
    if not isinstance(raw_tasks, list):
        return []

    entries: list[StructuredTaskEntry] = []
    for raw in raw_tasks:
        if not isinstance(raw, dict):
            continue
        try:
            entries.append(StructuredTaskEntry.model_validate(raw))
        except ValidationError:
            continue
    return entries


def dump_structured(entries: list[StructuredTaskEntry]) -> str:
    """Serialize entries back to a ``tasks:`` document."""

    payload = {
        "tasks": [
            entry.model_dump(exclude_none=True)
            for entry in entries
        ]
    }
    return yaml.safe_dump(payload, sort_keys=False, allow_unicode=True, default_flow_style=False)


class StructuredTaskSource:
    """Tasks read from a structured YAML document with parallel-group support."""

    kind = "structured"
    supports_groups = True
    supports_bodies = False

    def __init__(self, directory: Path, filename: str) -> None:
        self._path = Path(directory) / filename

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> list[StructuredTaskEntry]:
        return parse_structured(read_document(self._path))

    async def remaining_tasks(self) -> list[str]:
        return [entry.title for entry in self._load() if not entry.completed]

    async def all_tasks(self) -> list[Task]:
        return [
            Task(title=entry.title, completed=entry.completed, group=entry.group)
            for entry in self._load()
        ]

    async def next_task(self) -> str | None:
        remaining = await self.remaining_tasks()
        return remaining[0] if remaining else None

    async def count_remaining(self) -> int:
        return sum(1 for entry in self._load() if not entry.completed)

    async def count_completed(self) -> int:
        return sum(1 for entry in self._load() if entry.completed)

    async def mark_complete(self, title: str) -> None:
        entries = self._load()
        for entry in entries:
            if entry.title == title:
                entry.completed = True
                break
        else:
            logger.warning(
                "Task not found in structured backlog",
                extra={"task": title, "path": str(self._path)},
            )
        # Full rewrite; edits made since the read above are lost.
        write_document(self._path, dump_structured(entries))

    async def tasks_by_group(self, group: int) -> list[str]:
        return [
            entry.title
            for entry in self._load()
            if not entry.completed and entry.group == group
        ]

    async def parallel_groups(self) -> list[int]:
        return sorted({entry.group for entry in self._load() if not entry.completed})


__all__ = [
    "StructuredTaskEntry",
    "StructuredTaskSource",
    "dump_structured",
    "parse_structured",
]
