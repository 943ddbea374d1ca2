"""Checklist backlog: a markdown document of ``- [ ]`` / ``- [x]`` lines."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from .base import Task, read_document, write_document

logger = logging.getLogger(__name__)

_LINE_PATTERN = re.compile(r"^- \[( |x)\] (.+?)\r?$", re.MULTILINE)


class ChecklistTaskSource:
    """Tasks parsed line by line from a checklist document, in document order."""

    kind = "checklist"
    supports_groups = False
    supports_bodies = False

    def __init__(self, directory: Path, filename: str) -> None:
        self._path = Path(directory) / filename

    @property
    def path(self) -> Path:
        return self._path

    def _parse(self) -> list[Task]:
        content = read_document(self._path)
        return [
            Task(title=match.group(2), completed=match.group(1) == "x")
            for match in _LINE_PATTERN.finditer(content)
        ]

    async def remaining_tasks(self) -> list[str]:
        return [task.title for task in self._parse() if not task.completed]

    async def all_tasks(self) -> list[Task]:
        return self._parse()

    async def next_task(self) -> str | None:
        remaining = await self.remaining_tasks()
        return remaining[0] if remaining else None

    async def count_remaining(self) -> int:
        return sum(1 for task in self._parse() if not task.completed)

    async def count_completed(self) -> int:
        return sum(1 for task in self._parse() if task.completed)

    async def mark_complete(self, title: str) -> None:
        content = read_document(self._path)
        pattern = re.compile(rf"^- \[ \] {re.escape(title)}(?=\r?$)", re.MULTILINE)
        updated, count = pattern.subn(lambda _: f"- [x] {title}", content, count=1)
        if not count:
            logger.warning(
                "Task not found among pending checklist items",
                extra={"task": title, "path": str(self._path)},
            )
            return
        write_document(self._path, updated)


__all__ = ["ChecklistTaskSource"]
