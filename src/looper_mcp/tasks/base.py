"""Shared task model and the capability set every backlog source offers."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import ClassVar, Protocol


class TaskSourceError(RuntimeError):
    """Base class for backlog source errors."""


class TaskSourceUnavailableError(TaskSourceError):
    """Raised when the backlog store cannot be reached or its reply cannot be read."""


@dataclass(slots=True)
class Task:
    title: str
    completed: bool = False
    group: int = 0
    body: str | None = None


class TaskSource(Protocol):
    """Async view over a backlog store. Every call re-reads the store."""

    kind: ClassVar[str]
    supports_groups: ClassVar[bool]
    supports_bodies: ClassVar[bool]

    async def remaining_tasks(self) -> list[str]:
        ...

    async def all_tasks(self) -> list[Task]:
        ...

    async def next_task(self) -> str | None:
        ...

    async def count_remaining(self) -> int:
        ...

    async def count_completed(self) -> int:
        ...

    async def mark_complete(self, title: str) -> None:
        ...


def read_document(path: Path) -> str:
    """Return the document text, or an empty string when it cannot be read.

    Line endings are kept as stored so rewrites leave untouched lines intact.
    """

    try:
        with path.open(encoding="utf-8", newline="") as handle:
            return handle.read()
    except (OSError, UnicodeDecodeError):
        return ""


def write_document(path: Path, content: str) -> None:
    with path.open("w", encoding="utf-8", newline="") as handle:
        handle.write(content)


__all__ = [
    "Task",
    "TaskSource",
    "TaskSourceError",
    "TaskSourceUnavailableError",
    "read_document",
    "write_document",
]
