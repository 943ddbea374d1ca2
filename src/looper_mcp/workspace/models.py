"""Data models for git workspaces and git call outcomes."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass(slots=True)
class WorkspaceHandle:
    path: Path
    branch: str
    slot: int


@dataclass(slots=True)
class GitOutcome(Generic[T]):
    """Either a value or the reason the git operation failed."""

    value: T | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "GitOutcome[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "GitOutcome[T]":
        return cls(error=error or "unknown git failure")


__all__ = ["GitOutcome", "WorkspaceHandle"]
