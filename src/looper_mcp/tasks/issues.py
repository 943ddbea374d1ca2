"""Remote backlog: GitHub issues read and closed through the ``gh`` CLI."""

from __future__ import annotations

import json
import logging
from typing import Any

from ..commands import CommandRunner
from .base import Task, TaskSourceUnavailableError

logger = logging.getLogger(__name__)

ISSUE_LIST_LIMIT = 500


def issue_identity(number: int | str, title: str) -> str:
    return f"{number}:{title}"


def issue_number(task: str) -> str | None:
    number, _, _ = task.partition(":")
    number = number.strip().lstrip("#")
    return number if number.isdigit() else None


class IssueTaskSource:
    """Open issues are remaining tasks, closed issues are completed ones.

    Tracker failures raise ``TaskSourceUnavailableError`` so callers can tell
    an unreachable tracker apart from an empty backlog.
    """

    kind = "remote-issue"
    supports_groups = False
    supports_bodies = True

    def __init__(
        self,
        repo: str,
        label: str = "",
        *,
        gh_path: str = "gh",
        commands: CommandRunner | None = None,
    ) -> None:
        self._repo = repo
        self._label = label
        self._gh_path = gh_path
        self._commands = commands or CommandRunner()

    @property
    def repo(self) -> str:
        return self._repo

    async def _gh(self, *args: str) -> str:
        if not self._repo:
            raise TaskSourceUnavailableError("No remote repository configured for the issue backlog")
        result = await self._commands.run(self._gh_path, *args, "--repo", self._repo)
        if not result.ok:
            logger.warning(
                "gh command failed",
                extra={"command": list(args[:2]), "returncode": result.returncode},
            )
            raise TaskSourceUnavailableError(f"gh {' '.join(args[:2])} failed: {result.error_text}")
        return result.stdout.strip()

    async def _gh_json(self, *args: str) -> Any:
        output = await self._gh(*args)
        if not output:
            return None
        try:
            return json.loads(output)
        except json.JSONDecodeError as exc:
            raise TaskSourceUnavailableError(f"gh returned unreadable JSON: {exc}") from exc

    async def _list(self, state: str, fields: str = "number,title") -> list[dict[str, Any]]:
        args = ["issue", "list", "--state", state, "--json", fields, "--limit", str(ISSUE_LIST_LIMIT)]
        if self._label:
            args.extend(["--label", self._label])
        issues = await self._gh_json(*args)
        if issues is None:
            return []
        if not isinstance(issues, list):
            raise TaskSourceUnavailableError("gh issue list did not return a list")
        return [issue for issue in issues if isinstance(issue, dict)]

    async def remaining_tasks(self) -> list[str]:
        issues = await self._list("open")
        return [issue_identity(issue.get("number"), issue.get("title", "")) for issue in issues]

    async def all_tasks(self) -> list[Task]:
        tasks = [
            Task(title=issue_identity(issue.get("number"), issue.get("title", "")), completed=False)
            for issue in await self._list("open")
        ]
        tasks.extend(
            Task(title=issue_identity(issue.get("number"), issue.get("title", "")), completed=True)
            for issue in await self._list("closed")
        )
        return tasks

    async def next_task(self) -> str | None:
        remaining = await self.remaining_tasks()
        return remaining[0] if remaining else None

    async def count_remaining(self) -> int:
        return len(await self._list("open"))

    async def count_completed(self) -> int:
        return len(await self._list("closed", fields="number"))

    async def mark_complete(self, title: str) -> None:
        number = issue_number(title)
        if number is None:
            logger.warning("Task has no issue number; not closing", extra={"task": title})
            return
        await self._gh("issue", "close", number)

    async def task_body(self, title: str) -> str:
        number = issue_number(title)
        if number is None:
            return ""
        data = await self._gh_json("issue", "view", number, "--json", "body")
        if not isinstance(data, dict):
            return ""
        return data.get("body") or ""


__all__ = ["ISSUE_LIST_LIMIT", "IssueTaskSource", "issue_identity", "issue_number"]
