"""Branch, worktree and merge operations against one shared repository root.

Every git failure is returned as a ``GitOutcome`` failure carrying the
command's error text, and logged; nothing here raises on a failed command.
Operations that mutate the shared root checkout are serialized.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

from ..commands import CommandResult, CommandRunner
from ..utils import slugify
from .models import GitOutcome, WorkspaceHandle

logger = logging.getLogger(__name__)

BRANCH_PREFIX = "looper/"
AUTOSTASH_MESSAGE = "looper-autostash"
DEFAULT_BRANCH = "main"


def _branch_slug(task: str) -> str:
    return slugify(task) or "task"


def task_branch_name(task: str) -> str:
    return f"{BRANCH_PREFIX}{_branch_slug(task)}"


def workspace_branch_name(task: str, slot: int) -> str:
    return f"{BRANCH_PREFIX}agent-{slot}-{_branch_slug(task)}"


class WorkspaceManager:
    """Creates and reconciles per-task branches and worktrees."""

    def __init__(
        self,
        directory: Path,
        *,
        git_path: str = "git",
        gh_path: str = "gh",
        commands: CommandRunner | None = None,
    ) -> None:
        self._directory = Path(directory)
        self._git_path = git_path
        self._gh_path = gh_path
        self._commands = commands or CommandRunner()
        self._lock: asyncio.Lock | None = None
        self._lock_loop: asyncio.AbstractEventLoop | None = None

    @property
    def directory(self) -> Path:
        return self._directory

    def _root_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _git(self, *args: str, cwd: Path | None = None) -> CommandResult:
        return await self._commands.run(self._git_path, *args, cwd=cwd or self._directory)

    @staticmethod
    def _failed(operation: str, result: CommandResult, **extra: object) -> GitOutcome:
        logger.warning(
            "git %s failed",
            operation,
            extra={"returncode": result.returncode, "error": result.error_text, **extra},
        )
        return GitOutcome.failure(f"{operation}: {result.error_text}")

    async def current_branch(self) -> str:
        result = await self._git("rev-parse", "--abbrev-ref", "HEAD")
        if not result.ok:
            return DEFAULT_BRANCH
        return result.stdout.strip() or DEFAULT_BRANCH

    async def _has_origin(self) -> bool:
        result = await self._git("remote", "get-url", "origin")
        return result.ok

    async def _stash(self) -> GitOutcome[bool]:
        status = await self._git("status", "--porcelain", "--untracked-files=no")
        if not status.ok:
            return self._failed("status", status)
        if not status.stdout.strip():
            return GitOutcome.success(False)
        result = await self._git("stash", "push", "-m", AUTOSTASH_MESSAGE)
        if not result.ok:
            return self._failed("stash", result)
        return GitOutcome.success("No local changes" not in result.stdout)

    async def _restore_stash(self, stashed: bool) -> None:
        if not stashed:
            return
        result = await self._git("stash", "pop")
        if not result.ok:
            logger.warning(
                "Could not restore stashed changes; they remain in the stash list",
                extra={"error": result.error_text},
            )

    async def create_task_branch(self, task: str, base: str) -> GitOutcome[str]:
        """Switch the root checkout to a fresh or existing branch for ``task``."""

        branch = task_branch_name(task)
        async with self._root_lock():
            stash = await self._stash()
            if not stash.ok:
                return GitOutcome.failure(stash.error or "stash failed")
            stashed = bool(stash.value)

            result = await self._git("checkout", base)
            if not result.ok:
                await self._restore_stash(stashed)
                return self._failed("checkout", result, branch=base)

            if await self._has_origin():
                result = await self._git("pull", "origin", base)
                if not result.ok:
                    await self._restore_stash(stashed)
                    return self._failed("pull", result, branch=base)

            result = await self._git("checkout", "-b", branch)
            if not result.ok:
                result = await self._git("checkout", branch)
                if not result.ok:
                    await self._restore_stash(stashed)
                    return self._failed("checkout", result, branch=branch)

            await self._restore_stash(stashed)

        logger.info("Created task branch", extra={"branch": branch, "base": base})
        return GitOutcome.success(branch)

    async def return_to_base(self, base: str) -> GitOutcome[bool]:
        if not base:
            return GitOutcome.success(False)
        async with self._root_lock():
            result = await self._git("checkout", base)
        if not result.ok:
            return self._failed("checkout", result, branch=base)
        return GitOutcome.success(True)

    async def create_workspace(
        self,
        task: str,
        slot: int,
        base: str,
        root: Path,
    ) -> GitOutcome[WorkspaceHandle]:
        """Materialize ``root/agent-<slot>`` as a worktree on a fresh branch from ``base``."""

        branch = workspace_branch_name(task, slot)
        path = Path(root) / f"agent-{slot}"

        async with self._root_lock():
            result = await self._git("worktree", "prune")
            if not result.ok:
                return self._failed("worktree prune", result, slot=slot)

            # A missing branch is the normal case here.
            await self._git("branch", "-D", branch)

            result = await self._git("branch", branch, base)
            if not result.ok:
                return self._failed("branch", result, branch=branch, slot=slot)

            if path.exists():
                shutil.rmtree(path, ignore_errors=True)
            path.parent.mkdir(parents=True, exist_ok=True)

            result = await self._git("worktree", "add", str(path), branch)
            if not result.ok:
                return self._failed("worktree add", result, branch=branch, slot=slot)

        logger.debug("Created workspace", extra={"path": str(path), "branch": branch, "slot": slot})
        return GitOutcome.success(WorkspaceHandle(path=path, branch=branch, slot=slot))

    async def is_dirty(self, path: Path) -> GitOutcome[bool]:
        result = await self._git("status", "--porcelain", cwd=Path(path))
        if not result.ok:
            return self._failed("status", result, path=str(path))
        return GitOutcome.success(bool(result.stdout.strip()))

    async def cleanup_workspace(self, handle: WorkspaceHandle) -> GitOutcome[bool]:
        """Remove the worktree unless it holds uncommitted changes.

        ``value`` is True when removed and False when preserved. A workspace
        whose status cannot be read is preserved as well.
        """

        dirty = await self.is_dirty(handle.path)
        if not dirty.ok:
            return GitOutcome.failure(dirty.error or "status failed")
        if dirty.value:
            logger.info(
                "Preserving dirty workspace",
                extra={"path": str(handle.path), "branch": handle.branch},
            )
            return GitOutcome.success(False)

        async with self._root_lock():
            result = await self._git("worktree", "remove", "-f", str(handle.path))
        if not result.ok:
            return self._failed("worktree remove", result, path=str(handle.path))
        return GitOutcome.success(True)

    async def merge_branch(self, branch: str, base: str) -> GitOutcome[bool]:
        """Merge ``branch`` into ``base`` and delete it. A conflict is left in place."""

        async with self._root_lock():
            result = await self._git("checkout", base)
            if not result.ok:
                return self._failed("checkout", result, branch=base)

            result = await self._git("merge", "--no-edit", branch)
            if not result.ok:
                return self._failed("merge", result, branch=branch)

            result = await self._git("branch", "-d", branch)
            if not result.ok:
                logger.warning(
                    "Merged branch could not be deleted",
                    extra={"branch": branch, "error": result.error_text},
                )
        return GitOutcome.success(True)

    async def conflicted_files(self) -> GitOutcome[list[str]]:
        result = await self._git("diff", "--name-only", "--diff-filter=U")
        if not result.ok:
            return self._failed("diff", result)
        return GitOutcome.success([line for line in result.stdout.splitlines() if line.strip()])

    async def abort_merge(self) -> GitOutcome[bool]:
        async with self._root_lock():
            result = await self._git("merge", "--abort")
        if not result.ok:
            return self._failed("merge --abort", result)
        return GitOutcome.success(True)

    async def merge_in_progress(self) -> GitOutcome[bool]:
        """True while the root checkout has an unfinished merge (``MERGE_HEAD`` exists)."""

        result = await self._git("rev-parse", "-q", "--verify", "MERGE_HEAD")
        if result.returncode not in (0, 1):
            return self._failed("rev-parse", result)
        return GitOutcome.success(result.ok)

    async def is_merged(self, branch: str, base: str) -> GitOutcome[bool]:
        """True when every commit of ``branch`` is reachable from ``base``."""

        result = await self._git("merge-base", "--is-ancestor", branch, base)
        if result.returncode not in (0, 1):
            return self._failed("merge-base", result, branch=branch)
        return GitOutcome.success(result.ok)

    async def commit_count(self, base: str, cwd: Path | None = None) -> GitOutcome[int]:
        result = await self._git("rev-list", "--count", f"{base}..HEAD", cwd=cwd)
        if not result.ok:
            return self._failed("rev-list", result)
        try:
            return GitOutcome.success(int(result.stdout.strip()))
        except ValueError:
            return GitOutcome.failure(f"rev-list: unexpected output {result.stdout.strip()!r}")

    async def create_pull_request(
        self,
        branch: str,
        title: str,
        body: str,
        base: str,
        *,
        draft: bool = False,
    ) -> GitOutcome[str]:
        """Push ``branch`` and open a pull request; the value is the PR url."""

        result = await self._git("push", "-u", "origin", branch)
        if not result.ok:
            return self._failed("push", result, branch=branch)

        args = [
            self._gh_path,
            "pr",
            "create",
            "--base",
            base,
            "--head",
            branch,
            "--title",
            title,
            "--body",
            body,
        ]
        if draft:
            args.append("--draft")
        result = await self._commands.run(*args, cwd=self._directory)
        if not result.ok:
            return self._failed("gh pr create", result, branch=branch)
        return GitOutcome.success(result.stdout.strip())


__all__ = [
    "AUTOSTASH_MESSAGE",
    "BRANCH_PREFIX",
    "WorkspaceManager",
    "task_branch_name",
    "workspace_branch_name",
]
