"""Batch scheduler: fans backlog tasks out to worktree slots and merges the results.

Tasks are snapshotted once per run. Group-capable backlogs run group by
group in ascending order; within a group, tasks run in batches of at most
``max_parallel`` slots, and each batch is joined before the next starts.
Slot numbers increase across the whole run so branch names never collide.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Sequence

from .codex import AgentReport, ExecutionAgent
from .directives import build_merge_conflict_directive, build_parallel_directive
from .ledger import RULE
from .session import RunSession
from .tasks import TaskSourceError
from .utils import truncate
from .workspace import WorkspaceHandle, WorkspaceManager

logger = logging.getLogger(__name__)


class SlotState(str, Enum):
    PENDING = "pending"
    WORKSPACE_CREATING = "workspace_creating"
    DELEGATED = "delegated"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CLEANUP = "cleanup"
    DONE = "done"


@dataclass(slots=True)
class SlotResult:
    task: str
    slot: int
    branch: str = ""
    success: bool = False
    error: str | None = None
    report: AgentReport | None = None
    pr_url: str | None = None
    preserved: bool = False
    history: list[SlotState] = field(default_factory=lambda: [SlotState.PENDING])

    @property
    def state(self) -> SlotState:
        return self.history[-1]

    def advance(self, state: SlotState) -> None:
        self.history.append(state)


@dataclass(slots=True)
class RunReport:
    results: list[SlotResult] = field(default_factory=list)
    batches: list[list[int]] = field(default_factory=list)
    plan: list[tuple[int, str]] = field(default_factory=list)
    merged: list[str] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    resolved: list[str] = field(default_factory=list)
    pull_requests: list[str] = field(default_factory=list)
    backlog_error: str | None = None
    stop_reason: str | None = None
    dry_run: bool = False

    @property
    def succeeded(self) -> list[SlotResult]:
        return [result for result in self.results if result.success]

    @property
    def failed(self) -> list[SlotResult]:
        return [result for result in self.results if not result.success]


def plan_batches(
    tasks: Sequence[str],
    max_parallel: int,
    *,
    first_slot: int = 1,
) -> list[list[tuple[int, str]]]:
    """Slice ``tasks`` into ordered batches of ``(slot, task)`` pairs."""

    size = max(1, max_parallel)
    batches: list[list[tuple[int, str]]] = []
    for start in range(0, len(tasks), size):
        chunk = tasks[start : start + size]
        batches.append([(first_slot + start + offset, task) for offset, task in enumerate(chunk)])
    return batches


class BatchScheduler:
    """Runs a session's backlog through concurrent, isolated worktree slots."""

    def __init__(
        self,
        session: RunSession,
        workspaces: WorkspaceManager,
        agent: ExecutionAgent | None,
        *,
        project_root: Path,
        workspace_root: Path | None = None,
        progress_file: str = "progress.txt",
    ) -> None:
        self._session = session
        self._workspaces = workspaces
        self._agent = agent
        self._project_root = Path(project_root)
        self._workspace_root = workspace_root
        self._progress_file = progress_file

    @property
    def session(self) -> RunSession:
        return self._session

    async def _phases(self, report: RunReport) -> list[tuple[int | None, list[str]]] | None:
        source = self._session.source
        try:
            snapshot = await source.all_tasks()
        except TaskSourceError as exc:
            logger.error("Backlog unavailable", extra={"error": str(exc)})
            report.backlog_error = str(exc)
            return None

        pending = [task for task in snapshot if not task.completed]
        if not source.supports_groups:
            return [(None, [task.title for task in pending])] if pending else []
        groups = sorted({task.group for task in pending})
        return [(group, [task.title for task in pending if task.group == group]) for group in groups]

    def _stop_reason(self, dispatched: int) -> str | None:
        config = self._session.config
        if not self._session.running:
            return "stopped"
        if config.max_iterations > 0 and dispatched >= config.max_iterations:
            return f"reached max iterations ({config.max_iterations})"
        return None

    async def run(self) -> RunReport:
        config = self._session.config
        report = RunReport(dry_run=config.dry_run)

        phases = await self._phases(report)
        if phases is None:
            return report
        total = sum(len(titles) for _, titles in phases)
        if total == 0:
            logger.info("No tasks to run")
            return report

        logger.info(
            "Found tasks to process",
            extra={"count": total, "max_parallel": config.max_parallel},
        )

        if config.dry_run:
            self._plan_only(report, phases)
            return report

        base = config.base_branch or await self._workspaces.current_branch()
        created_root = self._workspace_root is None
        root = self._workspace_root or Path(tempfile.mkdtemp(prefix="looper-"))

        next_slot = 1
        for group, titles in phases:
            if report.stop_reason:
                break
            if group is not None:
                logger.info(
                    "Processing parallel group %s",
                    group,
                    extra={"group": group, "count": len(titles)},
                )
            for batch in plan_batches(titles, config.max_parallel, first_slot=next_slot):
                report.stop_reason = self._stop_reason(len(report.results))
                if report.stop_reason:
                    logger.info("Stopping dispatch: %s", report.stop_reason)
                    break
                await self._run_batch(batch, base, root, report)
                next_slot += len(batch)

        if created_root:
            self._remove_root_if_empty(root)

        if config.create_pr:
            report.pull_requests = [result.pr_url for result in report.results if result.pr_url]
        else:
            await self._reconcile(report, base)
        return report

    def _plan_only(self, report: RunReport, phases: list[tuple[int | None, list[str]]]) -> None:
        config = self._session.config
        next_slot = 1
        for _, titles in phases:
            for batch in plan_batches(titles, config.max_parallel, first_slot=next_slot):
                if config.max_iterations > 0 and len(report.plan) >= config.max_iterations:
                    report.stop_reason = f"reached max iterations ({config.max_iterations})"
                    return
                report.batches.append([slot for slot, _ in batch])
                report.plan.extend(batch)
                next_slot += len(batch)
                logger.info(
                    "Dry run batch",
                    extra={"slots": [slot for slot, _ in batch], "tasks": [task for _, task in batch]},
                )

    async def _run_batch(
        self,
        batch: list[tuple[int, str]],
        base: str,
        root: Path,
        report: RunReport,
    ) -> None:
        batch_number = len(report.batches) + 1
        logger.info(
            "Batch %s: spawning %s parallel agents",
            batch_number,
            len(batch),
            extra={"slots": [slot for slot, _ in batch]},
        )
        results = await asyncio.gather(*(self._run_slot(task, slot, base, root) for slot, task in batch))
        report.batches.append([slot for slot, _ in batch])
        report.results.extend(results)

        for result in results:
            logger.info(
                "%s Agent %s: %s",
                "✓" if result.success else "✗",
                result.slot,
                truncate(result.task, 45),
                extra={"branch": result.branch, "error": result.error},
            )

    def _seed_workspace(self, handle: WorkspaceHandle) -> None:
        config = self._session.config
        try:
            if config.backlog_source != "remote-issue":
                backlog = self._project_root / config.backlog_file
                shutil.copy2(backlog, handle.path / Path(config.backlog_file).name)
            (handle.path / self._progress_file).touch()
        except OSError as exc:
            logger.debug("Could not seed workspace", extra={"path": str(handle.path), "error": str(exc)})

    async def _task_body(self, task: str) -> str | None:
        source = self._session.source
        if not source.supports_bodies:
            return None
        try:
            return await source.task_body(task)  # type: ignore[attr-defined]
        except TaskSourceError as exc:
            logger.warning("Could not fetch task body", extra={"task": task, "error": str(exc)})
            return None

    async def _delegate(self, directive: str, workdir: Path) -> AgentReport:
        if self._agent is None:
            return AgentReport.failed("No execution agent configured")
        try:
            return await self._agent.execute(directive, workdir)
        except Exception as exc:  # agent failures must not escape the batch
            logger.exception("Agent raised during execution", extra={"workdir": str(workdir)})
            return AgentReport.failed(str(exc) or exc.__class__.__name__)

    async def _run_slot(self, task: str, slot: int, base: str, root: Path) -> SlotResult:
        session = self._session
        config = session.config
        result = SlotResult(task=task, slot=slot)
        session.begin_task(task)

        result.advance(SlotState.WORKSPACE_CREATING)
        created = await self._workspaces.create_workspace(task, slot, base, root)
        if not created.ok or created.value is None:
            result.error = created.error or "Failed to create workspace"
            result.advance(SlotState.FAILED)
            result.advance(SlotState.DONE)
            return result

        handle = created.value
        result.branch = handle.branch
        self._seed_workspace(handle)

        directive = build_parallel_directive(
            task,
            slot,
            config,
            body=await self._task_body(task),
            progress_file=self._progress_file,
        )
        result.advance(SlotState.DELEGATED)
        agent_report = await self._delegate(directive, handle.path)

        commits = await self._workspaces.commit_count(base, cwd=handle.path)
        if commits.ok:
            agent_report.artifacts.append(f"commits:{commits.value}")
        result.report = agent_report
        session.ledger.record(agent_report)

        if agent_report.ok:
            result.success = True
            result.advance(SlotState.SUCCEEDED)
            try:
                await session.source.mark_complete(task)
            except TaskSourceError as exc:
                logger.warning("Could not mark task complete", extra={"task": task, "error": str(exc)})
            session.add_branch(handle.branch)
            if config.create_pr:
                pr = await self._workspaces.create_pull_request(
                    handle.branch,
                    task,
                    f"Automated implementation by Looper (Agent {slot})",
                    base,
                    draft=config.draft_pr,
                )
                if pr.ok:
                    result.pr_url = pr.value
                    logger.info("Created PR", extra={"url": pr.value, "branch": handle.branch})
        else:
            result.error = agent_report.detail or "Agent reported failure"
            result.advance(SlotState.FAILED)

        result.advance(SlotState.CLEANUP)
        cleanup = await self._workspaces.cleanup_workspace(handle)
        result.preserved = not (cleanup.ok and cleanup.value)
        result.advance(SlotState.DONE)
        return result

    @staticmethod
    def _remove_root_if_empty(root: Path) -> None:
        try:
            root.rmdir()
        except OSError:
            logger.info("Workspace root preserved", extra={"path": str(root)})

    async def _reconcile(self, report: RunReport, base: str) -> None:
        branches = [result.branch for result in report.results if result.success and result.branch]
        if not branches:
            return

        logger.info("Merging agent branches", extra={"count": len(branches), "base": base})
        for branch in branches:
            merged = await self._workspaces.merge_branch(branch, base)
            if merged.ok:
                report.merged.append(branch)
                continue
            if await self._attempt_resolution(branch, base):
                report.resolved.append(branch)
            else:
                report.unresolved.append(branch)

        if report.unresolved:
            logger.warning(
                "Some conflicts could not be resolved automatically",
                extra={"branches": report.unresolved},
            )

    async def _attempt_resolution(self, branch: str, base: str) -> bool:
        """Run one resolution attempt, then abort the merge.

        Returns True only when the merge was completed anyway and ``branch``
        is now part of ``base``; the report then lists it as resolved.
        """

        conflicts = await self._workspaces.conflicted_files()
        if conflicts.ok and conflicts.value:
            logger.info(
                "Attempting conflict resolution",
                extra={"branch": branch, "files": conflicts.value},
            )
            outcome = await self._delegate(
                build_merge_conflict_directive(conflicts.value),
                self._project_root,
            )
            self._session.ledger.record(outcome)

        aborted = await self._workspaces.abort_merge()
        if aborted.ok:
            return False

        in_progress = await self._workspaces.merge_in_progress()
        if in_progress.ok and in_progress.value is False:
            contained = await self._workspaces.is_merged(branch, base)
            if contained.ok and contained.value:
                logger.warning(
                    "Conflict resolution committed the merge",
                    extra={"branch": branch, "base": base},
                )
                return True
        logger.error(
            "Merge could not be aborted; the project root needs manual attention",
            extra={"branch": branch, "error": aborted.error},
        )
        return False


def render_report(report: RunReport, session: RunSession) -> str:
    """Human-readable summary of a scheduler run."""

    if report.backlog_error:
        return f"⚠️ Backlog unavailable: {report.backlog_error}"

    if report.dry_run:
        lines = ["Dry run: no workspaces created", RULE]
        for number, slots in enumerate(report.batches, start=1):
            lines.append(f"Batch {number}:")
            lines.extend(
                f"  Agent {slot}: {truncate(task, 50)}" for slot, task in report.plan if slot in slots
            )
        if not report.plan:
            lines.append("No tasks to run")
        if report.stop_reason:
            lines.append(f"Stopped: {report.stop_reason}")
        return "\n".join(lines)

    if not report.results:
        return "✅ No tasks to run"

    lines = [session.ledger.summary(len(report.succeeded)), f"Failed: {len(report.failed)} tasks"]
    for result in report.failed:
        lines.append(f"  ✗ Agent {result.slot}: {truncate(result.task, 45)} ({result.error})")
    if report.merged:
        lines.append("Merged:")
        lines.extend(f"  • {branch}" for branch in report.merged)
    if report.resolved:
        lines.append("Merged during conflict resolution:")
        lines.extend(f"  • {branch}" for branch in report.resolved)
    if report.unresolved:
        lines.append("Unresolved conflicts:")
        lines.extend(f"  • {branch}" for branch in report.unresolved)
        lines.append("Resolve conflicts manually: git merge <branch>")
    if report.pull_requests:
        lines.append("Pull requests:")
        lines.extend(f"  • {url}" for url in report.pull_requests)
    if report.stop_reason:
        lines.append(f"Stopped: {report.stop_reason}")
    return "\n".join(lines)


__all__ = [
    "BatchScheduler",
    "RunReport",
    "SlotResult",
    "SlotState",
    "plan_batches",
    "render_report",
]
