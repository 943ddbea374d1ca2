"""Tool-facing controller: sequential one-task steps, loop start/stop, status and config.

Sequential mode never loops internally. ``next_task`` prepares exactly one
task and hands its directive back to the calling agent; ``start`` returns one
long loop directive. Only parallel mode iterates, inside ``BatchScheduler``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable

from .codex import ExecutionAgent
from .config import RunConfig
from .directives import build_loop_directive, build_task_directive
from .ledger import RULE
from .scheduler import BatchScheduler, render_report
from .session import RunSession
from .tasks import TaskSource, TaskSourceError, get_task_source
from .utils import truncate
from .workspace import WorkspaceManager

logger = logging.getLogger(__name__)

PACKAGE_LOGGER = "looper_mcp"

SourceFactory = Callable[[RunConfig, Path], TaskSource]


class Controller:
    """Owns the run configuration and the current session, if any."""

    def __init__(
        self,
        project_root: Path,
        *,
        workspaces: WorkspaceManager,
        agent: ExecutionAgent | None = None,
        config: RunConfig | None = None,
        source_factory: SourceFactory | None = None,
        workspace_root: Path | None = None,
        progress_file: str = "progress.txt",
    ) -> None:
        self._project_root = Path(project_root)
        self._workspaces = workspaces
        self._agent = agent
        self._config = config or RunConfig()
        self._source_factory = source_factory or (lambda cfg, root: get_task_source(cfg, root))
        self._workspace_root = workspace_root
        self._progress_file = progress_file
        self._session: RunSession | None = None

    @property
    def config(self) -> RunConfig:
        return self._config

    @property
    def session(self) -> RunSession | None:
        return self._session

    @property
    def running(self) -> bool:
        return self._session is not None and self._session.running

    def _apply_options(self, options: str | None) -> None:
        self._config = self._config.apply(options)
        logging.getLogger(PACKAGE_LOGGER).setLevel(logging.DEBUG if self._config.verbose else logging.NOTSET)

    def _current_session(self) -> RunSession:
        """Return the active session, or an idle one for calls made outside a loop."""

        if self._session is None:
            self._session = RunSession.create(
                self._config,
                self._source_factory(self._config, self._project_root),
                running=False,
            )
        return self._session

    def _backlog_path(self) -> Path:
        return self._project_root / self._config.backlog_file

    def _ensure_progress_file(self) -> None:
        progress = self._project_root / self._progress_file
        if not progress.exists():
            progress.touch()

    async def start(self, options: str | None = None) -> str:
        if self.running:
            return "⚠️ Looper is already running. Use loop_stop first."

        self._apply_options(options)
        config = self._config
        if config.backlog_source != "remote-issue" and not self._backlog_path().exists():
            return f"❌ Backlog file not found: {config.backlog_file}"
        self._ensure_progress_file()

        if not config.base_branch:
            self._config = config = config.model_copy(
                update={"base_branch": await self._workspaces.current_branch()}
            )

        session = RunSession.create(config, self._source_factory(config, self._project_root))
        self._session = session
        logger.info(
            "Starting Looper loop",
            extra={
                "source": config.backlog_source,
                "file": config.backlog_file,
                "parallel": config.parallel,
            },
        )

        if config.parallel:
            return await self._run_parallel(session)

        try:
            first = await session.source.next_task()
        except TaskSourceError as exc:
            session.discard()
            self._session = None
            return f"⚠️ Backlog unavailable: {exc}"
        if first is None:
            session.discard()
            self._session = None
            return "✅ No tasks found. Backlog is already complete!"

        header = [
            "🚀 Looper Started",
            "",
            f"Source: {config.backlog_source} ({config.backlog_file})",
            f"Base Branch: {config.base_branch}",
        ]
        if config.skip_tests:
            header.append("Tests: SKIPPED")
        if config.skip_lint:
            header.append("Lint: SKIPPED")
        directive = build_loop_directive(config, progress_file=self._progress_file)
        return "\n".join(header) + "\n\n---\n\n" + directive

    async def _run_parallel(self, session: RunSession) -> str:
        if self._agent is None and not session.config.dry_run:
            session.discard()
            self._session = None
            return "❌ Parallel mode needs an execution agent; the Codex CLI was not found."

        scheduler = BatchScheduler(
            session,
            self._workspaces,
            self._agent,
            project_root=self._project_root,
            workspace_root=self._workspace_root,
            progress_file=self._progress_file,
        )
        try:
            report = await scheduler.run()
        finally:
            session.discard()
            self._session = None
        return render_report(report, session)

    async def stop(self) -> str:
        session = self._session
        if session is None or not session.running:
            return "ℹ️ Looper is not running."

        summary = session.ledger.summary(session.iteration)
        if session.config.branch_per_task:
            await self._workspaces.return_to_base(session.config.base_branch)
        logger.info("Looper stopped", extra={"iterations": session.iteration})
        session.discard()
        self._session = None
        return f"🛑 Looper Stopped\n\n{summary}"

    async def check_completion(self) -> bool:
        """True when the backlog has no remaining tasks; stops a running loop if so."""

        session = self._current_session()
        try:
            remaining = await session.source.count_remaining()
        except TaskSourceError as exc:
            logger.warning("Backlog unavailable during completion check", extra={"error": str(exc)})
            return False
        if remaining == 0 and session.running:
            logger.info("All tasks complete")
            await self.stop()
        return remaining == 0

    async def backlog_counts(self) -> tuple[int, int]:
        """Return ``(remaining, completed)``; raises ``TaskSourceError`` if unreachable."""

        source = self._current_session().source
        return await source.count_remaining(), await source.count_completed()

    async def status(self) -> str:
        session = self._current_session()
        source = session.source
        try:
            completed = await source.count_completed()
            remaining_tasks = await source.remaining_tasks()
        except TaskSourceError as exc:
            return f"⚠️ Backlog unavailable: {exc}"

        remaining = len(remaining_tasks)
        total = completed + remaining
        progress = round(completed / total * 100) if total else 0
        filled = round(progress / 100 * 20)

        lines = [
            "📊 Looper Status",
            RULE,
            f"Running: {'✅ Yes' if session.running else '❌ No'}",
            f"Current Task: {session.current_task or 'None'}",
            f"Iteration: {session.iteration}",
            RULE,
            f"Completed: {completed}/{total} tasks",
            f"Remaining: {remaining} tasks",
            f"Progress: {progress}%",
            "",
            f"[{'█' * filled}{'░' * (20 - filled)}] {progress}%",
            "",
            session.ledger.token_summary(),
        ]
        if remaining_tasks:
            lines.append("")
            lines.append("Next tasks:")
            lines.extend(
                f"  {index}. {truncate(task, 50)}"
                for index, task in enumerate(remaining_tasks[:3], start=1)
            )
            if remaining > 3:
                lines.append(f"  ... and {remaining - 3} more")
        return "\n".join(lines)

    async def next_task(self, task: str | None = None) -> str:
        """Prepare exactly one task and return its directive for the calling agent."""

        session = self._current_session()
        if not task:
            try:
                task = await session.source.next_task()
            except TaskSourceError as exc:
                return f"⚠️ Backlog unavailable: {exc}"
        if not task:
            return "✅ No tasks remaining!"

        session.begin_task(task)
        config = session.config

        branch = ""
        if config.branch_per_task:
            base = config.base_branch or await self._workspaces.current_branch()
            created = await self._workspaces.create_task_branch(task, base)
            if created.ok and created.value:
                branch = created.value
                session.add_branch(branch)
            else:
                logger.warning("Continuing without a task branch", extra={"task": task, "error": created.error})

        directive = build_task_directive(task, config, progress_file=self._progress_file)
        header = f"🔧 Working on: {truncate(task, 50)}\n"
        if branch:
            header += f"📌 Branch: {branch}\n"
        return f"{header}\n---\n\n{directive}"

    async def mark_complete(self, task: str) -> str:
        session = self._current_session()
        try:
            await session.source.mark_complete(task)
            remaining = await session.source.count_remaining()
        except TaskSourceError as exc:
            return f"⚠️ Backlog unavailable: {exc}"

        if remaining == 0:
            return (
                f"✅ Marked complete: {truncate(task, 40)}\n\n🎉 All tasks complete!\n\n"
                f"{session.ledger.summary(session.iteration)}"
            )
        return f"✅ Marked complete: {truncate(task, 40)}\n📝 {remaining} tasks remaining"

    def configure(self, options: str) -> str:
        self._apply_options(options)
        config = self._config
        if self._session is not None and not self._session.running:
            # Idle sessions follow the new configuration; running ones keep theirs.
            self._session = None

        active = config.active_options()
        return "\n".join(
            [
                "⚙️ Looper Configuration Updated",
                "",
                f"Backlog Source: {config.backlog_source}",
                f"Backlog File: {config.backlog_file}",
                f"Max Iterations: {config.max_iterations or 'unlimited'}",
                f"Max Retries: {config.max_retries}",
                "",
                f"Active Options: {', '.join(active) if active else 'none'}",
            ]
        )


__all__ = ["Controller"]
