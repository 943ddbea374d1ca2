from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from looper_mcp.codex import AgentReport
from looper_mcp.commands import CommandResult, FakeCommandRunner
from looper_mcp.controller import Controller
from looper_mcp.directives import COMPLETION_MARKER
from looper_mcp.tasks import IssueTaskSource, get_task_source
from looper_mcp.workspace import WorkspaceManager


def git_responder(args: tuple[str, ...], cwd: Path | None) -> CommandResult | None:
    """Plays a well-behaved git: worktrees become plain directories."""

    command = args[1:3]
    stdout = ""
    if command == ("rev-parse", "--abbrev-ref"):
        stdout = "main\n"
    elif command == ("worktree", "add"):
        Path(args[3]).mkdir(parents=True)
    elif command == ("worktree", "remove"):
        shutil.rmtree(args[4])
    elif command == ("rev-list", "--count"):
        stdout = "2\n"
    elif command == ("remote", "get-url"):
        return CommandResult(args=args, returncode=2, stdout="", stderr="No such remote")
    return CommandResult(args=args, returncode=0, stdout=stdout, stderr="")


class StubAgent:
    def __init__(self) -> None:
        self.workdirs: list[Path] = []

    async def execute(self, directive: str, workdir: Path) -> AgentReport:
        self.workdirs.append(workdir)
        return AgentReport(status="succeeded", input_tokens=100, output_tokens=20)


def make_controller(tmp_path: Path, *, agent: StubAgent | None = None, source_factory=None):
    runner = FakeCommandRunner(responder=git_responder)
    workspaces = WorkspaceManager(tmp_path, commands=runner)
    controller = Controller(
        tmp_path,
        workspaces=workspaces,
        agent=agent,
        source_factory=source_factory,
        workspace_root=tmp_path / "worktrees",
    )
    return controller, runner


def write_prd(tmp_path: Path) -> None:
    (tmp_path / "PRD.md").write_text(
        "- [ ] Add login\n- [x] Set up project\n- [ ] Add logout\n- [ ] Write docs\n",
        encoding="utf-8",
    )


def test_start_requires_backlog_file(tmp_path: Path) -> None:
    controller, _ = make_controller(tmp_path)

    assert asyncio.run(controller.start()) == "❌ Backlog file not found: PRD.md"
    assert not controller.running


def test_sequential_start_returns_loop_directive(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, _ = make_controller(tmp_path)

    message = asyncio.run(controller.start("--no-tests"))

    assert message.startswith("🚀 Looper Started")
    assert "Base Branch: main" in message
    assert "Tests: SKIPPED" in message
    assert COMPLETION_MARKER in message
    assert (tmp_path / "progress.txt").exists()
    assert controller.running
    assert asyncio.run(controller.start()).startswith("⚠️ Looper is already running")

    stopped = asyncio.run(controller.stop())
    assert stopped.startswith("🛑 Looper Stopped")
    assert "Looper Summary" in stopped
    assert not controller.running
    assert asyncio.run(controller.stop()) == "ℹ️ Looper is not running."


def test_start_with_complete_backlog(tmp_path: Path) -> None:
    (tmp_path / "PRD.md").write_text("- [x] Done already\n", encoding="utf-8")
    controller, _ = make_controller(tmp_path)

    assert asyncio.run(controller.start()) == "✅ No tasks found. Backlog is already complete!"
    assert not controller.running
    assert asyncio.run(controller.check_completion()) is True


def test_next_task_processes_exactly_one(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, runner = make_controller(tmp_path)

    message = asyncio.run(controller.next_task())

    assert message.startswith("🔧 Working on: Add login\n")
    assert "**Current Task:** Add login" in message
    assert controller.session.iteration == 1
    assert runner.invocations == []
    assert asyncio.run(controller.next_task("Write docs")).startswith("🔧 Working on: Write docs")
    assert controller.session.iteration == 2


def test_next_task_creates_branch_when_configured(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, runner = make_controller(tmp_path)
    controller.configure("--branch-per-task --base-branch main")

    message = asyncio.run(controller.next_task())

    assert "📌 Branch: looper/add-login" in message
    assert ("git", "checkout", "-b", "looper/add-login") in runner.invocations
    assert controller.session.branches == ["looper/add-login"]


def test_mark_complete_and_status(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, _ = make_controller(tmp_path)

    status = asyncio.run(controller.status())
    assert "Completed: 1/4 tasks" in status
    assert f"[{'█' * 5}{'░' * 15}] 25%" in status
    assert "  1. Add login" in status

    assert asyncio.run(controller.mark_complete("Add login")).endswith("📝 2 tasks remaining")
    asyncio.run(controller.mark_complete("Add logout"))
    final = asyncio.run(controller.mark_complete("Write docs"))
    assert "🎉 All tasks complete!" in final
    assert asyncio.run(controller.backlog_counts()) == (0, 4)


def test_configure_reports_active_options(tmp_path: Path) -> None:
    controller, _ = make_controller(tmp_path)

    message = controller.configure("--fast --yaml backlog.yaml --max-iterations 4")

    assert "Backlog Source: structured" in message
    assert "Backlog File: backlog.yaml" in message
    assert "Max Iterations: 4" in message
    assert "Active Options: skip-tests, skip-lint" in message


def test_parallel_start_runs_scheduler(tmp_path: Path) -> None:
    write_prd(tmp_path)
    agent = StubAgent()
    controller, runner = make_controller(tmp_path, agent=agent)

    summary = asyncio.run(controller.start("--parallel --max-parallel 2"))

    assert "Looper Summary" in summary
    assert "Tasks completed: 3" in summary
    assert "Merged:" in summary
    assert sorted(path.name for path in agent.workdirs) == ["agent-1", "agent-2", "agent-3"]
    assert not controller.running
    assert ("git", "merge", "--no-edit", "looper/agent-3-write-docs") in runner.invocations
    assert (tmp_path / "PRD.md").read_text(encoding="utf-8").count("- [x]") == 4


def test_parallel_start_without_agent(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, _ = make_controller(tmp_path)

    assert "needs an execution agent" in asyncio.run(controller.start("--parallel"))
    assert not controller.running


def test_parallel_dry_run_needs_no_agent(tmp_path: Path) -> None:
    write_prd(tmp_path)
    controller, runner = make_controller(tmp_path)

    message = asyncio.run(controller.start("--parallel --dry-run --max-parallel 2"))

    assert message.startswith("Dry run: no workspaces created")
    assert "Agent 3: Write docs" in message
    assert all(args[1] != "worktree" for args in runner.invocations)
    assert not controller.running


def test_unreachable_tracker_is_reported(tmp_path: Path) -> None:
    failing = FakeCommandRunner(
        responder=lambda args, cwd: CommandResult(args=args, returncode=1, stdout="", stderr="HTTP 502")
    )

    def factory(config, root):
        return get_task_source(config, root, commands=failing)

    controller, _ = make_controller(tmp_path, source_factory=factory)
    controller.configure("--github acme/widgets")

    assert isinstance(controller._current_session().source, IssueTaskSource)
    assert asyncio.run(controller.status()) == "⚠️ Backlog unavailable: gh issue list failed: HTTP 502"
    assert asyncio.run(controller.start()).startswith("⚠️ Backlog unavailable")
    assert not controller.running
    assert asyncio.run(controller.check_completion()) is False
