from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from looper_mcp.commands import FakeCommandRunner
from looper_mcp.controller import Controller
from looper_mcp.tools import OPTIONS_HELP, register_tools
from looper_mcp.workspace import WorkspaceManager


class StubTool:
    def __init__(self, fn, name, description):
        self.fn = fn
        self.name = name
        self.description = description


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name, kwargs.get("description", ""))
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubContextLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict[str, Any]]] = []

    def info(self, message: str, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("info", message, extra or {}))

    def debug(self, message: str, extra: dict[str, Any] | None = None) -> None:
        self.records.append(("debug", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubContextLogger()


def _register(tmp_path: Path):
    server = StubServer()
    controller = Controller(tmp_path, workspaces=WorkspaceManager(tmp_path, commands=FakeCommandRunner()))
    handles = register_tools(server, controller=controller)  # type: ignore[arg-type]
    return server, handles


def test_register_tools_exposes_loop_surface(tmp_path: Path) -> None:
    server, handles = _register(tmp_path)

    assert sorted(server._tools) == [
        "loop_config",
        "loop_mark_complete",
        "loop_next",
        "loop_start",
        "loop_status",
        "loop_stop",
    ]
    assert OPTIONS_HELP in server._tools["loop_start"].description
    assert handles.controller.config.backlog_file == "PRD.md"


def test_loop_tools_drive_the_controller(tmp_path: Path) -> None:
    (tmp_path / "PRD.md").write_text("- [ ] Add login\n- [ ] Add logout\n", encoding="utf-8")
    _, handles = _register(tmp_path)
    context = StubContext()

    next_message = asyncio.run(handles.loop_next.fn(context=context))  # type: ignore[attr-defined]
    assert next_message.startswith("🔧 Working on: Add login")

    done = asyncio.run(handles.loop_mark_complete.fn("Add login", context=context))  # type: ignore[attr-defined]
    assert done.endswith("📝 1 tasks remaining")

    status = asyncio.run(handles.loop_status.fn())  # type: ignore[attr-defined]
    assert "Completed: 1/2 tasks" in status

    assert context.logger.records[0] == ("info", "Next task requested", {"task": None})
    assert context.logger.records[1][2] == {"task": "Add login"}


def test_loop_config_is_synchronous(tmp_path: Path) -> None:
    _, handles = _register(tmp_path)

    message = handles.loop_config.fn("--parallel --max-parallel 4")  # type: ignore[attr-defined]

    assert "Active Options: parallel:4" in message
    assert handles.controller.config.max_parallel == 4


def test_loop_stop_when_idle(tmp_path: Path) -> None:
    _, handles = _register(tmp_path)

    assert asyncio.run(handles.loop_stop.fn()) == "ℹ️ Looper is not running."  # type: ignore[attr-defined]
