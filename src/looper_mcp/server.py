"""FastMCP server bootstrap for Looper."""

import asyncio
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .codex import CodexAgent, CodexNotFoundError, CodexRunner, ExecutionAgent
from .config import LooperSettings, get_settings
from .controller import Controller
from .tasks import TaskSourceError
from .tools import register_tools
from .workspace import WorkspaceManager


def configure_logging(level: str) -> None:
    """Configure root logging for the Looper server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _run_sync(coro):
    """Execute an async coroutine on a dedicated event loop."""

    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def _probe_codex(settings: LooperSettings) -> tuple[ExecutionAgent | None, dict[str, object]]:
    """Locate the Codex CLI and build the default agent; report what was found."""

    metadata: dict[str, object] = {"available": False, "version": None, "error": None}
    try:
        runner = CodexRunner(Path(settings.codex_path) if settings.codex_path else None)
    except CodexNotFoundError as exc:
        metadata["error"] = str(exc)
        return None, metadata

    metadata["available"] = True
    probe = _run_sync(runner.version())
    if probe.ok:
        metadata["version"] = probe.stdout.strip()
    else:
        metadata["error"] = probe.error_text
    return CodexAgent(runner, model=settings.codex_default_model), metadata


def create_server(
    settings: Optional[LooperSettings] = None,
    agent: ExecutionAgent | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the loop tools and a status resource."""

    settings = settings or get_settings()

    if agent is None:
        agent, codex_metadata = _probe_codex(settings)
    else:
        codex_metadata = {"available": True, "version": None, "error": None}

    workspaces = WorkspaceManager(
        settings.project_root,
        git_path=settings.git_path,
        gh_path=settings.gh_path,
    )
    controller = Controller(
        settings.project_root,
        workspaces=workspaces,
        agent=agent,
        workspace_root=settings.workspace_root,
        progress_file=settings.progress_file,
    )

    server = FastMCP(
        name="Looper MCP",
        version=__version__,
        instructions=(
            "Looper works through a task backlog (markdown checklist, YAML task list or "
            "GitHub issues) one task at a time, or in parallel git worktrees with Codex "
            "agents. Use loop_next for a single task and loop_start to run the loop."
        ),
    )

    handles = register_tools(server, controller=controller)

    @server.resource(
        "resource://looper/status",
        name="looper_status",
        title="Looper MCP Status",
        description="Provides the current runtime status for the Looper MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    async def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        session = controller.session
        backlog: dict[str, object] = {
            "source": controller.config.backlog_source,
            "file": controller.config.backlog_file,
            "error": None,
        }
        try:
            backlog["remaining"], backlog["completed"] = await controller.backlog_counts()
        except TaskSourceError as exc:
            backlog["error"] = str(exc)

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "project_root": str(settings.project_root),
            "codex": {
                "path": settings.codex_path,
                "default_model": settings.codex_default_model,
                **codex_metadata,
            },
            "backlog": backlog,
            "session": {
                "running": controller.running,
                "iteration": session.iteration if session else 0,
                "current_task": session.current_task if session else None,
                "branches": list(session.branches) if session else [],
            },
            "options": controller.config.active_options(),
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "controller", controller)
    setattr(server, "codex_metadata", codex_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Looper MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Looper MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "project_root": str(settings.project_root),
            "codex_available": getattr(server, "codex_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
