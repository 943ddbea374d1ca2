"""Tool registration for Looper MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import Context, FastMCP

from .. import __version__
from ..controller import Controller

OPTIONS_HELP = (
    "Options: --no-tests --no-lint --fast --parallel --max-parallel N --branch-per-task "
    "--base-branch B --create-pr --draft-pr --dry-run --max-iterations N --prd FILE "
    "--yaml FILE --github REPO --github-label LABEL -v"
)


@dataclass(slots=True)
class ToolHandles:
    loop_start: Any
    loop_stop: Any
    loop_status: Any
    loop_next: Any
    loop_mark_complete: Any
    loop_config: Any
    controller: Controller


def register_tools(server: FastMCP, *, controller: Controller) -> ToolHandles:
    """Register Looper's MCP tools on the server."""

    async def _loop_start(options: str = "", context: Context | None = None) -> str:
        """Start the autonomous loop over the configured backlog."""

        _emit_log(context, "info", "Loop start requested", extra={"options": options})
        return await controller.start(options)

    async def _loop_stop(context: Context | None = None) -> str:
        """Stop the loop and return the session summary."""

        _emit_log(context, "info", "Loop stop requested")
        return await controller.stop()

    async def _loop_status(context: Context | None = None) -> str:
        _emit_log(context, "debug", "Loop status requested")
        return await controller.status()

    async def _loop_next(task: str = "", context: Context | None = None) -> str:
        """Prepare a single task (the next one, or ``task``) without looping."""

        _emit_log(context, "info", "Next task requested", extra={"task": task or None})
        return await controller.next_task(task or None)

    async def _loop_mark_complete(task: str, context: Context | None = None) -> str:
        _emit_log(context, "info", "Marking task complete", extra={"task": task})
        return await controller.mark_complete(task)

    def _loop_config(options: str, context: Context | None = None) -> str:
        _emit_log(context, "debug", "Updating configuration", extra={"options": options})
        return controller.configure(options)

    tool_start = server.tool(
        name="loop_start",
        description=(
            f"Start the Looper autonomous coding loop (v{__version__}). Reads tasks from the "
            "backlog and works through them until complete. " + OPTIONS_HELP
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Parallel mode creates branches and worktrees and merges into the base branch",
            }
        },
    )(_loop_start)

    tool_stop = server.tool(
        name="loop_stop",
        description="Stop the Looper autonomous loop and show the summary.",
    )(_loop_stop)

    tool_status = server.tool(
        name="loop_status",
        description="Get current Looper task progress and status.",
    )(_loop_status)

    tool_next = server.tool(
        name="loop_next",
        description="Process the next single task from the backlog (one-shot, does not loop).",
    )(_loop_next)

    tool_mark_complete = server.tool(
        name="loop_mark_complete",
        description="Mark a task as complete in the backlog.",
    )(_loop_mark_complete)

    tool_config = server.tool(
        name="loop_config",
        description="Configure Looper options for the current session. " + OPTIONS_HELP,
    )(_loop_config)

    return ToolHandles(
        loop_start=tool_start,
        loop_stop=tool_stop,
        loop_status=tool_status,
        loop_next=tool_next,
        loop_mark_complete=tool_mark_complete,
        loop_config=tool_config,
        controller=controller,
    )


__all__ = ["OPTIONS_HELP", "ToolHandles", "register_tools"]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Best-effort logging that prefers the MCP context logger when available."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)
