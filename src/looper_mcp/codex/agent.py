"""The execution-agent boundary and its Codex-backed implementation."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Protocol

from .runner import CodexRunner

logger = logging.getLogger(__name__)

AgentStatus = Literal["succeeded", "failed"]


@dataclass(slots=True)
class AgentReport:
    """What an agent hands back after working a directive in a directory."""

    status: AgentStatus
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0
    duration_ms: int = 0
    artifacts: list[str] = field(default_factory=list)
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"

    @classmethod
    def failed(cls, detail: str, *, duration_ms: int = 0) -> "AgentReport":
        return cls(status="failed", detail=detail, duration_ms=duration_ms)


class ExecutionAgent(Protocol):
    """Performs edits, tests and commits for a directive inside ``workdir``."""

    async def execute(self, directive: str, workdir: Path) -> AgentReport:
        ...


def parse_usage(stdout: str) -> tuple[int, int, float]:
    """Sum token usage and cost from a JSON-lines event stream.

    Lines that are not JSON objects are skipped.
    """

    input_tokens = 0
    output_tokens = 0
    cost = 0.0
    for line in stdout.splitlines():
        line = line.strip()
        if not line.startswith("{"):
            continue
        try:
            event = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(event, dict):
            continue
        usage = event.get("usage")
        if isinstance(usage, dict):
            input_tokens += int(usage.get("input_tokens") or 0)
            output_tokens += int(usage.get("output_tokens") or 0)
        for key in ("total_cost_usd", "cost"):
            value = event.get(key)
            if isinstance(value, (int, float)):
                cost += float(value)
                break
    return input_tokens, output_tokens, cost


class CodexAgent:
    """Runs ``codex exec`` non-interactively inside a workspace."""

    def __init__(
        self,
        runner: CodexRunner,
        *,
        model: str | None = None,
        full_auto: bool = True,
    ) -> None:
        self._runner = runner
        self._model = model
        self._full_auto = full_auto

    async def execute(self, directive: str, workdir: Path) -> AgentReport:
        flags: list[str] = []
        if self._model:
            flags.extend(["--model", self._model])
        exec_flags = ["--json"]
        if self._full_auto:
            exec_flags.append("--full-auto")

        started = time.monotonic()
        result = await self._runner.spawn(directive, flags=flags, exec_flags=exec_flags, cwd=workdir)
        duration_ms = int((time.monotonic() - started) * 1000)

        input_tokens, output_tokens, cost = parse_usage(result.stdout)
        logger.debug(
            "Codex run finished",
            extra={
                "workdir": str(workdir),
                "returncode": result.returncode,
                "input_tokens": input_tokens,
                "output_tokens": output_tokens,
            },
        )
        return AgentReport(
            status="succeeded" if result.ok else "failed",
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost=cost,
            duration_ms=duration_ms,
            detail="" if result.ok else result.error_text[:500],
        )


__all__ = ["AgentReport", "AgentStatus", "CodexAgent", "ExecutionAgent", "parse_usage"]
