"""Async subprocess execution shared by the git, gh and codex integrations."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Mapping

from .utils import sanitize_environment


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of an external command invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def error_text(self) -> str:
        message = self.stderr.strip() or self.stdout.strip()
        return message or f"{' '.join(self.args[:2])} exited with code {self.returncode}"


class CommandRunner:
    """Execute external commands asynchronously and capture their output."""

    async def run(
        self,
        *args: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=sanitize_environment(env),
            )
        except OSError as exc:
            return CommandResult(args=tuple(args), returncode=127, stdout="", stderr=str(exc))
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return CommandResult(
            args=tuple(args),
            returncode=process.returncode if process.returncode is not None else -1,
            stdout=stdout,
            stderr=stderr,
        )


Responder = Callable[[tuple[str, ...], Path | None], CommandResult | None]


class FakeCommandRunner(CommandRunner):
    """Test double that records invocations and replays scripted responses.

    ``responses`` is consumed in order; when exhausted, ``responder`` is asked
    for a result, and finally a successful empty result is returned.
    """

    def __init__(
        self,
        responses: Iterable[CommandResult] | None = None,
        *,
        responder: Responder | None = None,
    ) -> None:
        self._responses = list(responses or [])
        self._responder = responder
        self._invocations: list[tuple[str, ...]] = []
        self._cwds: list[Path | None] = []

    async def run(
        self,
        *args: str,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> CommandResult:
        self._invocations.append(tuple(args))
        self._cwds.append(cwd)
        if self._responses:
            return self._responses.pop(0)
        if self._responder is not None:
            result = self._responder(tuple(args), cwd)
            if result is not None:
                return result
        return CommandResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def cwds(self) -> list[Path | None]:
        return self._cwds


__all__ = ["CommandResult", "CommandRunner", "FakeCommandRunner"]
