"""Async runner for the Codex CLI."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Sequence

from ..commands import CommandResult, CommandRunner


class CodexRunnerError(RuntimeError):
    """Base class for Codex runner errors."""


class CodexNotFoundError(CodexRunnerError):
    """Raised when the Codex CLI executable cannot be located."""


class CodexRunner:
    """Execute Codex CLI commands asynchronously."""

    def __init__(
        self,
        executable: Path | None = None,
        *,
        commands: CommandRunner | None = None,
    ) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._commands = commands or CommandRunner()

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise CodexNotFoundError(f"Codex executable not found at {candidate}")

        binary = shutil.which("codex")
        if binary is None:
            raise CodexNotFoundError("Codex CLI executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def version(self) -> CommandResult:
        return await self._invoke("--version")

    async def spawn(
        self,
        command: str,
        *,
        flags: Sequence[str] | None = None,
        exec_flags: Sequence[str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run ``codex [flags] exec [exec_flags] <command>`` inside ``cwd``."""

        args: list[str] = ["exec", *(exec_flags or []), command]
        prefix = list(flags or [])
        return await self._invoke(*prefix, *args, cwd=cwd)

    async def _invoke(self, *args: str, cwd: Path | None = None) -> CommandResult:
        return await self._commands.run(str(self._executable_path), *args, cwd=cwd)


__all__ = ["CodexNotFoundError", "CodexRunner", "CodexRunnerError"]
