"""Configuration management for Looper MCP."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

BacklogSource = Literal["checklist", "structured", "remote-issue"]

BACKLOG_SOURCES: tuple[str, ...] = ("checklist", "structured", "remote-issue")


class LooperSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    project_root: Path = Field(default=Path("."), validation_alias="LOOPER_PROJECT_ROOT")
    workspace_root: Path | None = Field(default=None, validation_alias="LOOPER_WORKSPACE_ROOT")
    progress_file: str = Field(default="progress.txt", validation_alias="LOOPER_PROGRESS_FILE")
    log_level: str = Field(default="INFO", validation_alias="LOOPER_LOG_LEVEL")
    codex_path: str | None = Field(default=None, validation_alias="CODEX_PATH")
    codex_default_model: str | None = Field(default=None, validation_alias="CODEX_DEFAULT_MODEL")
    gh_path: str = Field(default="gh", validation_alias="GH_PATH")
    git_path: str = Field(default="git", validation_alias="GIT_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "LOOPER_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("progress_file")
    @classmethod
    def _validate_progress_file(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("LOOPER_PROGRESS_FILE must not be empty")
        return normalized


class RunConfig(BaseModel):
    """Per-session run options, adjusted by free-form option strings."""

    skip_tests: bool = False
    skip_lint: bool = False

    max_iterations: int = Field(default=0, ge=0, description="0 means unlimited.")
    max_retries: int = 3
    retry_delay: int = Field(default=5, description="Seconds between retries.")
    dry_run: bool = False

    parallel: bool = False
    max_parallel: int = Field(default=3, ge=1)

    branch_per_task: bool = False
    base_branch: str = ""
    create_pr: bool = False
    draft_pr: bool = False

    backlog_source: BacklogSource = "checklist"
    backlog_file: str = "PRD.md"
    remote_repo: str = ""
    remote_label: str = ""

    verbose: bool = False

    def apply(self, options: str | None) -> "RunConfig":
        """Return a copy with the options from ``options`` applied."""

        updates = parse_options(options or "")
        if not updates:
            return self.model_copy()
        return self.model_copy(update=updates)

    def active_options(self) -> list[str]:
        active: list[str] = []
        if self.skip_tests:
            active.append("skip-tests")
        if self.skip_lint:
            active.append("skip-lint")
        if self.parallel:
            active.append(f"parallel:{self.max_parallel}")
        if self.branch_per_task:
            active.append("branch-per-task")
        if self.create_pr:
            active.append("draft-pr" if self.draft_pr else "create-pr")
        if self.dry_run:
            active.append("dry-run")
        if self.verbose:
            active.append("verbose")
        return active


def _int_or(value: str | None, default: int) -> int:
    # Zero and garbage both fall back, matching the CLI semantics of the loop scripts.
    try:
        parsed = int(value) if value is not None else 0
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def parse_options(options: str) -> dict[str, Any]:
    """Parse free-form option tokens into ``RunConfig`` field updates.

    Unrecognized tokens are ignored. Options that take a value consume the
    following token even when it is missing or malformed.
    """

    updates: dict[str, Any] = {}
    parts = options.split()
    index = 0

    def take() -> str | None:
        nonlocal index
        index += 1
        return parts[index] if index < len(parts) else None

    while index < len(parts):
        arg = parts[index]
        if arg in {"--no-tests", "--skip-tests"}:
            updates["skip_tests"] = True
        elif arg in {"--no-lint", "--skip-lint"}:
            updates["skip_lint"] = True
        elif arg == "--fast":
            updates["skip_tests"] = True
            updates["skip_lint"] = True
        elif arg == "--dry-run":
            updates["dry_run"] = True
        elif arg == "--max-iterations":
            updates["max_iterations"] = _int_or(take(), 0)
        elif arg == "--max-retries":
            updates["max_retries"] = _int_or(take(), 3)
        elif arg == "--retry-delay":
            updates["retry_delay"] = _int_or(take(), 5)
        elif arg == "--parallel":
            updates["parallel"] = True
        elif arg == "--max-parallel":
            updates["max_parallel"] = _int_or(take(), 3)
        elif arg == "--branch-per-task":
            updates["branch_per_task"] = True
        elif arg == "--base-branch":
            updates["base_branch"] = take() or ""
        elif arg == "--create-pr":
            updates["create_pr"] = True
        elif arg == "--draft-pr":
            updates["draft_pr"] = True
        elif arg == "--prd":
            updates["backlog_source"] = "checklist"
            updates["backlog_file"] = take() or "PRD.md"
        elif arg == "--yaml":
            updates["backlog_source"] = "structured"
            updates["backlog_file"] = take() or "tasks.yaml"
        elif arg == "--github":
            updates["backlog_source"] = "remote-issue"
            updates["remote_repo"] = take() or ""
        elif arg in {"--github-label", "--remote-label"}:
            updates["remote_label"] = take() or ""
        elif arg == "--remote-repo":
            updates["remote_repo"] = take() or ""
        elif arg == "--backlog-source":
            value = take()
            if value in BACKLOG_SOURCES:
                updates["backlog_source"] = value
        elif arg == "--backlog-file":
            value = take()
            if value:
                updates["backlog_file"] = value
        elif arg in {"-v", "--verbose"}:
            updates["verbose"] = True
        index += 1

    return updates


@lru_cache(maxsize=1)
def get_settings() -> LooperSettings:
    """Return cached settings instance."""

    settings = LooperSettings()
    settings.project_root = settings.project_root.expanduser().resolve()
    if settings.workspace_root is not None:
        settings.workspace_root = settings.workspace_root.expanduser().resolve()
    return settings


__all__ = [
    "BACKLOG_SOURCES",
    "BacklogSource",
    "LooperSettings",
    "RunConfig",
    "get_settings",
    "parse_options",
]
