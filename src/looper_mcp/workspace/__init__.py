"""Git branch and worktree management for isolated task workspaces."""

from .manager import (
    AUTOSTASH_MESSAGE,
    BRANCH_PREFIX,
    WorkspaceManager,
    task_branch_name,
    workspace_branch_name,
)
from .models import GitOutcome, WorkspaceHandle

__all__ = [
    "AUTOSTASH_MESSAGE",
    "BRANCH_PREFIX",
    "GitOutcome",
    "WorkspaceHandle",
    "WorkspaceManager",
    "task_branch_name",
    "workspace_branch_name",
]
