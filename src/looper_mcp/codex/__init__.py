"""Codex CLI orchestration utilities and the execution-agent boundary."""

from .agent import AgentReport, CodexAgent, ExecutionAgent, parse_usage
from .runner import CodexNotFoundError, CodexRunner, CodexRunnerError

__all__ = [
    "AgentReport",
    "CodexAgent",
    "CodexNotFoundError",
    "CodexRunner",
    "CodexRunnerError",
    "ExecutionAgent",
    "parse_usage",
]
