"""Small helpers shared by the runners, the ledger and the tool surface."""

from __future__ import annotations

import os
import re
from typing import Mapping

_SANITIZED_VARS = {
    "PYTHONHOME",
    "PYTHONPATH",
    "VIRTUAL_ENV",
    "PIP_RESPECT_VIRTUALENV",
}

_SLUG_PATTERN = re.compile(r"[^a-z0-9]+")

INPUT_TOKEN_PRICE = 0.000003
OUTPUT_TOKEN_PRICE = 0.000015


def sanitize_environment(additional: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return a sanitized environment suitable for subprocess execution."""

    env = dict(os.environ)
    for key in _SANITIZED_VARS:
        env.pop(key, None)
    if additional:
        env.update(additional)
    return env


def slugify(text: str, *, limit: int = 50) -> str:
    """Lowercase ``text`` into a branch-safe slug of at most ``limit`` characters."""

    slug = _SLUG_PATTERN.sub("-", text.lower()).strip("-")
    return slug[:limit]


def truncate(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


def format_duration(ms: float) -> str:
    seconds = int(ms // 1000)
    minutes, remaining = divmod(seconds, 60)
    if minutes > 0:
        return f"{minutes}m {remaining}s"
    return f"{seconds}s"


def format_tokens(count: int) -> str:
    return f"{count:,}"


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    """Estimated spend in dollars at $3/1M input and $15/1M output tokens."""

    return input_tokens * INPUT_TOKEN_PRICE + output_tokens * OUTPUT_TOKEN_PRICE


__all__ = [
    "estimate_cost",
    "format_duration",
    "format_tokens",
    "sanitize_environment",
    "slugify",
    "truncate",
]
