"""Run-scoped token, cost, duration and branch accounting."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable

from .codex import AgentReport
from .utils import estimate_cost, format_duration, format_tokens

RULE = "━" * 40


@dataclass(slots=True)
class LedgerStats:
    input_tokens: int
    output_tokens: int
    actual_cost: float
    duration_ms: int
    elapsed_ms: int
    branches: list[str] = field(default_factory=list)


class ProgressLedger:
    """Purely additive counters for one session; ``reset`` starts a new one."""

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self._clock = clock or time.monotonic
        self.reset()

    def reset(self) -> None:
        self._input_tokens = 0
        self._output_tokens = 0
        self._actual_cost = 0.0
        self._duration_ms = 0
        self._branches: list[str] = []
        self._started = self._clock()

    def add_tokens(self, input_tokens: int, output_tokens: int) -> None:
        self._input_tokens += max(0, input_tokens)
        self._output_tokens += max(0, output_tokens)

    def add_cost(self, cost: float) -> None:
        self._actual_cost += max(0.0, cost)

    def add_duration(self, ms: int) -> None:
        self._duration_ms += max(0, ms)

    def add_branch(self, branch: str) -> None:
        self._branches.append(branch)

    def record(self, report: AgentReport) -> None:
        """Fold an agent report's usage into the totals."""

        self.add_tokens(report.input_tokens, report.output_tokens)
        self.add_cost(report.cost)
        self.add_duration(report.duration_ms)

    def stats(self) -> LedgerStats:
        return LedgerStats(
            input_tokens=self._input_tokens,
            output_tokens=self._output_tokens,
            actual_cost=self._actual_cost,
            duration_ms=self._duration_ms,
            elapsed_ms=int((self._clock() - self._started) * 1000),
            branches=list(self._branches),
        )

    def token_summary(self) -> str:
        lines: list[str] = []
        if self._input_tokens > 0 or self._output_tokens > 0:
            lines.append(f"Input tokens:  {format_tokens(self._input_tokens)}")
            lines.append(f"Output tokens: {format_tokens(self._output_tokens)}")
            lines.append(f"Total tokens:  {format_tokens(self._input_tokens + self._output_tokens)}")
            if self._actual_cost > 0:
                lines.append(f"Actual cost:   ${self._actual_cost:.4f}")
            else:
                estimated = estimate_cost(self._input_tokens, self._output_tokens)
                lines.append(f"Est. cost:     ${estimated:.4f}")
        elif self._duration_ms > 0:
            lines.append(f"Total API time: {format_duration(self._duration_ms)}")
        else:
            lines.append("No token data recorded")
        return "\n".join(lines)

    def summary(self, iterations: int) -> str:
        stats = self.stats()
        lines = [
            RULE,
            "Looper Summary",
            RULE,
            f"Tasks completed: {iterations}",
            f"Total time: {format_duration(stats.elapsed_ms)}",
            "",
            self.token_summary(),
        ]
        if stats.branches:
            lines.append("")
            lines.append("Branches created:")
            lines.extend(f"  • {branch}" for branch in stats.branches)
        lines.append(RULE)
        return "\n".join(lines)


__all__ = ["LedgerStats", "ProgressLedger"]
