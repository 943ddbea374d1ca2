"""In-memory run session: the state one loop invocation works against."""

from __future__ import annotations

from dataclasses import dataclass, field

from .config import RunConfig
from .ledger import ProgressLedger
from .tasks import TaskSource


@dataclass(slots=True)
class RunSession:
    """Created when a loop starts and discarded when it stops; never persisted."""

    config: RunConfig
    source: TaskSource
    ledger: ProgressLedger = field(default_factory=ProgressLedger)
    iteration: int = 0
    current_task: str | None = None
    branches: list[str] = field(default_factory=list)
    running: bool = False

    @classmethod
    def create(
        cls,
        config: RunConfig,
        source: TaskSource,
        *,
        running: bool = True,
        ledger: ProgressLedger | None = None,
    ) -> "RunSession":
        session = cls(config=config, source=source, ledger=ledger or ProgressLedger(), running=running)
        session.ledger.reset()
        return session

    def begin_task(self, task: str) -> None:
        self.iteration += 1
        self.current_task = task

    def add_branch(self, branch: str) -> None:
        self.branches.append(branch)
        self.ledger.add_branch(branch)

    def request_stop(self) -> None:
        """Honored at the next task or batch boundary."""

        self.running = False

    def discard(self) -> None:
        self.running = False
        self.current_task = None


__all__ = ["RunSession"]
