from __future__ import annotations

from looper_mcp.codex import AgentReport
from looper_mcp.config import RunConfig
from looper_mcp.ledger import ProgressLedger
from looper_mcp.session import RunSession
from looper_mcp.tasks import ChecklistTaskSource


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


def test_ledger_accumulates_reports() -> None:
    clock = FakeClock()
    ledger = ProgressLedger(clock=clock)

    ledger.record(AgentReport(status="succeeded", input_tokens=1_000, output_tokens=200, duration_ms=1500))
    ledger.record(AgentReport(status="failed", input_tokens=500, output_tokens=-5, cost=-1.0))
    ledger.add_branch("looper/agent-1-a")
    clock.now += 65

    stats = ledger.stats()
    assert (stats.input_tokens, stats.output_tokens) == (1_500, 200)
    assert stats.actual_cost == 0.0
    assert stats.duration_ms == 1500
    assert stats.elapsed_ms == 65_000
    assert stats.branches == ["looper/agent-1-a"]


def test_token_summary_estimates_cost_without_actual_cost() -> None:
    ledger = ProgressLedger()
    ledger.add_tokens(1_000_000, 1_000_000)

    summary = ledger.token_summary()

    assert "Total tokens:  2,000,000" in summary
    assert "Est. cost:     $18.0000" in summary


def test_token_summary_prefers_actual_cost() -> None:
    ledger = ProgressLedger()
    ledger.add_tokens(10, 10)
    ledger.add_cost(0.5)

    assert "Actual cost:   $0.5000" in ledger.token_summary()


def test_token_summary_falls_back_to_duration_then_nothing() -> None:
    ledger = ProgressLedger()
    assert ledger.token_summary() == "No token data recorded"

    ledger.add_duration(90_000)
    assert ledger.token_summary() == "Total API time: 1m 30s"


def test_summary_lists_branches_and_reset_clears_them() -> None:
    ledger = ProgressLedger(clock=FakeClock())
    ledger.add_branch("looper/add-login")

    summary = ledger.summary(2)
    assert "Tasks completed: 2" in summary
    assert "  • looper/add-login" in summary

    ledger.reset()
    assert "Branches created:" not in ledger.summary(0)


def test_session_create_resets_ledger_and_tracks_branches(tmp_path) -> None:
    ledger = ProgressLedger()
    ledger.add_tokens(5, 5)
    session = RunSession.create(RunConfig(), ChecklistTaskSource(tmp_path, "PRD.md"), ledger=ledger)

    session.begin_task("Add login")
    session.add_branch("looper/add-login")

    assert ledger.stats().input_tokens == 0
    assert session.iteration == 1
    assert session.branches == ["looper/add-login"]
    assert ledger.stats().branches == ["looper/add-login"]

    session.discard()
    assert not session.running and session.current_task is None
