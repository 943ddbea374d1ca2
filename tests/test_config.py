from __future__ import annotations

import pytest
from pydantic import ValidationError

from looper_mcp.config import LooperSettings, RunConfig, parse_options


def test_parse_options_reads_flags_and_values() -> None:
    updates = parse_options("--fast --parallel --max-parallel 5 --base-branch develop --create-pr --draft-pr -v")

    assert updates == {
        "skip_tests": True,
        "skip_lint": True,
        "parallel": True,
        "max_parallel": 5,
        "base_branch": "develop",
        "create_pr": True,
        "draft_pr": True,
        "verbose": True,
    }


def test_parse_options_ignores_unknown_tokens() -> None:
    assert parse_options("--frobnicate yes please") == {}


def test_parse_options_falls_back_on_bad_numbers() -> None:
    updates = parse_options("--max-parallel zero --max-iterations -2 --retry-delay")

    assert updates["max_parallel"] == 3
    assert updates["max_iterations"] == 0
    assert updates["retry_delay"] == 5


def test_parse_options_selects_backlog_sources() -> None:
    assert parse_options("--yaml") == {"backlog_source": "structured", "backlog_file": "tasks.yaml"}
    assert parse_options("--prd TODO.md") == {"backlog_source": "checklist", "backlog_file": "TODO.md"}
    assert parse_options("--github acme/widgets --github-label ready") == {
        "backlog_source": "remote-issue",
        "remote_repo": "acme/widgets",
        "remote_label": "ready",
    }
    assert parse_options("--backlog-source bogus") == {}
    assert parse_options("--backlog-source structured --backlog-file plan.yaml") == {
        "backlog_source": "structured",
        "backlog_file": "plan.yaml",
    }


def test_run_config_apply_returns_updated_copy() -> None:
    base = RunConfig()
    updated = base.apply("--skip-tests --max-iterations 4")

    assert updated.skip_tests is True
    assert updated.max_iterations == 4
    assert base.skip_tests is False
    assert updated.active_options() == ["skip-tests"]


def test_run_config_rejects_zero_parallelism() -> None:
    with pytest.raises(ValidationError):
        RunConfig(max_parallel=0)


def test_settings_normalize_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOOPER_LOG_LEVEL", " debug ")
    assert LooperSettings().log_level == "DEBUG"


def test_settings_reject_unknown_log_level(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOOPER_LOG_LEVEL", "chatty")
    with pytest.raises(ValidationError):
        LooperSettings()
