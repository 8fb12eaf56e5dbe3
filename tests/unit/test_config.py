"""Unit tests for engine settings loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from activity_workflows.engine.bookmarks import MatchPolicy
from activity_workflows.engine.config import EngineSettings


def test_settings_defaults(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)

    settings = EngineSettings()

    assert settings.log_level == "INFO"
    assert settings.state_path == Path("workflow_state")
    assert settings.match_policy is MatchPolicy.BROADCAST
    assert settings.keep_completed is True
    assert settings.max_steps_per_run == 0
    assert settings.parsed_modules() == ["activity_workflows.samples"]


def test_settings_loads_from_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text(
        "\n".join(
            [
                "WORKFLOW_LOG_LEVEL=DEBUG",
                "WORKFLOW_STATE_PATH=/var/lib/workflows",
                "WORKFLOW_MATCH_POLICY=first_match",
                "WORKFLOW_KEEP_COMPLETED=false",
                "WORKFLOW_MODULES=pkg.a, pkg.b,,",
                "UNRELATED=ignored",
                "",
            ]
        ),
        encoding="utf-8",
    )

    settings = EngineSettings()

    assert settings.log_level == "DEBUG"
    assert settings.state_path == Path("/var/lib/workflows")
    assert settings.match_policy is MatchPolicy.FIRST_MATCH
    assert settings.keep_completed is False
    assert settings.parsed_modules() == ["pkg.a", "pkg.b"]


def test_environment_overrides_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("WORKFLOW_MAX_STEPS_PER_RUN=10\n", encoding="utf-8")
    monkeypatch.setenv("WORKFLOW_MAX_STEPS_PER_RUN", "25")

    assert EngineSettings().max_steps_per_run == 25


def test_negative_step_limit_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("WORKFLOW_MAX_STEPS_PER_RUN", "-1")

    with pytest.raises(ValidationError):
        EngineSettings(_env_file=None)
