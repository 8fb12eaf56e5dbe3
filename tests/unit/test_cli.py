"""Unit tests for the CLI host.

Every `main()` call is a fresh process-like host sharing one state directory,
so these tests also cover resuming after a restart.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from activity_workflows.engine import main as cli


@pytest.fixture(autouse=True)
def cli_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("WORKFLOW_STATE_PATH", str(tmp_path / "state"))
    # Leave pytest's log capture handlers in place.
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return tmp_path / "state"


def _run(capsys: pytest.CaptureFixture[str], *argv: str) -> tuple[int, object]:
    code = cli.main(list(argv))
    out = capsys.readouterr().out
    return code, json.loads(out) if out.strip() else None


def test_start_then_dispatch_across_hosts(
    capsys: pytest.CaptureFixture[str], cli_environment: Path
) -> None:
    code, started = _run(capsys, "start", "MyEventWorkflow", "--instance-id", "cli-1")
    assert code == 0
    assert started == {"instance_id": "cli-1", "status": "suspended"}
    assert (cli_environment / "cli-1.json").exists()

    code, bookmarks = _run(capsys, "bookmarks")
    assert code == 0
    assert bookmarks == [
        {"instance_id": "cli-1", "activity_id": "MyEvent1", "kind": "MyEvent", "payload": None}
    ]

    code, affected = _run(capsys, "dispatch", "MyEvent")
    assert code == 0
    assert affected[0] == {"instance_id": "cli-1", "status": "completed"}
    # MyEventStarterWorkflow is started by the same event.
    assert len(affected) == 2
    assert affected[1]["status"] == "completed"

    code, shown = _run(capsys, "show", "cli-1")
    assert code == 0
    assert shown["status"] == "completed"
    assert shown["outputs"]["MyEvent1"] == {"payload": None}


def test_start_parses_json_inputs_and_resume_correlates(
    capsys: pytest.CaptureFixture[str],
) -> None:
    code, started = _run(
        capsys,
        "start",
        "OnboardingWorkflow",
        "--input",
        "employee=Alice",
        "--input",
        "task_id=42",
        "--instance-id",
        "onboard-1",
    )
    assert code == 0
    assert started["status"] == "suspended"

    code, resumed = _run(
        capsys, "resume", "onboard-1", "TaskCompleted", "--payload", '{"task_id": 41}'
    )
    assert resumed == {"instance_id": "onboard-1", "status": "suspended"}

    code, resumed = _run(
        capsys, "resume", "onboard-1", "TaskCompleted", "--payload", '{"task_id": 42}'
    )
    assert resumed == {"instance_id": "onboard-1", "status": "completed"}


def test_instances_and_cancel(capsys: pytest.CaptureFixture[str]) -> None:
    _run(capsys, "start", "MyEventWorkflow", "--instance-id", "to-cancel")
    _run(capsys, "start", "PerformTaskWorkflow", "--instance-id", "done")

    code, listed = _run(capsys, "instances", "--status", "suspended")
    assert code == 0
    assert [i["instance_id"] for i in listed] == ["to-cancel"]

    code, canceled = _run(capsys, "cancel", "to-cancel")
    assert code == 0
    assert canceled == {"instance_id": "to-cancel", "status": "canceled"}

    code, bookmarks = _run(capsys, "bookmarks")
    assert bookmarks == []


def test_definitions_lists_samples(capsys: pytest.CaptureFixture[str]) -> None:
    code, definitions = _run(capsys, "definitions")

    assert code == 0
    by_id = {d["id"]: d for d in definitions}
    assert by_id["MyEventStarterWorkflow"]["triggers"] == ["MyEvent"]
    assert by_id["MyEventWorkflow"]["triggers"] == []
    assert by_id["OnboardingWorkflow"]["inputs"] == ["employee", "task_id"]


def test_unknown_instance_exits_3(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["show", "missing"]) == 3
    assert "missing" in capsys.readouterr().err


def test_missing_required_input_exits_2(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["start", "OnboardingWorkflow"]) == 2
    assert "requires input 'employee'" in capsys.readouterr().err


def test_configuration_error_exits_2(
    capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("WORKFLOW_MAX_STEPS_PER_RUN", "-1")

    assert cli.main(["definitions"]) == 2
    assert "Configuration error" in capsys.readouterr().err
