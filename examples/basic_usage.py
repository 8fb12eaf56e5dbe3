#!/usr/bin/env python3
"""Programmatic hosting example.

This demonstrates embedding the engine directly instead of using the CLI:

* load settings from `.env`
* start an onboarding workflow that suspends on a correlated bookmark
* persist its state to `workflow_state/<instance id>.json`
* deliver the completion event and print the final state

Run it twice with `--no-complete` the first time to see the instance survive
the restart in between.
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from activity_workflows.engine.config import EngineSettings
from activity_workflows.engine.events import Event
from activity_workflows.engine.logging import configure_logging
from activity_workflows.engine.persistence import JsonFileInstanceStore
from activity_workflows.engine.runtime import WorkflowRuntime
from activity_workflows.engine.state_machine import InstanceStatus
from activity_workflows.samples import OnboardingWorkflow


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Onboard an employee (programmatic example).")
    parser.add_argument("--employee", default="Ada Lovelace", help="Employee name")
    parser.add_argument("--task-id", type=int, default=1, help="External task id")
    parser.add_argument(
        "--no-complete",
        action="store_true",
        help="Only start (or find) the instance; do not deliver TaskCompleted",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = EngineSettings()
    configure_logging(settings.log_level)

    runtime = WorkflowRuntime(settings=settings, store=JsonFileInstanceStore(settings.state_path))
    runtime.register_definition(OnboardingWorkflow.definition())
    runtime.recover()

    instance_id = f"onboarding-{args.task_id}"
    existing = runtime.store.load(instance_id)
    if existing is None:
        handle = runtime.start_new_instance(
            "OnboardingWorkflow",
            {"employee": args.employee, "task_id": args.task_id},
            instance_id=instance_id,
        )
        print(f"Started {handle.instance_id}: {handle.status.value}")
    else:
        print(f"Found {instance_id}: {existing.status.value}")

    if args.no_complete:
        return 0

    affected = runtime.dispatch_event(Event("TaskCompleted", {"task_id": args.task_id}))
    print(f"Resumed: {affected or 'nothing'}")

    state = runtime.get_instance(instance_id)
    print(json.dumps(state.variables, indent=2, ensure_ascii=False))
    return 0 if state.status is InstanceStatus.COMPLETED else 1


if __name__ == "__main__":
    raise SystemExit(main())
