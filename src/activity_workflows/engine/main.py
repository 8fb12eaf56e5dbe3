"""CLI entrypoint for hosting workflows from the command line.

Each invocation is one short-lived host: it loads settings, registers the
configured workflow modules, recovers suspended instances from the state
directory, runs one command and prints JSON on stdout.
"""

from __future__ import annotations

import argparse
import importlib
import inspect
import json
import logging
import sys
from collections.abc import Iterable

from pydantic import ValidationError

from activity_workflows import __version__
from activity_workflows.engine.bookmarks import describe_triggers
from activity_workflows.engine.config import EngineSettings
from activity_workflows.engine.definition import WorkflowBase, WorkflowDefinition
from activity_workflows.engine.errors import (
    BindingError,
    DefinitionNotFound,
    InstanceNotFound,
)
from activity_workflows.engine.events import Event
from activity_workflows.engine.logging import configure_logging
from activity_workflows.engine.persistence import JsonFileInstanceStore
from activity_workflows.engine.runtime import WorkflowRuntime
from activity_workflows.engine.services import CONSOLE, ServiceProvider
from activity_workflows.engine.state_machine import InstanceStatus

logger = logging.getLogger(__name__)


def _parse_json(value: str) -> object:
    """Parse a JSON literal, falling back to the raw string."""

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return value


def _parse_inputs(values: Iterable[str] | None) -> dict[str, object]:
    inputs: dict[str, object] = {}
    for item in values or []:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise argparse.ArgumentTypeError(f"Expected NAME=VALUE, got {item!r}")
        inputs[name.strip()] = _parse_json(raw)
    return inputs


def _print_json(value: object) -> None:
    print(json.dumps(value, indent=2, ensure_ascii=False, default=str))


def load_workflows(module_names: Iterable[str]) -> list[WorkflowDefinition]:
    """Collect definitions from modules.

    A module may export `WORKFLOWS` (workflow classes or built definitions);
    otherwise every concrete `WorkflowBase` subclass defined in it is used.
    """

    definitions: list[WorkflowDefinition] = []
    for name in module_names:
        module = importlib.import_module(name)
        exported = getattr(module, "WORKFLOWS", None)
        if exported is None:
            exported = [
                obj
                for obj in vars(module).values()
                if inspect.isclass(obj)
                and issubclass(obj, WorkflowBase)
                and not inspect.isabstract(obj)
                and obj.__module__ == module.__name__
            ]
        for item in exported:
            if isinstance(item, WorkflowDefinition):
                definitions.append(item)
            else:
                definitions.append(item.definition())
    return definitions


def _instance_summary(runtime: WorkflowRuntime, instance_id: str) -> dict[str, object]:
    state = runtime.store.load(instance_id)
    status = state.status.value if state is not None else "removed"
    return {"instance_id": instance_id, "status": status}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="activity-workflows",
        description="Run and resume activity workflows with file-backed state",
    )
    parser.add_argument(
        "--version", action="version", version=f"activity-workflows {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("definitions", help="List registered workflow definitions")

    start = subparsers.add_parser("start", help="Start a new workflow instance")
    start.add_argument("definition_id", help="Id of a registered workflow definition")
    start.add_argument(
        "--input",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Workflow input; VALUE is parsed as JSON when possible. Repeatable.",
    )
    start.add_argument("--instance-id", default=None, help="Use this instance id")

    dispatch = subparsers.add_parser(
        "dispatch", help="Deliver an event to matching bookmarks and start triggers"
    )
    dispatch.add_argument("kind", help="Event kind, e.g. 'MyEvent'")
    dispatch.add_argument("--payload", default=None, help="Event payload as JSON")

    resume = subparsers.add_parser("resume", help="Resume one suspended instance")
    resume.add_argument("instance_id")
    resume.add_argument("kind", help="Event kind")
    resume.add_argument("--payload", default=None, help="Event payload as JSON")

    show = subparsers.add_parser("show", help="Print an instance's persisted state")
    show.add_argument("instance_id")

    cancel = subparsers.add_parser("cancel", help="Cancel a running or suspended instance")
    cancel.add_argument("instance_id")

    instances = subparsers.add_parser("instances", help="List persisted instances")
    instances.add_argument(
        "--status",
        choices=[s.value for s in InstanceStatus],
        default=None,
        help="Only list instances in this status",
    )

    subparsers.add_parser("bookmarks", help="List active bookmarks")

    return parser


def create_runtime(settings: EngineSettings) -> WorkflowRuntime:
    services = ServiceProvider.default()
    # stdout carries command results.
    services.register_factory(CONSOLE, lambda _: sys.stderr, singleton=False)

    runtime = WorkflowRuntime(
        settings=settings,
        store=JsonFileInstanceStore(settings.state_path),
        services=services,
    )
    for definition in load_workflows(settings.parsed_modules()):
        runtime.register_definition(definition)
    runtime.recover()
    return runtime


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = EngineSettings()
    except ValidationError as e:
        # Logging isn't configured yet.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        runtime = create_runtime(settings)

        if args.command == "definitions":
            _print_json(
                [
                    {
                        "id": d.id,
                        "name": d.name,
                        "version": d.version,
                        "description": d.description,
                        "inputs": [i.name for i in d.inputs],
                        "triggers": [t.kind for t in describe_triggers(d)],
                    }
                    for d in runtime.definitions()
                ]
            )
            return 0

        if args.command == "start":
            handle = runtime.start_new_instance(
                args.definition_id,
                _parse_inputs(args.input),
                instance_id=args.instance_id,
            )
            _print_json({"instance_id": handle.instance_id, "status": handle.status.value})
            return 0 if handle.status is not InstanceStatus.FAULTED else 1

        if args.command == "dispatch":
            payload = _parse_json(args.payload) if args.payload is not None else None
            affected = runtime.dispatch_event(Event(args.kind, payload))
            _print_json([_instance_summary(runtime, i) for i in affected])
            return 0

        if args.command == "resume":
            payload = _parse_json(args.payload) if args.payload is not None else None
            status = runtime.resume_instance(args.instance_id, Event(args.kind, payload))
            _print_json({"instance_id": args.instance_id, "status": status.value})
            return 0

        if args.command == "show":
            _print_json(runtime.get_instance(args.instance_id).model_dump(mode="json"))
            return 0

        if args.command == "cancel":
            status = runtime.cancel_instance(args.instance_id)
            _print_json({"instance_id": args.instance_id, "status": status.value})
            return 0

        if args.command == "instances":
            status_filter = InstanceStatus(args.status) if args.status else None
            _print_json(
                [
                    {
                        "instance_id": s.instance_id,
                        "definition_id": s.definition_id,
                        "status": s.status.value,
                        "updated_at": s.updated_at,
                    }
                    for s in runtime.list_instances(status_filter)
                ]
            )
            return 0

        if args.command == "bookmarks":
            _print_json(
                [
                    {
                        "instance_id": b.instance_id,
                        "activity_id": b.activity_id,
                        "kind": b.kind,
                        "payload": b.payload,
                    }
                    for b in runtime.registry.all_bookmarks()
                ]
            )
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except (InstanceNotFound, DefinitionNotFound) as e:
        print(e.args[0] if e.args else str(e), file=sys.stderr)
        return 3

    except (BindingError, argparse.ArgumentTypeError) as e:
        print(str(e), file=sys.stderr)
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
