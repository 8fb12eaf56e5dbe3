"""Persisted instance state and the stores that keep it.

A suspended instance is fully described by its `InstanceState`: variables,
recorded outputs, pending-completion frames, active bookmarks and status.
Reloading it in another process and resuming behaves exactly like resuming
the live context.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field, ValidationError

from .bookmarks import Bookmark
from .context import FaultRecord, Frame, WorkflowExecutionContext
from .definition import WorkflowDefinition
from .services import ServiceProvider
from .state_machine import InstanceStatus

logger = logging.getLogger(__name__)


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


class InstanceState(BaseModel):
    instance_id: str
    definition_id: str
    definition_version: int = 1
    status: InstanceStatus

    input: dict[str, Any] = Field(default_factory=dict)
    variables: dict[str, Any] = Field(default_factory=dict)
    outputs: dict[str, dict[str, Any]] = Field(default_factory=dict)
    frames: list[Frame] = Field(default_factory=list)
    bookmarks: list[Bookmark] = Field(default_factory=list)

    fault: FaultRecord | None = None
    incidents: list[FaultRecord] = Field(default_factory=list)

    trigger_activity_id: str | None = None
    trigger_payload: Any = None
    parent_instance_id: str | None = None

    created_at: str = Field(default_factory=_utc_iso_now)
    updated_at: str = Field(default_factory=_utc_iso_now)


def snapshot(context: WorkflowExecutionContext) -> InstanceState:
    return InstanceState(
        instance_id=context.instance_id,
        definition_id=context.definition.id,
        definition_version=context.definition.version,
        status=context.status,
        input=context.input,
        variables=context.variables,
        outputs=context.outputs,
        frames=list(context.frames.values()),
        bookmarks=list(context.bookmarks),
        fault=context.fault,
        incidents=list(context.incidents),
        trigger_activity_id=context.trigger_activity_id,
        trigger_payload=context.trigger_payload,
        parent_instance_id=context.parent_instance_id,
        created_at=context.created_at,
        updated_at=_utc_iso_now(),
    )


def restore(
    state: InstanceState, definition: WorkflowDefinition, services: ServiceProvider
) -> WorkflowExecutionContext:
    if state.definition_version != definition.version:
        logger.warning(
            "Resuming instance against a different definition version",
            extra={
                "instance_id": state.instance_id,
                "definition_id": definition.id,
                "persisted_version": state.definition_version,
                "current_version": definition.version,
            },
        )
    copy = state.model_copy(deep=True)
    return WorkflowExecutionContext(
        instance_id=copy.instance_id,
        definition=definition,
        services=services,
        status=copy.status,
        input=copy.input,
        variables=copy.variables,
        outputs=copy.outputs,
        frames=copy.frames,
        bookmarks=copy.bookmarks,
        fault=copy.fault,
        incidents=copy.incidents,
        trigger_activity_id=copy.trigger_activity_id,
        trigger_payload=copy.trigger_payload,
        parent_instance_id=copy.parent_instance_id,
        created_at=copy.created_at,
    )


class InstanceStore(Protocol):
    def load(self, instance_id: str) -> InstanceState | None: ...

    def save(self, state: InstanceState) -> None: ...

    def delete(self, instance_id: str) -> None: ...

    def list(self) -> list[InstanceState]: ...


class InMemoryInstanceStore:
    """Keeps serialised JSON, so reads never alias live state."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._states: dict[str, str] = {}

    def load(self, instance_id: str) -> InstanceState | None:
        with self._lock:
            raw = self._states.get(instance_id)
        if raw is None:
            return None
        return InstanceState.model_validate_json(raw)

    def save(self, state: InstanceState) -> None:
        raw = state.model_dump_json()
        with self._lock:
            self._states[state.instance_id] = raw

    def delete(self, instance_id: str) -> None:
        with self._lock:
            self._states.pop(instance_id, None)

    def list(self) -> list[InstanceState]:
        with self._lock:
            raws = list(self._states.values())
        return [InstanceState.model_validate_json(raw) for raw in raws]


class JsonFileInstanceStore:
    """One JSON document per instance under `directory`."""

    def __init__(self, directory: Path) -> None:
        self._directory = directory
        self._lock = threading.Lock()

    def _path(self, instance_id: str) -> Path:
        return self._directory / f"{instance_id}.json"

    def _read(self, path: Path) -> InstanceState | None:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError:
            logger.warning(
                "Instance state file is not valid JSON; ignoring it",
                extra={"path": str(path)},
            )
            return None
        try:
            return InstanceState.model_validate(raw)
        except ValidationError as e:
            logger.warning(
                "Instance state file does not describe an instance; ignoring it",
                extra={"path": str(path), "errors": e.error_count()},
            )
            return None

    def load(self, instance_id: str) -> InstanceState | None:
        path = self._path(instance_id)
        with self._lock:
            if not path.exists():
                return None
            return self._read(path)

    def save(self, state: InstanceState) -> None:
        path = self._path(state.instance_id)
        payload = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"
        with self._lock:
            self._directory.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".json.tmp")
            tmp.write_text(payload, encoding="utf-8")
            tmp.replace(path)

    def delete(self, instance_id: str) -> None:
        with self._lock:
            self._path(instance_id).unlink(missing_ok=True)

    def list(self) -> list[InstanceState]:
        with self._lock:
            if not self._directory.exists():
                return []
            states = [self._read(p) for p in sorted(self._directory.glob("*.json"))]
        return [s for s in states if s is not None]
