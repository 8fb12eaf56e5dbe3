"""Execution context.

`WorkflowExecutionContext` is owned by exactly one instance. It holds the
variables, the recorded outputs, the pending-completion frames, the active
bookmarks and the transient work list.

`ActivityExecutionContext` is the view a single activity call receives. Every
mutation an activity makes goes through it.
"""

from __future__ import annotations

import logging
import uuid
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from .activities.base import DEFAULT_OUTCOME, Activity, ChildCompleted, ExecutionSignal
from .bindings import ExpressionContext, OutputBinding, check_type, commit, resolve
from .bookmarks import Bookmark
from .errors import BindingError, SchedulingInvariantViolation
from .events import normalize_payload
from .services import ServiceProvider
from .state_machine import InstanceStatus

if TYPE_CHECKING:
    from .definition import WorkflowDefinition

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid.uuid4().hex


def _utc_iso_now() -> str:
    return datetime.now(tz=UTC).isoformat()


@dataclass
class Frame:
    """A scheduled activity that has not completed yet."""

    frame_id: str
    activity_id: str
    parent_id: str | None = None
    callback: str | None = None
    properties: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FaultRecord:
    activity_id: str
    frame_id: str | None
    error_type: str
    message: str
    fatal: bool = False

    def describe(self) -> dict[str, object]:
        return {
            "activity_id": self.activity_id,
            "error_type": self.error_type,
            "message": self.message,
        }


class WorkKind(str, Enum):
    EXECUTE = "execute"
    CALLBACK = "callback"
    RESUME = "resume"
    FAULT = "fault"


@dataclass(frozen=True, slots=True)
class ChildDispatch:
    """A child instance to start once the parent's run is persisted."""

    instance_id: str
    definition_id: str
    input: dict[str, Any]


@dataclass(frozen=True, slots=True)
class WorkItem:
    kind: WorkKind
    frame_id: str
    callback: str | None = None
    child: ChildCompleted | None = None
    payload: object = None
    fault: FaultRecord | None = None


class WorkflowExecutionContext:
    def __init__(
        self,
        *,
        instance_id: str,
        definition: WorkflowDefinition,
        services: ServiceProvider,
        status: InstanceStatus = InstanceStatus.RUNNING,
        input: dict[str, Any] | None = None,  # noqa: A002
        variables: dict[str, Any] | None = None,
        outputs: dict[str, dict[str, Any]] | None = None,
        frames: list[Frame] | None = None,
        bookmarks: list[Bookmark] | None = None,
        fault: FaultRecord | None = None,
        incidents: list[FaultRecord] | None = None,
        trigger_activity_id: str | None = None,
        trigger_payload: object = None,
        parent_instance_id: str | None = None,
        created_at: str | None = None,
    ) -> None:
        self.instance_id = instance_id
        self.definition = definition
        self.services = services
        self.status = status
        self.input: dict[str, Any] = dict(input or {})
        self.variables: dict[str, Any] = dict(variables or {})
        self.outputs: dict[str, dict[str, Any]] = {k: dict(v) for k, v in (outputs or {}).items()}
        self.frames: dict[str, Frame] = {f.frame_id: f for f in frames or []}
        self.bookmarks: list[Bookmark] = list(bookmarks or [])
        self.fault = fault
        self.incidents: list[FaultRecord] = list(incidents or [])
        self.trigger_activity_id = trigger_activity_id
        self.trigger_payload = trigger_payload
        self.parent_instance_id = parent_instance_id
        self.created_at = created_at or _utc_iso_now()
        self.work: deque[WorkItem] = deque()
        self.pending_dispatches: list[ChildDispatch] = []

    # Frames

    def add_frame(
        self, activity: Activity, *, parent: Frame | None, callback: str | None
    ) -> Frame:
        if activity.id is None or self.definition.activities.get(activity.id) is not activity:
            raise SchedulingInvariantViolation(
                f"{activity!r} is not part of definition {self.definition.id!r}"
            )
        frame = Frame(
            frame_id=_new_id(),
            activity_id=activity.id,
            parent_id=parent.frame_id if parent is not None else None,
            callback=callback,
        )
        self.frames[frame.frame_id] = frame
        return frame

    def remove_frame(self, frame_id: str) -> None:
        self.frames.pop(frame_id, None)
        self.bookmarks = [b for b in self.bookmarks if b.frame_id != frame_id]

    def children_of(self, frame_id: str) -> list[Frame]:
        return [f for f in self.frames.values() if f.parent_id == frame_id]

    def descendants_of(self, frame_id: str) -> list[Frame]:
        found: list[Frame] = []
        pending = [frame_id]
        while pending:
            current = pending.pop()
            for child in self.children_of(current):
                found.append(child)
                pending.append(child.frame_id)
        return found

    def ancestors_of(self, frame: Frame) -> list[Frame]:
        found: list[Frame] = []
        parent_id = frame.parent_id
        while parent_id is not None:
            parent = self.frames.get(parent_id)
            if parent is None:
                break
            found.append(parent)
            parent_id = parent.parent_id
        return found

    # Bookmarks

    def bookmarks_for_frame(self, frame_id: str) -> list[Bookmark]:
        return [b for b in self.bookmarks if b.frame_id == frame_id]

    def find_bookmark(self, bookmark_id: str) -> Bookmark | None:
        for bookmark in self.bookmarks:
            if bookmark.bookmark_id == bookmark_id:
                return bookmark
        return None

    def remove_bookmark(self, bookmark_id: str) -> Bookmark | None:
        bookmark = self.find_bookmark(bookmark_id)
        if bookmark is not None:
            self.bookmarks = [b for b in self.bookmarks if b.bookmark_id != bookmark_id]
        return bookmark


class ActivityExecutionContext:
    """What an activity sees during one call."""

    def __init__(
        self,
        workflow: WorkflowExecutionContext,
        frame: Frame,
        activity: Activity,
        *,
        event_payload: object = None,
        is_trigger: bool = False,
    ) -> None:
        self.workflow = workflow
        self.frame = frame
        self.activity = activity
        self.event_payload = event_payload
        self._is_trigger = is_trigger

        self.scheduled: list[Frame] = []
        self.created_bookmarks: list[Bookmark] = []
        self.outcomes: tuple[str, ...] | None = None

    @property
    def instance_id(self) -> str:
        return self.workflow.instance_id

    @property
    def properties(self) -> dict[str, Any]:
        """Per-frame state. Must stay JSON-serialisable."""

        return self.frame.properties

    @property
    def expressions(self) -> ExpressionContext:
        return ExpressionContext(self.workflow)

    # Inputs and outputs

    def get(self, name: str) -> Any:
        descriptor = self.activity.input_descriptor(name)
        if descriptor is None:
            raise BindingError(f"{self.activity.type_name} declares no input {name!r}")

        binding = self.activity.bindings.get(name)
        value = resolve(binding, self.workflow) if binding is not None else descriptor.default
        if value is None and descriptor.required:
            raise BindingError(f"Input {name!r} of {self.activity.id!r} is required")
        return check_type(name, value, descriptor.type)

    def set(self, name: str, value: object) -> None:
        descriptor = self.activity.output_descriptor(name)
        if descriptor is None:
            raise BindingError(f"{self.activity.type_name} declares no output {name!r}")
        check_type(name, value, descriptor.type)
        target = self.activity.output_targets.get(name)
        commit(OutputBinding(self.activity.id or "", name, target), value, self.workflow)

    def get_variable(self, name: str) -> Any:
        return self.expressions.get_variable(name)

    def set_variable(self, name: str, value: object) -> None:
        self.workflow.variables[name] = value

    def get_service(self, key: object) -> Any:
        return self.workflow.services.get(key)

    # Scheduling

    def schedule(
        self,
        activity: Activity,
        on_complete: str | Callable[..., ExecutionSignal] | None = None,
    ) -> Frame:
        callback = self._callback_name(on_complete)
        frame = self.workflow.add_frame(activity, parent=self.frame, callback=callback)
        self.scheduled.append(frame)
        logger.debug(
            "Scheduled activity",
            extra={
                "instance_id": self.instance_id,
                "activity_id": activity.id,
                "parent_activity_id": self.activity.id,
            },
        )
        return frame

    def has_pending_children(self) -> bool:
        return bool(self.workflow.children_of(self.frame.frame_id))

    def complete(self, *outcomes: str) -> ExecutionSignal:
        chosen = tuple(outcomes) or (DEFAULT_OUTCOME,)
        undeclared = [o for o in chosen if o not in self.activity.outcomes]
        if undeclared:
            raise SchedulingInvariantViolation(
                f"{self.activity.id!r} completed with undeclared outcome(s) {undeclared}; "
                f"declared: {list(self.activity.outcomes)}"
            )
        self.outcomes = chosen
        return ExecutionSignal.COMPLETED

    # Suspension

    def create_bookmark(
        self,
        trigger_kind: str,
        payload: object = None,
        resume_callback: str | Callable[..., ExecutionSignal] | None = None,
    ) -> Bookmark:
        callback = self._callback_name(resume_callback, default="on_resume")
        bookmark = Bookmark(
            bookmark_id=_new_id(),
            instance_id=self.instance_id,
            kind=trigger_kind,
            payload=normalize_payload(payload),
            activity_id=self.activity.id or "",
            frame_id=self.frame.frame_id,
            callback=callback,
            created_at=_utc_iso_now(),
        )
        self.workflow.bookmarks.append(bookmark)
        self.created_bookmarks.append(bookmark)
        logger.debug(
            "Created bookmark",
            extra={
                "instance_id": self.instance_id,
                "activity_id": self.activity.id,
                "bookmark_kind": trigger_kind,
            },
        )
        return bookmark

    # Child workflows

    def dispatch_workflow(
        self,
        definition_id: str,
        input_values: dict[str, Any] | None = None,
        *,
        instance_id: str | None = None,
    ) -> str:
        """Queue a child instance and return its id.

        The runtime starts it after this run is persisted, so a bookmark created
        in the same call is registered before the child can complete.
        """

        child = ChildDispatch(
            instance_id=instance_id or _new_id(),
            definition_id=definition_id,
            input=dict(input_values or {}),
        )
        self.workflow.pending_dispatches.append(child)
        logger.debug(
            "Queued child workflow",
            extra={
                "instance_id": self.instance_id,
                "activity_id": self.activity.id,
                "definition_id": definition_id,
                "child_instance_id": child.instance_id,
            },
        )
        return child.instance_id

    # Triggers

    def is_root_trigger_match(self) -> bool:
        """True when this call runs because an event started the instance here."""

        return self._is_trigger

    def is_trigger_of_workflow(self) -> bool:
        return self.is_root_trigger_match()

    def _callback_name(
        self,
        callback: str | Callable[..., ExecutionSignal] | None,
        *,
        default: str = "on_child_completed",
    ) -> str:
        if callback is None:
            name = default
        elif isinstance(callback, str):
            name = callback
        else:
            if getattr(callback, "__self__", None) is not self.activity:
                raise SchedulingInvariantViolation(
                    f"Callbacks must be methods of the scheduling activity {self.activity.id!r}"
                )
            name = callback.__name__

        if not callable(getattr(self.activity, name, None)):
            raise SchedulingInvariantViolation(
                f"{self.activity.type_name} has no callback method {name!r}"
            )
        return name
