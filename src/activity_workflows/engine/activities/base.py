"""Activity node contract.

Every activity exposes `execute(context) -> ExecutionSignal`. On every code path
an activity must do exactly one of:

- complete itself (`return context.complete(...)`)
- schedule the children it waits on (`context.schedule(...)`, then
  `return ExecutionSignal.SCHEDULED_CHILDREN`)
- create a bookmark and suspend (`context.create_bookmark(...)`, then
  `return ExecutionSignal.SUSPENDED`)

The scheduler checks this after every call. Callbacks are referenced by method
name so that pending completions survive persistence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, ClassVar

from ..bindings import Binding, Literal, VariableRef, as_binding

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext

DEFAULT_OUTCOME = "Done"


class ExecutionSignal(str, Enum):
    COMPLETED = "completed"
    SUSPENDED = "suspended"
    SCHEDULED_CHILDREN = "scheduled_children"


@dataclass(frozen=True, slots=True)
class ActivityMetadata:
    """Tooling-only information. Never consulted during execution."""

    display_name: str = ""
    description: str = ""
    category: str = "Miscellaneous"


@dataclass(frozen=True, slots=True)
class InputDescriptor:
    name: str
    type: type | tuple[type, ...] = object
    default: object = None
    required: bool = False
    description: str = ""


@dataclass(frozen=True, slots=True)
class OutputDescriptor:
    name: str
    type: type | tuple[type, ...] = object
    description: str = ""


@dataclass(frozen=True, slots=True)
class ChildCompleted:
    """Passed to a parent's completion callback."""

    activity_id: str
    frame_id: str
    outcomes: tuple[str, ...]


class Activity(ABC):
    """Base class for all activity nodes.

    Subclasses declare `inputs`, `outputs` and `outcomes` as class attributes and
    receive their input bindings as keyword arguments.
    """

    type_name: ClassVar[str] = ""
    metadata: ClassVar[ActivityMetadata] = ActivityMetadata()
    inputs: ClassVar[tuple[InputDescriptor, ...]] = ()
    outputs: ClassVar[tuple[OutputDescriptor, ...]] = ()
    outcomes: ClassVar[tuple[str, ...]] = (DEFAULT_OUTCOME,)
    catches_faults: ClassVar[bool] = False

    _sealed: bool = False

    def __init_subclass__(cls, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        if "type_name" not in cls.__dict__:
            cls.type_name = cls.__name__

    def __init__(
        self,
        *,
        id: str | None = None,  # noqa: A002
        display_name: str | None = None,
        output_targets: Mapping[str, VariableRef] | None = None,
        **inputs: object,
    ) -> None:
        declared = {d.name for d in self.inputs}
        unknown = sorted(set(inputs) - declared)
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown inputs: {', '.join(unknown)}")

        targets = dict(output_targets or {})
        undeclared = sorted(set(targets) - {d.name for d in self.outputs})
        if undeclared:
            raise TypeError(f"{type(self).__name__} has no outputs named: {', '.join(undeclared)}")

        self.id = id
        self.display_name = display_name or self.metadata.display_name or self.type_name
        self.bindings: Mapping[str, Binding] = {
            name: as_binding(value) for name, value in inputs.items()
        }
        self.output_targets: Mapping[str, VariableRef] = targets

    def __setattr__(self, name: str, value: object) -> None:
        if self._sealed:
            raise AttributeError(
                f"{self.type_name} {self.id!r} belongs to a built definition and is immutable"
            )
        super().__setattr__(name, value)

    def __repr__(self) -> str:
        return f"<{self.type_name} id={self.id!r}>"

    def seal(self) -> None:
        object.__setattr__(self, "bindings", MappingProxyType(dict(self.bindings)))
        object.__setattr__(self, "output_targets", MappingProxyType(dict(self.output_targets)))
        object.__setattr__(self, "_sealed", True)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def input_descriptor(self, name: str) -> InputDescriptor | None:
        for descriptor in self.inputs:
            if descriptor.name == name:
                return descriptor
        return None

    def output_descriptor(self, name: str) -> OutputDescriptor | None:
        for descriptor in self.outputs:
            if descriptor.name == name:
                return descriptor
        return None

    def children(self) -> Iterable[Activity]:
        return ()

    def validate(self) -> None:
        """Hook for build-time checks once ids are assigned."""

    @abstractmethod
    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal: ...

    def on_child_completed(
        self, context: ActivityExecutionContext, child: ChildCompleted
    ) -> ExecutionSignal:
        if context.has_pending_children():
            return ExecutionSignal.SCHEDULED_CHILDREN
        return context.complete()

    def on_resume(self, context: ActivityExecutionContext) -> ExecutionSignal:
        return context.complete()


class CodeActivity(Activity):
    """A leaf that does its work synchronously and completes.

    A non-None return value from `run` is committed as the `result` output.
    """

    outputs = (OutputDescriptor("result"),)

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        result = self.run(context)
        if result is not None:
            context.set("result", result)
        return context.complete()

    @abstractmethod
    def run(self, context: ActivityExecutionContext) -> object: ...


class Trigger(Activity):
    """An activity that waits for, or is started by, an external event.

    When the instance was started because an event selected this node, it
    completes immediately. Otherwise it creates a bookmark and suspends.
    """

    trigger_kind: ClassVar[str] = ""
    outputs = (
        OutputDescriptor("payload", description="Payload of the event that fired the trigger."),
    )

    def __init__(self, *, can_start_workflow: bool = False, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.can_start_workflow = can_start_workflow

    def get_trigger_kind(self) -> str:
        return self.trigger_kind or self.type_name

    def get_trigger_payload(self) -> object:
        """Static payload used to index this node as a workflow starter."""

        return None

    def get_bookmark_payload(self, context: ActivityExecutionContext) -> object:
        """Runtime payload the bookmark is matched on. Defaults to the static one."""

        return self.get_trigger_payload()

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        if context.is_root_trigger_match():
            context.set("payload", context.event_payload)
            return context.complete()

        context.create_bookmark(self.get_trigger_kind(), self.get_bookmark_payload(context))
        return ExecutionSignal.SUSPENDED

    def on_resume(self, context: ActivityExecutionContext) -> ExecutionSignal:
        context.set("payload", context.event_payload)
        return context.complete()


def literal_value(binding: Binding | None) -> object:
    """Return a binding's value when it is known without an instance."""

    if isinstance(binding, Literal):
        return binding.value
    return None
