from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from .base import (
    Activity,
    ActivityMetadata,
    CodeActivity,
    ExecutionSignal,
    InputDescriptor,
    Trigger,
    literal_value,
)

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext


class WriteLine(CodeActivity):
    metadata = ActivityMetadata(
        display_name="Write Line",
        description="Write a line of text to the console.",
        category="Console",
    )
    inputs = (InputDescriptor("text", str, required=True, description="The text to write."),)
    outputs = ()

    def __init__(self, text: object, **kwargs: object) -> None:
        super().__init__(text=text, **kwargs)

    def run(self, context: ActivityExecutionContext) -> None:
        console = context.get_service("console")
        console.write(f"{context.get('text')}\n")


class SetVariable(CodeActivity):
    metadata = ActivityMetadata(
        display_name="Set Variable",
        description="Assign a value to a workflow variable.",
        category="Primitives",
    )
    inputs = (InputDescriptor("value", description="The value to assign."),)
    outputs = ()

    def __init__(self, variable: str, value: object = None, **kwargs: object) -> None:
        super().__init__(value=value, **kwargs)
        self.variable = variable

    def run(self, context: ActivityExecutionContext) -> None:
        context.set_variable(self.variable, context.get("value"))


class Inline(CodeActivity):
    """Run a Python callable as a leaf. Its return value becomes `result`."""

    metadata = ActivityMetadata(description="Run inline code.", category="Primitives")

    def __init__(
        self, fn: Callable[[ActivityExecutionContext], object], **kwargs: object
    ) -> None:
        super().__init__(**kwargs)
        self.fn = fn

    def run(self, context: ActivityExecutionContext) -> object:
        return self.fn(context)


class Event(Trigger):
    """Wait for (or start on) a named event.

    An optional `payload` narrows the match, e.g. to a correlation id. Only a
    literal payload can be used to start new instances.
    """

    metadata = ActivityMetadata(
        description="Wait for an external event with the given name.",
        category="Triggers",
    )
    inputs = (InputDescriptor("payload", description="Payload the event must carry."),)

    def __init__(self, event_name: str, payload: object = None, **kwargs: object) -> None:
        super().__init__(payload=payload, **kwargs)
        self.event_name = event_name

    def get_trigger_kind(self) -> str:
        return self.event_name

    def get_trigger_payload(self) -> object:
        return literal_value(self.bindings.get("payload"))

    def get_bookmark_payload(self, context: ActivityExecutionContext) -> object:
        return context.get("payload")


class Decision(Activity):
    """Route a flowchart by a boolean condition."""

    metadata = ActivityMetadata(
        description="Complete with outcome True or False.",
        category="Branching",
    )
    inputs = (InputDescriptor("condition", bool, required=True),)
    outcomes = ("True", "False")

    def __init__(self, condition: object, **kwargs: object) -> None:
        super().__init__(condition=condition, **kwargs)

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        return context.complete("True" if context.get("condition") else "False")
