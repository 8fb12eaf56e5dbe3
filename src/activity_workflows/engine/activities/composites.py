"""Composite activities built on schedule-then-callback.

Composites keep their progress in `context.properties` (per frame) rather than
on the node, because nodes belong to an immutable definition shared by every
instance.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import TYPE_CHECKING

from ..errors import ExecutionFault
from .base import (
    Activity,
    ActivityMetadata,
    ChildCompleted,
    ExecutionSignal,
    InputDescriptor,
    OutputDescriptor,
)

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext, FaultRecord


class Sequence(Activity):
    metadata = ActivityMetadata(
        description="Execute a set of activities one after another.",
        category="Workflow",
    )

    def __init__(self, activities: Iterable[Activity] = (), **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.activities: tuple[Activity, ...] = tuple(activities)

    def children(self) -> Iterable[Activity]:
        return self.activities

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        return self._schedule_at(context, 0)

    def on_child_completed(
        self, context: ActivityExecutionContext, child: ChildCompleted
    ) -> ExecutionSignal:
        return self._schedule_at(context, int(context.properties["index"]) + 1)

    def _schedule_at(self, context: ActivityExecutionContext, index: int) -> ExecutionSignal:
        if index >= len(self.activities):
            return context.complete()
        context.properties["index"] = index
        context.schedule(self.activities[index], self.on_child_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN


class If(Activity):
    """Schedule exactly one of `then` / `else_` depending on `condition`."""

    metadata = ActivityMetadata(
        description="Evaluate a condition and run one of two branches.",
        category="Branching",
    )
    inputs = (InputDescriptor("condition", bool, required=True),)

    def __init__(
        self,
        condition: object,
        then: Activity | None = None,
        else_: Activity | None = None,
        **kwargs: object,
    ) -> None:
        super().__init__(condition=condition, **kwargs)
        self.then = then
        self.else_ = else_

    def children(self) -> Iterable[Activity]:
        return [a for a in (self.then, self.else_) if a is not None]

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        result = bool(context.get("condition"))
        context.properties["condition"] = result
        branch = self.then if result else self.else_
        if branch is None:
            return context.complete()
        context.schedule(branch, self.on_child_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN


class Parallel(Activity):
    """Fan out to every branch and complete once all of them reported back."""

    metadata = ActivityMetadata(
        description="Execute branches side by side and join them.",
        category="Workflow",
    )

    def __init__(self, branches: Iterable[Activity] = (), **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.branches: tuple[Activity, ...] = tuple(branches)

    def children(self) -> Iterable[Activity]:
        return self.branches

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        if not self.branches:
            return context.complete()
        context.properties["completed"] = []
        for branch in self.branches:
            context.schedule(branch, self.on_child_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN

    def on_child_completed(
        self, context: ActivityExecutionContext, child: ChildCompleted
    ) -> ExecutionSignal:
        context.properties["completed"].append(child.activity_id)
        if len(context.properties["completed"]) < len(self.branches):
            return ExecutionSignal.SCHEDULED_CHILDREN
        return context.complete()


class FaultBoundary(Activity):
    """Contain faults raised anywhere inside `body`.

    On a fault the rest of the body is discarded, the fault is committed to the
    `fault` output and `handler` (if any) runs. Completes with `Faulted` after a
    fault, `Done` otherwise. A fault inside the handler escapes the boundary.
    """

    metadata = ActivityMetadata(
        description="Catch faults raised by child activities.",
        category="Workflow",
    )
    outputs = (OutputDescriptor("fault", dict, description="The contained fault."),)
    outcomes = ("Done", "Faulted")
    catches_faults = True

    def __init__(
        self, body: Activity, handler: Activity | None = None, **kwargs: object
    ) -> None:
        super().__init__(**kwargs)
        self.body = body
        self.handler = handler

    def children(self) -> Iterable[Activity]:
        return [a for a in (self.body, self.handler) if a is not None]

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        context.schedule(self.body, self.on_child_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN

    def on_fault(self, context: ActivityExecutionContext, fault: FaultRecord) -> ExecutionSignal:
        if context.properties.get("handling"):
            raise ExecutionFault.from_record(fault, instance_id=context.instance_id)
        context.set("fault", fault.describe())
        if self.handler is None:
            return context.complete("Faulted")
        context.properties["handling"] = True
        context.schedule(self.handler, self.on_handler_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN

    def on_handler_completed(
        self, context: ActivityExecutionContext, child: ChildCompleted
    ) -> ExecutionSignal:
        return context.complete("Faulted")
