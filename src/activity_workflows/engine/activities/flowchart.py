"""Outcome-routed flow graph.

A node completes with one or more outcome names; the flowchart follows the
connections declared for exactly those outcomes. There is no implicit join: a
target reached through two connections runs once per activation.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ..errors import DefinitionError
from .base import DEFAULT_OUTCOME, Activity, ActivityMetadata, ChildCompleted, ExecutionSignal

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext


@dataclass(frozen=True, slots=True)
class Connection:
    source: Activity
    target: Activity
    outcome: str = DEFAULT_OUTCOME


class Flowchart(Activity):
    metadata = ActivityMetadata(
        description="Run activities connected by outcomes.",
        category="Flow",
    )

    def __init__(
        self,
        activities: Iterable[Activity] = (),
        connections: Iterable[Connection] = (),
        start: Activity | None = None,
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)
        self.activities: tuple[Activity, ...] = tuple(activities)
        self.connections: tuple[Connection, ...] = tuple(connections)
        self.start = start

    def children(self) -> Iterable[Activity]:
        return self.activities

    def validate(self) -> None:
        members = {id(a) for a in self.activities}
        if self.start is not None and id(self.start) not in members:
            raise DefinitionError(f"{self.id!r}: start activity is not part of the flowchart")
        for connection in self.connections:
            for end in (connection.source, connection.target):
                if id(end) not in members:
                    raise DefinitionError(
                        f"{self.id!r}: connection endpoint {end!r} is not part of the flowchart"
                    )
            if connection.outcome not in connection.source.outcomes:
                raise DefinitionError(
                    f"{self.id!r}: {connection.source!r} declares no outcome "
                    f"{connection.outcome!r} (declared: {list(connection.source.outcomes)})"
                )

    def start_activity(self) -> Activity | None:
        if self.start is not None:
            return self.start
        targets = {id(c.target) for c in self.connections}
        for activity in self.activities:
            if id(activity) not in targets:
                return activity
        return self.activities[0] if self.activities else None

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        start = self.start_activity()
        if start is None:
            return context.complete()
        context.schedule(start, self.on_node_completed)
        return ExecutionSignal.SCHEDULED_CHILDREN

    def on_node_completed(
        self, context: ActivityExecutionContext, child: ChildCompleted
    ) -> ExecutionSignal:
        for connection in self.connections:
            if connection.source.id != child.activity_id:
                continue
            if connection.outcome not in child.outcomes:
                continue
            context.schedule(connection.target, self.on_node_completed)

        if context.has_pending_children():
            return ExecutionSignal.SCHEDULED_CHILDREN
        return context.complete()
