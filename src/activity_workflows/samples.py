"""Sample workflows.

These are registered by the CLI by default (`WORKFLOW_MODULES`), so they can
be started and resumed from the command line:

    activity-workflows start MyEventWorkflow
    activity-workflows dispatch MyEvent
"""

from __future__ import annotations

import random
from datetime import datetime
from typing import TYPE_CHECKING

from activity_workflows.engine.activities import (
    Activity,
    ActivityMetadata,
    CodeActivity,
    Connection,
    DispatchWorkflow,
    Event,
    ExecutionSignal,
    Flowchart,
    If,
    InputDescriptor,
    OutputDescriptor,
    Sequence,
    SetVariable,
    Trigger,
    WriteLine,
)
from activity_workflows.engine.bindings import (
    Expression,
    ExpressionContext,
    InputRef,
    OutputRef,
    Template,
    VariableRef,
)
from activity_workflows.engine.definition import WorkflowBase, WorkflowBuilder

if TYPE_CHECKING:
    from activity_workflows.engine.context import ActivityExecutionContext


class MyEvent(Trigger):
    """Completes when a `MyEvent` event arrives."""

    trigger_kind = "MyEvent"
    metadata = ActivityMetadata(description="Wait for MyEvent.", category="Samples")

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        if context.is_trigger_of_workflow():
            return context.complete()

        context.create_bookmark("MyEvent")
        return ExecutionSignal.SUSPENDED


class GenerateRandomNumber(CodeActivity):
    metadata = ActivityMetadata(
        display_name="Random Number",
        description="Generate a random number between 0 and 100.",
        category="Samples",
    )
    outputs = (OutputDescriptor("result", float),)

    def run(self, context: ActivityExecutionContext) -> float:
        return round(random.uniform(0, 100), 2)


class PerformTask(Activity):
    """Complete with `Pass` or `Fail` depending on the `succeed` input."""

    metadata = ActivityMetadata(description="Perform a task.", category="Samples")
    inputs = (InputDescriptor("succeed", bool, default=True),)
    outcomes = ("Pass", "Fail")

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        return context.complete("Pass" if context.get("succeed") else "Fail")


class MyEventWorkflow(WorkflowBase):
    """Write a line, wait for MyEvent, write another line."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.root = Sequence(
            [
                WriteLine("Waiting for MyEvent..."),
                MyEvent(),
                WriteLine("Event occurred!"),
            ]
        )


class MyEventStarterWorkflow(WorkflowBase):
    """Started by MyEvent."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.root = Sequence(
            [
                MyEvent(can_start_workflow=True),
                WriteLine("Started by MyEvent!"),
            ]
        )


class IfWorkflow(WorkflowBase):
    """Greet according to the `daylight` input (defaults to daylight saving time)."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.add_input("daylight", bool, default=None)
        builder.root = If(
            condition=Expression(_is_daylight),
            then=WriteLine("Welcome to the light side!"),
            else_=WriteLine("Welcome to the dark side!"),
        )


def _is_daylight(context: ExpressionContext) -> bool:
    daylight = context.get_input("daylight")
    if daylight is None:
        return bool(datetime.now().astimezone().dst())
    return bool(daylight)


class GenerateRandomNumberWorkflow(WorkflowBase):
    def build(self, builder: WorkflowBuilder) -> None:
        generate = GenerateRandomNumber()
        builder.add_variable("number")
        builder.root = Sequence(
            [
                generate,
                SetVariable("number", OutputRef(generate)),
                WriteLine(
                    Expression(
                        lambda c: f"The random number is: {c.get_output(generate, 'result')}"
                    )
                ),
            ]
        )


class PerformTaskWorkflow(WorkflowBase):
    """Route a flowchart by the outcome of `PerformTask`."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.add_input("succeed", bool, default=True)
        task = PerformTask(succeed=InputRef("succeed"))
        passed = WriteLine("Task passed.")
        failed = WriteLine("Task failed.")
        builder.root = Flowchart(
            activities=[task, passed, failed],
            connections=[
                Connection(task, passed, "Pass"),
                Connection(task, failed, "Fail"),
            ],
        )


class OnboardingWorkflow(WorkflowBase):
    """Onboard an employee once their external task is reported complete.

    The `TaskCompleted` bookmark is correlated by the `task_id` input, so only
    an event carrying `{"task_id": <same id>}` resumes this instance.
    """

    def build(self, builder: WorkflowBuilder) -> None:
        builder.add_input("employee", str, required=True)
        builder.add_input("task_id", (str, int), required=True)
        builder.add_variable("status", "pending")
        builder.root = Sequence(
            [
                WriteLine(
                    Template("Onboarding {{ input.employee }}: waiting for task {{ input.task_id }}")
                ),
                SetVariable("status", "waiting"),
                Event(
                    "TaskCompleted",
                    payload=Expression(lambda c: {"task_id": c.get_input("task_id")}),
                ),
                SetVariable("status", "onboarded"),
                WriteLine(Template("{{ input.employee }} is {{ variables.status }}.")),
            ]
        )


class ChildWorkflow(WorkflowBase):
    """Write the message it was dispatched with."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.name = "Child Workflow"
        builder.add_input(
            "message", str, required=True, description="The message to write to the console."
        )
        builder.root = WriteLine(Template("Hello from Child: {{ input.message }}"))


class ParentWorkflow(WorkflowBase):
    """Dispatch `ChildWorkflow` and wait for it to finish."""

    def build(self, builder: WorkflowBuilder) -> None:
        builder.add_variable("child_id")
        builder.root = Sequence(
            [
                WriteLine("Dispatching child..."),
                DispatchWorkflow(
                    "ChildWorkflow",
                    input={"message": "Hi from parent"},
                    wait_for_completion=True,
                    output_targets={"instance_id": VariableRef("child_id")},
                ),
                WriteLine(Template("Child {{ variables.child_id }} finished.")),
            ]
        )


WORKFLOWS = [
    MyEventWorkflow,
    MyEventStarterWorkflow,
    IfWorkflow,
    GenerateRandomNumberWorkflow,
    PerformTaskWorkflow,
    OnboardingWorkflow,
    ChildWorkflow,
    ParentWorkflow,
]
