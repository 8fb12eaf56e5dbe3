"""Unit tests for dispatching child workflows."""

from __future__ import annotations

import io
from pathlib import Path

from activity_workflows.engine.activities import DispatchWorkflow, Inline, Sequence, WriteLine
from activity_workflows.engine.bindings import VariableRef
from activity_workflows.engine.config import EngineSettings
from activity_workflows.engine.definition import WorkflowBuilder, WorkflowDefinition
from activity_workflows.engine.events import Event
from activity_workflows.engine.persistence import JsonFileInstanceStore
from activity_workflows.engine.runtime import WorkflowRuntime
from activity_workflows.engine.services import ServiceProvider
from activity_workflows.engine.state_machine import InstanceStatus
from activity_workflows.samples import ChildWorkflow, MyEventWorkflow, ParentWorkflow


def _parent(child_id: str, *, wait: bool = True) -> WorkflowDefinition:
    builder = WorkflowBuilder(id="Parent")
    builder.add_variable("child")
    builder.root = Sequence(
        [
            DispatchWorkflow(
                child_id,
                wait_for_completion=wait,
                output_targets={"result": VariableRef("child")},
            ),
            WriteLine("parent done"),
        ]
    )
    return builder.build()


def test_parent_waits_for_a_child_that_completes_immediately(
    runtime: WorkflowRuntime, console: io.StringIO
) -> None:
    runtime.register_definition(ChildWorkflow.definition())

    handle = runtime.start_new_instance(ParentWorkflow.definition())

    assert handle.status is InstanceStatus.COMPLETED
    parent = runtime.get_instance(handle.instance_id)
    child_id = parent.variables["child_id"]
    child = runtime.get_instance(child_id)
    assert child.status is InstanceStatus.COMPLETED
    assert child.parent_instance_id == handle.instance_id
    assert console.getvalue().splitlines() == [
        "Dispatching child...",
        "Hello from Child: Hi from parent",
        f"Child {child_id} finished.",
    ]


def test_parent_resumes_when_a_suspended_child_completes_after_restart(
    tmp_path: Path, settings: EngineSettings, services: ServiceProvider
) -> None:
    first = WorkflowRuntime(
        settings=settings, store=JsonFileInstanceStore(tmp_path), services=services
    )
    first.register_definition(MyEventWorkflow.definition())
    handle = first.start_new_instance(_parent("MyEventWorkflow"))

    assert handle.status is InstanceStatus.SUSPENDED
    assert [b.kind for b in handle.bookmarks] == ["WorkflowCompleted"]

    second = WorkflowRuntime(
        settings=settings, store=JsonFileInstanceStore(tmp_path), services=services
    )
    second.register_definition(MyEventWorkflow.definition())
    second.register_definition(_parent("MyEventWorkflow"))
    assert second.recover() == 2

    child_id = second.get_instance(handle.instance_id).outputs["DispatchWorkflow1"]["instance_id"]
    assert second.dispatch_event(Event("MyEvent")) == [child_id]

    parent = second.get_instance(handle.instance_id)
    assert parent.status is InstanceStatus.COMPLETED
    assert parent.variables["child"] == {}
    assert second.registry.all_bookmarks() == []


def test_fire_and_forget_child_does_not_block_the_parent(runtime: WorkflowRuntime) -> None:
    runtime.register_definition(MyEventWorkflow.definition())

    handle = runtime.start_new_instance(_parent("MyEventWorkflow", wait=False))

    assert handle.status is InstanceStatus.COMPLETED
    child_id = runtime.get_instance(handle.instance_id).outputs["DispatchWorkflow1"][
        "instance_id"
    ]
    assert runtime.get_instance(child_id).status is InstanceStatus.SUSPENDED

    # Finishing the child later has nobody to report to.
    assert runtime.dispatch_event(Event("MyEvent")) == [child_id]
    assert runtime.get_instance(handle.instance_id).status is InstanceStatus.COMPLETED


def test_faulted_child_faults_the_waiting_parent(runtime: WorkflowRuntime) -> None:
    def fail(context: object) -> None:
        raise ValueError("boom")

    child = WorkflowBuilder(id="Failing")
    child.root = Inline(fail)
    runtime.register_definition(child.build())

    handle = runtime.start_new_instance(_parent("Failing"))

    assert handle.status is InstanceStatus.FAULTED
    assert handle.fault is not None
    assert handle.fault.activity_id == "DispatchWorkflow1"
    assert handle.fault.error_type == "ChildWorkflowFailed"
    assert "ended faulted: ValueError: boom" in handle.fault.message


def test_unknown_child_definition_faults_the_waiting_parent(runtime: WorkflowRuntime) -> None:
    handle = runtime.start_new_instance(_parent("Missing"))

    assert handle.status is InstanceStatus.FAULTED
    assert handle.fault is not None
    assert "No workflow definition registered as 'Missing'" in handle.fault.message
    assert runtime.registry.all_bookmarks() == []


def test_child_input_is_validated(runtime: WorkflowRuntime) -> None:
    runtime.register_definition(ChildWorkflow.definition())

    handle = runtime.start_new_instance(_parent("ChildWorkflow"))

    assert handle.status is InstanceStatus.FAULTED
    assert handle.fault is not None
    assert "requires input 'message'" in handle.fault.message
