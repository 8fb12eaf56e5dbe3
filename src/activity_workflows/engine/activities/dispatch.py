from __future__ import annotations

from typing import TYPE_CHECKING

from ..errors import ChildWorkflowFailed
from .base import Activity, ActivityMetadata, ExecutionSignal, InputDescriptor, OutputDescriptor

if TYPE_CHECKING:
    from ..context import ActivityExecutionContext

CHILD_COMPLETED = "WorkflowCompleted"


class DispatchWorkflow(Activity):
    """Start another registered workflow as a child instance.

    The child is started once the parent's current run has been persisted.
    With `wait_for_completion` the parent suspends on a `WorkflowCompleted`
    bookmark correlated by the child's instance id; the runtime resumes it
    with the child's final status and variables.
    """

    metadata = ActivityMetadata(
        display_name="Dispatch Workflow",
        description="Start a child workflow instance.",
        category="Composition",
    )
    inputs = (
        InputDescriptor(
            "definition_id", str, required=True, description="Id of the workflow to start."
        ),
        InputDescriptor("input", dict, description="Input values for the child."),
    )
    outputs = (
        OutputDescriptor("instance_id", str, description="Id of the child instance."),
        OutputDescriptor("result", dict, description="Variables of the completed child."),
    )

    def __init__(
        self,
        definition_id: object,
        input: object = None,  # noqa: A002
        *,
        wait_for_completion: bool = False,
        **kwargs: object,
    ) -> None:
        super().__init__(definition_id=definition_id, input=input, **kwargs)
        self.wait_for_completion = wait_for_completion

    def execute(self, context: ActivityExecutionContext) -> ExecutionSignal:
        child_id = context.dispatch_workflow(context.get("definition_id"), context.get("input"))
        context.set("instance_id", child_id)
        if not self.wait_for_completion:
            return context.complete()

        context.create_bookmark(CHILD_COMPLETED, {"instance_id": child_id})
        return ExecutionSignal.SUSPENDED

    def on_resume(self, context: ActivityExecutionContext) -> ExecutionSignal:
        result = context.event_payload if isinstance(context.event_payload, dict) else {}
        status = result.get("status")
        if status != "completed":
            raise ChildWorkflowFailed(
                f"Child workflow {result.get('instance_id')!r} ended {status or 'without a status'}"
                + (f": {result['error']}" if result.get("error") else "")
            )
        context.set("result", result.get("variables") or {})
        return context.complete()
