"""Drive an instance's work list until it completes, suspends or faults.

The work list is an explicit deque. Work produced by a step (children a node
scheduled, the callback of a completed child) goes to the front, so execution
is depth-first without native recursion, and suspension can happen at any depth.
"""

from __future__ import annotations

import logging

from .activities.base import DEFAULT_OUTCOME, Activity, ChildCompleted, ExecutionSignal
from .bookmarks import Bookmark
from .context import (
    ActivityExecutionContext,
    FaultRecord,
    Frame,
    WorkflowExecutionContext,
    WorkItem,
    WorkKind,
)
from .errors import BindingError, ExecutionFault, SchedulingInvariantViolation
from .state_machine import InstanceStatus, transition

logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, *, max_steps_per_run: int = 0) -> None:
        self.max_steps_per_run = max_steps_per_run

    def start(self, context: WorkflowExecutionContext) -> InstanceStatus:
        root = context.definition.root
        frame = context.add_frame(root, parent=None, callback=None)
        context.work.append(WorkItem(kind=WorkKind.EXECUTE, frame_id=frame.frame_id))
        logger.info(
            "Starting instance",
            extra={"instance_id": context.instance_id, "definition_id": context.definition.id},
        )
        return self.run(context)

    def resume(
        self, context: WorkflowExecutionContext, bookmark: Bookmark, payload: object = None
    ) -> InstanceStatus:
        """Remove `bookmark` and run its owner's resume callback."""

        if context.remove_bookmark(bookmark.bookmark_id) is None:
            raise SchedulingInvariantViolation(
                f"Bookmark {bookmark.bookmark_id!r} is not active on {context.instance_id!r}"
            )
        context.status = transition(current=context.status, to=InstanceStatus.RUNNING)
        context.work.append(
            WorkItem(
                kind=WorkKind.RESUME,
                frame_id=bookmark.frame_id,
                callback=bookmark.callback,
                payload=payload,
            )
        )
        logger.info(
            "Resuming instance",
            extra={
                "instance_id": context.instance_id,
                "activity_id": bookmark.activity_id,
                "bookmark_kind": bookmark.kind,
            },
        )
        return self.run(context)

    def cancel(self, context: WorkflowExecutionContext) -> InstanceStatus:
        context.status = transition(current=context.status, to=InstanceStatus.CANCELED)
        context.work.clear()
        context.bookmarks.clear()
        logger.info("Canceled instance", extra={"instance_id": context.instance_id})
        return context.status

    def run(self, context: WorkflowExecutionContext) -> InstanceStatus:
        steps = 0
        while context.work and context.status is InstanceStatus.RUNNING:
            steps += 1
            if self.max_steps_per_run and steps > self.max_steps_per_run:
                item = context.work[0]
                frame = context.frames.get(item.frame_id)
                self._fault_instance(
                    context,
                    FaultRecord(
                        activity_id=frame.activity_id if frame else "",
                        frame_id=item.frame_id,
                        error_type="StepLimitExceeded",
                        message=f"More than {self.max_steps_per_run} steps in one run",
                        fatal=True,
                    ),
                )
                break
            self._step(context, context.work.popleft())
        return self._settle(context)

    def _step(self, context: WorkflowExecutionContext, item: WorkItem) -> None:
        frame = context.frames.get(item.frame_id)
        if frame is None:
            # Discarded by a fault boundary after the item was queued.
            return

        activity = context.definition.get_activity(frame.activity_id)
        is_trigger = (
            item.kind is WorkKind.EXECUTE
            and context.trigger_activity_id is not None
            and context.trigger_activity_id == activity.id
        )
        event_payload = item.payload
        if is_trigger:
            context.trigger_activity_id = None
            event_payload = context.trigger_payload

        call = ActivityExecutionContext(
            context, frame, activity, event_payload=event_payload, is_trigger=is_trigger
        )

        try:
            signal = self._invoke(activity, call, item)
            self._apply(context, frame, activity, call, signal)
        except (SchedulingInvariantViolation, BindingError) as e:
            self._fault_instance(context, _record(e, frame, fatal=True))
        except Exception as e:
            self._contain(context, frame, _record(e, frame))

    def _invoke(
        self, activity: Activity, call: ActivityExecutionContext, item: WorkItem
    ) -> object:
        if item.kind is WorkKind.EXECUTE:
            return activity.execute(call)
        if item.kind is WorkKind.CALLBACK:
            return getattr(activity, item.callback or "on_child_completed")(call, item.child)
        if item.kind is WorkKind.RESUME:
            return getattr(activity, item.callback or "on_resume")(call)
        return activity.on_fault(call, item.fault)  # type: ignore[attr-defined]

    def _apply(
        self,
        context: WorkflowExecutionContext,
        frame: Frame,
        activity: Activity,
        call: ActivityExecutionContext,
        signal: object,
    ) -> None:
        if not isinstance(signal, ExecutionSignal):
            raise SchedulingInvariantViolation(
                f"{activity.id!r} returned {signal!r} instead of an ExecutionSignal"
            )

        if signal is ExecutionSignal.COMPLETED:
            if call.scheduled or call.created_bookmarks:
                raise SchedulingInvariantViolation(
                    f"{activity.id!r} completed after scheduling children or creating bookmarks"
                )
            if context.children_of(frame.frame_id) or context.bookmarks_for_frame(frame.frame_id):
                raise SchedulingInvariantViolation(
                    f"{activity.id!r} completed while children or bookmarks are still pending"
                )
            if call.outcomes is None:
                call.complete()
            self._complete(context, frame, call.outcomes or (DEFAULT_OUTCOME,))
            return

        if signal is ExecutionSignal.SCHEDULED_CHILDREN:
            if call.created_bookmarks:
                raise SchedulingInvariantViolation(
                    f"{activity.id!r} created a bookmark but reported scheduled children"
                )
            if not context.children_of(frame.frame_id):
                raise SchedulingInvariantViolation(
                    f"{activity.id!r} reported scheduled children but none are pending"
                )
            items = [WorkItem(kind=WorkKind.EXECUTE, frame_id=f.frame_id) for f in call.scheduled]
            context.work.extendleft(reversed(items))
            return

        if call.scheduled:
            raise SchedulingInvariantViolation(
                f"{activity.id!r} scheduled children but reported suspension"
            )
        if not context.bookmarks_for_frame(frame.frame_id):
            raise SchedulingInvariantViolation(
                f"{activity.id!r} suspended without an active bookmark"
            )

    def _complete(
        self, context: WorkflowExecutionContext, frame: Frame, outcomes: tuple[str, ...]
    ) -> None:
        context.remove_frame(frame.frame_id)
        logger.debug(
            "Activity completed",
            extra={
                "instance_id": context.instance_id,
                "activity_id": frame.activity_id,
                "outcomes": list(outcomes),
            },
        )
        if frame.parent_id is None:
            return
        context.work.appendleft(
            WorkItem(
                kind=WorkKind.CALLBACK,
                frame_id=frame.parent_id,
                callback=frame.callback,
                child=ChildCompleted(
                    activity_id=frame.activity_id, frame_id=frame.frame_id, outcomes=outcomes
                ),
            )
        )

    def _contain(
        self, context: WorkflowExecutionContext, frame: Frame, record: FaultRecord
    ) -> None:
        """Hand a fault to the nearest enclosing fault boundary, if any."""

        fault = ExecutionFault.from_record(record, instance_id=context.instance_id)
        logger.warning(str(fault), extra={"instance_id": context.instance_id})

        for ancestor in context.ancestors_of(frame):
            boundary = context.definition.get_activity(ancestor.activity_id)
            if not boundary.catches_faults:
                continue
            for descendant in context.descendants_of(ancestor.frame_id):
                context.remove_frame(descendant.frame_id)
            context.incidents.append(record)
            context.work.appendleft(
                WorkItem(kind=WorkKind.FAULT, frame_id=ancestor.frame_id, fault=record)
            )
            logger.info(
                "Fault contained",
                extra={
                    "instance_id": context.instance_id,
                    "activity_id": record.activity_id,
                    "boundary_id": boundary.id,
                },
            )
            return

        self._fault_instance(context, record)

    def _fault_instance(self, context: WorkflowExecutionContext, record: FaultRecord) -> None:
        context.fault = record
        context.status = transition(current=context.status, to=InstanceStatus.FAULTED)
        context.work.clear()
        context.bookmarks.clear()
        logger.error(
            "Instance faulted",
            extra={
                "instance_id": context.instance_id,
                "activity_id": record.activity_id,
                "error_type": record.error_type,
                "error": record.message,
            },
        )

    def _settle(self, context: WorkflowExecutionContext) -> InstanceStatus:
        if context.status is not InstanceStatus.RUNNING:
            return context.status

        if context.bookmarks:
            context.status = transition(current=context.status, to=InstanceStatus.SUSPENDED)
        elif context.frames:
            stuck = sorted(f.activity_id for f in context.frames.values())
            self._fault_instance(
                context,
                FaultRecord(
                    activity_id=stuck[0],
                    frame_id=None,
                    error_type=SchedulingInvariantViolation.__name__,
                    message=f"Nothing left to run but activities never completed: {stuck}",
                    fatal=True,
                ),
            )
        else:
            context.status = transition(current=context.status, to=InstanceStatus.COMPLETED)

        logger.info(
            "Instance settled",
            extra={"instance_id": context.instance_id, "status": context.status.value},
        )
        return context.status


def _record(exc: BaseException, frame: Frame, *, fatal: bool = False) -> FaultRecord:
    return FaultRecord(
        activity_id=frame.activity_id,
        frame_id=frame.frame_id,
        error_type=type(exc).__name__,
        message=str(exc),
        fatal=fatal,
    )
