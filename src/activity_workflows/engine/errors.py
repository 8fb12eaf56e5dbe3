"""Exception taxonomy for the workflow engine.

- `BindingError`: a missing or mistyped input/output reference. Always a
  definition or ordering bug, never retried.
- `ExecutionFault`: an activity raised. Recorded per node and instance.
- `SchedulingInvariantViolation`: an activity returned without completing,
  scheduling children, or suspending. Fatal for the instance.
- `BookmarkConflict`: more matches than the caller allowed for.
- `ChildWorkflowFailed`: a dispatched child ended faulted or canceled while
  its parent waited on it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .context import FaultRecord


class WorkflowError(Exception):
    """Base class for all engine errors."""


class BindingError(WorkflowError):
    pass


class DefinitionError(WorkflowError, ValueError):
    pass


class SchedulingInvariantViolation(WorkflowError):
    pass


class IllegalTransitionError(WorkflowError, ValueError):
    pass


class ChildWorkflowFailed(WorkflowError):
    pass


class ExecutionFault(WorkflowError):
    """An unhandled error raised while a node was executing."""

    def __init__(
        self,
        *,
        instance_id: str,
        activity_id: str,
        frame_id: str | None,
        error_type: str,
        message: str,
    ) -> None:
        super().__init__(f"{activity_id} faulted: {error_type}: {message}")
        self.instance_id = instance_id
        self.activity_id = activity_id
        self.frame_id = frame_id
        self.error_type = error_type
        self.message = message

    @classmethod
    def from_record(cls, record: FaultRecord, *, instance_id: str) -> ExecutionFault:
        return cls(
            instance_id=instance_id,
            activity_id=record.activity_id,
            frame_id=record.frame_id,
            error_type=record.error_type,
            message=record.message,
        )


@dataclass(frozen=True, slots=True)
class BookmarkConflict(WorkflowError):
    """Raised only when a caller asked for a single match and got several."""

    kind: str
    matches: int

    def __str__(self) -> str:
        return f"Event {self.kind!r} matched {self.matches} bookmarks"


class InstanceNotFound(WorkflowError, KeyError):
    pass


class DefinitionNotFound(WorkflowError, KeyError):
    pass


class ServiceNotFound(WorkflowError, KeyError):
    pass
