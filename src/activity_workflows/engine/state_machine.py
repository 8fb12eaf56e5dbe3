from __future__ import annotations

from enum import Enum

from .errors import IllegalTransitionError


class InstanceStatus(str, Enum):
    RUNNING = "running"
    SUSPENDED = "suspended"
    COMPLETED = "completed"
    FAULTED = "faulted"
    CANCELED = "canceled"


ALLOWED_TRANSITIONS: dict[InstanceStatus, set[InstanceStatus]] = {
    InstanceStatus.RUNNING: {
        InstanceStatus.RUNNING,
        InstanceStatus.SUSPENDED,
        InstanceStatus.COMPLETED,
        InstanceStatus.FAULTED,
        InstanceStatus.CANCELED,
    },
    InstanceStatus.SUSPENDED: {
        InstanceStatus.RUNNING,
        InstanceStatus.FAULTED,
        InstanceStatus.CANCELED,
    },
    InstanceStatus.COMPLETED: set(),
    InstanceStatus.FAULTED: set(),
    InstanceStatus.CANCELED: set(),
}

TERMINAL_STATUSES: frozenset[InstanceStatus] = frozenset(
    {InstanceStatus.COMPLETED, InstanceStatus.FAULTED, InstanceStatus.CANCELED}
)


def transition(*, current: InstanceStatus, to: InstanceStatus) -> InstanceStatus:
    allowed = ALLOWED_TRANSITIONS.get(current, set())
    if to not in allowed:
        raise IllegalTransitionError(f"Illegal transition: {current.value} -> {to.value}")
    return to


def is_terminal(status: InstanceStatus) -> bool:
    return status in TERMINAL_STATUSES
