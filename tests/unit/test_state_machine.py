"""Unit tests for the instance status state machine."""

from __future__ import annotations

import pytest

from activity_workflows.engine.errors import IllegalTransitionError
from activity_workflows.engine.state_machine import (
    InstanceStatus,
    is_terminal,
    transition,
)


def test_transition_rejects_leaving_a_terminal_status() -> None:
    for status in (InstanceStatus.COMPLETED, InstanceStatus.FAULTED, InstanceStatus.CANCELED):
        with pytest.raises(IllegalTransitionError):
            transition(current=status, to=InstanceStatus.RUNNING)


def test_suspended_instance_can_only_resume_fault_or_cancel() -> None:
    assert transition(current=InstanceStatus.SUSPENDED, to=InstanceStatus.RUNNING) == (
        InstanceStatus.RUNNING
    )
    with pytest.raises(IllegalTransitionError):
        transition(current=InstanceStatus.SUSPENDED, to=InstanceStatus.COMPLETED)


def test_illegal_transition_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="completed -> suspended"):
        transition(current=InstanceStatus.COMPLETED, to=InstanceStatus.SUSPENDED)


def test_is_terminal() -> None:
    assert is_terminal(InstanceStatus.CANCELED)
    assert not is_terminal(InstanceStatus.SUSPENDED)
    assert not is_terminal(InstanceStatus.RUNNING)
