"""Activity nodes.

- `base`: the execution contract, metadata and the leaf/trigger kinds
- `primitives`: console output, variables, inline code, named events, decisions
- `composites`: sequence, branch, parallel fan-out, fault containment
- `dispatch`: child workflow instances
- `flowchart`: outcome-routed graphs
- `http`: HTTP requests through the service locator
"""

from .base import (
    Activity,
    ActivityMetadata,
    ChildCompleted,
    CodeActivity,
    ExecutionSignal,
    InputDescriptor,
    OutputDescriptor,
    Trigger,
)
from .composites import FaultBoundary, If, Parallel, Sequence
from .dispatch import DispatchWorkflow
from .flowchart import Connection, Flowchart
from .http import SendHttpRequest
from .primitives import Decision, Event, Inline, SetVariable, WriteLine

__all__ = [
    "Activity",
    "ActivityMetadata",
    "ChildCompleted",
    "CodeActivity",
    "Connection",
    "Decision",
    "DispatchWorkflow",
    "Event",
    "ExecutionSignal",
    "FaultBoundary",
    "Flowchart",
    "If",
    "Inline",
    "InputDescriptor",
    "OutputDescriptor",
    "Parallel",
    "SendHttpRequest",
    "Sequence",
    "SetVariable",
    "Trigger",
    "WriteLine",
]
