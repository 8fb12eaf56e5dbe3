"""Activity Workflows.

An embeddable engine for long-running workflows built from activities:
- code-first definitions assembled with a builder
- schedule-then-callback execution that can suspend at any depth
- bookmarks and triggers resumed or started by external events
- instance state persisted as JSON between events
"""

__version__ = "0.1.0"

from activity_workflows.engine.config import EngineSettings
from activity_workflows.engine.definition import WorkflowBase, WorkflowBuilder, WorkflowDefinition
from activity_workflows.engine.events import Event
from activity_workflows.engine.runtime import InstanceHandle, WorkflowRuntime
from activity_workflows.engine.state_machine import InstanceStatus

__all__ = [
    "__version__",
    "EngineSettings",
    "Event",
    "InstanceHandle",
    "InstanceStatus",
    "WorkflowBase",
    "WorkflowBuilder",
    "WorkflowDefinition",
    "WorkflowRuntime",
]
