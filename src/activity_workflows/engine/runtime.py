"""Host-facing entry points.

The runtime owns the process-scoped collaborators (definition index, bookmark
registry, instance store, service provider) and is the only place where
instance state is loaded, run and persisted. Hosts create one at startup and
call `recover()` to re-register bookmarks of instances suspended by a
previous process.
"""

from __future__ import annotations

import copy
import logging
import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass

from .activities.dispatch import CHILD_COMPLETED
from .bindings import check_type
from .bookmarks import Bookmark, BookmarkRegistry, MatchPolicy, TriggerDescriptor
from .config import EngineSettings
from .context import ChildDispatch, FaultRecord, WorkflowExecutionContext
from .definition import WorkflowDefinition
from .errors import (
    BindingError,
    BookmarkConflict,
    DefinitionNotFound,
    ExecutionFault,
    InstanceNotFound,
)
from .events import Event, normalize_payload
from .logging import instance_logger
from .persistence import InMemoryInstanceStore, InstanceState, InstanceStore, restore, snapshot
from .scheduler import Scheduler
from .services import ServiceProvider
from .state_machine import InstanceStatus, is_terminal

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InstanceHandle:
    instance_id: str
    definition_id: str
    status: InstanceStatus
    bookmarks: tuple[Bookmark, ...] = ()
    fault: FaultRecord | None = None

    def raise_for_fault(self) -> None:
        """Raise `ExecutionFault` if the instance ended faulted."""

        if self.status is InstanceStatus.FAULTED and self.fault is not None:
            raise ExecutionFault.from_record(self.fault, instance_id=self.instance_id)


class WorkflowRuntime:
    def __init__(
        self,
        *,
        settings: EngineSettings | None = None,
        store: InstanceStore | None = None,
        registry: BookmarkRegistry | None = None,
        services: ServiceProvider | None = None,
    ) -> None:
        self.settings = settings or EngineSettings()
        self.store: InstanceStore = store or InMemoryInstanceStore()
        self.registry = registry or BookmarkRegistry(policy=self.settings.match_policy)
        self.services = services or ServiceProvider.default()
        self.scheduler = Scheduler(max_steps_per_run=self.settings.max_steps_per_run)

        self._lock = threading.Lock()
        self._definitions: dict[str, WorkflowDefinition] = {}
        self._instance_locks: dict[str, threading.Lock] = {}

    # Definitions

    def register_definition(self, definition: WorkflowDefinition) -> list[TriggerDescriptor]:
        with self._lock:
            self._definitions[definition.id] = definition
        descriptors = self.registry.index_triggers(definition)
        logger.info(
            "Registered workflow definition",
            extra={
                "definition_id": definition.id,
                "version": definition.version,
                "triggers": [d.kind for d in descriptors],
            },
        )
        return descriptors

    def get_definition(self, definition_id: str) -> WorkflowDefinition:
        with self._lock:
            definition = self._definitions.get(definition_id)
        if definition is None:
            raise DefinitionNotFound(f"No workflow definition registered as {definition_id!r}")
        return definition

    def definitions(self) -> list[WorkflowDefinition]:
        with self._lock:
            return list(self._definitions.values())

    # Instances

    def start_new_instance(
        self,
        definition: WorkflowDefinition | str,
        input_values: Mapping[str, object] | None = None,
        *,
        trigger: TriggerDescriptor | None = None,
        event: Event | None = None,
        instance_id: str | None = None,
        parent_instance_id: str | None = None,
    ) -> InstanceHandle:
        if isinstance(definition, str):
            definition = self.get_definition(definition)
        elif definition.id not in self._definition_ids():
            self.register_definition(definition)

        inputs = _validate_input(definition, input_values or {})
        context = WorkflowExecutionContext(
            instance_id=instance_id or uuid.uuid4().hex,
            definition=definition,
            services=self.services,
            input=inputs,
            variables={v.name: copy.deepcopy(v.default) for v in definition.variables},
            trigger_activity_id=trigger.activity_id if trigger is not None else None,
            trigger_payload=normalize_payload(event.payload) if event is not None else None,
            parent_instance_id=parent_instance_id,
        )

        with self._instance_lock(context.instance_id):
            self.scheduler.start(context)
            self._persist(context)
        if self._after_run(context):
            return self._latest_handle(context)
        return _handle(context)

    def resume_instance(self, instance_id: str, event: Event) -> InstanceStatus:
        """Resume `instance_id` with `event`; unchanged if nothing matches."""

        with self._instance_lock(instance_id):
            state = self._load(instance_id)
            if state.status is not InstanceStatus.SUSPENDED:
                return state.status
            bookmark = next((b for b in state.bookmarks if b.matches(event)), None)
            if bookmark is None:
                instance_logger(logger, instance_id).info(
                    "Event matched no bookmark", extra={"event_kind": event.kind}
                )
                return state.status
            self.registry.remove(bookmark)
            context = self._resume_loaded(state, bookmark, event)
        if self._after_run(context):
            return self._latest_handle(context).status
        return context.status

    def dispatch_event(self, event: Event, *, require_single: bool = False) -> list[str]:
        """Deliver `event` to matching bookmarks, then to matching start triggers.

        Returns the ids of every instance resumed or started.
        """

        affected: list[str] = []
        first_match = self.registry.policy is MatchPolicy.FIRST_MATCH
        resumable = self.registry.find_resumable(event)
        startable = self.registry.find_startable(event)

        matches = (min(len(resumable), 1) if first_match else len(resumable)) + len(startable)
        if require_single and matches > 1:
            raise BookmarkConflict(kind=event.kind, matches=matches)

        # Oldest first; under first_match a lost claim falls through to the next one.
        for bookmark in resumable:
            if not self.registry.claim(bookmark):
                continue
            if self._resume_bookmark(bookmark, event) is not None:
                affected.append(bookmark.instance_id)
                if first_match:
                    break

        if first_match and affected:
            return affected

        for descriptor in startable:
            try:
                handle = self.start_new_instance(
                    descriptor.definition_id, {}, trigger=descriptor, event=event
                )
            except BindingError as e:
                logger.error(
                    "Could not start workflow from event",
                    extra={
                        "definition_id": descriptor.definition_id,
                        "activity_id": descriptor.activity_id,
                        "event_kind": event.kind,
                        "error": str(e),
                    },
                )
                continue
            affected.append(handle.instance_id)

        logger.info(
            "Dispatched event",
            extra={"event_kind": event.kind, "affected": len(affected)},
        )
        return list(dict.fromkeys(affected))

    def cancel_instance(self, instance_id: str) -> InstanceStatus:
        with self._instance_lock(instance_id):
            state = self._load(instance_id)
            if is_terminal(state.status):
                return state.status
            context = restore(state, self.get_definition(state.definition_id), self.services)
            self.scheduler.cancel(context)
            self._persist(context)
        self._after_run(context)
        return context.status

    def get_instance(self, instance_id: str) -> InstanceState:
        return self._load(instance_id)

    def list_instances(self, status: InstanceStatus | None = None) -> list[InstanceState]:
        states = self.store.list()
        if status is None:
            return states
        return [s for s in states if s.status is status]

    def recover(self) -> int:
        """Re-register bookmarks of every suspended instance in the store."""

        count = 0
        for state in self.list_instances(InstanceStatus.SUSPENDED):
            self.registry.replace_instance(state.instance_id, state.bookmarks)
            count += len(state.bookmarks)
        logger.info("Recovered bookmarks", extra={"bookmarks": count})
        return count

    # Internals

    def _definition_ids(self) -> set[str]:
        with self._lock:
            return set(self._definitions)

    def _instance_lock(self, instance_id: str) -> threading.Lock:
        with self._lock:
            return self._instance_locks.setdefault(instance_id, threading.Lock())

    def _load(self, instance_id: str) -> InstanceState:
        state = self.store.load(instance_id)
        if state is None:
            raise InstanceNotFound(f"No workflow instance {instance_id!r}")
        return state

    def _resume_bookmark(self, bookmark: Bookmark, event: Event) -> InstanceStatus | None:
        with self._instance_lock(bookmark.instance_id):
            state = self.store.load(bookmark.instance_id)
            if state is None or state.status is not InstanceStatus.SUSPENDED:
                return None
            current = next(
                (b for b in state.bookmarks if b.bookmark_id == bookmark.bookmark_id), None
            )
            if current is None:
                return None
            context = self._resume_loaded(state, current, event)
        if self._after_run(context):
            return self._latest_handle(context).status
        return context.status

    def _resume_loaded(
        self, state: InstanceState, bookmark: Bookmark, event: Event
    ) -> WorkflowExecutionContext:
        definition = self.get_definition(state.definition_id)
        context = restore(state, definition, self.services)
        self.scheduler.resume(context, bookmark, event.payload)
        self._persist(context)
        return context

    def _persist(self, context: WorkflowExecutionContext) -> None:
        if is_terminal(context.status) and not self.settings.keep_completed:
            self.store.delete(context.instance_id)
        else:
            self.store.save(snapshot(context))
        self.registry.replace_instance(context.instance_id, context.bookmarks)
        if is_terminal(context.status):
            # Terminal instances never run again.
            with self._lock:
                self._instance_locks.pop(context.instance_id, None)
        instance_logger(logger, context.instance_id).debug(
            "Persisted instance",
            extra={"status": context.status.value, "bookmarks": len(context.bookmarks)},
        )

    # Child workflows

    def _after_run(self, context: WorkflowExecutionContext) -> bool:
        """Start queued children and report a finished child to its parent.

        Called after the instance lock is released. Returns True when children
        were started, since they may already have resumed `context`'s instance.
        """

        dispatches, context.pending_dispatches = context.pending_dispatches, []
        if dispatches and context.status in (InstanceStatus.FAULTED, InstanceStatus.CANCELED):
            instance_logger(logger, context.instance_id).warning(
                "Not starting child workflows of a stopped instance",
                extra={"status": context.status.value, "children": len(dispatches)},
            )
            dispatches = []
        for child in dispatches:
            self._start_child(context.instance_id, child)

        if is_terminal(context.status) and context.parent_instance_id is not None:
            fault = context.fault
            self._notify_parent(
                context.parent_instance_id,
                {
                    "instance_id": context.instance_id,
                    "status": context.status.value,
                    "variables": context.variables,
                    "error": f"{fault.error_type}: {fault.message}" if fault else None,
                },
            )
        return bool(dispatches)

    def _start_child(self, parent_id: str, child: ChildDispatch) -> None:
        try:
            self.start_new_instance(
                child.definition_id,
                child.input,
                instance_id=child.instance_id,
                parent_instance_id=parent_id,
            )
        except (BindingError, DefinitionNotFound) as e:
            instance_logger(logger, parent_id).error(
                "Could not start child workflow",
                extra={
                    "definition_id": child.definition_id,
                    "child_instance_id": child.instance_id,
                    "error": str(e),
                },
            )
            self._notify_parent(
                parent_id,
                {
                    "instance_id": child.instance_id,
                    "status": InstanceStatus.FAULTED.value,
                    "variables": {},
                    "error": str(e),
                },
            )

    def _notify_parent(self, parent_id: str, result: dict[str, object]) -> bool:
        waiting_for = Event(CHILD_COMPLETED, {"instance_id": result["instance_id"]})
        for bookmark in self.registry.bookmarks_for(parent_id):
            if bookmark.matches(waiting_for) and self.registry.claim(bookmark):
                delivered = Event(CHILD_COMPLETED, normalize_payload(result))
                return self._resume_bookmark(bookmark, delivered) is not None
        return False

    def _latest_handle(self, context: WorkflowExecutionContext) -> InstanceHandle:
        state = self.store.load(context.instance_id)
        if state is None:
            return _handle(context)
        return InstanceHandle(
            instance_id=state.instance_id,
            definition_id=state.definition_id,
            status=state.status,
            bookmarks=tuple(state.bookmarks),
            fault=state.fault,
        )


def _validate_input(
    definition: WorkflowDefinition, values: Mapping[str, object]
) -> dict[str, object]:
    inputs = dict(values)
    for declared in definition.inputs:
        if declared.name not in inputs:
            if declared.required:
                raise BindingError(
                    f"Workflow {definition.id!r} requires input {declared.name!r}"
                )
            inputs[declared.name] = copy.deepcopy(declared.default)
            continue
        check_type(declared.name, inputs[declared.name], declared.type)
    return inputs


def _handle(context: WorkflowExecutionContext) -> InstanceHandle:
    return InstanceHandle(
        instance_id=context.instance_id,
        definition_id=context.definition.id,
        status=context.status,
        bookmarks=tuple(context.bookmarks),
        fault=context.fault,
    )
