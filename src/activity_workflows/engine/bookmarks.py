"""Bookmarks and the process-wide trigger registry.

A `Bookmark` is instance-scoped runtime state: "instance I waits for event
(kind, payload) at frame F". A `TriggerDescriptor` is definition-scoped and
static: "definition D can be started by event (kind, payload)".

The registry is shared by every instance and by the event-delivery path, so
all access goes through one lock. `claim` is the exactly-once gate: of all
callers racing on the same bookmark, only one gets `True`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from .activities.base import Trigger
from .events import Event, match_key, normalize_payload

if TYPE_CHECKING:
    from .definition import WorkflowDefinition

logger = logging.getLogger(__name__)


class MatchPolicy(str, Enum):
    BROADCAST = "broadcast"
    FIRST_MATCH = "first_match"


@dataclass(frozen=True)
class Bookmark:
    bookmark_id: str
    instance_id: str
    kind: str
    payload: Any
    activity_id: str
    frame_id: str
    callback: str = "on_resume"
    created_at: str = ""

    def match_key(self) -> tuple[str, str]:
        return match_key(self.kind, self.payload)

    def matches(self, event: Event) -> bool:
        return self.match_key() == event.match_key()


@dataclass(frozen=True)
class TriggerDescriptor:
    definition_id: str
    activity_id: str
    kind: str
    payload: Any = None

    def match_key(self) -> tuple[str, str]:
        return match_key(self.kind, self.payload)


def describe_triggers(definition: WorkflowDefinition) -> list[TriggerDescriptor]:
    """Project the startable triggers of a definition.

    The root counts when it is a trigger; any other trigger must opt in with
    `can_start_workflow`.
    """

    descriptors: list[TriggerDescriptor] = []
    for activity in definition.walk():
        if not isinstance(activity, Trigger):
            continue
        if activity is not definition.root and not activity.can_start_workflow:
            continue
        descriptors.append(
            TriggerDescriptor(
                definition_id=definition.id,
                activity_id=activity.id or "",
                kind=activity.get_trigger_kind(),
                payload=normalize_payload(activity.get_trigger_payload()),
            )
        )
    return descriptors


class BookmarkRegistry:
    def __init__(self, policy: MatchPolicy = MatchPolicy.BROADCAST) -> None:
        self.policy = policy
        self._lock = threading.Lock()
        self._bookmarks: dict[str, Bookmark] = {}
        self._triggers: dict[str, list[TriggerDescriptor]] = {}

    def register(self, bookmark: Bookmark) -> None:
        with self._lock:
            self._bookmarks[bookmark.bookmark_id] = bookmark

    def remove(self, bookmark: Bookmark | str) -> bool:
        bookmark_id = bookmark if isinstance(bookmark, str) else bookmark.bookmark_id
        with self._lock:
            return self._bookmarks.pop(bookmark_id, None) is not None

    def claim(self, bookmark: Bookmark) -> bool:
        """Atomically take a bookmark out of the registry.

        Returns False when another caller already claimed (or removed) it.
        """

        claimed = self.remove(bookmark)
        if not claimed:
            logger.debug(
                "Bookmark already claimed",
                extra={"bookmark_id": bookmark.bookmark_id, "instance_id": bookmark.instance_id},
            )
        return claimed

    def replace_instance(self, instance_id: str, bookmarks: Iterable[Bookmark]) -> None:
        """Swap an instance's active bookmarks for `bookmarks` in one step."""

        with self._lock:
            for bookmark_id in [
                k for k, b in self._bookmarks.items() if b.instance_id == instance_id
            ]:
                del self._bookmarks[bookmark_id]
            for bookmark in bookmarks:
                self._bookmarks[bookmark.bookmark_id] = bookmark

    def remove_instance(self, instance_id: str) -> list[Bookmark]:
        with self._lock:
            removed = [b for b in self._bookmarks.values() if b.instance_id == instance_id]
            for bookmark in removed:
                del self._bookmarks[bookmark.bookmark_id]
            return removed

    def bookmarks_for(self, instance_id: str) -> list[Bookmark]:
        with self._lock:
            return [b for b in self._bookmarks.values() if b.instance_id == instance_id]

    def all_bookmarks(self) -> list[Bookmark]:
        with self._lock:
            return list(self._bookmarks.values())

    def find_resumable(self, event: Event) -> list[Bookmark]:
        """Every matching bookmark, oldest first.

        Not cut down under `FIRST_MATCH`: the caller claims in order and stops
        at the first claim it wins.
        """

        key = event.match_key()
        with self._lock:
            matches = [b for b in self._bookmarks.values() if b.match_key() == key]
        matches.sort(key=lambda b: b.created_at)
        return matches

    def index_triggers(self, definition: WorkflowDefinition) -> list[TriggerDescriptor]:
        descriptors = describe_triggers(definition)
        with self._lock:
            self._triggers[definition.id] = descriptors
        logger.debug(
            "Indexed triggers",
            extra={"definition_id": definition.id, "triggers": len(descriptors)},
        )
        return descriptors

    def unindex_triggers(self, definition_id: str) -> None:
        with self._lock:
            self._triggers.pop(definition_id, None)

    def find_startable(self, event: Event) -> list[TriggerDescriptor]:
        key = event.match_key()
        with self._lock:
            matches = [
                d for descriptors in self._triggers.values() for d in descriptors
                if d.match_key() == key
            ]
        if self.policy is MatchPolicy.FIRST_MATCH:
            return matches[:1]
        return matches
