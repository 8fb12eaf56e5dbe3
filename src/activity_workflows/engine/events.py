from __future__ import annotations

import json
from dataclasses import dataclass


def normalize_payload(payload: object) -> object:
    """Return the payload as it reads back from JSON.

    Bookmark payloads are compared by equality after persistence, so tuples
    and lists (and other JSON-equivalent shapes) must compare equal.
    """

    return json.loads(json.dumps(payload, sort_keys=True, ensure_ascii=False))


def match_key(kind: str, payload: object) -> tuple[str, str]:
    return (kind, json.dumps(normalize_payload(payload), sort_keys=True, ensure_ascii=False))


@dataclass(frozen=True, slots=True)
class Event:
    """An external signal delivered by the host.

    Events never perform work. They either wake suspended instances whose
    bookmarks match `(kind, payload)` or start new instances whose triggers do.
    """

    kind: str
    payload: object = None

    def match_key(self) -> tuple[str, str]:
        return match_key(self.kind, self.payload)
