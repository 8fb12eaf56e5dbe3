"""Workflow definitions and the builder that produces them.

A definition is immutable once built: the builder assigns ids, validates the
tree and seals every node. The scheduler consumes a definition read-only, once
per instance.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import ClassVar

from .activities.base import Activity, Trigger
from .errors import DefinitionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InputDefinition:
    name: str
    type: type | tuple[type, ...] = object
    required: bool = False
    default: object = None
    description: str = ""


@dataclass(frozen=True, slots=True)
class VariableDefinition:
    name: str
    default: object = None
    description: str = ""


def walk(root: Activity) -> Iterator[Activity]:
    """Depth-first, pre-order, children in declaration order."""

    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(list(node.children())))


@dataclass(frozen=True)
class WorkflowDefinition:
    id: str
    name: str
    root: Activity
    version: int = 1
    description: str = ""
    inputs: tuple[InputDefinition, ...] = ()
    variables: tuple[VariableDefinition, ...] = ()
    activities: Mapping[str, Activity] = field(default_factory=lambda: MappingProxyType({}))

    def get_activity(self, activity_id: str) -> Activity:
        try:
            return self.activities[activity_id]
        except KeyError:
            raise DefinitionError(
                f"Definition {self.id!r} has no activity {activity_id!r}"
            ) from None

    def walk(self) -> Iterator[Activity]:
        return walk(self.root)

    def triggers(self) -> list[Trigger]:
        return [a for a in self.walk() if isinstance(a, Trigger)]


class WorkflowBuilder:
    """Assemble a root activity plus declared inputs and variables."""

    def __init__(self, id: str | None = None, name: str | None = None) -> None:  # noqa: A002
        self.id = id
        self.name = name
        self.version = 1
        self.description = ""
        self.root: Activity | None = None
        self.inputs: list[InputDefinition] = []
        self.variables: list[VariableDefinition] = []

    def add_input(
        self,
        name: str,
        type: type | tuple[type, ...] = object,  # noqa: A002
        *,
        required: bool = False,
        default: object = None,
        description: str = "",
    ) -> WorkflowBuilder:
        self.inputs.append(
            InputDefinition(
                name=name, type=type, required=required, default=default, description=description
            )
        )
        return self

    def add_variable(
        self, name: str, default: object = None, *, description: str = ""
    ) -> WorkflowBuilder:
        self.variables.append(
            VariableDefinition(name=name, default=default, description=description)
        )
        return self

    def build(self) -> WorkflowDefinition:
        if self.root is None:
            raise DefinitionError("A workflow needs a root activity")

        definition_id = self.id or self.name
        if not definition_id:
            raise DefinitionError("A workflow needs an id or a name")

        _reject_duplicates("input", [i.name for i in self.inputs])
        _reject_duplicates("variable", [v.name for v in self.variables])

        nodes = list(walk(self.root))
        activities = _assign_ids(nodes)

        for node in nodes:
            node.validate()
        for node in nodes:
            if not node.sealed:
                node.seal()

        definition = WorkflowDefinition(
            id=definition_id,
            name=self.name or definition_id,
            root=self.root,
            version=self.version,
            description=self.description,
            inputs=tuple(self.inputs),
            variables=tuple(self.variables),
            activities=MappingProxyType(activities),
        )
        logger.debug(
            "Built workflow definition",
            extra={"definition_id": definition.id, "activities": len(activities)},
        )
        return definition


def _reject_duplicates(kind: str, names: list[str]) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise DefinitionError(f"Duplicate {kind} {name!r}")
        seen.add(name)


def _assign_ids(nodes: list[Activity]) -> dict[str, Activity]:
    seen_nodes: set[int] = set()
    for node in nodes:
        if id(node) in seen_nodes:
            raise DefinitionError(f"{node!r} appears more than once in the tree")
        seen_nodes.add(id(node))

    taken: dict[str, Activity] = {}
    for node in nodes:
        if node.id is None:
            continue
        if node.id in taken:
            raise DefinitionError(f"Duplicate activity id {node.id!r}")
        taken[node.id] = node

    counters: dict[str, int] = {}
    for node in nodes:
        if node.id is not None:
            continue
        n = counters.get(node.type_name, 0)
        while True:
            n += 1
            candidate = f"{node.type_name}{n}"
            if candidate not in taken:
                break
        counters[node.type_name] = n
        node.id = candidate
        taken[candidate] = node

    return {node.id or "": node for node in nodes}


class WorkflowBase(ABC):
    """Code-first workflow: subclass and populate the builder.

    `definition()` builds a fresh, sealed definition every time it is called.
    """

    definition_id: ClassVar[str] = ""
    version: ClassVar[int] = 1

    @abstractmethod
    def build(self, builder: WorkflowBuilder) -> None: ...

    @classmethod
    def definition(cls) -> WorkflowDefinition:
        builder = WorkflowBuilder(id=cls.definition_id or cls.__name__, name=cls.__name__)
        builder.version = cls.version
        doc = (cls.__doc__ or "").strip()
        builder.description = doc.splitlines()[0] if doc else ""
        cls().build(builder)
        return builder.build()
