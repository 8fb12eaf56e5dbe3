"""Input/output bindings.

A binding describes where an activity input comes from at execution time:

- `Literal`: a constant
- `VariableRef`: a named workflow variable
- `InputRef`: a workflow input value
- `OutputRef`: an output recorded by another activity
- `Expression`: a callable evaluated against a read-only view of the context
- `Template`: a Jinja2 template rendered against the same view

Resolution failures raise `BindingError`; they are definition or ordering bugs.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Protocol

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError
from jinja2 import Template as JinjaTemplate

from .errors import BindingError

logger = logging.getLogger(__name__)

_MISSING = object()


class DataContext(Protocol):
    """The data an instance carries between activities."""

    variables: dict[str, object]
    input: dict[str, object]
    outputs: dict[str, dict[str, object]]


class ExpressionContext:
    """Read-only access to variables, workflow input and prior outputs."""

    def __init__(self, data: DataContext) -> None:
        self.variables: Mapping[str, object] = MappingProxyType(data.variables)
        self.input: Mapping[str, object] = MappingProxyType(data.input)
        self.outputs: Mapping[str, Mapping[str, object]] = MappingProxyType(data.outputs)

    def get_variable(self, name: str) -> object:
        value = self.variables.get(name, _MISSING)
        if value is _MISSING:
            raise BindingError(f"Variable {name!r} is not defined")
        return value

    def get_input(self, name: str) -> object:
        value = self.input.get(name, _MISSING)
        if value is _MISSING:
            raise BindingError(f"Workflow input {name!r} was not provided")
        return value

    def get_output(self, activity: object, name: str = "result") -> object:
        activity_id = _activity_id(activity)
        recorded = self.outputs.get(activity_id)
        if recorded is None or name not in recorded:
            raise BindingError(f"Activity {activity_id!r} has no recorded output {name!r}")
        return recorded[name]


def _activity_id(activity: object) -> str:
    if isinstance(activity, str):
        return activity
    activity_id = getattr(activity, "id", None)
    if not activity_id:
        raise BindingError(
            f"{type(activity).__name__} has no id; reference it from a built definition"
        )
    return str(activity_id)


class Binding(ABC):
    __slots__ = ()

    @abstractmethod
    def evaluate(self, context: ExpressionContext) -> object: ...


@dataclass(frozen=True, slots=True)
class Literal(Binding):
    value: object

    def evaluate(self, context: ExpressionContext) -> object:
        return self.value


@dataclass(frozen=True, slots=True)
class VariableRef(Binding):
    name: str

    def evaluate(self, context: ExpressionContext) -> object:
        return context.get_variable(self.name)


@dataclass(frozen=True, slots=True)
class InputRef(Binding):
    name: str

    def evaluate(self, context: ExpressionContext) -> object:
        return context.get_input(self.name)


@dataclass(frozen=True, slots=True)
class OutputRef(Binding):
    activity: object
    output: str = "result"

    def evaluate(self, context: ExpressionContext) -> object:
        return context.get_output(self.activity, self.output)


@dataclass(frozen=True, slots=True)
class Expression(Binding):
    fn: Callable[[ExpressionContext], object]

    def evaluate(self, context: ExpressionContext) -> object:
        return self.fn(context)


_TEMPLATES = Environment(autoescape=False, undefined=StrictUndefined)


@lru_cache(maxsize=256)
def _compile(text: str) -> JinjaTemplate:
    return _TEMPLATES.from_string(text)


@dataclass(frozen=True, slots=True)
class Template(Binding):
    """A Jinja2 template, e.g. ``"Hello {{ variables.name }}"``.

    Available names: ``variables``, ``input`` and ``outputs`` (keyed by
    activity id). Undefined names raise `BindingError`.
    """

    text: str

    def evaluate(self, context: ExpressionContext) -> object:
        try:
            template = _compile(self.text)
            return template.render(
                variables=dict(context.variables),
                input=dict(context.input),
                outputs={k: dict(v) for k, v in context.outputs.items()},
            )
        except TemplateSyntaxError as e:
            raise BindingError(f"Invalid template {self.text!r}: {e}") from e
        except UndefinedError as e:
            raise BindingError(f"Template {self.text!r}: {e}") from e


def as_binding(value: object) -> Binding:
    """Wrap plain values as literals; pass bindings through."""

    if isinstance(value, Binding):
        return value
    return Literal(value)


def resolve(binding: object, context: DataContext) -> object:
    return as_binding(binding).evaluate(ExpressionContext(context))


def check_type(name: str, value: object, expected: type | tuple[type, ...]) -> object:
    if expected is object or value is None:
        return value
    if not isinstance(value, expected):
        raise BindingError(
            f"Input {name!r} expected {_type_name(expected)}, got {type(value).__name__}"
        )
    return value


def _type_name(expected: type | tuple[type, ...]) -> str:
    if isinstance(expected, tuple):
        return " | ".join(t.__name__ for t in expected)
    return expected.__name__


@dataclass(frozen=True, slots=True)
class OutputBinding:
    """Where a committed output lands.

    The value is always recorded against the activity id; `target` optionally
    mirrors it into a workflow variable.
    """

    activity_id: str
    name: str
    target: VariableRef | None = None


def commit(binding: OutputBinding, value: object, context: DataContext) -> None:
    context.outputs.setdefault(binding.activity_id, {})[binding.name] = value
    if binding.target is not None:
        context.variables[binding.target.name] = value
    logger.debug(
        "Committed output",
        extra={"activity_id": binding.activity_id, "output": binding.name},
    )
