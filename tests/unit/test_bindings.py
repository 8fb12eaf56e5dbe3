"""Unit tests for input/output bindings."""

from __future__ import annotations

from types import SimpleNamespace

import pytest

from activity_workflows.engine.activities import WriteLine
from activity_workflows.engine.bindings import (
    Expression,
    ExpressionContext,
    InputRef,
    Literal,
    OutputBinding,
    OutputRef,
    Template,
    VariableRef,
    as_binding,
    check_type,
    commit,
    resolve,
)
from activity_workflows.engine.errors import BindingError


def _data(**overrides: object) -> SimpleNamespace:
    data = SimpleNamespace(
        variables={"name": "Ada"},
        input={"count": 3},
        outputs={"Generate1": {"result": 42}},
    )
    for key, value in overrides.items():
        setattr(data, key, value)
    return data


def test_bindings_resolve_against_instance_data() -> None:
    data = _data()

    assert resolve(Literal("x"), data) == "x"
    assert resolve(VariableRef("name"), data) == "Ada"
    assert resolve(InputRef("count"), data) == 3
    assert resolve(OutputRef("Generate1"), data) == 42
    assert resolve(Expression(lambda c: c.get_input("count") * 2), data) == 6


def test_plain_values_are_wrapped_as_literals() -> None:
    assert as_binding(5) == Literal(5)
    ref = VariableRef("name")
    assert as_binding(ref) is ref


def test_missing_references_raise_binding_error() -> None:
    data = _data()

    with pytest.raises(BindingError, match="Variable 'missing'"):
        resolve(VariableRef("missing"), data)
    with pytest.raises(BindingError, match="input 'missing'"):
        resolve(InputRef("missing"), data)
    with pytest.raises(BindingError, match="no recorded output"):
        resolve(OutputRef("Generate1", "other"), data)


def test_output_ref_to_an_unbuilt_activity_is_a_binding_error() -> None:
    with pytest.raises(BindingError, match="has no id"):
        resolve(OutputRef(WriteLine("hello")), _data())


def test_expression_context_is_read_only() -> None:
    context = ExpressionContext(_data())
    with pytest.raises(TypeError):
        context.variables["name"] = "Grace"  # type: ignore[index]


def test_template_renders_variables_input_and_outputs() -> None:
    template = Template("{{ variables.name }} x{{ input.count }} = {{ outputs.Generate1.result }}")
    assert resolve(template, _data()) == "Ada x3 = 42"


def test_template_undefined_name_is_a_binding_error() -> None:
    with pytest.raises(BindingError):
        resolve(Template("{{ variables.nobody }}"), _data())


def test_template_syntax_error_is_a_binding_error() -> None:
    with pytest.raises(BindingError, match="Invalid template"):
        resolve(Template("{{ unclosed"), _data())


def test_check_type() -> None:
    assert check_type("n", 3, int) == 3
    assert check_type("n", None, int) is None
    assert check_type("n", "anything", object) == "anything"
    with pytest.raises(BindingError, match=r"expected int \| float, got str"):
        check_type("n", "3", (int, float))


def test_commit_records_output_and_mirrors_target_variable() -> None:
    data = _data(outputs={})

    commit(OutputBinding("Random1", "result", VariableRef("number")), 7, data)

    assert data.outputs == {"Random1": {"result": 7}}
    assert data.variables["number"] == 7
