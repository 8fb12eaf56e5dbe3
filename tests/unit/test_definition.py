"""Unit tests for the definition builder."""

from __future__ import annotations

import pytest

from activity_workflows.engine.activities import (
    Connection,
    Decision,
    Event,
    Flowchart,
    Sequence,
    WriteLine,
)
from activity_workflows.engine.definition import WorkflowBase, WorkflowBuilder, walk
from activity_workflows.engine.errors import DefinitionError
from activity_workflows.samples import OnboardingWorkflow, PerformTask


def _build(root: object) -> object:
    builder = WorkflowBuilder(id="test")
    builder.root = root  # type: ignore[assignment]
    return builder.build()


def test_builder_assigns_ids_in_preorder() -> None:
    definition = _build(Sequence([WriteLine("a"), Sequence([WriteLine("b")]), WriteLine("c")]))

    assert [a.id for a in definition.walk()] == [
        "Sequence1",
        "WriteLine1",
        "Sequence2",
        "WriteLine2",
        "WriteLine3",
    ]
    assert set(definition.activities) == {
        "Sequence1",
        "Sequence2",
        "WriteLine1",
        "WriteLine2",
        "WriteLine3",
    }


def test_builder_keeps_explicit_ids_and_skips_them_when_generating() -> None:
    definition = _build(Sequence([WriteLine("a", id="WriteLine1"), WriteLine("b")]))

    assert [a.id for a in definition.walk()] == ["Sequence1", "WriteLine1", "WriteLine2"]


def test_builder_rejects_duplicate_ids() -> None:
    with pytest.raises(DefinitionError, match="Duplicate activity id"):
        _build(Sequence([WriteLine("a", id="greet"), WriteLine("b", id="greet")]))


def test_builder_rejects_a_node_used_twice() -> None:
    line = WriteLine("a")
    with pytest.raises(DefinitionError, match="more than once"):
        _build(Sequence([line, line]))


def test_builder_requires_a_root() -> None:
    with pytest.raises(DefinitionError, match="root"):
        WorkflowBuilder(id="empty").build()


def test_builder_rejects_duplicate_inputs() -> None:
    builder = WorkflowBuilder(id="dup")
    builder.root = WriteLine("a")
    builder.add_input("x").add_input("x")
    with pytest.raises(DefinitionError, match="Duplicate input 'x'"):
        builder.build()


def test_built_nodes_are_immutable() -> None:
    definition = _build(Sequence([WriteLine("a")]))
    line = definition.get_activity("WriteLine1")

    with pytest.raises(AttributeError):
        line.display_name = "changed"
    with pytest.raises(TypeError):
        line.bindings["text"] = "changed"  # type: ignore[index]


def test_unknown_inputs_are_rejected_at_construction() -> None:
    with pytest.raises(TypeError, match="unknown inputs: bogus"):
        WriteLine("a", bogus=1)
    with pytest.raises(TypeError, match="no outputs named"):
        WriteLine("a", output_targets={"result": None})


def test_get_activity_unknown_id() -> None:
    definition = _build(WriteLine("a"))
    with pytest.raises(DefinitionError, match="no activity 'nope'"):
        definition.get_activity("nope")


def test_flowchart_rejects_undeclared_outcome() -> None:
    line = WriteLine("a")
    other = WriteLine("b")
    with pytest.raises(DefinitionError, match="declares no outcome 'Pass'"):
        _build(Flowchart([line, other], [Connection(line, other, "Pass")]))


def test_flowchart_rejects_foreign_endpoint() -> None:
    decision = Decision(True)
    outside = WriteLine("outside")
    with pytest.raises(DefinitionError, match="not part of the flowchart"):
        _build(Sequence([Flowchart([decision], [Connection(decision, outside, "True")]), outside]))


def test_flowchart_start_is_first_node_without_incoming_connection() -> None:
    task = PerformTask()
    passed = WriteLine("pass")
    chart = Flowchart([passed, task], [Connection(task, passed, "Pass")])
    assert chart.start_activity() is task


def test_walk_is_iterative_for_deep_trees() -> None:
    node = WriteLine("leaf")
    for _ in range(5000):
        node = Sequence([node])

    assert sum(1 for _ in walk(node)) == 5001


def test_workflow_base_builds_a_fresh_definition_each_time() -> None:
    first = OnboardingWorkflow.definition()
    second = OnboardingWorkflow.definition()

    assert first.id == "OnboardingWorkflow"
    assert first.description == "Onboard an employee once their external task is reported complete."
    assert first.root is not second.root
    assert list(first.activities) == list(second.activities)
    assert [i.name for i in first.inputs] == ["employee", "task_id"]


def test_triggers_lists_every_trigger_node() -> None:
    class Waits(WorkflowBase):
        definition_id = "waits"

        def build(self, builder: WorkflowBuilder) -> None:
            builder.root = Sequence([Event("a"), WriteLine("x"), Event("b")])

    definition = Waits.definition()
    assert definition.id == "waits"
    assert definition.description == ""
    assert [t.get_trigger_kind() for t in definition.triggers()] == ["a", "b"]
