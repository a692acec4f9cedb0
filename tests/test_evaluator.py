"""Tests for forward evaluation, cycle detection and the cascade policy."""

import logging

import pytest

from formtree import ErrorKind, FactorNode, FormulaNode, NodeRegistry, build_sample_tree


@pytest.fixture
def sample() -> NodeRegistry:
    registry = NodeRegistry()
    build_sample_tree(registry)
    return registry


def _by_name(registry: NodeRegistry, name: str) -> FactorNode | FormulaNode:
    (node,) = registry.find_by_name(name)
    return node


class TestEvaluate:
    def test_unknown_node(self) -> None:
        registry = NodeRegistry()

        result = registry.evaluator.evaluate("ghost")

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_factor_refreshes_computed_value(self) -> None:
        registry = NodeRegistry()
        a = registry.create_factor("a", 4)
        a.computed_value = None

        result = registry.evaluator.evaluate(a.id)

        assert result.value == 4
        assert a.computed_value == 4

    def test_formula_without_expression(self) -> None:
        registry = NodeRegistry()
        f = registry.create_formula("f", "", [])

        result = registry.evaluator.evaluate(f.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.NO_FORMULA

    def test_children_are_evaluated_first(self) -> None:
        registry = NodeRegistry()
        a = registry.create_factor("a", 1)
        inner = registry.create_formula("inner", "a * 10", [a.id])
        outer = registry.create_formula("outer", "inner + 1", [inner.id])
        a.value = 2

        result = registry.evaluator.evaluate_subtree(outer.id)

        assert result.value == 21
        assert inner.computed_value == 20
        assert outer.computed_value == 21

    def test_shared_node_is_not_a_cycle(self) -> None:
        registry = NodeRegistry()
        s = registry.create_factor("s", 1)
        x = registry.create_formula("x", "s * 2", [s.id])
        y = registry.create_formula("y", "s * 3", [s.id])
        d = registry.create_formula("d", "x + y", [x.id, y.id])

        result = registry.evaluator.evaluate_subtree(d.id)

        assert result.success
        assert result.value == 5

    def test_duplicate_child_names(self) -> None:
        registry = NodeRegistry()
        first = registry.create_factor("x", 1)
        second = registry.create_factor("x", 2)
        f = registry.create_formula("f", "x", [first.id, second.id])

        result = registry.evaluator.evaluate(f.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.INVALID_EXPRESSION
        assert f.computed_value is None


class TestCycles:
    def test_two_node_cycle(self, caplog: pytest.LogCaptureFixture) -> None:
        registry = NodeRegistry()
        a = registry.create_formula("a", "b + 1", [])
        b = registry.create_formula("b", "a + 1", [a.id])

        with caplog.at_level(logging.WARNING):
            result = registry.add_child(a.id, b.id)

        failure = result.evaluations[a.id].error
        assert failure is not None
        assert failure.kind == ErrorKind.CIRCULAR_DEPENDENCY
        assert "Circular dependency detected" in caplog.text

        for node_id in (a.id, b.id):
            failure = registry.evaluator.evaluate_subtree(node_id).error
            assert failure is not None
            assert failure.kind == ErrorKind.CIRCULAR_DEPENDENCY

    def test_self_reference(self) -> None:
        registry = NodeRegistry()
        a = registry.create_formula("a", "a + 1", [])
        registry.add_child(a.id, a.id)

        failure = registry.evaluator.evaluate_subtree(a.id).error

        assert failure is not None
        assert failure.kind == ErrorKind.CIRCULAR_DEPENDENCY

    def test_cycle_does_not_affect_other_roots(self) -> None:
        registry = NodeRegistry()
        a = registry.create_formula("a", "b", [])
        b = registry.create_formula("b", "a", [a.id])
        registry.add_child(a.id, b.id)
        ok = registry.create_formula("ok", "1 + 1", [])
        registry.mark_root(a.id)
        registry.mark_root(ok.id)

        results = registry.evaluator.evaluate_all_roots()

        assert list(results) == [a.id, ok.id]
        assert not results[a.id].success
        assert results[ok.id].value == 2


class TestStaleOnError:
    def test_failed_expression_keeps_last_value(self, sample: NodeRegistry) -> None:
        subtotal1 = _by_name(sample, "subtotal1")

        result = sample.update_node(subtotal1.id, expression="price * missing")

        assert result.success
        failure = result.evaluations[subtotal1.id].error
        assert failure is not None
        assert failure.kind == ErrorKind.INVALID_EXPRESSION
        assert subtotal1.computed_value == 500

    def test_child_failure_propagates_without_touching_parent(self, sample: NodeRegistry) -> None:
        subtotal1 = _by_name(sample, "subtotal1")
        total1 = _by_name(sample, "total1")
        subtotal1.expression = "price / 0"

        result = sample.evaluator.evaluate_subtree(total1.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.INVALID_EXPRESSION
        assert subtotal1.computed_value == 500
        assert total1.computed_value == 575


class TestCascade:
    def test_sample_values(self, sample: NodeRegistry) -> None:
        values = {node.name: node.computed_value for node in sample.list_nodes()}

        assert values["subtotal1"] == pytest.approx(500)
        assert values["tax1"] == pytest.approx(75)
        assert values["total1"] == pytest.approx(575)
        assert values["subtotal2"] == pytest.approx(300)
        assert values["tax2"] == pytest.approx(45)
        assert values["total2"] == pytest.approx(345)
        assert values["grandTotal"] == pytest.approx(920)

    def test_shared_factor_updates_every_root(self, sample: NodeRegistry) -> None:
        price = _by_name(sample, "price")

        result = sample.update_node(price.id, value=200)

        assert result.success
        assert result.failed_evaluations == {}
        assert _by_name(sample, "total1").computed_value == pytest.approx(1150)
        assert _by_name(sample, "total2").computed_value == pytest.approx(690)
        assert _by_name(sample, "grandTotal").computed_value == pytest.approx(1840)

    def test_expression_change_leaves_ancestors_stale(self, sample: NodeRegistry) -> None:
        subtotal1 = _by_name(sample, "subtotal1")

        sample.update_node(subtotal1.id, expression="price * quantity1 * 2")

        assert subtotal1.computed_value == pytest.approx(1000)
        assert _by_name(sample, "total1").computed_value == pytest.approx(575)

    def test_evaluate_dependents(self, sample: NodeRegistry) -> None:
        subtotal1 = _by_name(sample, "subtotal1")
        sample.update_node(subtotal1.id, expression="price * quantity1 * 2")

        results = sample.evaluator.evaluate_dependents(subtotal1.id)

        names = [sample.nodes[node_id].name for node_id in results]
        assert names == ["tax1", "total1", "grandTotal"]
        assert _by_name(sample, "total1").computed_value == pytest.approx(1150)
        assert _by_name(sample, "grandTotal").computed_value == pytest.approx(1495)

    def test_evaluate_dependents_of_unknown_node(self, sample: NodeRegistry) -> None:
        assert sample.evaluator.evaluate_dependents("ghost") == {}

    def test_evaluation_is_idempotent(self, sample: NodeRegistry) -> None:
        first = sample.evaluator.evaluate_all_roots()
        snapshot = {node_id: node.computed_value for node_id, node in sample.nodes.items()}

        second = sample.evaluator.evaluate_all_roots()

        assert first == second
        assert {node_id: node.computed_value for node_id, node in sample.nodes.items()} == snapshot
