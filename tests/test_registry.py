"""Tests for NodeRegistry bookkeeping."""

import itertools

import pytest

from formtree import ErrorKind, FactorNode, FormulaNode, NodeRegistry, build_sample_tree, check_registry


@pytest.fixture
def registry() -> NodeRegistry:
    """Registry with predictable ids (n0, n1, ...)."""
    counter = itertools.count()
    return NodeRegistry(id_factory=lambda: f"n{next(counter)}")


def _by_name(registry: NodeRegistry, name: str) -> FactorNode | FormulaNode:
    (node,) = registry.find_by_name(name)
    return node


class TestCreate:
    def test_create_factor(self, registry: NodeRegistry) -> None:
        price = registry.create_factor("price", 100, unit="$")

        assert isinstance(price, FactorNode)
        assert price.id == "n0"
        assert price.value == 100
        assert price.computed_value == 100
        assert price.unit == "$"
        assert price.child_ids == []
        assert registry.get_node("n0") is price
        assert "n0" in registry
        assert len(registry) == 1

    def test_create_formula_links_and_evaluates(self, registry: NodeRegistry) -> None:
        price = registry.create_factor("price", 100)
        qty = registry.create_factor("qty", 5)

        subtotal = registry.create_formula("subtotal", "price * qty", [price.id, qty.id, price.id])

        assert isinstance(subtotal, FormulaNode)
        assert subtotal.child_ids == [price.id, qty.id]
        assert price.parent_ids == [subtotal.id]
        assert qty.parent_ids == [subtotal.id]
        assert subtotal.computed_value == 500

    def test_create_formula_with_missing_child(self, registry: NodeRegistry) -> None:
        total = registry.create_formula("total", "2 * 3", ["ghost"])

        assert total.child_ids == ["ghost"]
        assert total.computed_value == 6

    def test_create_formula_that_fails_stays_unevaluated(self, registry: NodeRegistry) -> None:
        broken = registry.create_formula("broken", "missing + 1", [])

        assert broken.computed_value is None
        assert broken.current_value == 0.0

    @pytest.mark.parametrize("expression", ["a * ²", "٣ + a", "(" * 3000 + "a" + ")" * 3000])
    def test_create_formula_with_unusable_text(self, registry: NodeRegistry, expression: str) -> None:
        a = registry.create_factor("a", 3)

        formula = registry.create_formula("f", expression, [a.id])

        assert formula.computed_value is None
        assert a.parent_ids == [formula.id]

    def test_ids_are_unique_by_default(self) -> None:
        registry = NodeRegistry()

        ids = {registry.create_factor(f"f{i}", i).id for i in range(50)}

        assert len(ids) == 50
        assert all(node_id.startswith("node_") for node_id in ids)

    def test_find_by_name_allows_duplicates(self, registry: NodeRegistry) -> None:
        registry.create_factor("x", 1)
        registry.create_factor("x", 2)

        assert [n.value for n in registry.find_by_name("x")] == [1, 2]
        assert registry.find_by_name("y") == []


class TestLinks:
    def test_add_child(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)
        b = registry.create_factor("b", 3)
        total = registry.create_formula("total", "a + b", [a.id])

        result = registry.add_child(total.id, b.id)

        assert result.success
        assert result.evaluations[total.id].value == 5
        assert total.child_ids == [a.id, b.id]
        assert b.parent_ids == [total.id]

    def test_add_existing_child_is_noop(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)
        total = registry.create_formula("total", "a", [a.id])

        result = registry.add_child(total.id, a.id)

        assert result.success
        assert result.evaluations == {}
        assert total.child_ids == [a.id]
        assert a.parent_ids == [total.id]

    def test_add_child_to_factor_is_rejected(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)
        b = registry.create_factor("b", 3)

        result = registry.add_child(a.id, b.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.FACTOR_CHILDREN
        assert a.child_ids == []
        assert b.parent_ids == []

    def test_add_child_missing_node(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)

        result = registry.add_child("ghost", a.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_remove_child(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)
        b = registry.create_factor("b", 3)
        total = registry.create_formula("total", "a + 1", [a.id, b.id])

        result = registry.remove_child(total.id, b.id)

        assert result.success
        assert result.evaluations[total.id].value == 3
        assert total.child_ids == [a.id]
        assert b.parent_ids == []

    def test_remove_unlinked_child(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 2)
        total = registry.create_formula("total", "1", [])

        result = registry.remove_child(total.id, a.id)

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestRoots:
    def test_mark_root_is_idempotent(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)

        assert registry.mark_root(a.id).success
        assert registry.mark_root(a.id).success

        assert registry.root_ids == [a.id]
        assert registry.list_roots() == [a]

    def test_mark_unknown_root(self, registry: NodeRegistry) -> None:
        result = registry.mark_root("ghost")

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND
        assert registry.root_ids == []

    def test_unmark_root(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)
        registry.mark_root(a.id)

        assert registry.unmark_root(a.id).success
        assert registry.unmark_root(a.id).success
        assert registry.root_ids == []

    def test_list_roots_skips_missing_ids(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)
        registry.root_ids = ["ghost", a.id]

        assert registry.list_roots() == [a]


class TestUpdateNode:
    def test_unknown_node(self, registry: NodeRegistry) -> None:
        result = registry.update_node("ghost", name="x")

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND

    def test_unknown_field(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)

        result = registry.update_node(a.id, colour="red")

        assert result.error is not None
        assert result.error.kind == ErrorKind.INVALID_UPDATE

    def test_expression_on_factor(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)

        result = registry.update_node(a.id, expression="1 + 1")

        assert result.error is not None
        assert result.error.kind == ErrorKind.INVALID_UPDATE

    def test_value_on_formula(self, registry: NodeRegistry) -> None:
        f = registry.create_formula("f", "1", [])

        result = registry.update_node(f.id, value=3)

        assert result.error is not None
        assert result.error.kind == ErrorKind.INVALID_UPDATE
        assert f.computed_value == 1

    def test_children_on_factor(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)
        b = registry.create_factor("b", 1)

        result = registry.update_node(a.id, child_ids=[b.id])

        assert result.error is not None
        assert result.error.kind == ErrorKind.FACTOR_CHILDREN
        assert a.child_ids == []

    def test_rejected_update_changes_nothing(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)

        registry.update_node(a.id, name="renamed", expression="2")

        assert a.name == "a"

    def test_metadata_update(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)

        result = registry.update_node(a.id, name="alpha", description="first", unit="kg")

        assert result.success
        assert result.evaluations == {}
        assert (a.name, a.description, a.unit) == ("alpha", "first", "kg")

    def test_factor_value_cascades_to_roots(self, registry: NodeRegistry) -> None:
        price = registry.create_factor("price", 100)
        qty = registry.create_factor("qty", 5)
        subtotal = registry.create_formula("subtotal", "price * qty", [price.id, qty.id])
        registry.mark_root(subtotal.id)

        result = registry.update_node(price.id, value=150)

        assert result.success
        assert price.value == 150
        assert price.computed_value == 150
        assert subtotal.computed_value == 750
        assert result.evaluations[subtotal.id].value == 750

    def test_relink_children(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)
        b = registry.create_factor("b", 2)
        f = registry.create_formula("f", "a", [a.id])

        result = registry.update_node(f.id, expression="b * 10", child_ids=[b.id])

        assert result.success
        assert result.evaluations[f.id].value == 20
        assert f.child_ids == [b.id]
        assert a.parent_ids == []
        assert b.parent_ids == [f.id]
        assert check_registry(registry.nodes, registry.root_ids) == []

    def test_non_ascii_digit_expression_is_reported(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 3)
        f = registry.create_formula("f", "a * 2", [a.id])
        registry.mark_root(f.id)

        result = registry.update_node(f.id, expression="a * ²")

        assert result.evaluations[f.id].error is not None
        assert result.evaluations[f.id].error.kind == ErrorKind.INVALID_EXPRESSION
        assert f.computed_value == 6
        assert not registry.evaluator.evaluate_all_roots()[f.id].success


class TestDeleteNode:
    def test_delete_factor_unlinks_parents(self) -> None:
        registry = NodeRegistry()
        build_sample_tree(registry)
        quantity1 = _by_name(registry, "quantity1")
        subtotal1 = _by_name(registry, "subtotal1")

        result = registry.delete_node(quantity1.id)

        assert result.success
        assert quantity1.id not in registry
        assert quantity1.id not in subtotal1.child_ids
        failure = result.evaluations[subtotal1.id].error
        assert failure is not None
        assert failure.kind == ErrorKind.INVALID_EXPRESSION
        # The parent keeps its last good value
        assert subtotal1.computed_value == 500
        assert check_registry(registry.nodes, registry.root_ids) == []

    def test_delete_formula_unlinks_children(self) -> None:
        registry = NodeRegistry()
        build_sample_tree(registry)
        price = _by_name(registry, "price")
        subtotal1 = _by_name(registry, "subtotal1")

        registry.delete_node(subtotal1.id)

        assert subtotal1.id not in price.parent_ids
        assert check_registry(registry.nodes, registry.root_ids) == []

    def test_delete_root(self) -> None:
        registry = NodeRegistry()
        roots = build_sample_tree(registry)

        registry.delete_node(roots[-1])

        assert registry.root_ids == roots[:-1]

    def test_delete_unknown(self, registry: NodeRegistry) -> None:
        result = registry.delete_node("ghost")

        assert result.error is not None
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestWholeRegistry:
    def test_clear(self) -> None:
        registry = NodeRegistry()
        build_sample_tree(registry)

        registry.clear()

        assert len(registry) == 0
        assert registry.root_ids == []

    def test_mutations_keep_links_mirrored(self, registry: NodeRegistry) -> None:
        a = registry.create_factor("a", 1)
        b = registry.create_factor("b", 2)
        f = registry.create_formula("f", "a + b", [a.id, b.id])
        g = registry.create_formula("g", "f * 2", [f.id])
        registry.mark_root(g.id)

        registry.add_child(g.id, a.id)
        registry.remove_child(f.id, b.id)
        registry.update_node(f.id, child_ids=[a.id, b.id])
        registry.delete_node(a.id)

        assert check_registry(registry.nodes, registry.root_ids) == []
