"""Tests for link graph queries and structural checks."""

import pytest

from formtree import FactorNode, FormulaNode, LinkGraph
from formtree._topology import CycleError, check_links, evaluation_order, find_cycle


def _factor(node_id: str, parents: list[str] | None = None) -> FactorNode:
    return FactorNode(id=node_id, name=node_id, value=1.0, parent_ids=parents or [])


def _formula(node_id: str, children: list[str], parents: list[str] | None = None) -> FormulaNode:
    return FormulaNode(
        id=node_id,
        name=node_id,
        expression=" + ".join(children) or "0",
        child_ids=children,
        parent_ids=parents or [],
    )


@pytest.fixture
def diamond() -> dict[str, FactorNode | FormulaNode]:
    """s feeds x and y, which both feed d."""
    return {
        "s": _factor("s", ["x", "y"]),
        "x": _formula("x", ["s"], ["d"]),
        "y": _formula("y", ["s"], ["d"]),
        "d": _formula("d", ["x", "y"]),
    }


class TestEvaluationOrder:
    def test_children_first(self) -> None:
        order = evaluation_order({"total": ["subtotal", "tax"], "tax": ["subtotal"]})

        assert order == ["subtotal", "tax", "total"]

    def test_shared_child_is_not_a_cycle(self) -> None:
        order = evaluation_order({"d": ["x", "y"], "x": ["s"], "y": ["s"]})

        assert order.index("s") < order.index("x") < order.index("d")
        assert order.index("y") < order.index("d")

    def test_cycle_raises(self) -> None:
        with pytest.raises(CycleError) as exc_info:
            evaluation_order({"a": ["b"], "b": ["a"], "c": []})

        assert exc_info.value.remaining == frozenset({"a", "b"})


class TestFindCycle:
    def test_acyclic(self) -> None:
        assert find_cycle({"d": ["x", "y"], "x": ["s"], "y": ["s"], "s": []}) is None

    def test_two_node_cycle(self) -> None:
        cycle = find_cycle({"a": ["b"], "b": ["a"]})

        assert cycle == ["a", "b", "a"]

    def test_self_loop(self) -> None:
        assert find_cycle({"a": ["a"]}) == ["a", "a"]

    def test_cycle_below_acyclic_prefix(self) -> None:
        cycle = find_cycle({"root": ["a"], "a": ["b"], "b": ["c"], "c": ["a"]})

        assert cycle == ["a", "b", "c", "a"]


class TestLinkGraph:
    def test_relations(self, diamond: dict[str, FactorNode | FormulaNode]) -> None:
        graph = LinkGraph.from_nodes(diamond)

        assert graph.children("d") == ("x", "y")
        assert graph.parents("s") == frozenset({"x", "y"})
        assert graph.ancestors("s") == frozenset({"x", "y", "d"})
        assert graph.ancestors("d") == frozenset()
        assert graph.find_cycle() is None

    def test_missing_children_are_dropped(self) -> None:
        graph = LinkGraph.from_nodes({"f": _formula("f", ["ghost"])})

        assert graph.children("f") == ()
        assert graph.parents("ghost") == frozenset()

    def test_subset_order(self, diamond: dict[str, FactorNode | FormulaNode]) -> None:
        graph = LinkGraph.from_nodes(diamond)

        assert graph.evaluation_order({"x", "d"}) == ["x", "d"]

    def test_cycle(self) -> None:
        nodes = {"a": _formula("a", ["b"], ["b"]), "b": _formula("b", ["a"], ["a"])}
        graph = LinkGraph.from_nodes(nodes)

        assert graph.find_cycle() == ["a", "b", "a"]
        assert graph.ancestors("a") == frozenset({"a", "b"})
        with pytest.raises(CycleError):
            graph.evaluation_order()


class TestCheckLinks:
    def test_consistent(self, diamond: dict[str, FactorNode | FormulaNode]) -> None:
        assert check_links(diamond, ["d"]) == []

    def test_parent_links_out_of_sync(self, diamond: dict[str, FactorNode | FormulaNode]) -> None:
        diamond["s"].parent_ids = ["x"]

        errors = check_links(diamond, ["d"])

        assert len(errors) == 1
        assert "Node 's' parent links out of sync" in errors[0]

    def test_missing_child_and_root(self) -> None:
        nodes = {"f": _formula("f", ["ghost"])}

        errors = check_links(nodes, ["f", "nope"])

        assert "Node 'f' has missing children: ['ghost']" in errors
        assert "Root id 'nope' does not exist" in errors

    def test_id_mismatch(self) -> None:
        errors = check_links({"key": _factor("other")}, [])

        assert errors == ["Node 'other' is stored under id 'key' but records id 'other'"]

    def test_cycle_reported_by_name(self) -> None:
        nodes = {"a": _formula("a", ["b"], ["b"]), "b": _formula("b", ["a"], ["a"])}

        errors = check_links(nodes, ["a"])

        assert errors == ["Graph contains a cycle: a -> b -> a"]
