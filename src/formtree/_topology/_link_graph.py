"""Read-only view of the parent/child links between registry nodes."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ._algorithms import evaluation_order, find_cycle

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from formtree._node import FactorNode, FormulaNode


@dataclass(frozen=True, slots=True)
class LinkGraph:
    """Snapshot of the forward (`child_ids`) relation between existing nodes.

    The graph is derived only from `child_ids`; stored `parent_ids` are never
    trusted, which makes it suitable for checking them. Links to ids that are
    not in the node mapping are dropped.

    Attributes:
        _children: Mapping from node id to its ordered, existing child ids.
        _parents: Mapping from node id to the ids listing it as a child.

    """

    _children: dict[str, tuple[str, ...]] = field(default_factory=dict)
    _parents: dict[str, frozenset[str]] = field(default_factory=dict)

    @classmethod
    def from_nodes(cls, nodes: Mapping[str, FactorNode | FormulaNode]) -> LinkGraph:
        """Build a graph from a registry node mapping.

        Example:
            >>> graph = LinkGraph.from_nodes(registry.nodes)
            >>> graph.parents(price.id)
            frozenset({'node_1', 'node_2'})

        """
        children: dict[str, tuple[str, ...]] = {}
        parents: defaultdict[str, set[str]] = defaultdict(set)
        for node_id, node in nodes.items():
            kids = tuple(dict.fromkeys(c for c in node.child_ids if c in nodes))
            children[node_id] = kids
            for kid in kids:
                parents[kid].add(node_id)
        return cls(
            _children=children,
            _parents={node_id: frozenset(parents.get(node_id, ())) for node_id in nodes},
        )

    def children(self, node_id: str) -> tuple[str, ...]:
        return self._children.get(node_id, ())

    def parents(self, node_id: str) -> frozenset[str]:
        return self._parents.get(node_id, frozenset())

    def ancestors(self, node_id: str) -> frozenset[str]:
        """Get every node whose value transitively depends on this node."""
        return self._walk(node_id, self.parents)

    @staticmethod
    def _walk(node_id: str, step: Callable[[str], Iterable[str]]) -> frozenset[str]:
        visited: set[str] = set()
        stack = list(step(node_id))
        while stack:
            current = stack.pop()
            if current not in visited:
                visited.add(current)
                stack.extend(step(current))
        return frozenset(visited)

    def evaluation_order(self, subset: Iterable[str] | None = None) -> list[str]:
        """Return node ids children first.

        Args:
            subset: Restrict the ordering to these ids (links leaving the
                subset are ignored). Defaults to all nodes.

        Raises:
            CycleError: If the (restricted) graph has a cycle.

        """
        if subset is None:
            return evaluation_order(self._children)
        keep = set(subset)
        restricted = {n: [c for c in kids if c in keep] for n, kids in self._children.items() if n in keep}
        return evaluation_order(restricted)

    def find_cycle(self) -> list[str] | None:
        return find_cycle(self._children)


def check_links(
    nodes: Mapping[str, FactorNode | FormulaNode],
    root_ids: Iterable[str],
) -> list[str]:
    """Check the structural invariants of a node mapping.

    Checks for:
    - Record ids that disagree with their mapping key
    - Child ids that point to missing nodes
    - Factor nodes with children
    - `parent_ids` that do not mirror the forward `child_ids` relation
    - Root ids that point to missing nodes
    - Cycles

    Returns:
        List of error messages. Empty list if the mapping is consistent.

    """
    errors: list[str] = []

    for key, node in nodes.items():
        if node.id != key:
            errors.append(f"Node '{node.name}' is stored under id '{key}' but records id '{node.id}'")
        missing = [c for c in node.child_ids if c not in nodes]
        if missing:
            errors.append(f"Node '{node.name}' has missing children: {missing}")
        if node.is_factor and node.child_ids:
            errors.append(f"Factor node '{node.name}' has children")

    graph = LinkGraph.from_nodes(nodes)
    for node_id, node in nodes.items():
        expected = graph.parents(node_id)
        recorded = frozenset(node.parent_ids)
        if recorded != expected:
            errors.append(
                f"Node '{node.name}' parent links out of sync: "
                f"recorded {sorted(recorded)}, expected {sorted(expected)}",
            )

    for root_id in root_ids:
        if root_id not in nodes:
            errors.append(f"Root id '{root_id}' does not exist")

    cycle = graph.find_cycle()
    if cycle is not None:
        names = " -> ".join(nodes[n].name for n in cycle)
        errors.append(f"Graph contains a cycle: {names}")

    return errors
