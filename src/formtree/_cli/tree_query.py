"""Pure query functions for CLI commands.

These are the functional core of the CLI - no I/O, no Rich rendering.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from formtree._node import Node
    from formtree._registry import NodeRegistry


class NodeLookupError(Exception):
    """Raised when a node name does not identify exactly one node."""

    def __init__(self, name: str, matches: int) -> None:
        self.name = name
        self.matches = matches
        if matches == 0:
            message = f"No node named '{name}'"
        else:
            message = f"Name '{name}' is ambiguous ({matches} nodes)"
        super().__init__(message)


@dataclass(slots=True)
class TreeNode:
    """A node in a display tree.

    Attributes:
        node: The registry node.
        children: Display children, in `child_ids` order.
        repeated: True when the node already appears on the path above it;
            its children are not expanded.

    """

    node: Node
    children: list[TreeNode]
    repeated: bool = False


@dataclass(frozen=True, slots=True)
class NodeRow:
    """Tabular view of one node."""

    name: str
    kind: str
    expression: str | None
    value: float | None
    unit: str | None
    parents: int
    is_root: bool


def resolve_name(registry: NodeRegistry, name: str) -> Node:
    """Get the single node with this name.

    Raises:
        NodeLookupError: If no node or several nodes have the name.

    """
    matches = registry.find_by_name(name)
    if len(matches) != 1:
        raise NodeLookupError(name, len(matches))
    return matches[0]


def build_display_tree(registry: NodeRegistry, node_id: str, path: frozenset[str] = frozenset()) -> TreeNode | None:
    """Build the display tree below a node, stopping at repeated ids.

    Returns:
        The tree, or None if the node does not exist.

    """
    node = registry.get_node(node_id)
    if node is None:
        return None
    if node_id in path:
        return TreeNode(node=node, children=[], repeated=True)

    children: list[TreeNode] = []
    for child_id in node.child_ids:
        child = build_display_tree(registry, child_id, path | {node_id})
        if child is not None:
            children.append(child)
    return TreeNode(node=node, children=children)


def node_rows(registry: NodeRegistry, nodes: list[Node] | None = None) -> list[NodeRow]:
    """Summarize nodes for a table (all registry nodes by default)."""
    roots = set(registry.root_ids)
    return [
        NodeRow(
            name=node.name,
            kind=str(node.kind),
            expression=node.expression if node.is_formula else None,
            value=node.computed_value,
            unit=node.unit,
            parents=len(node.parent_ids),
            is_root=node.id in roots,
        )
        for node in (registry.list_nodes() if nodes is None else nodes)
    ]
