"""Node storage with parent/child bookkeeping."""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from ._errors import ErrorKind, EvaluationResult, OperationResult, UpdateResult
from ._evaluator import GraphEvaluator
from ._node import FactorNode, FormulaNode

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ._node import Node

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = frozenset({"name", "value", "expression", "child_ids", "description", "unit"})


def new_node_id() -> str:
    """Generate a unique node id."""
    return f"node_{uuid.uuid4().hex[:16]}"


class NodeRegistry:
    """Owns every node and the ordered root set.

    Nodes live in an arena keyed by id; all relations are id lists resolved
    through it. Every structural mutation made here keeps `parent_ids` an
    exact mirror of the `child_ids` of all nodes.

    Attributes:
        nodes: Mapping from node id to node.
        root_ids: Ids flagged for top-level evaluation, in display order.
            Membership is independent of graph position.
        evaluator: The GraphEvaluator bound to this registry.

    Example:
        >>> registry = NodeRegistry()
        >>> price = registry.create_factor("price", 100)
        >>> qty = registry.create_factor("qty", 5)
        >>> subtotal = registry.create_formula("subtotal", "price * qty", [price.id, qty.id])
        >>> subtotal.computed_value
        500.0

    """

    def __init__(self, id_factory: Callable[[], str] = new_node_id) -> None:
        self.nodes: dict[str, Node] = {}
        self.root_ids: list[str] = []
        self.evaluator = GraphEvaluator(self)
        self._id_factory = id_factory

    # Queries --------------------------------------------------------------------

    def get_node(self, node_id: str) -> Node | None:
        return self.nodes.get(node_id)

    def find_by_name(self, name: str) -> list[Node]:
        """Get all nodes with the given name (names are not enforced unique)."""
        return [node for node in self.nodes.values() if node.name == name]

    def list_nodes(self) -> list[Node]:
        return list(self.nodes.values())

    def list_roots(self) -> list[Node]:
        """Get root nodes in root order, skipping ids that no longer exist."""
        return [self.nodes[root_id] for root_id in self.root_ids if root_id in self.nodes]

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    # Creation -------------------------------------------------------------------

    def create_factor(
        self,
        name: str,
        value: float,
        *,
        description: str | None = None,
        unit: str | None = None,
    ) -> FactorNode:
        """Create a leaf node holding a direct value."""
        node = FactorNode(
            id=self._id_factory(),
            name=name,
            value=value,
            computed_value=value,
            description=description,
            unit=unit,
        )
        self.nodes[node.id] = node
        logger.debug("Created factor %s (%s) = %r", node.name, node.id, node.value)
        return node

    def create_formula(
        self,
        name: str,
        expression: str,
        child_ids: Iterable[str],
        *,
        description: str | None = None,
        unit: str | None = None,
    ) -> FormulaNode:
        """Create a formula node, link it to its children and evaluate it.

        Child ids that do not exist are kept in `child_ids` but get no back
        reference; evaluation skips them. An evaluation failure is logged and
        leaves `computed_value` unset.
        """
        node = FormulaNode(
            id=self._id_factory(),
            name=name,
            expression=expression,
            child_ids=list(dict.fromkeys(child_ids)),
            description=description,
            unit=unit,
        )
        for child_id in node.child_ids:
            child = self.nodes.get(child_id)
            if child is not None and node.id not in child.parent_ids:
                child.parent_ids.append(node.id)

        self.nodes[node.id] = node
        logger.debug("Created formula %s (%s) = %s", node.name, node.id, node.expression)

        result = self.evaluator.evaluate_subtree(node.id)
        if not result.success:
            logger.warning("New formula '%s' did not evaluate: %s", node.name, result.error)
        return node

    # Links ----------------------------------------------------------------------

    def add_child(self, parent_id: str, child_id: str) -> UpdateResult:
        """Link a child under a parent and re-evaluate a formula parent.

        Adding an existing link is a successful no-op.
        """
        parent = self.nodes.get(parent_id)
        child = self.nodes.get(child_id)
        if parent is None or child is None:
            missing = parent_id if parent is None else child_id
            return UpdateResult.fail(ErrorKind.NOT_FOUND, f"Node '{missing}' not found")
        if parent.is_factor:
            return UpdateResult.fail(
                ErrorKind.FACTOR_CHILDREN,
                f"Factor node '{parent.name}' cannot have children",
            )
        if child_id in parent.child_ids:
            return UpdateResult()

        parent.child_ids.append(child_id)
        if parent_id not in child.parent_ids:
            child.parent_ids.append(parent_id)
        logger.debug("Linked %s under %s", child.name, parent.name)

        return UpdateResult(evaluations={parent_id: self.evaluator.evaluate_subtree(parent_id)})

    def remove_child(self, parent_id: str, child_id: str) -> UpdateResult:
        """Unlink a child from a parent and re-evaluate a formula parent."""
        parent = self.nodes.get(parent_id)
        child = self.nodes.get(child_id)
        if parent is None or child is None:
            missing = parent_id if parent is None else child_id
            return UpdateResult.fail(ErrorKind.NOT_FOUND, f"Node '{missing}' not found")
        if child_id not in parent.child_ids:
            return UpdateResult.fail(
                ErrorKind.NOT_FOUND,
                f"Node '{child.name}' is not a child of '{parent.name}'",
            )

        parent.child_ids.remove(child_id)
        if parent_id in child.parent_ids:
            child.parent_ids.remove(parent_id)
        logger.debug("Unlinked %s from %s", child.name, parent.name)

        if parent.is_formula:
            return UpdateResult(evaluations={parent_id: self.evaluator.evaluate_subtree(parent_id)})
        return UpdateResult()

    # Roots ----------------------------------------------------------------------

    def mark_root(self, node_id: str) -> OperationResult:
        if node_id not in self.nodes:
            return OperationResult.fail(ErrorKind.NOT_FOUND, f"Node '{node_id}' not found")
        if node_id not in self.root_ids:
            self.root_ids.append(node_id)
        return OperationResult()

    def unmark_root(self, node_id: str) -> OperationResult:
        if node_id in self.root_ids:
            self.root_ids.remove(node_id)
        return OperationResult()

    # Mutation -------------------------------------------------------------------

    def update_node(self, node_id: str, **changes: Any) -> UpdateResult:  # noqa: C901, PLR0912
        """Merge field changes into a node and re-evaluate per the cascade policy.

        Accepted fields: ``name``, ``value`` (factors), ``expression``
        (formulas), ``child_ids`` (formulas), ``description``, ``unit``.

        Cascade policy:
        - A factor ``value`` change re-evaluates every root, since a shared
          factor may feed several independently rooted trees.
        - An ``expression`` or ``child_ids`` change re-evaluates the edited
          formula only; its ancestors keep their cached values until they are
          evaluated again (see `GraphEvaluator.evaluate_dependents`).
        - Metadata changes evaluate nothing.

        Returns:
            UpdateResult; on rejection nothing is changed.

        """
        node = self.nodes.get(node_id)
        if node is None:
            return UpdateResult.fail(ErrorKind.NOT_FOUND, f"Node '{node_id}' not found")

        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            return UpdateResult.fail(ErrorKind.INVALID_UPDATE, f"Unknown field(s): {sorted(unknown)}")
        if node.is_factor:
            if "expression" in changes:
                return UpdateResult.fail(
                    ErrorKind.INVALID_UPDATE,
                    f"Factor node '{node.name}' has no expression",
                )
            if changes.get("child_ids"):
                return UpdateResult.fail(
                    ErrorKind.FACTOR_CHILDREN,
                    f"Factor node '{node.name}' cannot have children",
                )
        elif "value" in changes:
            return UpdateResult.fail(
                ErrorKind.INVALID_UPDATE,
                f"Formula node '{node.name}' has no direct value",
            )

        for field_name in ("name", "description", "unit"):
            if field_name in changes:
                setattr(node, field_name, changes[field_name])

        if isinstance(node, FactorNode):
            if "value" in changes:
                node.value = float(changes["value"])
                node.computed_value = node.value
                logger.debug("Factor %s set to %r, cascading to all roots", node.name, node.value)
                return UpdateResult(evaluations=self.evaluator.evaluate_all_roots())
            return UpdateResult()

        structural = False
        if "expression" in changes:
            node.expression = changes["expression"]
            structural = True
        if "child_ids" in changes:
            self._relink_children(node, list(dict.fromkeys(changes["child_ids"])))
            structural = True

        if structural:
            return UpdateResult(evaluations={node_id: self.evaluator.evaluate_subtree(node_id)})
        return UpdateResult()

    def _relink_children(self, node: FormulaNode, new_child_ids: list[str]) -> None:
        old = set(node.child_ids)
        new = set(new_child_ids)
        for removed_id in old - new:
            removed = self.nodes.get(removed_id)
            if removed is not None and node.id in removed.parent_ids:
                removed.parent_ids.remove(node.id)
        for added_id in new - old:
            added = self.nodes.get(added_id)
            if added is not None and node.id not in added.parent_ids:
                added.parent_ids.append(node.id)
        node.child_ids = new_child_ids

    def delete_node(self, node_id: str) -> UpdateResult:
        """Unlink a node from all parents and children, unmark it and erase it.

        Every former formula parent is re-evaluated (and will usually fail
        with an unresolved variable, keeping its stale value).
        """
        node = self.nodes.get(node_id)
        if node is None:
            return UpdateResult.fail(ErrorKind.NOT_FOUND, f"Node '{node_id}' not found")

        evaluations: dict[str, EvaluationResult] = {}
        parent_ids = [pid for pid, p in self.nodes.items() if node_id in p.child_ids]
        for parent_id in parent_ids:
            evaluations.update(self.remove_child(parent_id, node_id).evaluations)

        for child_id in node.child_ids:
            child = self.nodes.get(child_id)
            if child is not None and node_id in child.parent_ids:
                child.parent_ids.remove(node_id)

        self.unmark_root(node_id)
        del self.nodes[node_id]
        evaluations.pop(node_id, None)
        logger.debug("Deleted %s (%s)", node.name, node_id)
        return UpdateResult(evaluations=evaluations)

    # Whole-registry operations ----------------------------------------------------

    def clear(self) -> None:
        self.nodes.clear()
        self.root_ids.clear()

    def replace(self, nodes: dict[str, Node], root_ids: list[str]) -> None:
        """Swap in a complete node mapping and root list without any checks."""
        self.nodes = dict(nodes)
        self.root_ids = list(root_ids)
        logger.debug("Registry replaced with %d node(s), %d root(s)", len(self.nodes), len(self.root_ids))
