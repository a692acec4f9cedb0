"""Forward evaluation of nodes in a registry."""

from __future__ import annotations

import logging
from collections import Counter
from typing import TYPE_CHECKING

from ._errors import ErrorKind, EvaluationResult
from ._expr import evaluate_expression
from ._topology import CycleError, LinkGraph

if TYPE_CHECKING:
    from ._node import FormulaNode
    from ._registry import NodeRegistry

logger = logging.getLogger(__name__)


def duplicate_child_names(registry: NodeRegistry, node: FormulaNode) -> list[str]:
    """Get names shared by more than one existing child of a formula node."""
    counts = Counter(child.name for cid in dict.fromkeys(node.child_ids) if (child := registry.get_node(cid)))
    return sorted(name for name, count in counts.items() if count > 1)


class GraphEvaluator:
    """Computes node values by walking the registry recursively.

    Each call threads a *visiting* set of ids along the current descent path.
    A fresh copy is passed to every child, so two siblings sharing a node never
    report each other as a cycle; only an id repeated along a single path does.

    Failed evaluations never touch `computed_value`: the last good value stays
    in place (stale-on-error).
    """

    def __init__(self, registry: NodeRegistry) -> None:
        self._registry = registry

    def evaluate(self, node_id: str, visiting: frozenset[str] = frozenset()) -> EvaluationResult:
        """Evaluate a node, evaluating its children first.

        Args:
            node_id: The node to evaluate.
            visiting: Ids already on the current descent path.

        Returns:
            EvaluationResult with the node's new value, or the failure. A child
            failure is propagated with its kind preserved, so a cycle anywhere
            below reports CIRCULAR_DEPENDENCY.

        """
        node = self._registry.get_node(node_id)
        if node is None:
            return EvaluationResult.fail(ErrorKind.NOT_FOUND, f"Node '{node_id}' not found")

        if node_id in visiting:
            logger.warning("Circular dependency detected at node: %s", node.name)
            return EvaluationResult.fail(
                ErrorKind.CIRCULAR_DEPENDENCY,
                f"Circular dependency detected at node '{node.name}'",
            )

        if node.is_factor:
            node.computed_value = node.value
            return EvaluationResult.ok(node.value)

        if not node.expression:
            return EvaluationResult.fail(ErrorKind.NO_FORMULA, f"Node '{node.name}' has no formula defined")

        duplicates = duplicate_child_names(self._registry, node)
        if duplicates:
            return EvaluationResult.fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Node '{node.name}' has several children named {duplicates}",
            )

        path = visiting | {node_id}
        context: dict[str, float] = {}
        first_failure: EvaluationResult | None = None
        for child_id in node.child_ids:
            child = self._registry.get_node(child_id)
            if child is None:
                logger.debug("Skipping missing child %s of %s", child_id, node.name)
                continue
            child_result = self.evaluate(child_id, path)
            if not child_result.success and first_failure is None:
                first_failure = child_result
            context[child.name] = child.computed_value if child.computed_value is not None else 0.0

        if first_failure is not None and first_failure.error is not None:
            logger.debug("Keeping stale value for %s: %s", node.name, first_failure.error)
            return first_failure

        result = evaluate_expression(node.expression, context)
        if result.success:
            node.computed_value = result.value
            logger.debug("Evaluated %s = %r", node.name, result.value)
        else:
            logger.debug("Evaluation of %s failed: %s", node.name, result.error)
        return result

    def evaluate_subtree(self, node_id: str) -> EvaluationResult:
        """Evaluate a node and everything below it with a fresh path."""
        return self.evaluate(node_id, frozenset())

    def evaluate_all_roots(self) -> dict[str, EvaluationResult]:
        """Evaluate every root, each with its own empty visiting set.

        Returns:
            Results keyed by root id, in root order.

        """
        results = {root_id: self.evaluate(root_id, frozenset()) for root_id in self._registry.root_ids}
        failed = [root_id for root_id, result in results.items() if not result.success]
        if failed:
            logger.warning("%d of %d root(s) failed to evaluate", len(failed), len(results))
        return results

    def evaluate_dependents(self, node_id: str) -> dict[str, EvaluationResult]:
        """Re-evaluate every ancestor of a node, closest first.

        Useful after editing a formula, whose parents are not refreshed by
        `NodeRegistry.update_node`.

        Returns:
            Results keyed by ancestor id. Empty if the node has no ancestors
            or does not exist.

        """
        graph = LinkGraph.from_nodes(self._registry.nodes)
        ancestors = graph.ancestors(node_id)
        try:
            order = graph.evaluation_order(ancestors)
        except CycleError:
            order = sorted(ancestors)
        return {ancestor_id: self.evaluate(ancestor_id, frozenset()) for ancestor_id in order}
