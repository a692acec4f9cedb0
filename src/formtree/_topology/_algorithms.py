"""Graph algorithms over child adjacency maps."""

from collections import defaultdict, deque
from collections.abc import Collection, Hashable, Mapping
from typing import TypeVar

T = TypeVar("T", bound=Hashable)


class CycleError(ValueError):
    """Raised when an ordering is requested for a graph with a cycle.

    Attributes:
        remaining: Nodes that could not be ordered (members of, or downstream
            of, at least one cycle).

    """

    def __init__(self, remaining: Collection[Hashable]) -> None:
        self.remaining = frozenset(remaining)
        super().__init__(f"Cycle detected among {len(self.remaining)} node(s)")


def evaluation_order(children: Mapping[T, Collection[T]]) -> list[T]:
    """Order nodes so every node comes after all of its children.

    Args:
        children: Mapping from node to the nodes its value is computed from.
            Children that are not keys themselves are still ordered.

    Returns:
        List of nodes, leaves first.

    Raises:
        CycleError: If the graph contains a cycle.

    Example:
        >>> evaluation_order({"total": ["subtotal", "tax"], "tax": ["subtotal"]})
        ['subtotal', 'tax', 'total']

    """
    # Kahn's algorithm over the reversed edges (child -> parent)
    pending: defaultdict[T, int] = defaultdict(int)
    parents: defaultdict[T, list[T]] = defaultdict(list)
    for node, kids in children.items():
        pending[node] += 0
        for kid in dict.fromkeys(kids):
            pending[kid] += 0
            pending[node] += 1
            parents[kid].append(node)

    queue = deque(node for node, count in pending.items() if count == 0)
    order: list[T] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for parent in parents[node]:
            pending[parent] -= 1
            if pending[parent] == 0:
                queue.append(parent)

    if len(order) != len(pending):
        raise CycleError(set(pending) - set(order))
    return order


def find_cycle(children: Mapping[T, Collection[T]]) -> list[T] | None:
    """Find one cycle by depth-first search.

    Returns:
        The cycle as a path that starts and ends with the same node
        (``["a", "b", "a"]``), or None if the graph is acyclic.

    """
    done: set[T] = set()
    for start in children:
        if start in done:
            continue
        path: list[T] = [start]
        on_path: set[T] = {start}
        stack = [iter(children.get(start, ()))]
        while stack:
            kid = next(stack[-1], None)
            if kid is None:
                stack.pop()
                finished = path.pop()
                on_path.discard(finished)
                done.add(finished)
                continue
            if kid in on_path:
                return [*path[path.index(kid) :], kid]
            if kid in done:
                continue
            path.append(kid)
            on_path.add(kid)
            stack.append(iter(children.get(kid, ())))
    return None
