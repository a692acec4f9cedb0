"""Topology module for the links between registry nodes.

This module contains:
- LinkGraph: An immutable snapshot of parent/child links with traversal queries
- check_links: Structural invariant report for a node mapping
- evaluation_order / find_cycle: Algorithms over child adjacency maps
"""

from ._algorithms import CycleError, evaluation_order, find_cycle
from ._link_graph import LinkGraph, check_links

__all__ = ["CycleError", "LinkGraph", "check_links", "evaluation_order", "find_cycle"]
