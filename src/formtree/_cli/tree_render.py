"""Rich rendering utilities for CLI commands."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.markup import escape
from rich.table import Table
from rich.tree import Tree

from formtree._node import NodeKind

if TYPE_CHECKING:
    from rich.console import Console

    from formtree._errors import EvaluationResult
    from formtree._node import Node

    from .tree_query import NodeRow, TreeNode


def format_value(value: float | None, unit: str | None = None) -> str:
    """Format a computed value for display."""
    if value is None:
        return "[dim]n/a[/dim]"
    text = f"{value:,.4f}".rstrip("0").rstrip(".")
    if unit:
        text += f" {escape(unit)}"
    return text


def _node_label(node: Node) -> str:
    kind_style = _get_kind_style(node.kind)
    value = format_value(node.computed_value, node.unit)
    label = f"[bold {kind_style}]{escape(node.name)}[/bold {kind_style}] = {value}"
    if node.is_formula and node.expression:
        label += f"  [dim]({escape(node.expression)})[/dim]"
    return label


def render_tree(tree_node: TreeNode, console: Console, error: EvaluationResult | None = None) -> None:
    """Render a formula tree using Rich Tree.

    Args:
        tree_node: TreeNode root to render.
        console: Rich Console to output to.
        error: The root's evaluation result; a failure is shown under the label.

    """
    rich_tree = Tree(_node_label(tree_node.node))
    if error is not None and error.error is not None:
        rich_tree.add(f"[red]✗ {escape(str(error.error))}[/red]")
    _add_tree_children(rich_tree, tree_node.children)
    console.print(rich_tree)


def _add_tree_children(parent: Tree, children: list[TreeNode]) -> None:
    """Recursively add children to a Rich Tree."""
    for child in children:
        if child.repeated:
            parent.add(f"[red]{escape(child.node.name)} (circular reference)[/red]")
            continue
        child_tree = parent.add(_node_label(child.node))
        _add_tree_children(child_tree, child.children)


def render_node_table(rows: list[NodeRow], console: Console) -> None:
    """Render node rows as a Rich table."""
    if not rows:
        console.print("[dim]No nodes[/dim]")
        return

    table = Table(show_header=True, header_style="bold cyan")
    table.add_column("Name", style="bold")
    table.add_column("Kind")
    table.add_column("Expression", style="dim")
    table.add_column("Value", justify="right")
    table.add_column("Parents", justify="right")
    table.add_column("Root", justify="center")

    for row in rows:
        kind_style = _get_kind_style(NodeKind(row.kind))
        table.add_row(
            escape(row.name),
            f"[{kind_style}]{row.kind.upper()}[/{kind_style}]",
            escape(row.expression or ""),
            format_value(row.value, row.unit),
            str(row.parents),
            "✓" if row.is_root else "",
        )

    console.print(table)
    console.print(f"\n[dim]Total: {len(rows)} nodes[/dim]")


def _get_kind_style(kind: str) -> str:
    """Get Rich style string for a node kind."""
    match kind:
        case NodeKind.FACTOR:
            return "blue"
        case NodeKind.FORMULA:
            return "green"
        case _:
            return "white"
