import logging
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel

from formtree._codec import check_registry, export_values_to_toml, load, save
from formtree._node import Node
from formtree._registry import NodeRegistry
from formtree._sample import build_sample_tree
from formtree._solver import ReverseSolver, SolverSettings

from .config import ConfigError, get_config
from .tree_query import NodeLookupError, build_display_tree, node_rows, resolve_name
from .tree_render import format_value, render_node_table, render_tree

app = typer.Typer()

logger = logging.getLogger(__name__)
# Console for stderr (info/errors)
err_console = Console(stderr=True)
# Console for stdout (results)
out_console = Console()

DocumentArg = Annotated[
    Path | None,
    typer.Argument(help="Path to the tree JSON document (defaults to [tool.formtree].document)"),
]


@app.callback()
def callback(
    *,
    verbose: bool = typer.Option(default=False, help="Enable verbose output"),
) -> None:
    """Formula tree CLI."""
    log_level = logging.DEBUG if verbose else logging.INFO

    # Configure rich logging handler to output to stderr
    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[
            RichHandler(
                console=err_console,
                show_time=False,
                show_path=verbose,
                rich_tracebacks=True,
            ),
        ],
    )


def _solver_settings() -> SolverSettings:
    try:
        return get_config().solver
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


def _resolve_document(document: Path | None) -> Path:
    """Use the given path or fall back to the configured document."""
    if document is not None:
        return document
    try:
        config = get_config()
    except ConfigError as e:
        err_console.print(f"[red]Configuration error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    if config.document is None:
        err_console.print("[red]No document given and no [tool.formtree].document configured[/red]")
        raise typer.Exit(code=1)
    return config.document


def _load_registry(document: Path) -> NodeRegistry:
    """Load a document into a fresh registry, exiting on failure."""
    err_console.print(f"[cyan]Loading tree from:[/cyan] {document}")
    registry = NodeRegistry()
    try:
        result = load(registry, document)
    except OSError as e:
        err_console.print(f"[red]Error: cannot read {document}: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e
    if result.error is not None:
        err_console.print(f"[red]✗ {escape(str(result.error))}[/red]")
        raise typer.Exit(code=1)
    return registry


def _lookup(registry: NodeRegistry, name: str) -> Node:
    try:
        return resolve_name(registry, name)
    except NodeLookupError as e:
        err_console.print(f"[red]Error: {escape(str(e))}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def sample(
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to output JSON document"),
    ],
) -> None:
    """Write the demonstration pricing tree."""
    registry = NodeRegistry()
    build_sample_tree(registry)
    save(registry, output)
    err_console.print(f"[green]✓ Sample tree written to {output}[/green]")


@app.command()
def show(document: DocumentArg = None) -> None:
    """Evaluate all roots and print them as trees."""
    registry = _load_registry(_resolve_document(document))
    results = registry.evaluator.evaluate_all_roots()
    err_console.print()

    if not registry.root_ids:
        out_console.print("[dim]No root nodes[/dim]")
        return

    for root_id, result in results.items():
        tree = build_display_tree(registry, root_id)
        if tree is None:
            err_console.print(f"[yellow]Root '{escape(root_id)}' does not exist[/yellow]")
            continue
        render_tree(tree, out_console, result)


@app.command(name="eval")
def eval_(
    document: DocumentArg = None,
    *,
    node: Annotated[
        str | None,
        typer.Option("--node", help="Evaluate only the node with this name"),
    ] = None,
) -> None:
    """Evaluate nodes and print a table of values."""
    registry = _load_registry(_resolve_document(document))

    if node is None:
        results = registry.evaluator.evaluate_all_roots()
        rows = node_rows(registry)
    else:
        target = _lookup(registry, node)
        results = {target.id: registry.evaluator.evaluate_subtree(target.id)}
        rows = node_rows(registry, [target])

    err_console.print()
    render_node_table(rows, out_console)

    failures = {node_id: r.error for node_id, r in results.items() if r.error is not None}
    if failures:
        err_console.print()
        for node_id, failure in failures.items():
            name = registry.nodes[node_id].name if node_id in registry.nodes else node_id
            err_console.print(f"[red]✗ {escape(name)}: {escape(str(failure))}[/red]")
        raise typer.Exit(code=1)


@app.command(name="set")
def set_value(
    name: Annotated[str, typer.Argument(help="Name of the factor to change")],
    value: Annotated[float, typer.Argument(help="New value")],
    document: DocumentArg = None,
    *,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output document (defaults to the input document)"),
    ] = None,
) -> None:
    """Change a factor value, cascade to every root and save."""
    path = _resolve_document(document)
    registry = _load_registry(path)
    target = _lookup(registry, name)

    result = registry.update_node(target.id, value=value)
    if result.error is not None:
        err_console.print(f"[red]✗ {escape(str(result.error))}[/red]")
        raise typer.Exit(code=1)

    for node_id, failure in result.failed_evaluations.items():
        err_console.print(f"[yellow]⚠ {escape(registry.nodes[node_id].name)}: {escape(str(failure))}[/yellow]")

    output = output or path
    save(registry, output)
    err_console.print(f"[green]✓ {escape(name)} = {format_value(value)}; saved to {output}[/green]")


@app.command()
def solve(  # noqa: PLR0913
    document: DocumentArg = None,
    *,
    parent: Annotated[str, typer.Option("--parent", help="Name of the formula node to reach the target")],
    child: Annotated[str, typer.Option("--child", help="Name of the child to solve for")],
    target: Annotated[float, typer.Option("--target", help="Desired parent value")],
    apply: Annotated[
        bool,
        typer.Option("--apply", help="Write the solved value into the child and save"),
    ] = False,
    output: Annotated[
        Path | None,
        typer.Option("-o", "--output", help="Path to output document when applying (defaults to the input document)"),
    ] = None,
) -> None:
    """Find the child value that gives the parent the target value."""
    path = _resolve_document(document)
    registry = _load_registry(path)
    parent_node = _lookup(registry, parent)
    child_node = _lookup(registry, child)

    solver = ReverseSolver(registry, _solver_settings())
    result = solver.solve_child(parent_node.id, child_node.id, target)
    err_console.print()

    if result.error is not None or result.value is None:
        err_console.print(f"[red]✗ {escape(str(result.error))}[/red]")
        raise typer.Exit(code=1)

    out_console.print(
        Panel(
            f"[bold]{escape(child)}[/bold] = {result.value!r}\n"
            f"[dim]method: {result.method}, iterations: {result.iterations}[/dim]",
            title=f"[bold]{escape(parent)} = {format_value(target)}[/bold]",
            border_style="cyan",
        ),
    )

    if apply:
        applied = solver.apply_solution(child_node.id, result)
        if applied.error is not None:
            err_console.print(f"[red]✗ {escape(str(applied.error))}[/red]")
            raise typer.Exit(code=1)
        output = output or path
        save(registry, output)
        err_console.print(f"[green]✓ Applied and saved to {output}[/green]")


@app.command()
def check(document: DocumentArg = None) -> None:
    """Check the structural consistency of a document."""
    registry = _load_registry(_resolve_document(document))
    errors = check_registry(registry.nodes, registry.root_ids)
    err_console.print()

    if errors:
        for message in errors:
            err_console.print(f"  [red]•[/red] {escape(message)}")
        err_console.print()
        err_console.print(f"[red]✗ {len(errors)} problem(s) found[/red]")
        raise typer.Exit(code=1)

    err_console.print(
        f"[green]✓ Tree is consistent[/green] [dim]({len(registry)} nodes, {len(registry.root_ids)} roots)[/dim]",
    )


@app.command()
def calc(
    document: DocumentArg = None,
    *,
    output: Annotated[
        Path,
        typer.Option("-o", "--output", help="Path to output TOML file"),
    ],
) -> None:
    """Evaluate all roots and export node values to TOML."""
    registry = _load_registry(_resolve_document(document))

    err_console.print("[cyan]Evaluating roots...[/cyan]")
    results = registry.evaluator.evaluate_all_roots()
    failed = [root_id for root_id, r in results.items() if not r.success]

    err_console.print(f"[cyan]Exporting values to:[/cyan] {output}")
    export_values_to_toml(registry, output)

    err_console.print()
    if failed:
        err_console.print(f"[red]✗ {len(failed)} root(s) failed to evaluate[/red]")
        raise typer.Exit(code=1)
    err_console.print("[green]✓ Calculation complete[/green]")


def main() -> None:
    app()
