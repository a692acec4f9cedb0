"""Persistence of the whole registry as one JSON document.

Document shape::

    {
      "nodes": [[id, NodeRecord], ...],
      "rootNodeIds": [id, ...],
      "exportDate": "<ISO-8601>",
      "version": "1.0"
    }

Node records use the camelCase field names of the node models and omit
absent optional fields.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import tomli_w
from pydantic import ValidationError

from ._errors import ErrorKind, OperationResult
from ._node import dump_node, node_adapter
from ._topology import check_links

if TYPE_CHECKING:
    from collections.abc import Mapping

    from ._node import Node
    from ._registry import NodeRegistry

logger = logging.getLogger(__name__)

FORMAT_VERSION = "1.0"


def export_document(registry: NodeRegistry) -> dict[str, Any]:
    """Build the persisted document for a registry."""
    return {
        "nodes": [[node_id, dump_node(node)] for node_id, node in registry.nodes.items()],
        "rootNodeIds": list(registry.root_ids),
        "exportDate": datetime.now(UTC).isoformat(),
        "version": FORMAT_VERSION,
    }


def check_registry(nodes: Mapping[str, Node], root_ids: list[str]) -> list[str]:
    """Report structural invariant violations (see `check_links`)."""
    return check_links(nodes, root_ids)


def _parse_document(document: Any) -> tuple[dict[str, Node], list[str]]:
    """Validate the document shape and build node records.

    Raises:
        ValueError: If the shape is wrong or a record does not validate.

    """
    if not isinstance(document, dict):
        msg = "Invalid format: document must be an object"
        raise ValueError(msg)  # noqa: TRY004

    raw_nodes = document.get("nodes")
    if not isinstance(raw_nodes, list):
        msg = "Invalid format: missing nodes array"
        raise ValueError(msg)  # noqa: TRY004

    root_ids = document.get("rootNodeIds")
    if not isinstance(root_ids, list) or not all(isinstance(r, str) for r in root_ids):
        msg = "Invalid format: missing rootNodeIds array"
        raise ValueError(msg)

    nodes: dict[str, Node] = {}
    for index, entry in enumerate(raw_nodes):
        if not (isinstance(entry, list) and len(entry) == 2 and isinstance(entry[0], str)):  # noqa: PLR2004
            msg = f"Invalid format: nodes[{index}] must be an [id, node] pair"
            raise ValueError(msg)
        node_id, record = entry
        try:
            nodes[node_id] = node_adapter.validate_python(record)
        except ValidationError as e:
            msg = f"Invalid format: nodes[{index}] ({node_id}): {e.error_count()} validation error(s)\n{e}"
            raise ValueError(msg) from e

    return nodes, list(root_ids)


def import_document(
    registry: NodeRegistry,
    document: Any,
    *,
    check_invariants: bool = False,
) -> OperationResult:
    """Replace the registry contents with a persisted document.

    Only the top-level shape and the individual records are validated; the
    existing registry is left untouched when they are malformed. Parent/child
    mirroring and acyclicity are trusted unless `check_invariants` is set.
    On success every root is re-evaluated.

    Args:
        registry: Registry to replace.
        document: Parsed JSON document.
        check_invariants: Reject documents that describe an inconsistent graph.

    Returns:
        OperationResult with IMPORT_FORMAT_ERROR or IMPORT_INVARIANT_ERROR on
        failure.

    """
    try:
        nodes, root_ids = _parse_document(document)
    except ValueError as e:
        logger.debug("Rejected document: %s", e)
        return OperationResult.fail(ErrorKind.IMPORT_FORMAT_ERROR, str(e))

    if check_invariants:
        errors = check_registry(nodes, root_ids)
        if errors:
            return OperationResult.fail(ErrorKind.IMPORT_INVARIANT_ERROR, "; ".join(errors))

    registry.replace(nodes, root_ids)
    registry.evaluator.evaluate_all_roots()
    logger.debug("Imported %d node(s)", len(nodes))
    return OperationResult()


def dumps(registry: NodeRegistry, *, indent: int = 2) -> str:
    """Serialize a registry to JSON text."""
    return json.dumps(export_document(registry), indent=indent)


def loads(registry: NodeRegistry, text: str, *, check_invariants: bool = False) -> OperationResult:
    """Replace a registry from JSON text (see `import_document`)."""
    try:
        document = json.loads(text)
    except json.JSONDecodeError as e:
        return OperationResult.fail(ErrorKind.IMPORT_FORMAT_ERROR, f"Import failed: {e}")
    return import_document(registry, document, check_invariants=check_invariants)


def save(registry: NodeRegistry, path: Path | str) -> None:
    """Write a registry document to a JSON file."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dumps(registry) + "\n", encoding="utf-8")
    logger.debug(f"Saved registry to {path}")


def load(registry: NodeRegistry, path: Path | str, *, check_invariants: bool = False) -> OperationResult:
    """Replace a registry from a JSON file.

    Raises:
        OSError: If the file cannot be read.

    """
    path = Path(path)
    result = loads(registry, path.read_text(encoding="utf-8"), check_invariants=check_invariants)
    if result.success:
        logger.debug(f"Loaded registry from {path}")
    return result


def values_to_dict(registry: NodeRegistry) -> dict[str, Any]:
    """Collect evaluated node values into a nested dictionary.

    Returns:
        ``{"values": {name: {"value": ..., "unit": ...}}}`` for every node
        with a computed value. Duplicate names keep the first node.

    """
    values: dict[str, dict[str, Any]] = {}
    for node in registry.nodes.values():
        if node.computed_value is None or node.name in values:
            continue
        entry: dict[str, Any] = {"kind": str(node.kind), "value": node.computed_value}
        if node.unit is not None:
            entry["unit"] = node.unit
        values[node.name] = entry
    return {"values": values}


def export_values_to_toml(registry: NodeRegistry, output_path: Path | str) -> None:
    """Export evaluated node values to a TOML file."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("wb") as f:
        tomli_w.dump(values_to_dict(registry), f)

    logger.debug(f"Exported values to {output_path}")
