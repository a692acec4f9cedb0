"""Demonstration tree with a shared price factor."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ._registry import NodeRegistry


def build_sample_tree(registry: NodeRegistry) -> list[str]:
    """Replace the registry contents with two priced orders and their grand total.

    The ``price`` and ``taxRate`` factors are reused by both orders, so
    changing either updates ``total1``, ``total2`` and ``grandTotal``.

    Returns:
        The root ids (``total1``, ``total2``, ``grandTotal``).

    """
    registry.clear()

    price = registry.create_factor("price", 100, description="Unit price", unit="$")
    quantity1 = registry.create_factor("quantity1", 5, description="Quantity for order 1", unit="units")
    quantity2 = registry.create_factor("quantity2", 3, description="Quantity for order 2", unit="units")
    tax_rate = registry.create_factor("taxRate", 0.15, description="Tax rate", unit="ratio")

    subtotal1 = registry.create_formula(
        "subtotal1", "price * quantity1", [price.id, quantity1.id], description="Subtotal for order 1", unit="$",
    )
    tax1 = registry.create_formula(
        "tax1", "subtotal1 * taxRate", [subtotal1.id, tax_rate.id], description="Tax for order 1", unit="$",
    )
    total1 = registry.create_formula(
        "total1", "subtotal1 + tax1", [subtotal1.id, tax1.id], description="Final total for order 1", unit="$",
    )

    subtotal2 = registry.create_formula(
        "subtotal2", "price * quantity2", [price.id, quantity2.id], description="Subtotal for order 2", unit="$",
    )
    tax2 = registry.create_formula(
        "tax2", "subtotal2 * taxRate", [subtotal2.id, tax_rate.id], description="Tax for order 2", unit="$",
    )
    total2 = registry.create_formula(
        "total2", "subtotal2 + tax2", [subtotal2.id, tax2.id], description="Final total for order 2", unit="$",
    )

    grand_total = registry.create_formula(
        "grandTotal", "total1 + total2", [total1.id, total2.id], description="Combined total for both orders", unit="$",
    )

    roots = [total1.id, total2.id, grand_total.id]
    for root_id in roots:
        registry.mark_root(root_id)
    return roots
