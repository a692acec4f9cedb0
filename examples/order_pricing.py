"""Order pricing example for formtree.

This example builds a small pricing tree by hand and shows:
- Shared factors feeding several formulas
- Cascading a factor change to every root
- Solving for the input that reaches a target total
- Saving the tree as a JSON document

Run it with:
    python examples/order_pricing.py
"""

from pathlib import Path

import formtree as ft

# -----------------------------------------------------------------------------
# Tree Setup
# -----------------------------------------------------------------------------

registry = ft.NodeRegistry()

unit_price = registry.create_factor("unitPrice", 12.5, unit="$")
quantity = registry.create_factor("quantity", 40, unit="units")
discount = registry.create_factor("discount", 0.1, unit="ratio")
shipping = registry.create_factor("shipping", 25, unit="$")

gross = registry.create_formula("gross", "unitPrice * quantity", [unit_price.id, quantity.id], unit="$")
net = registry.create_formula("net", "gross * (1 - discount)", [gross.id, discount.id], unit="$")
invoice = registry.create_formula("invoice", "net + shipping", [net.id, shipping.id], unit="$")
registry.mark_root(invoice.id)


def main() -> None:
    print(f"invoice = {invoice.computed_value}")

    # A factor change re-evaluates every root
    registry.update_node(quantity.id, value=60)
    print(f"invoice after quantity=60: {invoice.computed_value}")

    # net + shipping has shipping as a direct operand, so this is solved in closed form
    solver = ft.ReverseSolver(registry)
    result = solver.solve_child(invoice.id, shipping.id, 700)
    print(f"shipping for invoice=700: {result.value} ({result.method})")

    # discount sits inside a product, so the secant method is used
    result = solver.solve_child(net.id, discount.id, 600)
    print(f"discount for net=600: {result.value:.4f} ({result.method}, {result.iterations} iterations)")
    solver.apply_solution(discount.id, result)
    print(f"invoice after applying discount: {invoice.computed_value}")

    output = Path("order_pricing.json")
    ft.save(registry, output)
    print(f"saved to {output}")


if __name__ == "__main__":
    main()
