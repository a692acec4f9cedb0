"""Inverse solving: the child value that gives a parent a target value.

Solving runs in two stages:

1. Algebraic. When the parent's expression is a single top-level binary
   operation with the child alone on one side, the other side is evaluated
   with the current sibling values and the operator is inverted in closed form.
2. Numerical. Otherwise the parent expression is treated as a black-box
   function of the child value and a root is searched with the secant method.

The solver only reads the registry. Use `apply_solution` to write a result
back into a factor child.
"""

from __future__ import annotations

import logging
import math
import random
from dataclasses import dataclass
from enum import StrEnum, auto
from typing import TYPE_CHECKING, Literal

from ._errors import ErrorKind, ExpressionError, Failure, UpdateResult
from ._evaluator import duplicate_child_names
from ._expr import BinaryOp, Variable, evaluate_ast, parse_expression, referenced_names

if TYPE_CHECKING:
    from collections.abc import Callable

    from ._expr import Expr
    from ._node import FormulaNode
    from ._registry import NodeRegistry

logger = logging.getLogger(__name__)

STALL_THRESHOLD = 1e-12
PERTURBATION_FRACTION = 0.05


class SolveMethod(StrEnum):
    """How a solution was obtained."""

    ALGEBRAIC = auto()
    NUMERICAL = auto()


@dataclass(frozen=True, slots=True)
class SolverSettings:
    """Tuning of the numerical stage.

    Attributes:
        max_iterations: Secant iteration budget.
        tolerance: Accept a guess when ``|f(x)|`` falls below this. After the
            budget is spent, ``10 * tolerance`` is still accepted.
        perturbation: What to do when the secant slope stalls.
            ``"random"`` nudges it uniformly within +/-5% using `seed`;
            ``"deterministic"`` always moves it up by 5% of its magnitude.
        seed: Seed for the ``"random"`` perturbation. A fixed seed keeps
            repeated solves reproducible; None draws a fresh one each time.

    """

    max_iterations: int = 100
    tolerance: float = 1e-6
    perturbation: Literal["deterministic", "random"] = "random"
    seed: int | None = 0


@dataclass(frozen=True, slots=True)
class SolveResult:
    """Result of a reverse solve.

    Attributes:
        value: The required child value, present only on success.
        error: The failure, present only on failure.
        method: Stage that produced the answer (or was running when it failed).
        iterations: Secant iterations performed; 0 for algebraic answers.

    """

    value: float | None = None
    error: Failure | None = None
    method: SolveMethod | None = None
    iterations: int = 0

    @property
    def success(self) -> bool:
        return self.error is None


def _fail(kind: ErrorKind, message: str, method: SolveMethod | None = None, iterations: int = 0) -> SolveResult:
    return SolveResult(error=Failure(kind, message), method=method, iterations=iterations)


def invert_top_level(expr: Expr, child: str, target: float, rest_value: Callable[[Expr], float]) -> float | None:
    """Invert a top-level binary operation for the variable `child`.

    Args:
        expr: Parsed parent expression.
        child: Name of the variable to solve for.
        target: Desired value of the whole expression.
        rest_value: Evaluates the other operand; raises ExpressionError when it
            cannot (for example because it references `child` too).

    Returns:
        The closed-form child value, or None if the shape does not match or a
        guard (zero divisor) fails.

    """
    if not isinstance(expr, BinaryOp):
        return None

    anchor = Variable(child)
    # child OP rest, then rest OP child, in operator order * + - /
    candidates: list[tuple[bool, Expr]] = []
    if expr.left == anchor:
        candidates.append((True, expr.right))
    if expr.right == anchor:
        candidates.append((False, expr.left))

    for child_on_left, rest_expr in candidates:
        try:
            rest = rest_value(rest_expr)
        except ExpressionError:
            continue
        match expr.op, child_on_left:
            case "*", _:
                if rest != 0:
                    return target / rest
            case "+", _:
                return target - rest
            case "-", True:
                return target + rest
            case "-", False:
                return rest - target
            case "/", True:
                if rest != 0:
                    return target * rest
            case "/", False:
                if target != 0:
                    return rest / target
    return None


def secant(
    objective: Callable[[float], float],
    initial_guess: float,
    settings: SolverSettings,
) -> SolveResult:
    """Find a root of `objective` with the secant method.

    `objective` should return NaN when it cannot be evaluated.
    """
    rng = random.Random(settings.seed)
    x0 = initial_guess
    x1 = 1.0 if initial_guess == 0 else initial_guess * 1.1
    f0 = objective(x0)
    f1 = objective(x1)

    for iteration in range(1, settings.max_iterations + 1):
        if abs(f1) < settings.tolerance:
            return SolveResult(value=x1, method=SolveMethod.NUMERICAL, iterations=iteration - 1)

        if abs(f1 - f0) < STALL_THRESHOLD:
            # Slope collapsed: move x1 and retry
            magnitude = abs(x1) if x1 != 0 else 1.0
            if settings.perturbation == "random":
                x1 += (rng.random() - 0.5) * 2 * PERTURBATION_FRACTION * magnitude
            else:
                x1 += PERTURBATION_FRACTION * magnitude
            f1 = objective(x1)
            logger.debug("Secant slope stalled, perturbed guess to %r", x1)
            continue

        x_next = x1 - f1 * (x1 - x0) / (f1 - f0)
        if not math.isfinite(x_next):
            return _fail(ErrorKind.DIVERGED, "Numerical solution diverged", SolveMethod.NUMERICAL, iteration)

        x0, f0 = x1, f1
        x1 = x_next
        f1 = objective(x1)
        if math.isnan(f1):
            return _fail(ErrorKind.NAN_RESULT, "Formula evaluation resulted in NaN", SolveMethod.NUMERICAL, iteration)

    if abs(f1) < settings.tolerance * 10:
        return SolveResult(value=x1, method=SolveMethod.NUMERICAL, iterations=settings.max_iterations)

    return _fail(
        ErrorKind.DID_NOT_CONVERGE,
        f"Could not converge to a solution within tolerance after {settings.max_iterations} iterations",
        SolveMethod.NUMERICAL,
        settings.max_iterations,
    )


class ReverseSolver:
    """Finds the value a child must hold for its parent to reach a target.

    Example:
        >>> solver = ReverseSolver(registry)
        >>> result = solver.solve_child(subtotal.id, price.id, 500)
        >>> result.value, result.method
        (100.0, <SolveMethod.ALGEBRAIC: 'algebraic'>)

    """

    def __init__(self, registry: NodeRegistry, settings: SolverSettings | None = None) -> None:
        self._registry = registry
        self.settings = settings or SolverSettings()

    def _sibling_context(self, parent: FormulaNode, child_id: str) -> dict[str, float]:
        context: dict[str, float] = {}
        for sibling_id in parent.child_ids:
            sibling = self._registry.get_node(sibling_id)
            if sibling is None or sibling_id == child_id:
                continue
            context[sibling.name] = sibling.computed_value if sibling.computed_value is not None else 0.0
        return context

    def solve_child(self, parent_id: str, child_id: str, target: float) -> SolveResult:  # noqa: PLR0911
        """Compute the child value that makes the parent evaluate to `target`.

        Args:
            parent_id: Formula node whose value should reach `target`.
            child_id: Direct child of the parent to solve for.
            target: Desired parent value.

        Returns:
            SolveResult with the value, the method used and the iteration
            count. Sibling values are read from their cached
            `computed_value`; nothing is re-evaluated or written.

        """
        parent = self._registry.get_node(parent_id)
        child = self._registry.get_node(child_id)
        if parent is None:
            return _fail(ErrorKind.PARENT_NOT_FOUND, f"Parent node '{parent_id}' not found")
        if child is None:
            return _fail(ErrorKind.CHILD_NOT_FOUND, f"Child node '{child_id}' not found")
        if not parent.is_formula:
            return _fail(ErrorKind.PARENT_NOT_FORMULA, f"Parent '{parent.name}' must be a formula node")
        if child_id not in parent.child_ids:
            return _fail(
                ErrorKind.CHILD_NOT_IN_FORMULA,
                f"'{child.name}' is not part of the formula of '{parent.name}'",
            )
        if not parent.expression:
            return _fail(ErrorKind.NO_EXPRESSION, f"Parent '{parent.name}' has no formula")

        duplicates = duplicate_child_names(self._registry, parent)
        if duplicates:
            return _fail(
                ErrorKind.INVALID_EXPRESSION,
                f"Parent '{parent.name}' has several children named {duplicates}",
            )

        try:
            expr = parse_expression(parent.expression)
        except ExpressionError as e:
            return _fail(ErrorKind.INVALID_EXPRESSION, str(e))
        if child.name not in referenced_names(expr):
            return _fail(
                ErrorKind.CHILD_NOT_IN_FORMULA,
                f"'{child.name}' does not appear in the formula of '{parent.name}'",
            )

        siblings = self._sibling_context(parent, child_id)

        value = invert_top_level(expr, child.name, target, lambda rest: evaluate_ast(rest, siblings))
        if value is not None:
            logger.debug("Solved %s for %s algebraically: %r", child.name, parent.name, value)
            return SolveResult(value=value, method=SolveMethod.ALGEBRAIC, iterations=0)

        def objective(x: float) -> float:
            try:
                return evaluate_ast(expr, {**siblings, child.name: x}) - target
            except ExpressionError:
                return math.nan

        result = secant(objective, child.current_value, self.settings)
        logger.debug("Numerical solve of %s for %s: %s", child.name, parent.name, result)
        return result

    def apply_solution(self, child_id: str, result: SolveResult) -> UpdateResult:
        """Write a successful solve result into a factor child.

        The write goes through `NodeRegistry.update_node`, so every root is
        re-evaluated.
        """
        if not result.success or result.value is None:
            return UpdateResult.fail(ErrorKind.INVALID_UPDATE, "Cannot apply a failed solve result")
        child = self._registry.get_node(child_id)
        if child is None:
            return UpdateResult.fail(ErrorKind.NOT_FOUND, f"Node '{child_id}' not found")
        if not child.is_factor:
            return UpdateResult.fail(
                ErrorKind.INVALID_UPDATE,
                f"Only factor nodes can take a solved value; '{child.name}' is a formula",
            )
        return self._registry.update_node(child_id, value=result.value)
