"""Expression tree and its evaluation."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, TypeAlias

from formtree._errors import ExpressionError

BinaryOperator: TypeAlias = Literal["+", "-", "*", "/"]
UnaryOperator: TypeAlias = Literal["+", "-"]


@dataclass(frozen=True, slots=True)
class Number:
    value: float

    def __str__(self) -> str:
        return repr(self.value)


@dataclass(frozen=True, slots=True)
class Variable:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True, slots=True)
class UnaryOp:
    op: UnaryOperator
    operand: Expr

    def __str__(self) -> str:
        return f"{self.op}{self.operand}"


@dataclass(frozen=True, slots=True)
class BinaryOp:
    op: BinaryOperator
    left: Expr
    right: Expr

    def __str__(self) -> str:
        return f"({self.left} {self.op} {self.right})"


Expr: TypeAlias = Number | Variable | UnaryOp | BinaryOp


def referenced_names(expr: Expr) -> frozenset[str]:
    """Collect every variable name used in an expression tree."""
    match expr:
        case Number():
            return frozenset()
        case Variable(name):
            return frozenset({name})
        case UnaryOp(_, operand):
            return referenced_names(operand)
        case BinaryOp(_, left, right):
            return referenced_names(left) | referenced_names(right)
    msg = f"Unknown expression node: {type(expr)}"
    raise TypeError(msg)


def _apply(op: BinaryOperator, left: float, right: float) -> float:
    match op:
        case "+":
            return left + right
        case "-":
            return left - right
        case "*":
            return left * right
        case "/":
            if right == 0:
                msg = "Division by zero"
                raise ExpressionError(msg)
            return left / right


def evaluate_ast(expr: Expr, context: Mapping[str, float]) -> float:
    """Evaluate an expression tree against variable values.

    Only float arithmetic is performed; names are looked up in `context` and
    nothing else is reachable.

    Raises:
        ExpressionError: On an unresolved variable, division by zero or a
            non-finite intermediate result.

    """
    match expr:
        case Number(value):
            result = value
        case Variable(name):
            if name not in context:
                msg = f"Unresolved variable '{name}'"
                raise ExpressionError(msg)
            result = float(context[name])
        case UnaryOp(op, operand):
            inner = evaluate_ast(operand, context)
            result = -inner if op == "-" else inner
        case BinaryOp(op, left, right):
            result = _apply(op, evaluate_ast(left, context), evaluate_ast(right, context))
        case _:
            msg = f"Unknown expression node: {type(expr)}"
            raise TypeError(msg)

    if not math.isfinite(result):
        msg = f"Expression produced a non-finite value ({result})"
        raise ExpressionError(msg)
    return result
