"""Arithmetic expression language for formula nodes.

Expressions are parsed by a small bounded parser into a tree and evaluated as
pure float arithmetic. Nothing besides `+ - * /`, parentheses, unary sign,
numeric literals and variable names is understood, and no host-language
evaluation is ever involved.

Key types:
- Expr: Union of Number, Variable, UnaryOp and BinaryOp tree nodes
- parse_expression: Parse text into an Expr (raises ExpressionError)
- evaluate_ast: Evaluate an Expr against a name -> number mapping
- evaluate_expression: Parse and evaluate, returning an EvaluationResult
"""

import logging
from collections.abc import Mapping

from formtree._errors import ErrorKind, EvaluationResult, ExpressionError

from ._ast import BinaryOp, Expr, Number, UnaryOp, Variable, evaluate_ast, referenced_names
from ._parser import parse_expression
from ._tokens import Token, TokenKind, tokenize

__all__ = [
    "BinaryOp",
    "Expr",
    "Number",
    "Token",
    "TokenKind",
    "UnaryOp",
    "Variable",
    "evaluate_ast",
    "evaluate_expression",
    "parse_expression",
    "referenced_names",
    "tokenize",
]

logger = logging.getLogger(__name__)


def evaluate_expression(expression: str, context: Mapping[str, float]) -> EvaluationResult:
    """Evaluate an expression string with the given variable values.

    Args:
        expression: Arithmetic text such as ``"price * (1 + taxRate)"``.
        context: Mapping from variable name to its current value.

    Returns:
        EvaluationResult with the finite value, or an INVALID_EXPRESSION
        failure for unresolved names, malformed syntax, division by zero or
        non-finite results.

    """
    try:
        value = evaluate_ast(parse_expression(expression), context)
    except ExpressionError as e:
        logger.debug("Expression %r failed: %s", expression, e)
        return EvaluationResult.fail(ErrorKind.INVALID_EXPRESSION, str(e))
    return EvaluationResult.ok(value)
