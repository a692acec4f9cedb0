"""Recursive descent parser for the arithmetic expression language.

Grammar (binary operators are left associative)::

    expr    := term (('+' | '-') term)*
    term    := unary (('*' | '/') unary)*
    unary   := ('+' | '-') unary | primary
    primary := NUMBER | NAME | '(' expr ')'

Trees deeper than `MAX_DEPTH` are rejected, whether the depth comes from
parentheses, repeated signs or long operator chains.
"""

from formtree._errors import ExpressionError

from ._ast import BinaryOp, Expr, Number, UnaryOp, Variable
from ._tokens import Token, TokenKind, tokenize

MAX_DEPTH = 100


def _too_deep(position: int) -> ExpressionError:
    return ExpressionError("Expression nested too deeply", position)


class _Parser:
    def __init__(self, tokens: list[Token]) -> None:
        self._tokens = tokens
        self._index = 0
        self._depth = 0

    @property
    def _current(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        self._index += 1
        return token

    def _at_operator(self, *ops: str) -> bool:
        token = self._current
        return token.kind == TokenKind.OPERATOR and token.text in ops

    def _enter(self, position: int) -> None:
        self._depth += 1
        if self._depth > MAX_DEPTH:
            raise _too_deep(position)

    def parse(self) -> Expr:
        if self._current.kind == TokenKind.END:
            msg = "Empty expression"
            raise ExpressionError(msg, self._current.position)
        expr, _ = self._expr()
        token = self._current
        if token.kind != TokenKind.END:
            if token.kind == TokenKind.RPAREN:
                msg = "Unmatched ')'"
            else:
                msg = f"Unexpected token '{token.text}'"
            raise ExpressionError(msg, token.position)
        return expr

    # Each rule returns the subtree together with its height.

    def _expr(self) -> tuple[Expr, int]:
        left, height = self._term()
        while self._at_operator("+", "-"):
            token = self._advance()
            right, right_height = self._term()
            left = BinaryOp(token.text, left, right)  # type: ignore[arg-type]
            height = max(height, right_height) + 1
            if height > MAX_DEPTH:
                raise _too_deep(token.position)
        return left, height

    def _term(self) -> tuple[Expr, int]:
        left, height = self._unary()
        while self._at_operator("*", "/"):
            token = self._advance()
            right, right_height = self._unary()
            left = BinaryOp(token.text, left, right)  # type: ignore[arg-type]
            height = max(height, right_height) + 1
            if height > MAX_DEPTH:
                raise _too_deep(token.position)
        return left, height

    def _unary(self) -> tuple[Expr, int]:
        if self._at_operator("+", "-"):
            token = self._advance()
            self._enter(token.position)
            operand, height = self._unary()
            self._depth -= 1
            return UnaryOp(token.text, operand), height + 1  # type: ignore[arg-type]
        return self._primary()

    def _primary(self) -> tuple[Expr, int]:
        token = self._advance()
        match token.kind:
            case TokenKind.NUMBER:
                return Number(float(token.text)), 1
            case TokenKind.NAME:
                return Variable(token.text), 1
            case TokenKind.LPAREN:
                self._enter(token.position)
                inner = self._expr()
                self._depth -= 1
                closing = self._current
                if closing.kind != TokenKind.RPAREN:
                    msg = "Missing ')'"
                    raise ExpressionError(msg, closing.position)
                self._advance()
                return inner
            case TokenKind.END:
                msg = "Unexpected end of expression"
                raise ExpressionError(msg, token.position)
            case _:
                msg = f"Unexpected token '{token.text}'"
                raise ExpressionError(msg, token.position)


def parse_expression(source: str) -> Expr:
    """Parse an expression string into a tree.

    Raises:
        ExpressionError: If the text is not a well formed arithmetic expression,
            or its tree is deeper than `MAX_DEPTH`.

    Example:
        >>> str(parse_expression("a + b * 2"))
        '(a + (b * 2.0))'

    """
    return _Parser(tokenize(source)).parse()
