"""Tokenizer for the arithmetic expression language."""

from dataclasses import dataclass
from enum import StrEnum, auto

from formtree._errors import ExpressionError

OPERATORS = frozenset("+-*/")
DIGITS = frozenset("0123456789")


class TokenKind(StrEnum):
    NUMBER = auto()
    NAME = auto()
    OPERATOR = auto()
    LPAREN = auto()
    RPAREN = auto()
    END = auto()


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    position: int


def _is_name_start(char: str) -> bool:
    return char == "_" or (char.isascii() and char.isalpha())


def _is_name_char(char: str) -> bool:
    return char == "_" or char in DIGITS or (char.isascii() and char.isalpha())


def tokenize(source: str) -> list[Token]:
    """Split an expression into tokens.

    Only names, unsigned decimal literals, the four operators, parentheses and
    whitespace are accepted. Names are matched as whole words, so `tax` and
    `taxRate` are distinct tokens.

    Raises:
        ExpressionError: On any other character or a malformed number.

    Example:
        >>> [t.text for t in tokenize("price * (1 + taxRate)")]
        ['price', '*', '(', '1', '+', 'taxRate', ')', '']

    """
    tokens: list[Token] = []
    i = 0
    length = len(source)
    while i < length:
        char = source[i]
        if char.isspace():
            i += 1
        elif char in DIGITS or char == ".":
            start = i
            while i < length and (source[i] in DIGITS or source[i] == "."):
                i += 1
            text = source[start:i]
            if text.count(".") > 1 or text == ".":
                msg = f"Malformed number '{text}'"
                raise ExpressionError(msg, start)
            if i < length and _is_name_char(source[i]):
                msg = f"Unexpected character '{source[i]}' after number"
                raise ExpressionError(msg, i)
            tokens.append(Token(TokenKind.NUMBER, text, start))
        elif _is_name_start(char):
            start = i
            while i < length and _is_name_char(source[i]):
                i += 1
            tokens.append(Token(TokenKind.NAME, source[start:i], start))
        elif char in OPERATORS:
            tokens.append(Token(TokenKind.OPERATOR, char, i))
            i += 1
        elif char == "(":
            tokens.append(Token(TokenKind.LPAREN, char, i))
            i += 1
        elif char == ")":
            tokens.append(Token(TokenKind.RPAREN, char, i))
            i += 1
        else:
            msg = f"Invalid character '{char}'"
            raise ExpressionError(msg, i)
    tokens.append(Token(TokenKind.END, "", length))
    return tokens
