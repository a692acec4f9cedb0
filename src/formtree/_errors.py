"""Failure taxonomy and result values returned by the engine.

Every expected failure mode (missing node, bad expression, cycle, solver
divergence, malformed document) is reported as a result value carrying a
`Failure` instead of raising. Exceptions are reserved for programming errors
and for the expression parser's internal control flow.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Self


class ErrorKind(StrEnum):
    """Kind of a recoverable engine failure.

    Each member carries a short description in its docstring.
    """

    def __new__(cls, value: str, doc: str = "") -> Self:
        """Create a new member with a docstring."""
        obj = str.__new__(cls, value)
        obj._value_ = value
        obj.__doc__ = doc
        return obj

    NOT_FOUND = "not_found", "Operation referenced an absent node id."
    INVALID_EXPRESSION = "invalid_expression", "Expression is malformed or not pure arithmetic."
    CIRCULAR_DEPENDENCY = "circular_dependency", "A node was revisited along its own evaluation path."
    NO_FORMULA = "no_formula", "A formula node was evaluated without an expression."
    NO_EXPRESSION = "no_expression", "Reverse solving needs a parent with an expression."
    PARENT_NOT_FOUND = "parent_not_found", "Reverse solving parent does not exist."
    CHILD_NOT_FOUND = "child_not_found", "Reverse solving child does not exist."
    PARENT_NOT_FORMULA = "parent_not_formula", "Reverse solving parent is a factor."
    CHILD_NOT_IN_FORMULA = "child_not_in_formula", "Child is not linked to the parent."
    DIVERGED = "diverged", "Secant step produced a non-finite guess."
    NAN_RESULT = "nan_result", "Objective evaluated to NaN."
    DID_NOT_CONVERGE = "did_not_converge", "Iteration budget exhausted outside tolerance."
    IMPORT_FORMAT_ERROR = "import_format_error", "Document is missing required top-level fields."
    IMPORT_INVARIANT_ERROR = "import_invariant_error", "Document describes an inconsistent graph."
    INVALID_UPDATE = "invalid_update", "Field does not apply to this node kind."
    FACTOR_CHILDREN = "factor_children", "Factor nodes cannot have children."


@dataclass(frozen=True, slots=True)
class Failure:
    """A recoverable failure with a human readable message."""

    kind: ErrorKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind}: {self.message}"


@dataclass(frozen=True, slots=True)
class EvaluationResult:
    """Outcome of evaluating an expression or a node.

    Attributes:
        value: The computed number, present only on success.
        error: The failure, present only on failure.

    """

    value: float | None = None
    error: Failure | None = None

    @property
    def success(self) -> bool:
        """Check if evaluation produced a value."""
        return self.error is None

    @classmethod
    def ok(cls, value: float) -> EvaluationResult:
        return cls(value=value)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> EvaluationResult:
        return cls(error=Failure(kind, message))


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Outcome of a mutation that carries no value."""

    error: Failure | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> OperationResult:
        return cls(error=Failure(kind, message))


@dataclass(frozen=True, slots=True)
class UpdateResult:
    """Outcome of `NodeRegistry.update_node`.

    Attributes:
        error: Set when the update itself was rejected (nothing changed).
        evaluations: Results of the re-evaluations the update triggered,
            keyed by node id. Failures here do not undo the update.

    """

    error: Failure | None = None
    evaluations: dict[str, EvaluationResult] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """Check if the update was applied (cascade failures are reported separately)."""
        return self.error is None

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> UpdateResult:
        return cls(error=Failure(kind, message))

    @property
    def failed_evaluations(self) -> dict[str, Failure]:
        return {node_id: r.error for node_id, r in self.evaluations.items() if r.error is not None}


class FormtreeError(Exception):
    """Base class for exceptions raised by formtree."""


class ExpressionError(FormtreeError):
    """Raised by the tokenizer, parser and AST evaluator.

    Attributes:
        position: Character offset in the source text, if known.

    """

    def __init__(self, message: str, position: int | None = None) -> None:
        self.position = position
        if position is not None:
            message = f"{message} (at position {position})"
        super().__init__(message)
