"""Hierarchical formula trees with forward evaluation and inverse solving."""

__all__ = [
    "BinaryOp",
    "ErrorKind",
    "EvaluationResult",
    "ExpressionError",
    "FactorNode",
    "Failure",
    "FormtreeError",
    "FormulaNode",
    "GraphEvaluator",
    "LinkGraph",
    "Node",
    "NodeKind",
    "NodeRegistry",
    "Number",
    "OperationResult",
    "ReverseSolver",
    "SolveMethod",
    "SolveResult",
    "SolverSettings",
    "UnaryOp",
    "UpdateResult",
    "Variable",
    "build_sample_tree",
    "check_registry",
    "dumps",
    "evaluate_expression",
    "export_document",
    "export_values_to_toml",
    "import_document",
    "load",
    "loads",
    "parse_expression",
    "referenced_names",
    "save",
]

from ._codec import (
    check_registry,
    dumps,
    export_document,
    export_values_to_toml,
    import_document,
    load,
    loads,
    save,
)
from ._errors import (
    ErrorKind,
    EvaluationResult,
    ExpressionError,
    Failure,
    FormtreeError,
    OperationResult,
    UpdateResult,
)
from ._evaluator import GraphEvaluator
from ._expr import (
    BinaryOp,
    Number,
    UnaryOp,
    Variable,
    evaluate_expression,
    parse_expression,
    referenced_names,
)
from ._node import FactorNode, FormulaNode, Node, NodeKind
from ._registry import NodeRegistry
from ._sample import build_sample_tree
from ._solver import ReverseSolver, SolveMethod, SolveResult, SolverSettings
from ._topology import LinkGraph
