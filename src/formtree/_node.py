"""Node records stored in the registry.

A node is either a `FactorNode` (direct input value, never has children) or a
`FormulaNode` (arithmetic expression over the names of its children). The two
variants form a pydantic tagged union discriminated by `kind`, so a document
record is validated into the right class and a factor carrying children is
rejected at construction.
"""

from enum import StrEnum, auto
from typing import Annotated, Literal, Self

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic.alias_generators import to_camel


class NodeKind(StrEnum):
    """The kind of node in the formula graph."""

    FACTOR = auto()  # Leaf with a direct value
    FORMULA = auto()  # Computed from children


class _NodeBase(BaseModel):
    """Fields shared by both node variants.

    Serialized names are camelCase (`childIds`, `computedValue`, `parentIds`);
    Python code uses the snake_case attribute names.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    child_ids: list[str] = Field(default_factory=list)
    computed_value: float | None = None
    parent_ids: list[str] = Field(default_factory=list)
    description: str | None = None
    unit: str | None = None

    @property
    def is_factor(self) -> bool:
        return isinstance(self, FactorNode)

    @property
    def is_formula(self) -> bool:
        return isinstance(self, FormulaNode)


class FactorNode(_NodeBase):
    """Leaf node holding the authoritative numeric input."""

    kind: Literal["factor"] = "factor"
    value: float = 0.0

    @model_validator(mode="after")
    def check_no_children(self) -> Self:
        if self.child_ids:
            msg = f"Factor node '{self.name}' cannot have children"
            raise ValueError(msg)
        return self

    @property
    def current_value(self) -> float:
        return self.value


class FormulaNode(_NodeBase):
    """Interior node computing its value from the expression over its children."""

    kind: Literal["formula"] = "formula"
    expression: str | None = None

    @property
    def current_value(self) -> float:
        return self.computed_value if self.computed_value is not None else 0.0


Node = Annotated[FactorNode | FormulaNode, Field(discriminator="kind")]

node_adapter: TypeAdapter[FactorNode | FormulaNode] = TypeAdapter(Node)


def dump_node(node: FactorNode | FormulaNode) -> dict:
    """Serialize a node to its document record (camelCase, absent fields omitted)."""
    return node.model_dump(mode="json", by_alias=True, exclude_none=True)
