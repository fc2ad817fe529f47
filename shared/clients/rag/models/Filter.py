"""Backend-independent filter predicates for vector search and deletion.

A predicate is a small tagged tree:

    FieldCondition(key, op, value)      leaf, e.g. document_id == 42
    AndFilter(clauses=[...])            every clause must hold
    OrFilter(clauses=[...])             at least one clause must hold

The ``kind`` tag makes the union parseable from JSON request bodies. Each RAG
engine translates the tree into its own filter syntax.
"""

from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field


class FilterOperator(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"


RANGE_OPERATORS = frozenset({FilterOperator.GT, FilterOperator.GTE, FilterOperator.LT, FilterOperator.LTE})


class FieldCondition(BaseModel):
    """Compare one payload field against a value."""

    kind: Literal["field"] = "field"
    key: str = Field(min_length=1)
    op: FilterOperator = FilterOperator.EQ
    value: Any


class AndFilter(BaseModel):
    """Logical AND over the clauses."""

    kind: Literal["and"] = "and"
    clauses: list["Predicate"] = Field(min_length=1)


class OrFilter(BaseModel):
    """Logical OR over the clauses."""

    kind: Literal["or"] = "or"
    clauses: list["Predicate"] = Field(min_length=1)


Predicate = Annotated[Union[FieldCondition, AndFilter, OrFilter], Field(discriminator="kind")]

AndFilter.model_rebuild()
OrFilter.model_rebuild()


def where(key: str, op: FilterOperator | str, value: Any) -> FieldCondition:
    """Build a leaf condition, e.g. ``where("document_id", "eq", 42)``."""
    return FieldCondition(key=key, op=FilterOperator(op), value=value)


def all_of(*clauses: "FieldCondition | AndFilter | OrFilter | None") -> "FieldCondition | AndFilter | OrFilter":
    """AND the given clauses together, skipping None. A single clause is returned as is."""
    present = [clause for clause in clauses if clause is not None]
    if not present:
        raise ValueError("all_of() needs at least one clause.")
    if len(present) == 1:
        return present[0]
    return AndFilter(clauses=present)


def any_of(*clauses: "FieldCondition | AndFilter | OrFilter") -> OrFilter:
    """OR the given clauses together."""
    return OrFilter(clauses=list(clauses))
