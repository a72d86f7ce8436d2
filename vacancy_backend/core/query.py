"""Predicate trees understood by every record store implementation.

Fields are store column names (``UNIDADE``, ``FECHAMENTO`` ...), so the same
tree can be rendered as PostgREST parameters or evaluated in memory.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union

Operator = Literal["eq", "in", "is_null", "not_null", "ilike"]


@dataclass(frozen=True, slots=True)
class Predicate:
    column: str
    op: Operator
    value: Any = None


@dataclass(frozen=True, slots=True)
class AllOf:
    items: tuple["Node", ...]


@dataclass(frozen=True, slots=True)
class AnyOf:
    items: tuple["Node", ...]


Node = Union[Predicate, AllOf, AnyOf]


@dataclass(frozen=True, slots=True)
class StoreQuery:
    where: tuple[Node, ...] = ()
    order_by: str = "ABERTURA"
    descending: bool = True
    limit: int | None = None

    def narrowed(self, *nodes: Node) -> "StoreQuery":
        return StoreQuery(
            where=self.where + tuple(nodes),
            order_by=self.order_by,
            descending=self.descending,
            limit=self.limit,
        )


def scope_to_units(units: list[str] | None) -> tuple[Node, ...]:
    """Restrict a query to the units a user may see (``None`` means all)."""

    if units is None:
        return ()
    return (Predicate("UNIDADE", "in", tuple(units)),)


@dataclass(slots=True)
class QueryBuilder:
    """Small fluent helper mirroring the store client's chained filters."""

    nodes: list[Node] = field(default_factory=list)

    def eq(self, column: str, value: Any) -> "QueryBuilder":
        self.nodes.append(Predicate(column, "eq", value))
        return self

    def is_in(self, column: str, values: tuple[Any, ...]) -> "QueryBuilder":
        self.nodes.append(Predicate(column, "in", tuple(values)))
        return self

    def is_null(self, column: str) -> "QueryBuilder":
        self.nodes.append(Predicate(column, "is_null"))
        return self

    def not_null(self, column: str) -> "QueryBuilder":
        self.nodes.append(Predicate(column, "not_null"))
        return self

    def any_of(self, *items: Node) -> "QueryBuilder":
        self.nodes.append(AnyOf(tuple(items)))
        return self

    def build(self, *, order_by: str = "ABERTURA", descending: bool = True, limit: int | None = None) -> StoreQuery:
        return StoreQuery(where=tuple(self.nodes), order_by=order_by, descending=descending, limit=limit)
