from __future__ import annotations

import re
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from vacancy_backend.config import SYSTEM_LABEL, UNASSIGNED_LABEL
from vacancy_backend.core.buckets import days_elapsed
from vacancy_backend.core.text import escape_like, fold
from vacancy_backend.core.query import AllOf, AnyOf, Node, Predicate, QueryBuilder, StoreQuery
from vacancy_backend.core.schema import Vacancy

DAYS_ELAPSED = "days_elapsed"
SORTABLE_FIELDS: frozenset[str] = frozenset(Vacancy.model_fields) - {"observations"} | {DAYS_ELAPSED}
SEARCH_FIELDS: tuple[str, ...] = ("job_title", "unit", "sector", "manager", "director")
_NUMERIC = re.compile(r"\d+")


class FilterState(BaseModel):
    """User controlled narrowing and ordering of the vacancy listing."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    status: Literal["open", "closed", "all"] = "all"
    frozen: Literal["frozen", "active", "all"] = "all"
    units: list[str] = Field(default_factory=list)
    creators: list[str] = Field(default_factory=list)
    shifts: list[str] = Field(default_factory=list)
    sectors: list[str] = Field(default_factory=list)
    job_types: list[str] = Field(default_factory=list)
    closers: list[str] = Field(default_factory=list)
    query: str = ""
    sort_key: str | None = None
    sort_desc: bool = True
    window_start: date | None = None
    window_end: date | None = None

    @field_validator("sort_key")
    @classmethod
    def _known_sort_key(cls, value: str | None) -> str | None:
        if value is not None and value not in SORTABLE_FIELDS:
            raise ValueError(f"unknown sort key: {value}")
        return value

    @model_validator(mode="after")
    def _ordered_window(self) -> "FilterState":
        if self.window_start and self.window_end and self.window_start > self.window_end:
            raise ValueError("window_start must not be after window_end")
        return self

    def with_changes(self, **changes: Any) -> "FilterState":
        """Return a validated copy; unknown keys raise like the constructor."""

        return FilterState.model_validate({**self.model_dump(), **changes})


def creator_identity(record: Vacancy, unassigned: str = UNASSIGNED_LABEL) -> str:
    return record.creator or record.recruiter or record.closer or unassigned


def closer_identity(record: Vacancy, system: str = SYSTEM_LABEL) -> str:
    return record.closer or system


def _multi_selects(unassigned: str, system: str) -> dict[str, Callable[[Vacancy], str]]:
    return {
        "units": lambda record: record.unit,
        "creators": lambda record: creator_identity(record, unassigned),
        "shifts": lambda record: record.shift,
        "sectors": lambda record: record.sector,
        "job_types": lambda record: record.job_type,
        "closers": lambda record: closer_identity(record, system),
    }


def matches_text(record: Vacancy, query: str) -> bool:
    needle = fold(query.strip())
    if not needle:
        return True
    if any(needle in fold(getattr(record, name)) for name in SEARCH_FIELDS):
        return True
    if _NUMERIC.fullmatch(needle) and record.sequence_number is not None:
        return record.sequence_number == int(needle)
    return False


def _matches(record: Vacancy, filters: FilterState, selects: dict[str, Callable[[Vacancy], str]]) -> bool:
    if filters.status == "open" and record.closed_at is not None:
        return False
    if filters.status == "closed" and record.closed_at is None:
        return False
    if filters.frozen == "frozen" and not record.is_frozen:
        return False
    if filters.frozen == "active" and record.is_frozen:
        return False
    for name, accessor in selects.items():
        chosen = getattr(filters, name)
        if chosen and accessor(record) not in chosen:
            return False
    return matches_text(record, filters.query)


def _sort_value(record: Vacancy, key: str, now: datetime) -> Any:
    if key == DAYS_ELAPSED:
        return days_elapsed(record, now)
    value = getattr(record, key)
    if key == "id":
        # ids mix ints and uuids across stores
        return str(value) if value is not None else None
    if isinstance(value, str):
        return fold(value) or None
    return value


def sort_records(
    records: Iterable[Vacancy],
    key: str | None,
    descending: bool = True,
    *,
    now: datetime | None = None,
) -> list[Vacancy]:
    """Stable sort with missing values always last, whatever the direction."""

    reference = now or datetime.now(timezone.utc)
    sort_key = key or "opened_at"
    present: list[tuple[Any, Vacancy]] = []
    missing: list[Vacancy] = []
    for record in records:
        value = _sort_value(record, sort_key, reference)
        if value is None:
            missing.append(record)
        else:
            present.append((value, record))
    present.sort(key=lambda item: item[0], reverse=descending)
    return [record for _, record in present] + missing


def apply_filters(
    records: Iterable[Vacancy],
    filters: FilterState,
    *,
    now: datetime | None = None,
    unassigned_label: str = UNASSIGNED_LABEL,
    system_label: str = SYSTEM_LABEL,
) -> list[Vacancy]:
    selects = _multi_selects(unassigned_label, system_label)
    kept = [record for record in records if _matches(record, filters, selects)]
    descending = filters.sort_desc if filters.sort_key else True
    return sort_records(kept, filters.sort_key, descending, now=now)


def filter_options(
    records: Iterable[Vacancy],
    *,
    unassigned_label: str = UNASSIGNED_LABEL,
    system_label: str = SYSTEM_LABEL,
) -> dict[str, list[str]]:
    """Distinct values offered by each multi-select, sorted for display."""

    selects = _multi_selects(unassigned_label, system_label)
    options: dict[str, set[str]] = {name: set() for name in selects}
    for record in records:
        for name, accessor in selects.items():
            value = accessor(record)
            if value:
                options[name].add(value)
    return {name: sorted(values, key=fold) for name, values in options.items()}


# ----------------------------------------------------------------------
# server-side narrowing
# ----------------------------------------------------------------------
def _creator_node(chosen: list[str], unassigned: str) -> Node:
    names = tuple(chosen)
    branches: list[Node] = [
        Predicate("usuário_criador", "in", names),
        AllOf((Predicate("usuário_criador", "is_null"), Predicate("RECRUTADOR", "in", names))),
        AllOf(
            (
                Predicate("usuário_criador", "is_null"),
                Predicate("RECRUTADOR", "is_null"),
                Predicate("usuario_fechador", "in", names),
            )
        ),
    ]
    if unassigned in chosen:
        branches.append(
            AllOf(
                (
                    Predicate("usuário_criador", "is_null"),
                    Predicate("RECRUTADOR", "is_null"),
                    Predicate("usuario_fechador", "is_null"),
                )
            )
        )
    return AnyOf(tuple(branches))


def _closer_node(chosen: list[str], system: str) -> Node:
    node: Node = Predicate("usuario_fechador", "in", tuple(chosen))
    if system in chosen:
        node = AnyOf((node, Predicate("usuario_fechador", "is_null")))
    return node


def _text_node(query: str) -> Node | None:
    text = query.strip()
    if not text:
        return None
    pattern = f"%{escape_like(text)}%"
    branches: list[Node] = [
        Predicate(column, "ilike", pattern) for column in ("CARGO", "UNIDADE", "SETOR", "GESTOR", "GERENTE")
    ]
    if _NUMERIC.fullmatch(text):
        branches.append(Predicate("VAGA", "eq", int(text)))
    return AnyOf(tuple(branches))


def query_from_filters(
    filters: FilterState,
    *,
    base: StoreQuery | None = None,
    unassigned_label: str = UNASSIGNED_LABEL,
    system_label: str = SYSTEM_LABEL,
) -> StoreQuery:
    """Translate a filter state into store predicates for server-side narrowing."""

    builder = QueryBuilder()
    if filters.status == "open":
        builder.is_null("FECHAMENTO")
    elif filters.status == "closed":
        builder.not_null("FECHAMENTO")
    if filters.frozen == "frozen":
        builder.eq("CONGELADA", True).is_null("FECHAMENTO")
    elif filters.frozen == "active":
        builder.any_of(Predicate("CONGELADA", "eq", False), Predicate("FECHAMENTO", "not_null"))

    for name, column in (("units", "UNIDADE"), ("shifts", "TURNO"), ("sectors", "SETOR"), ("job_types", "TIPO_CARGO")):
        chosen = getattr(filters, name)
        if chosen:
            builder.is_in(column, tuple(chosen))
    if filters.creators:
        builder.nodes.append(_creator_node(filters.creators, unassigned_label))
    if filters.closers:
        builder.nodes.append(_closer_node(filters.closers, system_label))
    text = _text_node(filters.query)
    if text is not None:
        builder.nodes.append(text)

    origin = base or StoreQuery()
    return origin.narrowed(*builder.nodes)
