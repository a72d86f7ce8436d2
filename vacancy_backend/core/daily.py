"""Day-by-day breakdown of openings or closings.

Each node keeps the records it was built from so a click on any count opens
exactly those vacancies.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, tzinfo
from typing import Callable, Iterable, Iterator, Literal

from vacancy_backend.core.buckets import in_window, local_date
from vacancy_backend.core.text import fold
from vacancy_backend.core.schema import Vacancy

DateField = Literal["created_at", "closed_at"]

NO_TITLE = "SEM CARGO"
NO_DIRECTOR = "SEM GERENTE"
NO_MANAGER = "SEM GESTOR"


@dataclass(slots=True)
class GroupNode:
    key: str
    path: tuple[str, ...] = ()
    records: list[Vacancy] = field(default_factory=list)
    children: dict[str, "GroupNode"] = field(default_factory=dict)

    @property
    def count(self) -> int:
        return len(self.records)

    def child(self, key: str) -> "GroupNode":
        node = self.children.get(key)
        if node is None:
            node = GroupNode(key=key, path=self.path + (key,))
            self.children[key] = node
        return node

    def find(self, path: Iterable[str]) -> "GroupNode | None":
        node: GroupNode | None = self
        for key in path:
            node = node.children.get(key) if node else None
        return node

    def sorted_children(self, *, reverse: bool = False) -> list["GroupNode"]:
        return [self.children[key] for key in sorted(self.children, key=fold, reverse=reverse)]

    def walk(self) -> Iterator["GroupNode"]:
        yield self
        for child in self.sorted_children():
            yield from child.walk()


def group_records(
    records: Iterable[Vacancy],
    keys: tuple[Callable[[Vacancy], str], ...],
    *,
    label: str = "Total",
) -> GroupNode:
    """Nest records under one key function per level."""

    root = GroupNode(key=label)
    for record in records:
        root.records.append(record)
        node = root
        for key_of in keys:
            node = node.child(key_of(record))
            node.records.append(record)
    return root


def build_daily_breakdown(
    records: Iterable[Vacancy],
    *,
    date_field: DateField = "created_at",
    start: date | None = None,
    end: date | None = None,
    only_open: bool = False,
    tz: tzinfo | None = None,
) -> GroupNode:
    """Group records dated inside ``[start, end]`` by day, title, director, manager."""

    def day_of(record: Vacancy) -> date | None:
        stamp = getattr(record, date_field)
        return local_date(stamp, tz) if stamp is not None else None

    selected: list[Vacancy] = []
    for record in records:
        day = day_of(record)
        if day is None or not in_window(day, start, end):
            continue
        if only_open and record.closed_at is not None:
            continue
        selected.append(record)

    return group_records(
        selected,
        (
            lambda record: day_of(record).isoformat(),
            lambda record: record.job_title or NO_TITLE,
            lambda record: record.director or NO_DIRECTOR,
            lambda record: record.manager or NO_MANAGER,
        ),
    )


def daily_to_dict(node: GroupNode, expanded: set[tuple[str, ...]] | None = None) -> dict:
    payload: dict = {"key": node.key, "path": list(node.path), "count": node.count}
    if not node.children:
        return payload
    is_open = expanded is None or not node.path or node.path in expanded
    payload["expanded"] = is_open
    if is_open:
        # days newest first, every other level alphabetical
        reverse = not node.path
        payload["children"] = [daily_to_dict(child, expanded) for child in node.sorted_children(reverse=reverse)]
    return payload
