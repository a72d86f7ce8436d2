"""Job type → unit → sector pivot of open vacancies.

Leaves own the records; every ancestor is derived from its children after
all records are placed, so a parent can never disagree with the sum of its
children and the root total is the single figure shown as the grand total.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Iterator, Literal

from vacancy_backend.core.text import fold
from vacancy_backend.core.schema import Vacancy

Category = Literal["growth", "replacement", "frozen"]
CATEGORIES: tuple[Category, ...] = ("growth", "replacement", "frozen")

DEFAULT_JOB_TYPE = "Outras Funções"
DEFAULT_PLACE = "N/A"
LEVELS: tuple[str, ...] = ("job_type", "unit", "sector")


def category_of(record: Vacancy) -> Category:
    if record.is_frozen:
        return "frozen"
    return record.kind


def rollup_path(record: Vacancy) -> tuple[str, str, str]:
    return (
        record.job_type or DEFAULT_JOB_TYPE,
        record.unit or DEFAULT_PLACE,
        record.sector or DEFAULT_PLACE,
    )


@dataclass(slots=True)
class RollupNode:
    path: tuple[str, ...]
    include_frozen: bool
    children: dict[str, "RollupNode"] = field(default_factory=dict)
    by_category: dict[str, list[Vacancy]] = field(
        default_factory=lambda: {category: [] for category in CATEGORIES}
    )
    growth: int = 0
    replacement: int = 0
    frozen: int = 0

    @property
    def label(self) -> str:
        return self.path[-1] if self.path else "Total"

    @property
    def level(self) -> str:
        return LEVELS[len(self.path) - 1] if self.path else "root"

    @property
    def is_leaf(self) -> bool:
        return len(self.path) == len(LEVELS)

    @property
    def total(self) -> int:
        return self.growth + self.replacement + (self.frozen if self.include_frozen else 0)

    @property
    def records(self) -> list[Vacancy]:
        collected: list[Vacancy] = []
        for category in CATEGORIES:
            collected.extend(self.by_category[category])
        return collected

    def count(self, category: Category) -> int:
        return getattr(self, category)

    def child(self, key: str) -> "RollupNode":
        node = self.children.get(key)
        if node is None:
            node = RollupNode(path=self.path + (key,), include_frozen=self.include_frozen)
            self.children[key] = node
        return node

    def sorted_children(self) -> list["RollupNode"]:
        return [self.children[key] for key in sorted(self.children, key=fold)]

    def find(self, path: tuple[str, ...]) -> "RollupNode | None":
        node: RollupNode | None = self
        for key in path:
            node = node.children.get(key) if node else None
        return node

    def walk(self) -> Iterator["RollupNode"]:
        yield self
        for child in self.sorted_children():
            yield from child.walk()

    def leaves(self) -> Iterator["RollupNode"]:
        return (node for node in self.walk() if node.is_leaf)

    def _settle(self) -> None:
        if self.is_leaf:
            for category in CATEGORIES:
                setattr(self, category, len(self.by_category[category]))
            return
        for category in CATEGORIES:
            self.by_category[category] = []
            setattr(self, category, 0)
        for child in self.sorted_children():
            child._settle()
            for category in CATEGORIES:
                self.by_category[category].extend(child.by_category[category])
                setattr(self, category, getattr(self, category) + child.count(category))


@dataclass(slots=True)
class RollupTree:
    root: RollupNode
    show_frozen: bool

    @property
    def total(self) -> int:
        return self.root.total

    def find(self, path: Iterable[str]) -> RollupNode | None:
        return self.root.find(tuple(path))

    def is_empty(self) -> bool:
        return not self.root.children


def build_rollup(records: Iterable[Vacancy], *, show_frozen: bool = False) -> RollupTree:
    """Place each record in one leaf and one category, then sum upwards.

    A frozen record is counted only as ``frozen`` when ``show_frozen`` is on
    and is left out of the tree entirely when it is off.
    """

    root = RollupNode(path=(), include_frozen=show_frozen)
    for record in records:
        category = category_of(record)
        if category == "frozen" and not show_frozen:
            continue
        leaf = root
        for key in rollup_path(record):
            leaf = leaf.child(key)
        leaf.by_category[category].append(record)
    root._settle()
    return RollupTree(root=root, show_frozen=show_frozen)


def rollup_to_dict(node: RollupNode, expanded: set[tuple[str, ...]] | None = None) -> dict:
    """JSON shape for the pivot table.

    Job types always list their units; a unit lists its sectors only when its
    path is in ``expanded`` (``None`` expands everything).
    """

    payload: dict = {
        "label": node.label,
        "path": list(node.path),
        "level": node.level,
        "growth": node.growth,
        "replacement": node.replacement,
        "frozen": node.frozen,
        "total": node.total,
    }
    if node.is_leaf:
        return payload
    is_open = expanded is None or len(node.path) < 2 or node.path in expanded
    payload["expanded"] = is_open
    if is_open:
        payload["children"] = [rollup_to_dict(child, expanded) for child in node.sorted_children()]
    return payload
