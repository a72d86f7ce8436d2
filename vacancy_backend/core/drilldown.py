from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from vacancy_backend.core.buckets import Histogram
from vacancy_backend.core.daily import GroupNode
from vacancy_backend.core.rollup import Category, RollupTree

CATEGORY_LABELS: dict[str, str] = {
    "growth": "aumento de quadro",
    "replacement": "substituição",
    "frozen": "congeladas",
}
MODE_LABELS: dict[str, str] = {
    "open-aging": "Em aberto",
    "lead-time": "Lead time",
}


@dataclass(slots=True)
class DrillDown:
    """Records behind one displayed number, with a label for the listing."""

    title: str
    records: list = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def is_empty(self) -> bool:
        return not self.records


def drill_rollup(tree: RollupTree, path: Iterable[str], category: Category | None = None) -> DrillDown:
    keys = tuple(path)
    title = " / ".join(keys) or "Total"
    if category is not None:
        title = f"{title} ({CATEGORY_LABELS[category]})"
    node = tree.find(keys)
    if node is None:
        return DrillDown(title=title)
    if category is None:
        return DrillDown(title=title, records=node.records)
    return DrillDown(title=title, records=list(node.by_category[category]))


def drill_bucket(histogram: Histogram, label: str) -> DrillDown:
    title = f"{MODE_LABELS[histogram.mode]}: {label} dias"
    bucket = histogram.bucket(label)
    if bucket is None:
        return DrillDown(title=title)
    return DrillDown(title=title, records=list(bucket.records))


def drill_group(root: GroupNode, path: Iterable[str], *, prefix: str = "") -> DrillDown:
    keys = tuple(path)
    title = " / ".join(keys) or root.key
    if prefix:
        title = f"{prefix}: {title}"
    node = root.find(keys)
    if node is None:
        return DrillDown(title=title)
    return DrillDown(title=title, records=list(node.records))
