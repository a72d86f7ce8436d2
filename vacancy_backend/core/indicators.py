"""Everything the indicators dashboard derives from one snapshot."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Iterable

from vacancy_backend.config import SYSTEM_LABEL, UNASSIGNED_LABEL
from vacancy_backend.core.buckets import Histogram, build_histogram
from vacancy_backend.core.daily import GroupNode, group_records
from vacancy_backend.core.filters import FilterState, apply_filters, closer_identity, filter_options
from vacancy_backend.core.rollup import DEFAULT_JOB_TYPE, RollupTree, build_rollup
from vacancy_backend.core.schema import Vacancy


@dataclass(slots=True)
class Indicators:
    computed_at: datetime
    filtered: list[Vacancy]
    rollup: RollupTree
    aging: Histogram
    lead_time: Histogram
    distribution: GroupNode
    closings: GroupNode
    options: dict[str, list[str]]

    @property
    def is_empty(self) -> bool:
        return not self.filtered


def build_indicators(
    records: Iterable[Vacancy],
    filters: FilterState,
    *,
    show_frozen: bool = False,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    unassigned_label: str = UNASSIGNED_LABEL,
    system_label: str = SYSTEM_LABEL,
) -> Indicators:
    reference = now or datetime.now(timezone.utc)
    snapshot = list(records)
    filtered = apply_filters(
        snapshot,
        filters,
        now=reference,
        unassigned_label=unassigned_label,
        system_label=system_label,
    )

    open_records = [record for record in filtered if record.is_open]
    eligible = [record for record in open_records if show_frozen or not record.is_frozen]
    lead_time = build_histogram(
        filtered,
        "lead-time",
        window_start=filters.window_start,
        window_end=filters.window_end,
        tz=tz,
    )
    closed_in_window = [record for bucket in lead_time.buckets for record in bucket.records]

    return Indicators(
        computed_at=reference,
        filtered=filtered,
        rollup=build_rollup(open_records, show_frozen=show_frozen),
        aging=build_histogram(eligible, "open-aging", now=reference),
        lead_time=lead_time,
        distribution=group_records(
            eligible,
            (lambda record: record.job_type or DEFAULT_JOB_TYPE,),
            label="Vagas abertas",
        ),
        closings=group_records(
            closed_in_window,
            (lambda record: closer_identity(record, system_label),),
            label="Fechamentos",
        ),
        options=filter_options(snapshot, unassigned_label=unassigned_label, system_label=system_label),
    )


def histogram_to_dict(histogram: Histogram) -> dict:
    start, end = histogram.window
    return {
        "mode": histogram.mode,
        "total": histogram.total,
        "window": {
            "start": start.isoformat() if start else None,
            "end": end.isoformat() if end else None,
        },
        "buckets": [
            {"label": bucket.label, "low": bucket.low, "high": bucket.high, "count": bucket.count}
            for bucket in histogram.buckets
        ],
    }


def ranking(root: GroupNode) -> list[dict]:
    """Flat groups ordered by size, largest first, with their share of the total."""

    total = root.count
    items = [
        {
            "key": node.key,
            "count": node.count,
            "percent": round(node.count / total * 100, 1) if total else 0.0,
        }
        for node in root.children.values()
    ]
    items.sort(key=lambda item: item["count"], reverse=True)
    return items
