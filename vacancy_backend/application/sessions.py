"""Per-viewer state kept across reconciliation cycles.

A session owns what the user chose (filters, expanded rows, selected ids,
open detail) and the indicators last derived from a snapshot. Refreshing
replaces the indicators and never touches the choices.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Iterable, Literal

from vacancy_backend.config import Settings
from vacancy_backend.core.buckets import local_date
from vacancy_backend.core.daily import DateField, GroupNode, build_daily_breakdown
from vacancy_backend.core.drilldown import DrillDown, drill_bucket, drill_group, drill_rollup
from vacancy_backend.core.filters import FilterState
from vacancy_backend.core.indicators import Indicators, build_indicators
from vacancy_backend.core.rollup import Category
from vacancy_backend.core.schema import Vacancy
from vacancy_backend.domain import EMPTY_SNAPSHOT, Snapshot

logger = logging.getLogger(__name__)

GroupKind = Literal["distribution", "closings"]
NodePath = tuple[str, ...]


def month_to_date(now: datetime, settings: Settings) -> tuple[date, date]:
    today = local_date(now, settings.tz)
    return today.replace(day=1), today


@dataclass(slots=True)
class ViewSession:
    id: str
    filters: FilterState = field(default_factory=FilterState)
    show_frozen: bool = False
    expanded: set[NodePath] = field(default_factory=set)
    selection: set[str] = field(default_factory=set)
    detail_id: str | None = None
    detail: Vacancy | None = None
    notice: str | None = None
    snapshot: Snapshot = EMPTY_SNAPSHOT
    indicators: Indicators | None = None
    computed_at: datetime | None = None
    last_seen: datetime | None = None

    @classmethod
    def create(cls, *, now: datetime, settings: Settings, filters: FilterState | None = None) -> "ViewSession":
        if filters is None:
            start, end = month_to_date(now, settings)
            filters = FilterState(window_start=start, window_end=end)
        return cls(id=uuid.uuid4().hex, filters=filters, last_seen=now)

    def touch(self, now: datetime) -> None:
        self.last_seen = now

    def idle_for(self, now: datetime) -> float:
        """Seconds since the viewer last used this session."""

        if self.last_seen is None:
            return 0.0
        return (now - self.last_seen).total_seconds()

    # ------------------------------------------------------------------
    # recomputation
    # ------------------------------------------------------------------
    def recompute(self, snapshot: Snapshot, *, now: datetime, settings: Settings) -> None:
        """Re-derive every view from ``snapshot``, keeping the user's choices."""

        self.snapshot = snapshot
        self.computed_at = now
        self.indicators = build_indicators(
            snapshot.records,
            self.filters,
            show_frozen=self.show_frozen,
            now=now,
            tz=settings.tz,
            unassigned_label=settings.unassigned_label,
            system_label=settings.system_label,
        )
        if self.detail_id is not None:
            current = snapshot.by_id(self.detail_id)
            if current is None:
                logger.info("session %s: vacancy %s disappeared, closing detail", self.id, self.detail_id)
                self.notice = f"A vaga {self.detail_id} não está mais disponível."
                self.close_detail()
            else:
                self.detail = current

    def refresh_views(self, settings: Settings, *, now: datetime | None = None) -> None:
        self.recompute(self.snapshot, now=now or datetime.now(timezone.utc), settings=settings)

    # ------------------------------------------------------------------
    # user choices
    # ------------------------------------------------------------------
    def update_filters(self, changes: dict[str, Any], settings: Settings, *, now: datetime | None = None) -> FilterState:
        self.filters = self.filters.with_changes(**changes)
        self.refresh_views(settings, now=now)
        return self.filters

    def set_show_frozen(self, value: bool, settings: Settings, *, now: datetime | None = None) -> None:
        if value != self.show_frozen:
            self.show_frozen = value
            self.refresh_views(settings, now=now)

    def toggle_expanded(self, path: Iterable[str]) -> bool:
        key = tuple(path)
        if key in self.expanded:
            self.expanded.discard(key)
            return False
        self.expanded.add(key)
        return True

    def expand_all(self) -> None:
        if self.indicators is None:
            return
        self.expanded.update(
            node.path for node in self.indicators.rollup.root.walk() if node.path and not node.is_leaf
        )

    def collapse_all(self) -> None:
        self.expanded.clear()

    def toggle_select(self, record_id: int | str) -> bool:
        key = str(record_id)
        if key in self.selection:
            self.selection.discard(key)
            return False
        self.selection.add(key)
        return True

    def select_all(self) -> None:
        if self.indicators is not None:
            self.selection.update(str(record.id) for record in self.indicators.filtered)

    def clear_selection(self) -> None:
        self.selection.clear()

    def selected_records(self) -> list[Vacancy]:
        return [record for record in self.snapshot if str(record.id) in self.selection]

    def open_detail(self, record_id: int | str) -> Vacancy | None:
        record = self.snapshot.by_id(record_id)
        if record is None:
            return None
        self.detail_id = str(record_id)
        self.detail = record
        return record

    def close_detail(self) -> None:
        self.detail_id = None
        self.detail = None

    def take_notice(self) -> str | None:
        notice, self.notice = self.notice, None
        return notice

    # ------------------------------------------------------------------
    # drill-down
    # ------------------------------------------------------------------
    def drill_rollup(self, path: Iterable[str], category: Category | None = None) -> DrillDown:
        if self.indicators is None:
            return DrillDown(title=" / ".join(path) or "Total")
        return drill_rollup(self.indicators.rollup, path, category)

    def drill_bucket(self, mode: str, label: str) -> DrillDown:
        if self.indicators is None:
            return DrillDown(title=label)
        histogram = self.indicators.aging if mode == "open-aging" else self.indicators.lead_time
        return drill_bucket(histogram, label)

    def drill_group(self, kind: GroupKind, path: Iterable[str]) -> DrillDown:
        if self.indicators is None:
            return DrillDown(title=" / ".join(path))
        root = self.indicators.distribution if kind == "distribution" else self.indicators.closings
        return drill_group(root, path)

    def daily_breakdown(
        self,
        settings: Settings,
        *,
        date_field: DateField = "created_at",
        start: date | None = None,
        end: date | None = None,
        only_open: bool = False,
    ) -> GroupNode:
        return build_daily_breakdown(
            self.snapshot.records,
            date_field=date_field,
            start=start if start is not None else self.filters.window_start,
            end=end if end is not None else self.filters.window_end,
            only_open=only_open,
            tz=settings.tz,
        )
