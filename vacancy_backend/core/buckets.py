"""Elapsed-day histograms for open aging and closing lead time.

Both screens share one classifier: ``open-aging`` measures how long an open
vacancy has been waiting (``now - opened_at``), ``lead-time`` measures how
long a closed vacancy took (``closed_at - opened_at``) and only considers
closings inside a caller supplied day window.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Iterable, Literal

from vacancy_backend.core.schema import Vacancy

Mode = Literal["open-aging", "lead-time"]

_DAY_MS = 86_400_000

# (label, low, high) with ``high=None`` for the open-ended bucket.
BUCKET_RANGES: tuple[tuple[str, int, int | None], ...] = (
    ("0-15", 0, 15),
    ("16-30", 16, 30),
    ("31-45", 31, 45),
    ("46+", 46, None),
)


def elapsed_days(start: datetime, end: datetime) -> int:
    """Whole days between two instants, rounded up."""

    millis = abs(end - start) // timedelta(milliseconds=1)
    return -(-millis // _DAY_MS)


def classify(days: int) -> str:
    for label, low, high in BUCKET_RANGES:
        if days >= low and (high is None or days <= high):
            return label
    raise ValueError(f"negative day span: {days}")


def days_elapsed(record: Vacancy, now: datetime) -> int:
    """Days a vacancy has been (or was) open, as shown in the listings."""

    return elapsed_days(record.opened_at, record.closed_at or now)


def local_date(value: datetime, tz: tzinfo | None = None) -> date:
    return value.astimezone(tz or timezone.utc).date()


def in_window(day: date, start: date | None, end: date | None) -> bool:
    if start is not None and day < start:
        return False
    if end is not None and day > end:
        return False
    return True


@dataclass(slots=True)
class Bucket:
    label: str
    low: int
    high: int | None
    records: list[Vacancy] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)


@dataclass(slots=True)
class Histogram:
    mode: Mode
    buckets: list[Bucket]
    window: tuple[date | None, date | None] = (None, None)

    @property
    def total(self) -> int:
        return sum(bucket.count for bucket in self.buckets)

    def bucket(self, label: str) -> Bucket | None:
        for bucket in self.buckets:
            if bucket.label == label:
                return bucket
        return None

    def counts(self) -> dict[str, int]:
        return {bucket.label: bucket.count for bucket in self.buckets}


def build_histogram(
    records: Iterable[Vacancy],
    mode: Mode,
    *,
    now: datetime | None = None,
    window_start: date | None = None,
    window_end: date | None = None,
    tz: tzinfo | None = None,
) -> Histogram:
    """Classify every applicable record into exactly one bucket.

    Records lacking the instant required by ``mode`` are skipped rather than
    reported: an open record has no lead time and a closed one no longer ages.
    """

    reference = now or datetime.now(timezone.utc)
    buckets = [Bucket(label=label, low=low, high=high) for label, low, high in BUCKET_RANGES]
    index = {bucket.label: bucket for bucket in buckets}

    for record in records:
        if mode == "open-aging":
            if record.closed_at is not None:
                continue
            days = elapsed_days(record.opened_at, reference)
        else:
            if record.closed_at is None:
                continue
            if not in_window(local_date(record.closed_at, tz), window_start, window_end):
                continue
            days = elapsed_days(record.opened_at, record.closed_at)
        index[classify(days)].records.append(record)

    window = (window_start, window_end) if mode == "lead-time" else (None, None)
    return Histogram(mode=mode, buckets=buckets, window=window)
