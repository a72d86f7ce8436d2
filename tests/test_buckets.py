from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

sys.path.append(str(Path(__file__).resolve().parents[1]))

from vacancy_backend.core.buckets import build_histogram, classify, elapsed_days
from vacancy_backend.core.schema import Vacancy

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def _open(record_id: int, days_ago: float) -> Vacancy:
    return Vacancy(id=record_id, opened_at=NOW - timedelta(days=days_ago))


def _closed(record_id: int, opened: datetime, closed: datetime) -> Vacancy:
    return Vacancy(id=record_id, opened_at=opened, closed_at=closed)


@pytest.mark.parametrize(
    ("days", "label"),
    [
        (0, "0-15"),
        (15, "0-15"),
        (16, "16-30"),
        (30, "16-30"),
        (31, "31-45"),
        (45, "31-45"),
        (46, "46+"),
        (400, "46+"),
    ],
)
def test_bucket_boundaries_are_inclusive(days, label):
    assert classify(days) == label


def test_negative_span_is_rejected():
    with pytest.raises(ValueError):
        classify(-1)


def test_elapsed_days_rounds_partial_days_up():
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)

    assert elapsed_days(start, start) == 0
    assert elapsed_days(start, start + timedelta(milliseconds=1)) == 1
    assert elapsed_days(start, start + timedelta(days=15)) == 15
    assert elapsed_days(start, start + timedelta(days=15, milliseconds=1)) == 16


def test_open_aging_is_exhaustive_and_skips_closed_records():
    records = [
        _open(1, 15),
        _open(2, 16),
        _open(3, 45),
        _open(4, 46),
        _open(5, 0.5),
        _closed(6, NOW - timedelta(days=20), NOW - timedelta(days=1)),
    ]

    histogram = build_histogram(records, "open-aging", now=NOW)

    assert histogram.counts() == {"0-15": 2, "16-30": 1, "31-45": 1, "46+": 1}
    assert histogram.total == 5
    placed = [record.id for bucket in histogram.buckets for record in bucket.records]
    assert sorted(placed) == [1, 2, 3, 4, 5]


def test_lead_time_only_counts_closings_inside_the_window():
    march_1 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    records = [
        _closed(1, march_1 - timedelta(days=10), march_1),
        _closed(2, datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 3, 31, 23, 0, tzinfo=timezone.utc)),
        _closed(3, datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 2, 29, 23, 0, tzinfo=timezone.utc)),
        _open(4, 3),
    ]

    histogram = build_histogram(
        records,
        "lead-time",
        window_start=date(2024, 3, 1),
        window_end=date(2024, 3, 31),
    )

    assert histogram.total == 2
    assert histogram.counts() == {"0-15": 1, "16-30": 0, "31-45": 0, "46+": 1}
    assert histogram.window == (date(2024, 3, 1), date(2024, 3, 31))


def test_lead_time_window_uses_local_dates():
    # 02:00 UTC on April 1st is still March 31st in São Paulo
    closing = datetime(2024, 4, 1, 2, 0, tzinfo=timezone.utc)
    record = _closed(1, closing - timedelta(days=5), closing)

    utc = build_histogram([record], "lead-time", window_start=date(2024, 3, 1), window_end=date(2024, 3, 31))
    local = build_histogram(
        [record],
        "lead-time",
        window_start=date(2024, 3, 1),
        window_end=date(2024, 3, 31),
        tz=ZoneInfo("America/Sao_Paulo"),
    )

    assert utc.total == 0
    assert local.total == 1


def test_empty_input_yields_four_empty_buckets():
    histogram = build_histogram([], "open-aging", now=NOW)

    assert [bucket.label for bucket in histogram.buckets] == ["0-15", "16-30", "31-45", "46+"]
    assert histogram.total == 0
