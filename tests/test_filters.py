from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1]))

from vacancy_backend.core.filters import (
    FilterState,
    apply_filters,
    creator_identity,
    filter_options,
    matches_text,
    query_from_filters,
    sort_records,
)
from vacancy_backend.core.schema import Vacancy
from vacancy_backend.infrastructure import InMemoryRecordStore

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def _vacancy(record_id: int, *, days_ago: int = 5, **fields) -> Vacancy:
    data = {
        "id": record_id,
        "opened_at": NOW - timedelta(days=days_ago),
        "unit": "Matriz",
        "sector": "Produção",
        "job_type": "Operacional",
        "job_title": "Operador",
        "manager": "Ana",
        "director": "Diego",
        "shift": "1º Turno",
    }
    data.update(fields)
    return Vacancy(**data)


def _ids(records) -> list:
    return [record.id for record in records]


@pytest.fixture()
def records() -> list[Vacancy]:
    return [
        _vacancy(1, days_ago=3, sequence_number=42, creator="Fernanda"),
        _vacancy(2, days_ago=10, sequence_number=4, job_title="Auxiliar de Frios", unit="Filial Sul"),
        _vacancy(
            3,
            days_ago=40,
            closed_at=NOW - timedelta(days=2),
            closer="Gustavo",
            recruiter="Gustavo",
            unit="Filial Norte",
        ),
        _vacancy(4, days_ago=20, frozen=True, recruiter="Fernanda", sector="Logística"),
        _vacancy(5, days_ago=60, kind="growth", shift="2º Turno", job_type="Liderança"),
        _vacancy(
            6,
            days_ago=15,
            closed_at=NOW - timedelta(days=1),
            unit="Filial Sul",
            job_title="Analista de Qualidade",
        ),
    ]


def test_pipeline_is_idempotent(records):
    filters = FilterState(status="open", sort_key="days_elapsed", sort_desc=False)

    first = apply_filters(records, filters, now=NOW)
    second = apply_filters(records, filters, now=NOW)

    assert _ids(first) == _ids(second)
    assert _ids(apply_filters(first, filters, now=NOW)) == _ids(first)


def test_numeric_query_matches_sequence_number_exactly(records):
    filtered = apply_filters(records, FilterState(query="42"), now=NOW)

    assert _ids(filtered) == [1]


def test_text_query_is_case_insensitive_substring(records):
    assert _ids(apply_filters(records, FilterState(query="FRIO"), now=NOW)) == [2]
    assert _ids(apply_filters(records, FilterState(query="filial sul"), now=NOW)) == [2, 6]
    assert matches_text(records[0], "")


def test_status_and_frozen_filters(records):
    assert _ids(apply_filters(records, FilterState(status="closed"), now=NOW)) == [6, 3]
    assert _ids(apply_filters(records, FilterState(frozen="frozen"), now=NOW)) == [4]
    active = apply_filters(records, FilterState(frozen="active"), now=NOW)
    assert 4 not in _ids(active)
    assert 3 in _ids(active)


def test_creator_identity_falls_back_through_recruiter_and_closer(records):
    assert creator_identity(records[0]) == "Fernanda"
    assert creator_identity(records[2]) == "Gustavo"
    assert creator_identity(records[3]) == "Fernanda"
    assert creator_identity(records[4]) == "NÃO INFORMADO"

    filtered = apply_filters(records, FilterState(creators=["Fernanda"]), now=NOW)
    assert _ids(filtered) == [1, 4]


def test_missing_values_sort_last_in_both_directions(records):
    ascending = sort_records(records, "closed_at", descending=False, now=NOW)
    descending = sort_records(records, "closed_at", descending=True, now=NOW)

    assert _ids(ascending)[:2] == [3, 6]
    assert _ids(descending)[:2] == [6, 3]
    assert set(_ids(ascending)[2:]) == {1, 2, 4, 5}
    assert set(_ids(descending)[2:]) == {1, 2, 4, 5}


def test_days_elapsed_sort_uses_closing_instant_for_closed_records(records):
    ordered = apply_filters(records, FilterState(sort_key="days_elapsed", sort_desc=True), now=NOW)

    # record 3 was open 38 days, record 6 only 14
    assert _ids(ordered) == [5, 3, 4, 6, 2, 1]


def test_default_order_is_opening_descending(records):
    assert _ids(apply_filters(records, FilterState(), now=NOW)) == [1, 2, 6, 4, 3, 5]


def test_unknown_sort_key_is_rejected():
    with pytest.raises(ValidationError):
        FilterState(sort_key="salary")
    with pytest.raises(ValidationError):
        FilterState().with_changes(colour="blue")


def test_filter_state_changes_keep_other_fields():
    filters = FilterState(units=["Matriz"], query="op")
    updated = filters.with_changes(status="open")

    assert updated.units == ["Matriz"]
    assert updated.query == "op"
    assert updated.status == "open"
    assert filters.status == "all"


def test_filter_options_are_distinct_and_sorted(records):
    options = filter_options(records)

    assert options["units"] == ["Filial Norte", "Filial Sul", "Matriz"]
    assert options["closers"] == ["Gustavo", "SISTEMA"]
    assert "NÃO INFORMADO" in options["creators"]


@pytest.mark.parametrize(
    "filters",
    [
        FilterState(),
        FilterState(status="open"),
        FilterState(status="closed", units=["Filial Sul", "Filial Norte"]),
        FilterState(frozen="active"),
        FilterState(frozen="frozen"),
        FilterState(creators=["Fernanda", "NÃO INFORMADO"]),
        FilterState(closers=["SISTEMA"]),
        FilterState(query="frio"),
        FilterState(query="42"),
        FilterState(shifts=["2º Turno"], job_types=["Liderança"]),
        FilterState(sectors=["Logística"], status="open"),
    ],
)
def test_server_side_narrowing_agrees_with_client_pipeline(records, filters):
    store = InMemoryRecordStore(records)

    narrowed = asyncio.run(store.fetch(query_from_filters(filters)))
    client_side = apply_filters(records, filters, now=NOW)

    assert sorted(_ids(narrowed)) == sorted(_ids(client_side))


@pytest.mark.parametrize("query", ["50%", "op_1", "a\\b"])
def test_like_wildcards_in_search_text_match_literally(query):
    records = [
        _vacancy(1, job_title="Desconto 50%"),
        _vacancy(2, job_title="Desconto 500"),
        _vacancy(3, job_title="Op_1"),
        _vacancy(4, job_title="Opx1"),
        _vacancy(5, job_title="a\\b"),
        _vacancy(6, job_title="ab"),
    ]
    filters = FilterState(query=query)
    store = InMemoryRecordStore(records)

    narrowed = asyncio.run(store.fetch(query_from_filters(filters)))
    client_side = apply_filters(records, filters, now=NOW)

    assert len(client_side) == 1
    assert sorted(_ids(narrowed)) == _ids(client_side)


def test_sorting_by_id_tolerates_mixed_id_types():
    records = [_vacancy(2), _vacancy("b-uuid"), _vacancy(10), _vacancy("a-uuid")]

    ordered = sort_records(records, "id", descending=False, now=NOW)

    assert _ids(ordered) == [10, 2, "a-uuid", "b-uuid"]
