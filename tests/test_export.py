from __future__ import annotations

import csv
import io
import sys
from datetime import datetime, timezone
from pathlib import Path

from openpyxl import load_workbook

sys.path.append(str(Path(__file__).resolve().parents[1]))

from vacancy_backend.core.schema import Vacancy
from vacancy_backend.exporters.spreadsheet import EXPORT_COLUMNS, export_rows, to_xlsx_bytes, write_csv

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def _records() -> list[Vacancy]:
    return [
        Vacancy(
            id=1,
            created_at=datetime(2024, 2, 28, 18, 30, tzinfo=timezone.utc),
            sequence_number=3,
            opened_at=datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc),
            closed_at=datetime(2024, 3, 11, 9, 0, tzinfo=timezone.utc),
            unit="Matriz",
            job_title="Operador",
            kind="growth",
            closer="Gustavo",
            observations=["01/03/2024 Ana: Vaga aberta no sistema.", "11/03/2024 Gustavo: Vaga finalizada."],
        ),
        Vacancy(id="abc-1", sequence_number=3, opened_at=datetime(2024, 3, 21, 12, 0, tzinfo=timezone.utc), frozen=True),
    ]


def test_export_rows_format_dates_and_join_observations():
    rows = export_rows(_records(), now=NOW)

    assert list(rows[0]) == list(EXPORT_COLUMNS)
    assert EXPORT_COLUMNS[0] == "ID"
    assert [row["ID"] for row in rows] == [1, "abc-1"]
    assert [row["VAGA"] for row in rows] == [3, 3]
    assert rows[0]["CRIADA EM"] == "28/02/2024"
    assert rows[1]["CRIADA EM"] == ""
    assert rows[0]["ABERTURA"] == "01/03/2024"
    assert rows[0]["FECHAMENTO"] == "11/03/2024"
    assert rows[0]["DIAS EM ABERTO"] == 10
    assert rows[0]["TIPO"] == "Aumento de Quadro"
    assert rows[0]["OBSERVAÇÕES"] == "01/03/2024 Ana: Vaga aberta no sistema. | 11/03/2024 Gustavo: Vaga finalizada."
    assert rows[1]["FECHAMENTO"] == ""
    assert rows[1]["DIAS EM ABERTO"] == 10
    assert rows[1]["CONGELADA"] == "Sim"


def test_write_csv_creates_parent_directories(tmp_path):
    path = write_csv(tmp_path / "exports" / "vagas.csv", _records(), now=NOW)

    with path.open("r", encoding="utf-8-sig", newline="") as fp:
        rows = list(csv.DictReader(fp))
    assert len(rows) == 2
    assert rows[0]["CARGO"] == "Operador"
    assert rows[1]["TIPO"] == "Substituição"


def test_xlsx_export_has_header_and_one_row_per_record():
    workbook = load_workbook(io.BytesIO(to_xlsx_bytes(_records(), now=NOW)))
    sheet = workbook["Vagas"]

    values = list(sheet.iter_rows(values_only=True))
    assert list(values[0]) == list(EXPORT_COLUMNS)
    assert len(values) == 3
    abertura = EXPORT_COLUMNS.index("ABERTURA")
    assert values[1][abertura] == "01/03/2024"
    assert [row[0] for row in values[1:]] == [1, "abc-1"]


def test_empty_export_still_has_columns():
    workbook = load_workbook(io.BytesIO(to_xlsx_bytes([], now=NOW)))

    values = list(workbook["Vagas"].iter_rows(values_only=True))
    assert list(values[0]) == list(EXPORT_COLUMNS)
    assert len(values) == 1
