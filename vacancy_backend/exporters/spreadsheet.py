from __future__ import annotations

import io
from datetime import datetime, timezone, tzinfo
from pathlib import Path
from typing import Iterable

import pandas as pd

from vacancy_backend.core.audit import format_day
from vacancy_backend.core.buckets import days_elapsed
from vacancy_backend.core.csvio import write_records_to_csv
from vacancy_backend.core.schema import GROWTH_LABEL, REPLACEMENT_LABEL, Vacancy

EXPORT_COLUMNS: tuple[str, ...] = (
    "ID",
    "VAGA",
    "CRIADA EM",
    "ABERTURA",
    "FECHAMENTO",
    "DIAS EM ABERTO",
    "UNIDADE",
    "SETOR",
    "TIPO DE CARGO",
    "CARGO",
    "TIPO",
    "MOTIVO",
    "SUBSTITUÍDO",
    "CONTRATADO",
    "CAPTAÇÃO",
    "TURNO",
    "GESTOR",
    "GERENTE",
    "CRIADO POR",
    "RECRUTADOR",
    "FECHADO POR",
    "CONGELADA",
    "OBSERVAÇÕES",
)
OBSERVATION_SEPARATOR = " | "
SHEET_NAME = "Vagas"


def _day(value: datetime | None, tz: tzinfo | None) -> str:
    return format_day(value, tz) if value is not None else ""


def export_rows(
    records: Iterable[Vacancy],
    *,
    now: datetime | None = None,
    tz: tzinfo | None = None,
) -> list[dict[str, object]]:
    """One flat row per vacancy with the fixed export columns."""

    reference = now or datetime.now(timezone.utc)
    rows: list[dict[str, object]] = []
    for record in records:
        rows.append({
            "ID": record.id if record.id is not None else "",
            "VAGA": record.sequence_number,
            "CRIADA EM": _day(record.created_at, tz),
            "ABERTURA": _day(record.opened_at, tz),
            "FECHAMENTO": _day(record.closed_at, tz),
            "DIAS EM ABERTO": days_elapsed(record, reference),
            "UNIDADE": record.unit,
            "SETOR": record.sector,
            "TIPO DE CARGO": record.job_type,
            "CARGO": record.job_title,
            "TIPO": GROWTH_LABEL if record.kind == "growth" else REPLACEMENT_LABEL,
            "MOTIVO": record.reason,
            "SUBSTITUÍDO": record.replaced_name or "",
            "CONTRATADO": record.hire_name or "",
            "CAPTAÇÃO": record.sourcing_channel or "",
            "TURNO": record.shift,
            "GESTOR": record.manager,
            "GERENTE": record.director,
            "CRIADO POR": record.creator or "",
            "RECRUTADOR": record.recruiter or "",
            "FECHADO POR": record.closer or "",
            "CONGELADA": "Sim" if record.is_frozen else "Não",
            "OBSERVAÇÕES": OBSERVATION_SEPARATOR.join(record.observations),
        })
    return rows


def _frame(rows: list[dict[str, object]]) -> pd.DataFrame:
    return pd.DataFrame(rows, columns=list(EXPORT_COLUMNS))


def write_csv(path: Path, records: Iterable[Vacancy], *, now: datetime | None = None, tz: tzinfo | None = None) -> Path:
    return write_records_to_csv(path, export_rows(records, now=now, tz=tz), columns=EXPORT_COLUMNS)


def to_csv_bytes(records: Iterable[Vacancy], *, now: datetime | None = None, tz: tzinfo | None = None) -> bytes:
    # utf-8-sig so spreadsheet apps detect the accents
    return _frame(export_rows(records, now=now, tz=tz)).to_csv(index=False).encode("utf-8-sig")


def to_xlsx_bytes(records: Iterable[Vacancy], *, now: datetime | None = None, tz: tzinfo | None = None) -> bytes:
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        _frame(export_rows(records, now=now, tz=tz)).to_excel(writer, sheet_name=SHEET_NAME, index=False)
    return buffer.getvalue()
