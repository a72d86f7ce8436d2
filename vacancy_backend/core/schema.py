from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

GROWTH_LABEL = "Aumento de Quadro"
REPLACEMENT_LABEL = "Substituição"

RequisitionKind = Literal["growth", "replacement"]


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _coerce_instant(value: Any) -> Any:
    if isinstance(value, str):
        raw = value.strip()
        if not raw:
            return None
        if len(raw) == 10:
            return datetime.combine(date.fromisoformat(raw), datetime.min.time())
        return raw
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime.combine(value, datetime.min.time())
    return value


def _coerce_kind(value: Any) -> str:
    label = str(value or "").strip()
    if label.lower() == "growth" or label == GROWTH_LABEL:
        return "growth"
    return "replacement"


def _coerce_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "t", "1", "yes", "sim"}
    return bool(value)


class Vacancy(BaseModel):
    """One job requisition as stored in the ``vagas`` collection."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: int | str | None = None
    created_at: datetime | None = None
    sequence_number: int | None = Field(default=None, alias="VAGA")
    opened_at: datetime = Field(alias="ABERTURA")
    unit: str = Field(default="", alias="UNIDADE")
    sector: str = Field(default="", alias="SETOR")
    job_type: str = Field(default="", alias="TIPO_CARGO")
    job_title: str = Field(default="", alias="CARGO")
    kind: RequisitionKind = Field(default="replacement", alias="TIPO")
    reason: str = Field(default="", alias="MOTIVO")
    replaced_name: str | None = Field(default=None, alias="NOME_SUBSTITUIDO")
    shift: str = Field(default="", alias="TURNO")
    manager: str = Field(default="", alias="GESTOR")
    director: str = Field(default="", alias="GERENTE")
    closed_at: datetime | None = Field(default=None, alias="FECHAMENTO")
    hire_name: str | None = Field(default=None, alias="NOME_SUBSTITUICAO")
    sourcing_channel: str | None = Field(default=None, alias="CAPTACAO")
    recruiter: str | None = Field(default=None, alias="RECRUTADOR")
    creator: str | None = Field(default=None, alias="usuário_criador")
    closer: str | None = Field(default=None, alias="usuario_fechador")
    frozen: bool = Field(default=False, alias="CONGELADA")
    days_open: int | None = Field(default=None, alias="DIAS_ABERTO")
    observations: list[str] = Field(default_factory=list, alias="OBSERVACOES")

    @field_validator("created_at", "opened_at", "closed_at", mode="before")
    @classmethod
    def _parse_instant(cls, value: Any) -> Any:
        return _coerce_instant(value)

    @field_validator("created_at", "opened_at", "closed_at")
    @classmethod
    def _normalise_instant(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> str:
        return _coerce_kind(value)

    @field_validator(
        "unit", "sector", "job_type", "job_title", "reason", "shift", "manager", "director",
        mode="before",
    )
    @classmethod
    def _empty_text(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("frozen", mode="before")
    @classmethod
    def _parse_frozen(cls, value: Any) -> bool:
        return _coerce_flag(value)

    @field_validator("observations", mode="before")
    @classmethod
    def _parse_observations(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        return [str(item) for item in value]

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    @property
    def is_frozen(self) -> bool:
        return self.frozen and self.closed_at is None

    def to_store(self) -> dict[str, Any]:
        """Serialise with the store's column names."""

        row = self.model_dump(mode="json", by_alias=True)
        row["TIPO"] = GROWTH_LABEL if self.kind == "growth" else REPLACEMENT_LABEL
        return row


class VacancyDraft(BaseModel):
    """Fields captured by the "open vacancy" form."""

    model_config = ConfigDict(populate_by_name=True)

    sequence_number: int | None = Field(default=1, alias="VAGA")
    unit: str = Field(alias="UNIDADE")
    sector: str = Field(default="", alias="SETOR")
    job_type: str = Field(default="", alias="TIPO_CARGO")
    job_title: str = Field(alias="CARGO")
    kind: RequisitionKind = Field(default="replacement", alias="TIPO")
    reason: str = Field(default="", alias="MOTIVO")
    replaced_name: str | None = Field(default=None, alias="NOME_SUBSTITUIDO")
    shift: str = Field(default="", alias="TURNO")
    manager: str = Field(default="", alias="GESTOR")
    director: str = Field(default="", alias="GERENTE")

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> str:
        return _coerce_kind(value)


class ClosePayload(BaseModel):
    closed_at: datetime
    hire_name: str | None = None
    sourcing_channel: str | None = None
    note: str = ""

    @field_validator("closed_at", mode="before")
    @classmethod
    def _parse_instant(cls, value: Any) -> Any:
        return _coerce_instant(value)

    @field_validator("closed_at")
    @classmethod
    def _normalise_instant(cls, value: datetime) -> datetime:
        return as_utc(value)


EDITABLE_FIELDS: tuple[str, ...] = (
    "job_title",
    "unit",
    "sector",
    "manager",
    "director",
    "kind",
    "job_type",
    "replaced_name",
    "hire_name",
    "creator",
    "recruiter",
    "sequence_number",
    "frozen",
    "closer",
    "shift",
    "reason",
    "sourcing_channel",
)
