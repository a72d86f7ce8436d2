"""Lifecycle transitions that append to a vacancy's observation log.

Every function returns a new :class:`Vacancy` with exactly one extra line
appended; the previous lines are copied over unchanged.
"""
from __future__ import annotations

from datetime import datetime, timezone, tzinfo
from typing import Any

from vacancy_backend.core.buckets import days_elapsed
from vacancy_backend.core.schema import EDITABLE_FIELDS, ClosePayload, Vacancy, VacancyDraft
from vacancy_backend.core.validation import ValidationError, validate_appended, validate_closing, validate_vacancy

ADMIN_TAG = "[AUDIT/ADMIN]"
BULK_TAG = "[AUDIT/BULK]"
EMPTY = "VAZIO"


def format_day(moment: datetime, tz: tzinfo | None = None) -> str:
    return moment.astimezone(tz or timezone.utc).strftime("%d/%m/%Y")


def audit_line(actor: str, message: str, *, at: datetime, tag: str | None = None, tz: tzinfo | None = None) -> str:
    day = format_day(at, tz)
    if tag:
        return f"{day} {tag}: {actor} {message}"
    return f"{day} {actor}: {message}"


def _append(record: Vacancy, line: str, **changes: Any) -> Vacancy:
    updated = record.model_copy(update={**changes, "observations": [*record.observations, line]})
    validate_vacancy(updated)
    validate_appended(record, updated)
    return updated


def open_vacancy(
    draft: VacancyDraft,
    *,
    actor: str,
    now: datetime,
    record_id: int | str | None = None,
    tz: tzinfo | None = None,
) -> Vacancy:
    fields = draft.model_dump()
    return Vacancy(
        id=record_id,
        created_at=now,
        opened_at=now,
        creator=actor,
        observations=[audit_line(actor, "Vaga aberta no sistema.", at=now, tz=tz)],
        **fields,
    )


def _display(value: Any) -> str:
    if value is None or value == "":
        return EMPTY
    return str(value)


def edit_vacancy(
    record: Vacancy,
    changes: dict[str, Any],
    *,
    actor: str,
    now: datetime,
    bulk: bool = False,
    tz: tzinfo | None = None,
) -> Vacancy:
    """Apply administrative field edits as one audited change.

    Fields outside :data:`EDITABLE_FIELDS` are rejected. Values that equal the
    current ones are ignored; an edit that changes nothing returns ``record``.
    """

    unknown = sorted(set(changes) - set(EDITABLE_FIELDS))
    if unknown:
        raise ValidationError(f"fields cannot be edited: {', '.join(unknown)}")

    candidate = Vacancy.model_validate({**record.model_dump(), **changes})
    diffs: list[str] = []
    applied: dict[str, Any] = {}
    for name in EDITABLE_FIELDS:
        if name not in changes:
            continue
        old, new = getattr(record, name), getattr(candidate, name)
        if old != new:
            applied[name] = new
            diffs.append(f'{name} de "{_display(old)}" para "{_display(new)}"')
    if not diffs:
        return record

    suffix = " em massa." if bulk else ""
    message = f"alterou {'; '.join(diffs)}{suffix}"
    tag = BULK_TAG if bulk else ADMIN_TAG
    return _append(record, audit_line(actor, message, at=now, tag=tag, tz=tz), **applied)


def freeze_vacancy(record: Vacancy, *, actor: str, now: datetime, reason: str = "", tz: tzinfo | None = None) -> Vacancy:
    if record.closed_at is not None:
        raise ValidationError("a closed vacancy cannot be frozen")
    if record.frozen:
        raise ValidationError("vacancy is already frozen")
    message = "Vaga CONGELADA." + (f" Motivo: {reason}." if reason else "")
    return _append(record, audit_line(actor, message, at=now, tz=tz), frozen=True)


def unfreeze_vacancy(record: Vacancy, *, actor: str, now: datetime, tz: tzinfo | None = None) -> Vacancy:
    if not record.frozen:
        raise ValidationError("vacancy is not frozen")
    return _append(record, audit_line(actor, "Vaga DESCONGELADA.", at=now, tz=tz), frozen=False)


def close_vacancy(
    record: Vacancy,
    payload: ClosePayload,
    *,
    actor: str,
    now: datetime,
    tz: tzinfo | None = None,
) -> Vacancy:
    if record.closed_at is not None:
        raise ValidationError("vacancy is already closed")
    validate_closing(record.opened_at, payload.closed_at)
    message = payload.note.strip() or "Vaga finalizada."
    return _append(
        record,
        audit_line(actor, message, at=now, tz=tz),
        closed_at=payload.closed_at,
        hire_name=payload.hire_name,
        sourcing_channel=payload.sourcing_channel,
        recruiter=actor,
        closer=actor,
        frozen=False,
        days_open=days_elapsed(record, payload.closed_at),
    )


def reopen_vacancy(record: Vacancy, *, actor: str, reason: str, now: datetime, tz: tzinfo | None = None) -> Vacancy:
    if record.closed_at is None:
        raise ValidationError("vacancy is not closed")
    if not reason.strip():
        raise ValidationError("a reason is required to reopen a vacancy")
    message = (
        f"Vaga REABERTA. Motivo: {reason.strip()}. (Vaga de {record.job_title} em {record.unit}. "
        f"Anteriormente fechada com: {record.hire_name or 'Não informado'})."
    )
    return _append(
        record,
        audit_line(actor, message, at=now, tz=tz),
        closed_at=None,
        hire_name=None,
        closer=None,
        recruiter=None,
        frozen=False,
        days_open=None,
    )


def comment_vacancy(record: Vacancy, *, actor: str, text: str, now: datetime, tz: tzinfo | None = None) -> Vacancy:
    body = text.strip()
    if not body:
        raise ValidationError("comment cannot be empty")
    return _append(record, audit_line(actor, body, at=now, tz=tz))
