from __future__ import annotations

from datetime import datetime

from vacancy_backend.core.schema import Vacancy


class ValidationError(Exception):
    """Raised when domain validation fails."""


def validate_closing(opened_at: datetime, closed_at: datetime) -> None:
    if closed_at < opened_at:
        raise ValidationError("closing instant cannot precede the opening instant")


def validate_vacancy(record: Vacancy) -> None:
    if record.closed_at is not None:
        validate_closing(record.opened_at, record.closed_at)
        if record.frozen:
            raise ValidationError("a closed vacancy cannot be frozen")


def validate_appended(previous: Vacancy, updated: Vacancy) -> None:
    """Observation lists only grow; earlier lines must be kept verbatim."""

    before = previous.observations
    if updated.observations[: len(before)] != before:
        raise ValidationError("observation history cannot be rewritten")
