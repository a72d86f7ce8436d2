"""Immutable result of one store fetch."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator

from vacancy_backend.core.schema import Vacancy


@dataclass(frozen=True, slots=True)
class Snapshot:
    """Records returned by a single fetch, tagged with the request token."""

    records: tuple[Vacancy, ...] = ()
    token: int = 0
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[Vacancy]:
        return iter(self.records)

    def by_id(self, record_id: int | str) -> Vacancy | None:
        for record in self.records:
            if record.id == record_id or str(record.id) == str(record_id):
                return record
        return None

    def ids(self) -> set[str]:
        return {str(record.id) for record in self.records}


EMPTY_SNAPSHOT = Snapshot()
