"""Lifecycle use cases: each reads the current row, appends, writes back."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from vacancy_backend.config import Settings
from vacancy_backend.core import audit
from vacancy_backend.core.schema import ClosePayload, Vacancy, VacancyDraft
from vacancy_backend.infrastructure import RecordStore

logger = logging.getLogger(__name__)


class VacancyNotFound(LookupError):
    def __init__(self, record_id: int | str) -> None:
        super().__init__(f"vacancy {record_id} not found")
        self.record_id = record_id


class VacancyService:
    """Coordinates audited writes against the record store."""

    def __init__(
        self,
        store: RecordStore,
        *,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self.settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load(self, record_id: int | str) -> Vacancy:
        record = await self._store.get(record_id)
        if record is None:
            raise VacancyNotFound(record_id)
        return record

    async def _save(self, updated: Vacancy, action: str, actor: str) -> Vacancy:
        stored = await self._store.update(updated)
        logger.info("vacancy %s %s by %s", stored.id, action, actor)
        return stored

    async def list_vacancies(self) -> list[Vacancy]:
        return await self._store.fetch()

    async def get(self, record_id: int | str) -> Vacancy:
        return await self._load(record_id)

    async def open(self, draft: VacancyDraft, *, actor: str) -> Vacancy:
        record = audit.open_vacancy(draft, actor=actor, now=self._clock(), tz=self.settings.tz)
        stored = await self._store.insert(record)
        logger.info("vacancy %s opened by %s", stored.id, actor)
        return stored

    async def edit(self, record_id: int | str, changes: dict[str, Any], *, actor: str) -> Vacancy:
        record = await self._load(record_id)
        updated = audit.edit_vacancy(record, changes, actor=actor, now=self._clock(), tz=self.settings.tz)
        if updated is record:
            return record
        return await self._save(updated, "edited", actor)

    async def bulk_edit(
        self, record_ids: Iterable[int | str], changes: dict[str, Any], *, actor: str
    ) -> list[Vacancy]:
        """Apply the same edit to several vacancies, one write per record.

        Writes are not transactional: a failure part way leaves the earlier
        records updated.
        """

        now = self._clock()
        records = [await self._load(record_id) for record_id in record_ids]
        updated = [
            audit.edit_vacancy(record, changes, actor=actor, now=now, bulk=True, tz=self.settings.tz)
            for record in records
        ]
        results: list[Vacancy] = []
        for before, after in zip(records, updated):
            results.append(after if after is before else await self._save(after, "bulk edited", actor))
        return results

    async def freeze(self, record_id: int | str, *, actor: str, reason: str = "") -> Vacancy:
        record = await self._load(record_id)
        updated = audit.freeze_vacancy(record, actor=actor, reason=reason, now=self._clock(), tz=self.settings.tz)
        return await self._save(updated, "frozen", actor)

    async def unfreeze(self, record_id: int | str, *, actor: str) -> Vacancy:
        record = await self._load(record_id)
        updated = audit.unfreeze_vacancy(record, actor=actor, now=self._clock(), tz=self.settings.tz)
        return await self._save(updated, "unfrozen", actor)

    async def close(self, record_id: int | str, payload: ClosePayload, *, actor: str) -> Vacancy:
        record = await self._load(record_id)
        updated = audit.close_vacancy(record, payload, actor=actor, now=self._clock(), tz=self.settings.tz)
        return await self._save(updated, "closed", actor)

    async def reopen(self, record_id: int | str, *, actor: str, reason: str) -> Vacancy:
        record = await self._load(record_id)
        updated = audit.reopen_vacancy(record, actor=actor, reason=reason, now=self._clock(), tz=self.settings.tz)
        return await self._save(updated, "reopened", actor)

    async def comment(self, record_id: int | str, *, actor: str, text: str) -> Vacancy:
        record = await self._load(record_id)
        updated = audit.comment_vacancy(record, actor=actor, text=text, now=self._clock(), tz=self.settings.tz)
        return await self._save(updated, "commented", actor)


_service: VacancyService | None = None


def configure_vacancy_service(service: VacancyService | None) -> None:
    global _service
    _service = service


def get_vacancy_service() -> VacancyService:
    """Return the vacancy service configured for the process."""

    if _service is None:
        raise RuntimeError("vacancy service is not configured")
    return _service
