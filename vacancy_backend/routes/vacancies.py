from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError as SchemaError

from vacancy_backend.application import VacancyNotFound, get_vacancy_service
from vacancy_backend.core.buckets import days_elapsed
from vacancy_backend.core.schema import ClosePayload, Vacancy, VacancyDraft
from vacancy_backend.core.validation import ValidationError
from vacancy_backend.infrastructure import RecordStoreError, event_from_webhook, get_change_feed

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vacancies", tags=["vacancies"])


def vacancy_to_dict(record: Vacancy, now: datetime | None = None) -> dict[str, Any]:
    payload = record.model_dump(mode="json")
    payload["is_open"] = record.is_open
    payload["is_frozen"] = record.is_frozen
    payload["days_elapsed"] = days_elapsed(record, now or datetime.now(timezone.utc))
    return payload


def schema_errors(exc: SchemaError) -> list[dict[str, Any]]:
    return [{"loc": list(error["loc"]), "msg": error["msg"]} for error in exc.errors()]


def _actor(payload: dict) -> str:
    actor = str(payload.get("actor") or "").strip()
    if not actor:
        raise HTTPException(status_code=400, detail="actor is required")
    return actor


async def _run(action: Awaitable[Any]) -> Any:
    try:
        return await action
    except VacancyNotFound as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=schema_errors(exc)) from exc
    except RecordStoreError as exc:
        logger.error("record store failure: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.get("")
async def list_vacancies(status: str = Query(default="all")) -> dict:
    if status not in {"open", "closed", "all"}:
        raise HTTPException(status_code=400, detail="status must be open, closed or all")
    service = get_vacancy_service()
    records = await _run(service.list_vacancies())
    if status == "open":
        records = [record for record in records if record.is_open]
    elif status == "closed":
        records = [record for record in records if not record.is_open]
    return {"items": [vacancy_to_dict(record) for record in records]}


@router.post("/notify")
async def notify_change(payload: dict) -> dict:
    """Database webhook: announce that the vacancy collection changed."""

    event = event_from_webhook(payload)
    get_change_feed().publish(event)
    return {"accepted": True, "kind": event.kind, "id": event.record_id}


@router.post("/bulk")
async def bulk_edit(payload: dict) -> dict:
    actor = _actor(payload)
    ids = payload.get("ids") or []
    changes = payload.get("changes") or {}
    if not ids:
        raise HTTPException(status_code=400, detail="ids is required")
    if not changes:
        raise HTTPException(status_code=400, detail="changes is required")
    service = get_vacancy_service()
    records = await _run(service.bulk_edit(ids, changes, actor=actor))
    return {"items": [vacancy_to_dict(record) for record in records]}


@router.get("/{record_id}")
async def get_vacancy(record_id: str) -> dict:
    record = await _run(get_vacancy_service().get(record_id))
    return vacancy_to_dict(record)


@router.post("")
async def open_vacancy(payload: dict) -> dict:
    actor = _actor(payload)
    try:
        draft = VacancyDraft.model_validate(payload.get("vacancy") or {})
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=schema_errors(exc)) from exc
    record = await _run(get_vacancy_service().open(draft, actor=actor))
    return vacancy_to_dict(record)


@router.patch("/{record_id}")
async def edit_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    changes = payload.get("changes") or {}
    if not changes:
        raise HTTPException(status_code=400, detail="changes is required")
    record = await _run(get_vacancy_service().edit(record_id, changes, actor=actor))
    return vacancy_to_dict(record)


@router.post("/{record_id}/close")
async def close_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    try:
        close = ClosePayload.model_validate(payload)
    except SchemaError as exc:
        raise HTTPException(status_code=400, detail=schema_errors(exc)) from exc
    record = await _run(get_vacancy_service().close(record_id, close, actor=actor))
    return vacancy_to_dict(record)


@router.post("/{record_id}/reopen")
async def reopen_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    reason = str(payload.get("reason") or "")
    record = await _run(get_vacancy_service().reopen(record_id, actor=actor, reason=reason))
    return vacancy_to_dict(record)


@router.post("/{record_id}/freeze")
async def freeze_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    reason = str(payload.get("reason") or "")
    record = await _run(get_vacancy_service().freeze(record_id, actor=actor, reason=reason))
    return vacancy_to_dict(record)


@router.post("/{record_id}/unfreeze")
async def unfreeze_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    record = await _run(get_vacancy_service().unfreeze(record_id, actor=actor))
    return vacancy_to_dict(record)


@router.post("/{record_id}/comments")
async def comment_vacancy(record_id: str, payload: dict) -> dict:
    actor = _actor(payload)
    text = str(payload.get("text") or "")
    record = await _run(get_vacancy_service().comment(record_id, actor=actor, text=text))
    return vacancy_to_dict(record)
