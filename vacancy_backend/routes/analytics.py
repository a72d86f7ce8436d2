from __future__ import annotations

from datetime import date
from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import Response
from pydantic import ValidationError as SchemaError

from vacancy_backend.application import ViewSession, get_controller
from vacancy_backend.core.daily import daily_to_dict
from vacancy_backend.core.drilldown import DrillDown
from vacancy_backend.core.filters import FilterState
from vacancy_backend.core.indicators import histogram_to_dict, ranking
from vacancy_backend.core.rollup import CATEGORIES, rollup_to_dict
from vacancy_backend.exporters.spreadsheet import to_csv_bytes, to_xlsx_bytes

from .vacancies import schema_errors, vacancy_to_dict

router = APIRouter(prefix="/analytics", tags=["analytics"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _session(session_id: str) -> ViewSession:
    session = get_controller().get_session(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail="session not found")
    return session


def session_to_dict(session: ViewSession) -> dict[str, Any]:
    controller = get_controller()
    now = session.computed_at
    payload: dict[str, Any] = {
        "id": session.id,
        "filters": session.filters.model_dump(mode="json"),
        "show_frozen": session.show_frozen,
        "expanded": [list(path) for path in sorted(session.expanded)],
        "selection": sorted(session.selection),
        "detail": vacancy_to_dict(session.detail, now) if session.detail is not None else None,
        "notice": session.take_notice(),
        "snapshot": {
            "token": session.snapshot.token,
            "fetched_at": session.snapshot.fetched_at.isoformat(),
            "size": len(session.snapshot),
        },
        "state": controller.state.value,
    }
    indicators = session.indicators
    if indicators is None:
        return payload
    payload.update(
        {
            "items": [vacancy_to_dict(record, now) for record in indicators.filtered],
            "empty": indicators.is_empty,
            "rollup": rollup_to_dict(indicators.rollup.root, session.expanded),
            "aging": histogram_to_dict(indicators.aging),
            "lead_time": histogram_to_dict(indicators.lead_time),
            "distribution": ranking(indicators.distribution),
            "closings": ranking(indicators.closings),
            "options": indicators.options,
        }
    )
    return payload


def drilldown_to_dict(result: DrillDown, session: ViewSession) -> dict[str, Any]:
    return {
        "title": result.title,
        "count": result.count,
        "empty": result.is_empty,
        "items": [vacancy_to_dict(record, session.computed_at) for record in result.records],
    }


# ----------------------------------------------------------------------
# controller
# ----------------------------------------------------------------------
@router.get("/status")
async def get_status() -> dict:
    controller = get_controller()
    return {
        "state": controller.state.value,
        "token": controller.snapshot.token,
        "size": len(controller.snapshot),
        "fetched_at": controller.snapshot.fetched_at.isoformat(),
        "error": controller.last_error,
        "sessions": len(controller.sessions()),
    }


@router.post("/refresh")
async def refresh() -> dict:
    controller = get_controller()
    applied = await controller.refresh("manual")
    return {
        "applied": applied,
        "state": controller.state.value,
        "token": controller.snapshot.token,
        "error": controller.last_error,
    }


# ----------------------------------------------------------------------
# sessions
# ----------------------------------------------------------------------
@router.post("/sessions")
async def create_session(payload: dict | None = None) -> dict:
    filters = None
    if payload and payload.get("filters") is not None:
        try:
            filters = FilterState.model_validate(payload["filters"])
        except SchemaError as exc:
            raise HTTPException(status_code=422, detail=schema_errors(exc)) from exc
    session = get_controller().open_session(filters)
    if payload and payload.get("show_frozen"):
        session.set_show_frozen(True, get_controller().settings, now=get_controller().now())
    return session_to_dict(session)


@router.get("/sessions/{session_id}")
async def get_session(session_id: str) -> dict:
    return session_to_dict(_session(session_id))


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str) -> dict:
    if not get_controller().close_session(session_id):
        raise HTTPException(status_code=404, detail="session not found")
    return {"id": session_id, "closed": True}


@router.put("/sessions/{session_id}/filters")
async def update_filters(session_id: str, payload: dict) -> dict:
    session = _session(session_id)
    controller = get_controller()
    try:
        session.update_filters(payload, controller.settings, now=controller.now())
    except SchemaError as exc:
        raise HTTPException(status_code=422, detail=schema_errors(exc)) from exc
    return session_to_dict(session)


@router.put("/sessions/{session_id}/show-frozen")
async def update_show_frozen(session_id: str, payload: dict) -> dict:
    session = _session(session_id)
    controller = get_controller()
    session.set_show_frozen(bool(payload.get("value")), controller.settings, now=controller.now())
    return session_to_dict(session)


@router.post("/sessions/{session_id}/expanded")
async def toggle_expanded(session_id: str, payload: dict) -> dict:
    session = _session(session_id)
    path = payload.get("path")
    if not path:
        raise HTTPException(status_code=400, detail="path is required")
    expanded = session.toggle_expanded(str(key) for key in path)
    return {"path": list(path), "expanded": expanded}


@router.post("/sessions/{session_id}/expanded/all")
async def expand_all(session_id: str) -> dict:
    session = _session(session_id)
    session.expand_all()
    return {"expanded": [list(path) for path in sorted(session.expanded)]}


@router.delete("/sessions/{session_id}/expanded")
async def collapse_all(session_id: str) -> dict:
    _session(session_id).collapse_all()
    return {"expanded": []}


@router.post("/sessions/{session_id}/selection")
async def toggle_selection(session_id: str, payload: dict) -> dict:
    session = _session(session_id)
    record_id = payload.get("id")
    if record_id is None:
        raise HTTPException(status_code=400, detail="id is required")
    selected = session.toggle_select(record_id)
    return {"id": str(record_id), "selected": selected, "selection": sorted(session.selection)}


@router.post("/sessions/{session_id}/selection/all")
async def select_all(session_id: str) -> dict:
    session = _session(session_id)
    session.select_all()
    return {"selection": sorted(session.selection)}


@router.delete("/sessions/{session_id}/selection")
async def clear_selection(session_id: str) -> dict:
    _session(session_id).clear_selection()
    return {"selection": []}


@router.put("/sessions/{session_id}/detail")
async def open_detail(session_id: str, payload: dict) -> dict:
    session = _session(session_id)
    record_id = payload.get("id")
    if record_id is None:
        raise HTTPException(status_code=400, detail="id is required")
    record = session.open_detail(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail="vacancy not found")
    return vacancy_to_dict(record, session.computed_at)


@router.delete("/sessions/{session_id}/detail")
async def close_detail(session_id: str) -> dict:
    _session(session_id).close_detail()
    return {"detail": None}


# ----------------------------------------------------------------------
# drill-down
# ----------------------------------------------------------------------
@router.get("/sessions/{session_id}/drilldown/rollup")
async def drill_rollup(
    session_id: str,
    path: list[str] = Query(default=[]),
    category: str | None = Query(default=None),
) -> dict:
    session = _session(session_id)
    if category is not None and category not in CATEGORIES:
        raise HTTPException(status_code=400, detail=f"category must be one of {', '.join(CATEGORIES)}")
    return drilldown_to_dict(session.drill_rollup(path, category), session)  # type: ignore[arg-type]


@router.get("/sessions/{session_id}/drilldown/bucket")
async def drill_bucket(
    session_id: str,
    label: str = Query(...),
    mode: Literal["open-aging", "lead-time"] = Query(default="open-aging"),
) -> dict:
    session = _session(session_id)
    return drilldown_to_dict(session.drill_bucket(mode, label), session)


@router.get("/sessions/{session_id}/drilldown/group")
async def drill_group(
    session_id: str,
    kind: Literal["distribution", "closings"] = Query(default="distribution"),
    path: list[str] = Query(default=[]),
) -> dict:
    session = _session(session_id)
    return drilldown_to_dict(session.drill_group(kind, path), session)


@router.get("/sessions/{session_id}/daily")
async def daily_breakdown(
    session_id: str,
    date_field: Literal["created_at", "closed_at"] = Query(default="created_at"),
    start: date | None = Query(default=None),
    end: date | None = Query(default=None),
    only_open: bool = Query(default=False),
    path: list[str] = Query(default=[]),
) -> dict:
    session = _session(session_id)
    if start and end and start > end:
        raise HTTPException(status_code=400, detail="start must not be after end")
    root = session.daily_breakdown(
        get_controller().settings, date_field=date_field, start=start, end=end, only_open=only_open
    )
    payload: dict[str, Any] = {"tree": daily_to_dict(root)}
    if path:
        node = root.find(path)
        payload["items"] = [vacancy_to_dict(record, session.computed_at) for record in node.records] if node else []
    return payload


# ----------------------------------------------------------------------
# export
# ----------------------------------------------------------------------
@router.get("/sessions/{session_id}/export")
async def export_session(
    session_id: str,
    fmt: Literal["csv", "xlsx"] = Query(default="xlsx", alias="format"),
    scope: Literal["filtered", "selection"] = Query(default="filtered"),
) -> Response:
    session = _session(session_id)
    if scope == "selection":
        records = session.selected_records()
    else:
        records = session.indicators.filtered if session.indicators else []
    settings = get_controller().settings
    if fmt == "csv":
        body = to_csv_bytes(records, now=session.computed_at, tz=settings.tz)
        media_type = "text/csv; charset=utf-8"
    else:
        body = to_xlsx_bytes(records, now=session.computed_at, tz=settings.tz)
        media_type = XLSX_MEDIA_TYPE
    filename = f"vagas.{fmt}"
    return Response(
        content=body,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
