"""Clients for the hosted vacancy collection."""
from __future__ import annotations

import itertools
import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable, Protocol

import httpx
from pydantic import ValidationError

from vacancy_backend.core.text import fold
from vacancy_backend.core.query import AllOf, AnyOf, Node, Predicate, StoreQuery
from vacancy_backend.core.schema import Vacancy

from .notifications import ChangeEvent, ChangeFeed

logger = logging.getLogger(__name__)


class RecordStoreError(RuntimeError):
    """Raised when the record store is unreachable or rejects a request."""


class RecordStore(Protocol):
    """Persistence contract for vacancy records."""

    async def fetch(self, query: StoreQuery | None = None) -> list[Vacancy]: ...

    async def get(self, record_id: int | str) -> Vacancy | None: ...

    async def insert(self, record: Vacancy) -> Vacancy: ...

    async def update(self, record: Vacancy) -> Vacancy: ...

    async def delete(self, record_id: int | str) -> None: ...

    async def close(self) -> None: ...


def parse_rows(rows: Iterable[dict[str, Any]]) -> list[Vacancy]:
    """Parse store rows, skipping (and logging) rows that break the schema."""

    records: list[Vacancy] = []
    for row in rows:
        if not isinstance(row, dict):
            logger.warning("skipping vacancy row that is not an object: %r", row)
            continue
        try:
            records.append(Vacancy.model_validate(row))
        except ValidationError as exc:
            logger.warning("skipping malformed vacancy row id=%s: %s", row.get("id"), exc.errors()[:1])
    return records


# ----------------------------------------------------------------------
# in-memory evaluation
# ----------------------------------------------------------------------
def _like_to_regex(pattern: str) -> re.Pattern[str]:
    parts = []
    chars = iter(fold(pattern))
    for char in chars:
        if char == "\\":
            parts.append(re.escape(next(chars, "\\")))
        elif char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _same(left: Any, right: Any) -> bool:
    if isinstance(right, bool) or isinstance(left, bool):
        return left is not None and bool(left) == bool(right)
    return left is not None and str(left) == str(right)


def evaluate(node: Node, row: dict[str, Any]) -> bool:
    if isinstance(node, AllOf):
        return all(evaluate(item, row) for item in node.items)
    if isinstance(node, AnyOf):
        return any(evaluate(item, row) for item in node.items)
    value = row.get(node.column)
    if node.op == "is_null":
        return value is None
    if node.op == "not_null":
        return value is not None
    if node.op == "eq":
        return _same(value, node.value)
    if node.op == "in":
        return any(_same(value, candidate) for candidate in node.value)
    if node.op == "ilike":
        return value is not None and _like_to_regex(str(node.value)).fullmatch(fold(str(value))) is not None
    raise ValueError(f"unsupported operator: {node.op}")


class InMemoryRecordStore:
    """Simple in-memory store for local runs and tests; publishes change events."""

    def __init__(self, records: Iterable[Vacancy] = (), *, feed: ChangeFeed | None = None) -> None:
        self._records: dict[str, Vacancy] = {}
        self._ids = itertools.count(1)
        self.feed = feed
        for record in records:
            self._put(record)

    def _put(self, record: Vacancy) -> Vacancy:
        if record.id is None:
            record = record.model_copy(update={"id": self._next_id()})
        self._records[str(record.id)] = record
        return record

    def _next_id(self) -> int:
        while True:
            candidate = next(self._ids)
            if str(candidate) not in self._records:
                return candidate

    def _notify(self, kind: str, record_id: int | str) -> None:
        if self.feed is not None:
            self.feed.publish(ChangeEvent(kind=kind, record_id=record_id))  # type: ignore[arg-type]

    async def fetch(self, query: StoreQuery | None = None) -> list[Vacancy]:
        query = query or StoreQuery()
        rows = [(record, record.to_store()) for record in self._records.values()]
        matched = [(record, row) for record, row in rows if all(evaluate(node, row) for node in query.where)]
        present = [item for item in matched if item[1].get(query.order_by) is not None]
        missing = [item for item in matched if item[1].get(query.order_by) is None]
        present.sort(key=lambda item: item[1][query.order_by], reverse=query.descending)
        ordered = [record for record, _ in present + missing]
        if query.limit is not None:
            ordered = ordered[: query.limit]
        return ordered

    async def get(self, record_id: int | str) -> Vacancy | None:
        return self._records.get(str(record_id))

    async def insert(self, record: Vacancy) -> Vacancy:
        stored = self._put(record)
        self._notify("insert", stored.id)
        return stored

    async def update(self, record: Vacancy) -> Vacancy:
        if str(record.id) not in self._records:
            raise RecordStoreError(f"vacancy {record.id} not found")
        self._records[str(record.id)] = record
        self._notify("update", record.id)
        return record

    async def delete(self, record_id: int | str) -> None:
        if self._records.pop(str(record_id), None) is not None:
            self._notify("delete", record_id)

    async def close(self) -> None:
        return None

    def reset(self, records: Iterable[Vacancy] = ()) -> None:
        self._records.clear()
        self._ids = itertools.count(1)
        for record in records:
            self._put(record)


# ----------------------------------------------------------------------
# PostgREST client
# ----------------------------------------------------------------------
# unescaped % becomes the URL-safe * wildcard
_LIKE_WILDCARD = re.compile(r"(\\.)|%")


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    text = str(value)
    if re.search(r'[,()"\\:\s]', text):
        escaped = text.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    return text


def _operand(predicate: Predicate) -> str:
    if predicate.op == "is_null":
        return "is.null"
    if predicate.op == "not_null":
        return "not.is.null"
    if predicate.op == "eq":
        return f"eq.{_literal(predicate.value)}"
    if predicate.op == "in":
        return "in.(" + ",".join(_literal(item) for item in predicate.value) + ")"
    if predicate.op == "ilike":
        return f"ilike.{_literal(_LIKE_WILDCARD.sub(lambda m: m.group(1) or '*', str(predicate.value)))}"
    raise ValueError(f"unsupported operator: {predicate.op}")


def _render_nested(node: Node) -> str:
    if isinstance(node, Predicate):
        return f"{node.column}.{_operand(node)}"
    keyword = "and" if isinstance(node, AllOf) else "or"
    return keyword + "(" + ",".join(_render_nested(item) for item in node.items) + ")"


def render_query(query: StoreQuery) -> list[tuple[str, str]]:
    """Render a predicate tree as PostgREST query parameters."""

    params: list[tuple[str, str]] = [("select", "*")]
    for node in query.where:
        if isinstance(node, Predicate):
            params.append((node.column, _operand(node)))
        elif isinstance(node, AllOf):
            params.append(("and", "(" + ",".join(_render_nested(item) for item in node.items) + ")"))
        else:
            params.append(("or", "(" + ",".join(_render_nested(item) for item in node.items) + ")"))
    direction = "desc" if query.descending else "asc"
    params.append(("order", f"{query.order_by}.{direction}.nullslast"))
    if query.limit is not None:
        params.append(("limit", str(query.limit)))
    return params


class HttpRecordStore:
    """Record store backed by a PostgREST endpoint (``/rest/v1/<table>``)."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        table: str = "vagas",
        timeout: float = 30.0,
        default_limit: int | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        parsed = httpx.URL(base_url)
        if not parsed.scheme or not parsed.host:
            raise ValueError("base_url must include scheme and host")

        self._endpoint = f"{base_url.rstrip('/')}/{table}"
        self._default_limit = default_limit
        headers = {"Accept": "application/json"}
        if api_key:
            headers["apikey"] = api_key
            headers["Authorization"] = f"Bearer {api_key}"
        self._headers = headers
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = http_client is None

    async def _request(self, method: str, params: list[tuple[str, str]], **kwargs: Any) -> Any:
        headers = dict(self._headers)
        if method in {"POST", "PATCH"}:
            headers["Prefer"] = "return=representation"
        try:
            response = await self._client.request(method, self._endpoint, params=params, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise RecordStoreError(
                f"record store rejected {method}: {exc.response.status_code} {exc.response.text[:200]}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RecordStoreError(f"record store unreachable: {exc}") from exc
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RecordStoreError("record store returned invalid JSON") from exc

    async def fetch(self, query: StoreQuery | None = None) -> list[Vacancy]:
        query = query or StoreQuery(limit=self._default_limit)
        if query.limit is None and self._default_limit is not None:
            query = StoreQuery(query.where, query.order_by, query.descending, self._default_limit)
        data = await self._request("GET", render_query(query))
        if not isinstance(data, list):
            raise RecordStoreError("record store returned an unexpected payload")
        return parse_rows(data)

    async def get(self, record_id: int | str) -> Vacancy | None:
        data = await self._request("GET", [("select", "*"), ("id", f"eq.{_literal(record_id)}"), ("limit", "1")])
        rows = parse_rows(data or [])
        return rows[0] if rows else None

    async def insert(self, record: Vacancy) -> Vacancy:
        row = record.to_store()
        if row.get("id") is None:
            row.pop("id", None)
        data = await self._request("POST", [], json=row)
        rows = parse_rows(data or [])
        if not rows:
            raise RecordStoreError("record store did not return the inserted vacancy")
        return rows[0]

    async def update(self, record: Vacancy) -> Vacancy:
        row = record.to_store()
        row.pop("id", None)
        data = await self._request("PATCH", [("id", f"eq.{_literal(record.id)}")], json=row)
        rows = parse_rows(data or [])
        if not rows:
            raise RecordStoreError(f"vacancy {record.id} not found")
        return rows[0]

    async def delete(self, record_id: int | str) -> None:
        await self._request("DELETE", [("id", f"eq.{_literal(record_id)}")])

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()


def load_seed_file(path: Path) -> list[Vacancy]:
    """Read vacancies from a JSON array of store rows."""

    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("items", [])
    records = parse_rows(payload)
    logger.info("loaded %d vacancies from %s", len(records), path)
    return records
