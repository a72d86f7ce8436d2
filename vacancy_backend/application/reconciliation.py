"""Keeps every open view in step with the record store.

Any change notification, the first start and manual refreshes all trigger a
full re-fetch. Each fetch carries a monotonically increasing token; a result
is applied only when its token is newer than the last applied one and the
controller is still open, so late or superseded responses are dropped.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from vacancy_backend.config import Settings
from vacancy_backend.core.filters import FilterState
from vacancy_backend.core.query import StoreQuery, scope_to_units
from vacancy_backend.domain import EMPTY_SNAPSHOT, Snapshot
from vacancy_backend.infrastructure import ChangeFeed, RecordStore, RecordStoreError, Subscription

from .sessions import ViewSession

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

FETCH_FAILED_NOTICE = "Não foi possível atualizar as vagas. Os dados exibidos podem estar desatualizados."


class ReconciliationState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LiveReconciliationController:
    """Owns the current snapshot and the sessions derived from it."""

    def __init__(
        self,
        store: RecordStore,
        feed: ChangeFeed,
        *,
        settings: Settings | None = None,
        base_query: StoreQuery | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._store = store
        self._feed = feed
        self.settings = settings or Settings()
        self._clock = clock or _utcnow
        query = base_query or StoreQuery(limit=self.settings.fetch_limit)
        self.base_query = query.narrowed(*scope_to_units(self.settings.scoped_units))

        self.snapshot: Snapshot = EMPTY_SNAPSHOT
        self.state = ReconciliationState.IDLE
        self.last_error: str | None = None
        self._sessions: dict[str, ViewSession] = {}
        self._token = 0
        self._applied = 0
        self._in_flight = 0
        self._closed = False
        self._subscription: Subscription | None = None
        self._listener: asyncio.Task | None = None
        self._waiters: list[asyncio.Future] = []

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def in_flight(self) -> int:
        return self._in_flight

    async def start(self) -> None:
        """Subscribe to the change feed and load the first snapshot."""

        if self._closed:
            raise RuntimeError("controller is closed")
        if self._subscription is None:
            self._subscription = self._feed.subscribe()
            self._listener = asyncio.create_task(self._listen(self._subscription))
        await self.refresh("initial")

    async def close(self) -> None:
        """Stop listening; results of fetches still in flight are discarded."""

        if self._closed:
            return
        self._closed = True
        if self._subscription is not None:
            self._subscription.close()
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
        for waiter in self._waiters:
            if not waiter.done():
                waiter.cancel()
        self._waiters.clear()
        logger.info("reconciliation controller closed")

    async def _listen(self, subscription: Subscription) -> None:
        async for event in subscription:
            # a burst of queued notifications costs one fetch
            coalesced = 1 + len(subscription.drain())
            logger.debug("change %s id=%s (%d coalesced), re-fetching", event.kind, event.record_id, coalesced)
            try:
                await self.refresh("notification")
            except Exception:
                logger.exception("refresh after change notification failed")

    def next_cycle(self) -> asyncio.Future:
        """Future resolved when the next refresh cycle finishes, applied or not."""

        future = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        return future

    def _finish_cycle(self, applied: bool) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(applied)

    # ------------------------------------------------------------------
    # fetching
    # ------------------------------------------------------------------
    async def refresh(self, reason: str = "manual") -> bool:
        """Fetch a new snapshot; return whether it was applied."""

        if self._closed:
            return False
        self._token += 1
        token = self._token
        self._in_flight += 1
        self.state = ReconciliationState.FETCHING
        logger.debug("fetch #%d started (%s)", token, reason)
        applied = False
        try:
            records = await self._store.fetch(self.base_query)
        except RecordStoreError as exc:
            self._report_failure(token, exc)
        except Exception as exc:
            logger.exception("fetch #%d raised an unexpected error", token)
            self._report_failure(token, exc)
        else:
            applied = self._apply(token, records)
        finally:
            self._in_flight -= 1
            if self._in_flight == 0:
                self.state = ReconciliationState.IDLE
            self._finish_cycle(applied)
        return applied

    def _apply(self, token: int, records: list) -> bool:
        if self._closed:
            logger.debug("fetch #%d discarded: controller closed", token)
            return False
        if token <= self._applied:
            logger.debug("fetch #%d discarded: #%d already applied", token, self._applied)
            return False
        now = self._clock()
        self._applied = token
        self.snapshot = Snapshot(records=tuple(records), token=token, fetched_at=now)
        self.last_error = None
        self.evict_idle_sessions(now)
        for session in self._sessions.values():
            session.recompute(self.snapshot, now=now, settings=self.settings)
        logger.info("snapshot #%d applied with %d vacancies", token, len(records))
        return True

    def _report_failure(self, token: int, exc: Exception) -> None:
        if self._closed:
            return
        self.state = ReconciliationState.ERROR
        self.last_error = str(exc)
        logger.error("fetch #%d failed, keeping snapshot #%d: %s", token, self.snapshot.token, exc)
        for session in self._sessions.values():
            session.notice = FETCH_FAILED_NOTICE

    # ------------------------------------------------------------------
    # sessions
    # ------------------------------------------------------------------
    def open_session(self, filters: FilterState | None = None) -> ViewSession:
        now = self._clock()
        self.evict_idle_sessions(now)
        session = ViewSession.create(now=now, settings=self.settings, filters=filters)
        session.recompute(self.snapshot, now=now, settings=self.settings)
        self._sessions[session.id] = session
        return session

    def get_session(self, session_id: str) -> ViewSession | None:
        """Look up a session and mark it as used; idle ones are dropped first."""

        now = self._clock()
        self.evict_idle_sessions(now)
        session = self._sessions.get(session_id)
        if session is not None:
            session.touch(now)
        return session

    def close_session(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    def evict_idle_sessions(self, now: datetime) -> int:
        ttl = self.settings.session_ttl
        if ttl <= 0:
            return 0
        expired = [sid for sid, session in self._sessions.items() if session.idle_for(now) > ttl]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.info("evicted %d idle session(s)", len(expired))
        return len(expired)

    def sessions(self) -> list[ViewSession]:
        return list(self._sessions.values())

    def now(self) -> datetime:
        return self._clock()


_controller: LiveReconciliationController | None = None


def configure_controller(controller: LiveReconciliationController | None) -> None:
    """Install the process-wide controller (``None`` clears it)."""

    global _controller
    _controller = controller


def get_controller() -> LiveReconciliationController:
    if _controller is None:
        raise RuntimeError("reconciliation controller is not configured")
    return _controller
