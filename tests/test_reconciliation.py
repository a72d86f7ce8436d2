from __future__ import annotations

import asyncio
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import httpx

sys.path.append(str(Path(__file__).resolve().parents[1]))

from vacancy_backend.application import LiveReconciliationController, ReconciliationState
from vacancy_backend.application.reconciliation import FETCH_FAILED_NOTICE
from vacancy_backend.config import Settings
from vacancy_backend.core.query import StoreQuery
from vacancy_backend.core.schema import Vacancy
from vacancy_backend.infrastructure import ChangeEvent, ChangeFeed, HttpRecordStore, InMemoryRecordStore, RecordStoreError

NOW = datetime(2024, 3, 31, 12, 0, tzinfo=timezone.utc)


def _vacancy(record_id: int, unit: str = "A", **fields) -> Vacancy:
    return Vacancy(
        id=record_id,
        opened_at=NOW - timedelta(days=record_id),
        job_type="Ops",
        unit=unit,
        sector="X",
        **fields,
    )


class GatedStore:
    """Returns whatever ``records`` held when the fetch started; fetches can be held open."""

    def __init__(self, records: list[Vacancy]) -> None:
        self.records = list(records)
        self.calls = 0
        self.fail = False
        self.error: Exception | None = None
        self.queries: list[StoreQuery | None] = []
        self._gates: dict[int, asyncio.Event] = {}

    def hold(self, call_number: int) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[call_number] = gate
        return gate

    async def fetch(self, query: StoreQuery | None = None) -> list[Vacancy]:
        self.calls += 1
        self.queries.append(query)
        call = self.calls
        captured = list(self.records)
        failing = self.fail
        error = self.error
        gate = self._gates.get(call)
        if gate is not None:
            await gate.wait()
        if error is not None:
            raise error
        if failing:
            raise RecordStoreError("store unreachable")
        return captured

    async def close(self) -> None:
        return None


def _controller(store, feed=None, **settings) -> LiveReconciliationController:
    return LiveReconciliationController(
        store,
        feed or ChangeFeed(),
        settings=Settings(**settings),
        clock=lambda: NOW,
    )


def test_notification_refreshes_views_but_keeps_user_choices():
    async def scenario() -> None:
        feed = ChangeFeed()
        store = InMemoryRecordStore([_vacancy(1), _vacancy(2, unit="B")], feed=feed)
        controller = _controller(store, feed)
        await controller.start()

        session = controller.open_session()
        session.update_filters({"units": ["A"]}, controller.settings, now=NOW)
        session.toggle_expanded(("Ops", "A"))
        session.toggle_select(1)
        assert [record.id for record in session.indicators.filtered] == [1]

        cycle = controller.next_cycle()
        await store.insert(_vacancy(3))
        assert await asyncio.wait_for(cycle, timeout=1) is True

        assert session.filters.units == ["A"]
        assert session.expanded == {("Ops", "A")}
        assert session.selection == {"1"}
        assert sorted(record.id for record in session.indicators.filtered) == [1, 3]
        assert controller.state is ReconciliationState.IDLE
        await controller.close()

    asyncio.run(scenario())


def test_stale_response_is_discarded():
    async def scenario() -> None:
        store = GatedStore([_vacancy(1)])
        controller = _controller(store)
        gate = store.hold(1)

        slow = asyncio.create_task(controller.refresh("slow"))
        await asyncio.sleep(0)
        store.records = [_vacancy(1), _vacancy(2)]
        assert await controller.refresh("fast") is True
        assert controller.state is ReconciliationState.FETCHING

        gate.set()
        assert await slow is False
        assert controller.snapshot.token == 2
        assert len(controller.snapshot) == 2
        assert controller.state is ReconciliationState.IDLE

    asyncio.run(scenario())


def test_failed_fetch_keeps_snapshot_and_posts_notice():
    async def scenario() -> None:
        store = GatedStore([_vacancy(1), _vacancy(2)])
        controller = _controller(store)
        await controller.refresh()
        session = controller.open_session()
        before = controller.snapshot

        store.fail = True
        assert await controller.refresh() is False

        assert controller.snapshot is before
        assert session.indicators.rollup.total == 2
        assert session.take_notice() == FETCH_FAILED_NOTICE
        assert session.take_notice() is None
        assert controller.state is ReconciliationState.IDLE
        assert controller.last_error == "store unreachable"

        store.fail = False
        assert await controller.refresh() is True
        assert controller.last_error is None

    asyncio.run(scenario())


def test_open_detail_follows_identity_and_closes_when_removed():
    async def scenario() -> None:
        store = InMemoryRecordStore([_vacancy(1), _vacancy(2)])
        controller = _controller(store)
        await controller.refresh()
        session = controller.open_session()
        assert session.open_detail(1) is not None

        await store.update(_vacancy(1, unit="C"))
        await controller.refresh()
        assert session.detail is not None
        assert session.detail.unit == "C"

        await store.delete(1)
        await controller.refresh()
        assert session.detail is None
        assert session.detail_id is None
        assert "não está mais disponível" in session.take_notice()

    asyncio.run(scenario())


def test_close_discards_in_flight_fetch_and_unsubscribes():
    async def scenario() -> None:
        feed = ChangeFeed()
        store = GatedStore([_vacancy(1)])
        controller = _controller(store, feed)
        await controller.start()
        assert feed.subscriber_count == 1

        gate = store.hold(2)
        pending = asyncio.create_task(controller.refresh())
        await asyncio.sleep(0)
        store.records = []
        await controller.close()
        gate.set()

        assert await pending is False
        assert len(controller.snapshot) == 1
        assert feed.subscriber_count == 0
        assert await controller.refresh() is False

    asyncio.run(scenario())


def test_burst_of_notifications_costs_one_fetch():
    async def scenario() -> None:
        feed = ChangeFeed()
        store = GatedStore([_vacancy(1)])
        controller = _controller(store, feed)
        await controller.start()
        assert store.calls == 1

        cycle = controller.next_cycle()
        for record_id in (1, 2, 3):
            feed.publish(ChangeEvent(kind="update", record_id=record_id))
        await asyncio.wait_for(cycle, timeout=1)
        for _ in range(5):
            await asyncio.sleep(0)

        assert store.calls == 2
        await controller.close()

    asyncio.run(scenario())


def test_unit_scope_is_pushed_into_the_store_query():
    async def scenario() -> None:
        store = InMemoryRecordStore([_vacancy(1), _vacancy(2, unit="B"), _vacancy(3, unit="C")])

        scoped = _controller(store, unit_scope=["A", "C"])
        await scoped.refresh()
        assert sorted(record.id for record in scoped.snapshot) == [1, 3]

        unrestricted = _controller(store, unit_scope=["ALL"])
        await unrestricted.refresh()
        assert len(unrestricted.snapshot) == 3

    asyncio.run(scenario())


def test_listener_survives_rows_that_are_not_objects():
    async def scenario() -> None:
        row = {"id": 7, "ABERTURA": "2024-03-01", "UNIDADE": "A"}
        payloads = [[row], [None], [row, None]]
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=payloads[min(len(requests), len(payloads)) - 1])

        feed = ChangeFeed()
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        store = HttpRecordStore("https://example.supabase.co/rest/v1", "key", http_client=client)
        controller = _controller(store, feed)
        await controller.start()
        assert len(controller.snapshot) == 1

        for expected in (0, 1):
            cycle = controller.next_cycle()
            feed.publish(ChangeEvent(kind="update", record_id=7))
            assert await asyncio.wait_for(cycle, timeout=1) is True
            assert len(controller.snapshot) == expected

        assert len(requests) == 3
        assert controller.state is ReconciliationState.IDLE
        await controller.close()
        await client.aclose()

    asyncio.run(scenario())


def test_unexpected_fetch_error_is_reported_and_retried_on_next_notification():
    async def scenario() -> None:
        feed = ChangeFeed()
        store = GatedStore([_vacancy(1)])
        controller = _controller(store, feed)
        await controller.start()
        session = controller.open_session()

        store.error = ValueError("unexpected payload")
        cycle = controller.next_cycle()
        feed.publish(ChangeEvent(kind="update", record_id=1))
        assert await asyncio.wait_for(cycle, timeout=1) is False
        assert controller.last_error == "unexpected payload"
        assert controller.state is ReconciliationState.IDLE
        assert session.take_notice() == FETCH_FAILED_NOTICE

        store.error = None
        store.records = [_vacancy(1), _vacancy(2)]
        cycle = controller.next_cycle()
        feed.publish(ChangeEvent(kind="update", record_id=2))
        assert await asyncio.wait_for(cycle, timeout=1) is True
        assert len(controller.snapshot) == 2
        assert store.calls == 3
        await controller.close()

    asyncio.run(scenario())


def test_idle_sessions_are_evicted_after_the_ttl():
    async def scenario() -> None:
        clock = {"now": NOW}
        controller = LiveReconciliationController(
            InMemoryRecordStore([_vacancy(1)]),
            ChangeFeed(),
            settings=Settings(session_ttl=60),
            clock=lambda: clock["now"],
        )
        await controller.refresh()
        idle = controller.open_session()
        active = controller.open_session()

        clock["now"] = NOW + timedelta(seconds=45)
        assert controller.get_session(active.id) is active

        clock["now"] = NOW + timedelta(seconds=90)
        await controller.refresh()
        assert controller.get_session(idle.id) is None
        assert controller.get_session(active.id) is active
        assert [session.id for session in controller.sessions()] == [active.id]

    asyncio.run(scenario())


def test_zero_ttl_keeps_sessions():
    controller = LiveReconciliationController(
        InMemoryRecordStore(),
        ChangeFeed(),
        settings=Settings(session_ttl=0),
        clock=lambda: NOW,
    )
    session = controller.open_session()

    assert controller.evict_idle_sessions(NOW + timedelta(days=30)) == 0
    assert controller.get_session(session.id) is session
