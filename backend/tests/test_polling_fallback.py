from __future__ import annotations

import json

import httpx
import pytest

from app.monitoring.metrics import polling_fetches_total
from spacemarket.realtime.events import DashboardSnapshot, PropertyKPISnapshot
from spacemarket.realtime.exceptions import AuthenticationError, SnapshotFetchError
from spacemarket.realtime.polling import PollingFallback, SnapshotFetcher

from conftest import ManualSleep, settle


class FakeFetch:
    def __init__(self, *results: object) -> None:
        self.results = list(results)
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        result = self.results.pop(0) if self.results else {"kpis": {"tick": self.calls}}
        if isinstance(result, BaseException):
            raise result
        return result


@pytest.mark.anyio("asyncio")
async def test_start_fetches_immediately_then_every_interval(manual_sleep: ManualSleep) -> None:
    fetch = FakeFetch()
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)
    received: list[object] = []

    polling.start_polling(received.append)
    await settle()

    assert fetch.calls == 1
    assert manual_sleep.delays == [30.0]

    await manual_sleep.release()

    assert fetch.calls == 2
    assert received == [{"kpis": {"tick": 1}}, {"kpis": {"tick": 2}}]
    assert polling_fetches_total.value("dashboard", "ok") == 2
    polling.stop_polling()


@pytest.mark.anyio("asyncio")
async def test_double_start_keeps_single_timer(manual_sleep: ManualSleep) -> None:
    fetch = FakeFetch()
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)

    polling.start_polling(lambda data: None)
    polling.start_polling(lambda data: None)
    await settle()
    assert fetch.calls == 1

    await manual_sleep.release()

    assert fetch.calls == 2
    assert manual_sleep.pending == 1
    polling.stop_polling()


@pytest.mark.anyio("asyncio")
async def test_stop_then_start_fetches_again_immediately(manual_sleep: ManualSleep) -> None:
    fetch = FakeFetch()
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)

    polling.start_polling(lambda data: None)
    await settle()
    polling.stop_polling()
    polling.stop_polling()
    assert not polling.is_active()

    await manual_sleep.release()
    assert fetch.calls == 1

    polling.start_polling(lambda data: None)
    await settle()

    assert fetch.calls == 2
    assert polling.is_active()
    polling.stop_polling()


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    "error",
    [AuthenticationError("expired"), SnapshotFetchError("unauthorized", status_code=401)],
)
async def test_authentication_failure_stops_polling(manual_sleep: ManualSleep, error) -> None:
    fetch = FakeFetch(error)
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)
    errors: list[BaseException] = []

    polling.start_polling(lambda data: None, errors.append)
    await settle()

    assert errors == [error]
    assert not polling.is_active()

    await manual_sleep.release()

    assert fetch.calls == 1
    assert manual_sleep.pending == 0
    assert polling_fetches_total.value("dashboard", "unauthorized") == 1


@pytest.mark.anyio("asyncio")
async def test_transient_errors_keep_polling(manual_sleep: ManualSleep, caplog) -> None:
    failure = SnapshotFetchError("Snapshot request returned 503", status_code=503)
    fetch = FakeFetch(failure)
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)
    errors: list[BaseException] = []
    received: list[object] = []

    polling.start_polling(received.append, errors.append)
    await settle()
    assert errors == [failure]
    assert polling.is_active()

    await manual_sleep.release()

    assert fetch.calls == 2
    assert received == [{"kpis": {"tick": 2}}]
    assert polling_fetches_total.value("dashboard", "error") == 1
    assert "Polling error" in caplog.text
    polling.stop_polling()


@pytest.mark.anyio("asyncio")
async def test_failing_data_callback_keeps_polling(manual_sleep: ManualSleep) -> None:
    fetch = FakeFetch()
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)

    def broken(data) -> None:
        raise RuntimeError("render failed")

    polling.start_polling(broken)
    await settle()
    await manual_sleep.release()

    assert fetch.calls == 2
    assert polling.is_active()
    polling.stop_polling()


@pytest.mark.anyio("asyncio")
async def test_set_polling_interval_restarts_with_same_callbacks(manual_sleep: ManualSleep) -> None:
    fetch = FakeFetch()
    polling = PollingFallback(fetch, interval=30, sleep=manual_sleep)
    received: list[object] = []

    polling.start_polling(received.append)
    await settle()
    polling.set_polling_interval(5)
    await settle()

    assert polling.interval == 5.0
    assert fetch.calls == 2
    assert manual_sleep.delays == [30.0, 5.0]
    assert len(received) == 2

    await manual_sleep.release()
    assert fetch.calls == 3
    assert manual_sleep.delays[-1] == 5.0
    polling.stop_polling()


def test_set_polling_interval_when_idle_only_updates(manual_sleep: ManualSleep) -> None:
    polling = PollingFallback(FakeFetch(), interval=30, sleep=manual_sleep)

    polling.set_polling_interval(10)

    assert polling.interval == 10.0
    assert not polling.is_active()
    with pytest.raises(ValueError):
        polling.set_polling_interval(0)


def _envelope(data: object, *, success: bool = True) -> bytes:
    return json.dumps({"success": success, "data": data, "error": None if success else "boom"}).encode()


@pytest.mark.anyio("asyncio")
async def test_snapshot_fetcher_unwraps_envelope_and_sends_cookie() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = {"kpis": {"activeListings": 4}, "businesses": [{"id": "b1"}], "total": 1}
        return httpx.Response(200, content=_envelope(body), headers={"Content-Type": "application/json"})

    fetcher: SnapshotFetcher[DashboardSnapshot] = SnapshotFetcher(
        "http://api.test",
        "/api/dashboard/tenant",
        model=DashboardSnapshot,
        cookies={"accessToken": "token-123"},
        transport=httpx.MockTransport(handler),
    )

    snapshot = await fetcher()

    assert snapshot.kpis == {"activeListings": 4}
    assert snapshot.total == 1
    assert seen[0].url.path == "/api/dashboard/tenant"
    assert "accessToken=token-123" in seen[0].headers["cookie"]


@pytest.mark.anyio("asyncio")
async def test_snapshot_fetcher_landlord_kpis() -> None:
    body = {"totalListings": {"value": 12}, "responseRate": {"value": 0.8}}

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "data": body})

    fetcher: SnapshotFetcher[PropertyKPISnapshot] = SnapshotFetcher(
        "http://api.test",
        "/api/dashboard/landlord/kpis",
        model=PropertyKPISnapshot,
        transport=httpx.MockTransport(handler),
    )

    snapshot = await fetcher()

    assert snapshot.kpis == body


@pytest.mark.anyio("asyncio")
@pytest.mark.parametrize(
    ("response", "error_type", "status_code"),
    [
        (httpx.Response(401, json={"success": False, "error": "Unauthorized"}), AuthenticationError, 401),
        (httpx.Response(503, text="unavailable"), SnapshotFetchError, 503),
        (httpx.Response(200, text="<html>"), SnapshotFetchError, 200),
        (httpx.Response(200, content=_envelope(None, success=False)), SnapshotFetchError, 200),
    ],
)
async def test_snapshot_fetcher_errors(response, error_type, status_code) -> None:
    fetcher: SnapshotFetcher[object] = SnapshotFetcher(
        "http://api.test",
        "/api/dashboard/tenant",
        transport=httpx.MockTransport(lambda request: response),
    )

    with pytest.raises(error_type) as excinfo:
        await fetcher()

    assert excinfo.value.status_code == status_code


@pytest.mark.anyio("asyncio")
async def test_snapshot_fetcher_wraps_transport_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher: SnapshotFetcher[object] = SnapshotFetcher(
        "http://api.test", "/api/dashboard/tenant", transport=httpx.MockTransport(handler)
    )

    with pytest.raises(SnapshotFetchError) as excinfo:
        await fetcher()

    assert excinfo.value.status_code is None
    assert isinstance(excinfo.value.__cause__, httpx.ConnectError)
