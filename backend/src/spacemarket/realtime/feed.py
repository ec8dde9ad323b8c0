"""Dashboard feed: realtime updates first, snapshot polling once the socket gives up."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable

import httpx

from app.config import Settings, get_settings

from .clients import DashboardClient, create_dashboard_client
from .connection import SocketFactory, Sleep, default_socket_factory
from .events import (
    PAYLOAD_MODELS,
    BrokerKPISnapshot,
    ConnectionState,
    DashboardSnapshot,
    EventKind,
    FailureReason,
    PropertyKPISnapshot,
)
from .polling import ErrorCallback, PollingFallback, SnapshotFetcher
from .router import EventCallback, Subscription, invoke_callback


logger = logging.getLogger(__name__)


class FeedStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    POLLING = "polling"


def _default_kpis(snapshot: Any) -> dict[str, Any] | None:
    if isinstance(snapshot, dict):
        return snapshot.get("kpis")
    return getattr(snapshot, "kpis", None)


class DashboardFeed:
    """Keeps a dashboard fed from exactly one source at a time.

    The realtime client is tried first. When it reports a terminal failure
    the feed switches to the polling fallback and stays there until
    :meth:`retry` or a fresh :meth:`start` after :meth:`stop`. KPI snapshots
    from polling reach the handler of ``kpi_kind`` as that kind's payload
    model, the same shape the socket delivers.
    """

    def __init__(
        self,
        client: DashboardClient,
        polling: PollingFallback[Any],
        *,
        handlers: dict[EventKind, EventCallback] | None = None,
        on_poll_error: ErrorCallback | None = None,
        kpi_kind: EventKind = EventKind.KPI_UPDATE,
        kpis_from_snapshot: Callable[[Any], dict[str, Any] | None] = _default_kpis,
    ) -> None:
        self._client = client
        self._polling = polling
        self._handlers = dict(handlers or {})
        self._on_poll_error = on_poll_error
        self._kpi_kind = kpi_kind
        self._kpis_from_snapshot = kpis_from_snapshot
        self._subscriptions: list[Subscription] = []
        self._polling_mode = False
        self._started = False

    @property
    def client(self) -> DashboardClient:
        return self._client

    @property
    def polling(self) -> PollingFallback[Any]:
        return self._polling

    @property
    def status(self) -> FeedStatus:
        if self._polling_mode:
            # Polling stops for good on an authentication failure.
            return FeedStatus.POLLING if self._polling.is_active() else FeedStatus.DISCONNECTED
        state = self._client.state
        if state is ConnectionState.FAILED:
            return FeedStatus.DISCONNECTED
        return FeedStatus(state.value)

    def is_fallback_polling(self) -> bool:
        return self._polling_mode

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        for kind, handler in self._handlers.items():
            self._subscriptions.append(self._client.subscribe(kind, handler))
        await self._client.connect(self._on_connection_failed)

    async def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription()
        self._subscriptions.clear()
        await self._client.disconnect()
        self._polling.stop_polling()
        self._polling_mode = False
        self._started = False

    async def retry(self) -> None:
        """Leave polling mode and give the realtime channel another try."""

        if not self._started:
            await self.start()
            return
        self._polling.stop_polling()
        self._polling_mode = False
        await self._client.connect(self._on_connection_failed)

    async def _on_connection_failed(self, reason: FailureReason) -> None:
        if not self._started:
            return
        logger.warning(
            "Realtime connection failed, falling back to polling",
            extra={"namespace": self._client.connection.namespace, "reason": reason.value},
        )
        self._polling_mode = True
        self._polling.start_polling(self._on_snapshot, self._on_poll_error)

    async def _on_snapshot(self, snapshot: Any) -> None:
        handler = self._handlers.get(self._kpi_kind)
        if handler is None:
            return
        kpis = self._kpis_from_snapshot(snapshot)
        if not kpis:
            return
        try:
            await invoke_callback(handler, PAYLOAD_MODELS[self._kpi_kind](kpis=kpis))
        except Exception:
            logger.exception("KPI callback failed for polled snapshot")


def _build_feed(
    settings: Settings,
    handlers: dict[EventKind, EventCallback],
    *,
    path: str,
    model: type[Any],
    source: str,
    kpi_kind: EventKind,
    on_poll_error: ErrorCallback | None,
    socket_factory: SocketFactory,
    http_transport: httpx.AsyncBaseTransport | None,
    sleep: Sleep,
) -> DashboardFeed:
    fetcher = SnapshotFetcher(
        settings.api_base_url,
        path,
        model=model,
        cookies=settings.session_cookies(),
        timeout=settings.http_timeout_seconds,
        transport=http_transport,
    )
    return DashboardFeed(
        create_dashboard_client(settings, socket_factory=socket_factory, sleep=sleep),
        PollingFallback(fetcher, interval=settings.polling_interval_seconds, source=source, sleep=sleep),
        handlers=handlers,
        on_poll_error=on_poll_error,
        kpi_kind=kpi_kind,
    )


def create_tenant_dashboard_feed(
    handlers: dict[EventKind, EventCallback],
    settings: Settings | None = None,
    *,
    on_poll_error: ErrorCallback | None = None,
    socket_factory: SocketFactory = default_socket_factory,
    http_transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep = asyncio.sleep,
) -> DashboardFeed:
    settings = settings or get_settings()
    return _build_feed(
        settings,
        handlers,
        path=settings.tenant_dashboard_path,
        model=DashboardSnapshot,
        source="tenant",
        kpi_kind=EventKind.KPI_UPDATE,
        on_poll_error=on_poll_error,
        socket_factory=socket_factory,
        http_transport=http_transport,
        sleep=sleep,
    )


def create_landlord_dashboard_feed(
    handlers: dict[EventKind, EventCallback],
    settings: Settings | None = None,
    *,
    on_poll_error: ErrorCallback | None = None,
    socket_factory: SocketFactory = default_socket_factory,
    http_transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep = asyncio.sleep,
) -> DashboardFeed:
    settings = settings or get_settings()
    return _build_feed(
        settings,
        handlers,
        path=settings.landlord_kpis_path,
        model=PropertyKPISnapshot,
        source="landlord",
        kpi_kind=EventKind.KPI_UPDATE,
        on_poll_error=on_poll_error,
        socket_factory=socket_factory,
        http_transport=http_transport,
        sleep=sleep,
    )


def create_broker_dashboard_feed(
    handlers: dict[EventKind, EventCallback],
    settings: Settings | None = None,
    *,
    on_poll_error: ErrorCallback | None = None,
    socket_factory: SocketFactory = default_socket_factory,
    http_transport: httpx.AsyncBaseTransport | None = None,
    sleep: Sleep = asyncio.sleep,
) -> DashboardFeed:
    """Broker dashboard: polled KPIs arrive through the ``broker:kpi-update`` handler."""
    settings = settings or get_settings()
    return _build_feed(
        settings,
        handlers,
        path=settings.broker_kpis_path,
        model=BrokerKPISnapshot,
        source="broker",
        kpi_kind=EventKind.BROKER_KPI_UPDATE,
        on_poll_error=on_poll_error,
        socket_factory=socket_factory,
        http_transport=http_transport,
        sleep=sleep,
    )
