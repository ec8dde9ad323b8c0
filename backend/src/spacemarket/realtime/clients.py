"""Namespace clients for the dashboard and messaging realtime channels."""

from __future__ import annotations

import asyncio
from typing import Any, Iterable

from app.config import Settings, get_settings

from .connection import (
    ConnectionManager,
    FailureCallback,
    ReconnectPolicy,
    SocketFactory,
    Sleep,
    default_socket_factory,
)
from .events import (
    DASHBOARD_EVENTS,
    MESSAGING_EVENTS,
    ConnectionState,
    EventKind,
    OutboundSignal,
)
from .membership import ConversationMembership
from .router import EventCallback, EventRouter, Subscription


class RealtimeClient:
    """Caller-owned client for one namespace.

    Lifecycle: construct, ``connect``, subscribe with the ``on_*`` helpers
    (before or after connecting), ``disconnect``. Subscriptions are kept
    across reconnects and released by ``disconnect``.
    """

    namespace: str = ""
    event_kinds: tuple[EventKind, ...] = ()

    def __init__(
        self,
        *,
        url: str,
        namespace: str | None = None,
        policy: ReconnectPolicy | None = None,
        cookies: dict[str, str] | None = None,
        connect_timeout: float = 10.0,
        socket_factory: SocketFactory = default_socket_factory,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        resolved = namespace or self.namespace
        self.router = EventRouter(resolved, self.event_kinds)
        self.connection = ConnectionManager(
            resolved,
            url=url,
            router=self.router,
            policy=policy,
            cookies=cookies,
            connect_timeout=connect_timeout,
            socket_factory=socket_factory,
            sleep=sleep,
        )

    @property
    def state(self) -> ConnectionState:
        return self.connection.state

    @property
    def reconnect_attempts(self) -> int:
        return self.connection.reconnect_attempts

    def is_connected(self) -> bool:
        return self.connection.is_connected()

    async def connect(self, on_failure: FailureCallback | None = None) -> None:
        await self.connection.connect(on_failure)

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    def subscribe(self, kind: EventKind, callback: EventCallback) -> Subscription:
        return self.router.subscribe(kind, callback)


class DashboardClient(RealtimeClient):
    """Client for the ``/dashboard`` namespace (tenant, landlord and broker dashboards)."""

    namespace = "/dashboard"
    event_kinds = DASHBOARD_EVENTS

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.connection.add_connect_hook(self._request_current_state)

    async def _request_current_state(self, reconnected: bool) -> None:
        # Updates emitted while we were offline are lost; ask for a fresh state.
        if reconnected:
            await self.connection.emit(OutboundSignal.REQUEST_CURRENT_STATE.value)

    def on_kpi_update(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.KPI_UPDATE, callback)

    def on_business_created(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BUSINESS_CREATED, callback)

    def on_business_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BUSINESS_UPDATED, callback)

    def on_business_deleted(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BUSINESS_DELETED, callback)

    def on_metrics_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.METRICS_UPDATED, callback)

    def on_reconnected(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.RECONNECTED, callback)

    def on_property_created(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.PROPERTY_CREATED, callback)

    def on_property_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.PROPERTY_UPDATED, callback)

    def on_property_deleted(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.PROPERTY_DELETED, callback)

    def on_property_status_changed(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.PROPERTY_STATUS_CHANGED, callback)

    def on_broker_kpi_update(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BROKER_KPI_UPDATE, callback)

    def on_broker_deal_created(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BROKER_DEAL_CREATED, callback)

    def on_broker_deal_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BROKER_DEAL_UPDATED, callback)

    def on_broker_business_stats_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BROKER_BUSINESS_STATS_UPDATED, callback)

    def on_broker_tenant_approved(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.BROKER_TENANT_APPROVED, callback)


class MessagingClient(RealtimeClient):
    """Client for the ``/messaging`` namespace."""

    namespace = "/messaging"
    event_kinds = MESSAGING_EVENTS

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.membership = ConversationMembership(self.connection)

    @property
    def active_conversation(self) -> str | None:
        return self.membership.active_conversation

    async def disconnect(self) -> None:
        await super().disconnect()
        self.membership.reset()

    async def join_conversation(self, conversation_id: str) -> bool:
        return await self.membership.join_conversation(conversation_id)

    async def leave_conversation(self, conversation_id: str) -> bool:
        return await self.membership.leave_conversation(conversation_id)

    async def start_typing(self, conversation_id: str) -> bool:
        return await self.membership.start_typing(conversation_id)

    async def stop_typing(self, conversation_id: str) -> bool:
        return await self.membership.stop_typing(conversation_id)

    async def mark_as_read(self, conversation_id: str, message_id: str | None = None) -> bool:
        return await self.membership.mark_as_read(conversation_id, message_id)

    def on_new_message(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.MESSAGE_NEW, callback)

    def on_message_deleted(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.MESSAGE_DELETED, callback)

    def on_message_read(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.MESSAGE_READ, callback)

    def on_new_conversation(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.CONVERSATION_NEW, callback)

    def on_conversation_updated(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.CONVERSATION_UPDATED, callback)

    def on_conversation_joined(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.CONVERSATION_JOINED, callback)

    def on_conversation_left(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.CONVERSATION_LEFT, callback)

    def on_unread_update(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.UNREAD_UPDATE, callback)

    def on_typing_start(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.TYPING_START, callback)

    def on_typing_stop(self, callback: EventCallback) -> Subscription:
        return self.subscribe(EventKind.TYPING_STOP, callback)


def _policy(delays: Iterable[float], max_attempts: int, max_delay: float) -> ReconnectPolicy:
    return ReconnectPolicy(delays=tuple(delays), max_attempts=max_attempts, max_delay=max_delay)


def create_dashboard_client(
    settings: Settings | None = None,
    *,
    socket_factory: SocketFactory = default_socket_factory,
    sleep: Sleep = asyncio.sleep,
) -> DashboardClient:
    settings = settings or get_settings()
    return DashboardClient(
        url=settings.realtime_origin,
        namespace=settings.dashboard_namespace,
        policy=_policy(
            settings.dashboard_reconnect_delays,
            settings.dashboard_max_reconnect_attempts,
            settings.max_reconnect_delay_seconds,
        ),
        cookies=settings.session_cookies(),
        connect_timeout=settings.connection_timeout_seconds,
        socket_factory=socket_factory,
        sleep=sleep,
    )


def create_messaging_client(
    settings: Settings | None = None,
    *,
    socket_factory: SocketFactory = default_socket_factory,
    sleep: Sleep = asyncio.sleep,
) -> MessagingClient:
    settings = settings or get_settings()
    return MessagingClient(
        url=settings.realtime_origin,
        namespace=settings.messaging_namespace,
        policy=_policy(
            settings.messaging_reconnect_delays,
            settings.messaging_max_reconnect_attempts,
            settings.max_reconnect_delay_seconds,
        ),
        cookies=settings.session_cookies(),
        connect_timeout=settings.connection_timeout_seconds,
        socket_factory=socket_factory,
        sleep=sleep,
    )
