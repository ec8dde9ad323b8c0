"""Socket lifecycle for one realtime namespace: connect, bounded backoff, teardown."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Sequence

import socketio
from socketio import exceptions as socketio_exceptions

from app.monitoring.metrics import (
    realtime_connection_attempts_total,
    realtime_connection_failures_total,
    realtime_connection_state,
    realtime_reconnects_scheduled_total,
)

from .events import ConnectionState, FailureReason
from .exceptions import mentions_authentication
from .router import EventRouter, invoke_callback


logger = logging.getLogger(__name__)

FailureCallback = Callable[[FailureReason], "Awaitable[None] | None"]
ConnectHook = Callable[[bool], "Awaitable[None] | None"]
SocketFactory = Callable[[], Any]
Sleep = Callable[[float], Awaitable[None]]

_CONNECT_ERRORS: tuple[type[BaseException], ...] = (
    socketio_exceptions.ConnectionError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)

_EMIT_ERRORS: tuple[type[BaseException], ...] = (
    socketio_exceptions.SocketIOError,
    ConnectionError,
    OSError,
)

# python-socketio reports "client disconnect"; the JavaScript client uses the "io" prefix.
_CLIENT_DISCONNECT_REASONS = frozenset({"client disconnect", "io client disconnect"})


@dataclass(frozen=True, slots=True)
class ReconnectPolicy:
    """Bounded backoff table used between connection attempts."""

    delays: tuple[float, ...] = (1.0, 2.0, 4.0, 8.0)
    max_attempts: int = 3
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if not self.delays:
            raise ValueError("ReconnectPolicy needs at least one delay")
        if any(later < earlier for earlier, later in zip(self.delays, self.delays[1:])):
            raise ValueError("Reconnect delays must be non-decreasing")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    def delay_for(self, attempt: int) -> float:
        index = min(max(attempt, 0), len(self.delays) - 1)
        return min(self.delays[index], self.max_delay)


def default_socket_factory() -> socketio.AsyncClient:
    # Reconnection is driven by ConnectionManager so the backoff table and
    # failure callback stay under our control.
    return socketio.AsyncClient(reconnection=False, logger=False, engineio_logger=False)


def _describe(data: Any) -> str:
    if isinstance(data, dict):
        message = data.get("message")
        if message is not None:
            return str(message)
    if isinstance(data, BaseException):
        return str(data) or type(data).__name__
    return str(data) if data is not None else ""


class ConnectionManager:
    """Owns the single socket of a namespace and its reconnect state.

    ``connect`` only schedules the attempt; progress is reported through the
    state property, the event router and the failure callback. At most one
    socket exists at a time: every new attempt releases the previous one
    first. ``disconnect`` bumps a generation counter so that any reconnect
    timer or in-flight attempt started before it becomes a no-op.
    """

    def __init__(
        self,
        namespace: str,
        *,
        url: str,
        router: EventRouter,
        policy: ReconnectPolicy | None = None,
        cookies: Mapping[str, str] | None = None,
        connect_timeout: float = 10.0,
        transports: Sequence[str] = ("websocket", "polling"),
        socket_factory: SocketFactory = default_socket_factory,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._namespace = namespace
        self._url = url
        self._router = router
        self._policy = policy or ReconnectPolicy()
        self._cookies = dict(cookies or {})
        self._connect_timeout = connect_timeout
        self._transports = list(transports)
        self._socket_factory = socket_factory
        self._sleep = sleep

        self._socket: Any | None = None
        self._state = ConnectionState.DISCONNECTED
        self._attempts = 0
        self._generation = 0
        self._on_failure: FailureCallback | None = None
        self._failure_notified = False
        self._has_connected = False
        self._last_connect_error: str | None = None
        self._connect_task: asyncio.Task[Any] | None = None
        self._reconnect_task: asyncio.Task[Any] | None = None
        self._connect_hooks: list[ConnectHook] = []
        self._publish_state()

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def reconnect_attempts(self) -> int:
        return self._attempts

    @property
    def policy(self) -> ReconnectPolicy:
        return self._policy

    @property
    def router(self) -> EventRouter:
        return self._router

    def is_connected(self) -> bool:
        if self._state is not ConnectionState.CONNECTED or self._socket is None:
            return False
        return bool(getattr(self._socket, "connected", True))

    def add_connect_hook(self, hook: ConnectHook) -> None:
        """Run *hook(reconnected)* after every successful connect."""

        self._connect_hooks.append(hook)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self, on_failure: FailureCallback | None = None) -> None:
        if self._state in (
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.RECONNECTING,
        ):
            logger.info(
                "Realtime connection already active",
                extra={"namespace": self._namespace, "state": self._state.value},
            )
            return

        self._generation += 1
        self._attempts = 0
        self._failure_notified = False
        self._on_failure = on_failure
        self._set_state(ConnectionState.CONNECTING)
        generation = self._generation
        self._connect_task = asyncio.create_task(
            self._open(generation), name=f"realtime-connect{self._namespace}"
        )

    async def disconnect(self) -> None:
        self._generation += 1
        self._cancel_pending()
        had_socket = self._socket is not None
        await self._release_socket()
        self._router.clear()
        self._attempts = 0
        self._on_failure = None
        self._failure_notified = False
        self._has_connected = False
        self._set_state(ConnectionState.DISCONNECTED)
        if had_socket:
            logger.info("Realtime connection closed by client", extra={"namespace": self._namespace})

    async def emit(self, event: str, data: Any = None) -> bool:
        """Send a fire-and-forget signal; returns False when it could not be sent."""

        socket = self._socket
        if socket is None or self._state is not ConnectionState.CONNECTED:
            logger.warning(
                "Realtime socket not connected; dropping outbound signal",
                extra={"namespace": self._namespace, "event": event},
            )
            return False
        try:
            await socket.emit(event, data, namespace=self._namespace)
        except _EMIT_ERRORS as exc:
            logger.warning(
                "Failed to emit realtime signal",
                extra={"namespace": self._namespace, "event": event, "error": _describe(exc)},
            )
            return False
        return True

    # ------------------------------------------------------------------
    # Connection attempts
    # ------------------------------------------------------------------
    def _headers(self) -> dict[str, str]:
        if not self._cookies:
            return {}
        return {"Cookie": "; ".join(f"{name}={value}" for name, value in self._cookies.items())}

    async def _open(self, generation: int) -> None:
        await self._release_socket()
        if generation != self._generation:
            return

        socket = self._socket_factory()
        self._socket = socket
        self._last_connect_error = None
        self._bind(socket)
        self._router.attach(socket)

        try:
            await socket.connect(
                self._url,
                headers=self._headers(),
                transports=self._transports,
                namespaces=[self._namespace],
                wait_timeout=self._connect_timeout,
            )
        except _CONNECT_ERRORS as exc:
            if generation != self._generation or socket is not self._socket:
                return
            reason = self._last_connect_error or _describe(exc)
            realtime_connection_attempts_total.labels(self._namespace, "error").inc()
            logger.warning(
                "Realtime connection attempt failed",
                extra={"namespace": self._namespace, "attempt": self._attempts, "error": reason},
            )
            await self._release_socket()
            if mentions_authentication(reason):
                await self._fail(FailureReason.AUTHENTICATION)
            else:
                await self._schedule_reconnect()
            return

        if generation != self._generation or socket is not self._socket:
            # Superseded while the handshake was in flight.
            with contextlib.suppress(Exception):
                await socket.disconnect()
            return
        await self._mark_connected(socket)

    async def _schedule_reconnect(self) -> None:
        if self._attempts >= self._policy.max_attempts:
            logger.error(
                "Max reconnection attempts reached",
                extra={"namespace": self._namespace, "attempts": self._attempts},
            )
            await self._fail(FailureReason.EXHAUSTED)
            return

        delay = self._policy.delay_for(self._attempts)
        self._attempts += 1
        self._set_state(ConnectionState.RECONNECTING)
        realtime_reconnects_scheduled_total.labels(self._namespace).inc()
        logger.info(
            "Reconnecting in %.1fs (attempt %d/%d)",
            delay,
            self._attempts,
            self._policy.max_attempts,
            extra={"namespace": self._namespace},
        )
        generation = self._generation
        self._reconnect_task = asyncio.create_task(
            self._reconnect_after(delay, generation), name=f"realtime-reconnect{self._namespace}"
        )

    async def _reconnect_after(self, delay: float, generation: int) -> None:
        await self._sleep(delay)
        if generation != self._generation or self._state is not ConnectionState.RECONNECTING:
            logger.debug("Discarded stale reconnect timer", extra={"namespace": self._namespace})
            return
        self._set_state(ConnectionState.CONNECTING)
        await self._open(generation)

    async def _mark_connected(self, socket: Any) -> None:
        if socket is not self._socket or self._state is ConnectionState.CONNECTED:
            return
        reconnected = self._has_connected
        self._has_connected = True
        self._attempts = 0
        self._set_state(ConnectionState.CONNECTED)
        realtime_connection_attempts_total.labels(self._namespace, "connected").inc()
        logger.info(
            "Realtime connected", extra={"namespace": self._namespace, "reconnected": reconnected}
        )
        for hook in list(self._connect_hooks):
            try:
                await invoke_callback(hook, reconnected)
            except Exception:
                logger.exception("Realtime connect hook failed", extra={"namespace": self._namespace})

    async def _fail(self, reason: FailureReason) -> None:
        self._cancel_pending()
        self._set_state(ConnectionState.FAILED)
        realtime_connection_failures_total.labels(self._namespace, reason.value).inc()
        if self._failure_notified:
            return
        self._failure_notified = True
        callback = self._on_failure
        if callback is None:
            return
        try:
            await invoke_callback(callback, reason)
        except Exception:
            logger.exception(
                "Realtime failure callback raised",
                extra={"namespace": self._namespace, "reason": reason.value},
            )

    # ------------------------------------------------------------------
    # Socket events
    # ------------------------------------------------------------------
    def _bind(self, socket: Any) -> None:
        namespace = self._namespace

        async def on_connect(*_args: Any) -> None:
            await self._mark_connected(socket)

        async def on_connect_error(data: Any = None, *_args: Any) -> None:
            if socket is self._socket:
                self._last_connect_error = _describe(data)

        async def on_disconnect(reason: Any = None, *_args: Any) -> None:
            await self._on_disconnect(socket, reason)

        async def on_error(data: Any = None, *_args: Any) -> None:
            await self._on_error(socket, data)

        socket.on("connect", on_connect, namespace=namespace)
        socket.on("connect_error", on_connect_error, namespace=namespace)
        socket.on("disconnect", on_disconnect, namespace=namespace)
        socket.on("error", on_error, namespace=namespace)

    async def _on_disconnect(self, socket: Any, reason: Any) -> None:
        # Sockets released by us are detached before they close, so anything
        # arriving here for a non-current socket is stale.
        if socket is not self._socket or self._state is not ConnectionState.CONNECTED:
            return
        if reason is not None and str(reason) in _CLIENT_DISCONNECT_REASONS:
            return
        logger.warning(
            "Realtime connection lost",
            extra={"namespace": self._namespace, "reason": str(reason) if reason else None},
        )
        await self._release_socket()
        await self._schedule_reconnect()

    async def _on_error(self, socket: Any, data: Any) -> None:
        if socket is not self._socket:
            return
        message = _describe(data)
        logger.error("Realtime server error", extra={"namespace": self._namespace, "error": message})
        if not mentions_authentication(data):
            return
        logger.error("Realtime authentication failed", extra={"namespace": self._namespace})
        self._generation += 1
        await self._release_socket()
        await self._fail(FailureReason.AUTHENTICATION)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _release_socket(self) -> None:
        socket = self._socket
        if socket is None:
            return
        self._socket = None
        with contextlib.suppress(Exception):
            await socket.disconnect()

    def _cancel_pending(self) -> None:
        current = asyncio.current_task()
        for task in (self._connect_task, self._reconnect_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._connect_task = None
        self._reconnect_task = None

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug(
            "Realtime state %s -> %s",
            self._state.value,
            state.value,
            extra={"namespace": self._namespace},
        )
        self._state = state
        self._publish_state()

    def _publish_state(self) -> None:
        for candidate in ConnectionState:
            realtime_connection_state.labels(self._namespace, candidate.value).set(
                1 if candidate is self._state else 0
            )
