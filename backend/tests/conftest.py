"""Shared pytest fixtures and fakes for the realtime client tests."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator

import pytest
from socketio import exceptions as socketio_exceptions

ROOT_DIR = Path(__file__).resolve().parents[1]
for candidate in (ROOT_DIR, ROOT_DIR / "src"):
    if str(candidate) not in sys.path:
        sys.path.insert(0, str(candidate))

from app.config import Settings, get_settings
from app.monitoring import registry as registry_module


OK = "ok"
REFUSED = "refused"
AUTH = "auth"


class FakeSocket:
    """Stand-in for ``socketio.AsyncClient`` driven by a scripted outcome."""

    def __init__(self, outcome: str = OK) -> None:
        self.outcome = outcome
        self.connected = False
        self.namespace = "/"
        self.handlers: dict[tuple[str, str], Callable[..., Awaitable[None]]] = {}
        self.connect_calls: list[dict[str, Any]] = []
        self.emitted: list[tuple[str, Any, str | None]] = []
        self.disconnect_calls = 0

    def on(self, event: str, handler: Callable[..., Any], namespace: str | None = None) -> None:
        self.handlers[(event, namespace or "/")] = handler

    async def connect(
        self,
        url: str,
        headers: dict[str, str] | None = None,
        transports: list[str] | None = None,
        namespaces: list[str] | None = None,
        wait_timeout: float = 1,
    ) -> None:
        self.namespace = (namespaces or ["/"])[0]
        self.connect_calls.append(
            {
                "url": url,
                "headers": dict(headers or {}),
                "transports": list(transports or []),
                "namespaces": list(namespaces or []),
                "wait_timeout": wait_timeout,
            }
        )
        if self.outcome == OK:
            self.connected = True
            await self.trigger("connect")
            return
        if self.outcome == AUTH:
            await self.trigger("connect_error", {"message": "Authentication error"})
            raise socketio_exceptions.ConnectionError("One or more namespaces failed to connect")
        raise socketio_exceptions.ConnectionError("Connection refused by the server")

    async def disconnect(self) -> None:
        self.disconnect_calls += 1
        was_connected = self.connected
        self.connected = False
        if was_connected:
            await self.trigger("disconnect", "client disconnect")

    async def emit(self, event: str, data: Any = None, namespace: str | None = None) -> None:
        if not self.connected:
            raise socketio_exceptions.BadNamespaceError(f"{namespace} is not a connected namespace.")
        self.emitted.append((event, data, namespace))

    async def trigger(self, event: str, *args: Any) -> None:
        handler = self.handlers.get((event, self.namespace))
        if handler is not None:
            await handler(*args)

    async def drop(self, reason: str = "transport close") -> None:
        self.connected = False
        await self.trigger("disconnect", reason)


class FakeSocketFactory:
    """Hands out :class:`FakeSocket` instances following a list of outcomes."""

    def __init__(self, *outcomes: str, default: str = OK) -> None:
        self.outcomes = list(outcomes)
        self.default = default
        self.sockets: list[FakeSocket] = []

    def __call__(self) -> FakeSocket:
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        socket = FakeSocket(outcome)
        self.sockets.append(socket)
        return socket

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


class ManualSleep:
    """Replacement for ``asyncio.sleep`` that only returns when released."""

    def __init__(self) -> None:
        self.delays: list[float] = []
        self._waiters: list[asyncio.Future[None]] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        await waiter

    @property
    def pending(self) -> int:
        return sum(1 for waiter in self._waiters if not waiter.done())

    async def release(self) -> None:
        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        await settle()


async def settle(rounds: int = 25) -> None:
    """Let scheduled tasks run until the loop is quiet."""

    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_metrics() -> Iterator[None]:
    def _clear() -> None:
        for metric in registry_module.registry._metrics.values():
            metric._samples.clear()

    _clear()
    yield
    _clear()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in ("SESSION_TOKEN", "WS_BASE_URL", "API_BASE_URL", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        api_base_url="http://api.test",
        session_token="token-123",
        polling_interval_seconds=30,
    )


@pytest.fixture()
def manual_sleep() -> ManualSleep:
    return ManualSleep()


@pytest.fixture()
def socket_factory() -> FakeSocketFactory:
    return FakeSocketFactory()
