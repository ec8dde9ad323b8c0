"""Timer-driven snapshot polling used when the realtime channel is unavailable."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Generic, Mapping, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from app.monitoring.metrics import polling_fetches_total

from .exceptions import AuthenticationError, SnapshotFetchError, is_authentication_failure
from .router import invoke_callback


logger = logging.getLogger(__name__)

T = TypeVar("T")

DataCallback = Callable[[Any], "Awaitable[None] | None"]
ErrorCallback = Callable[[BaseException], "Awaitable[None] | None"]
Sleep = Callable[[float], Awaitable[None]]

DEFAULT_POLLING_INTERVAL = 30.0


class SnapshotFetcher(Generic[T]):
    """GET a dashboard snapshot with the session cookie and unwrap the API envelope."""

    def __init__(
        self,
        base_url: str,
        path: str,
        *,
        model: type[BaseModel] | None = None,
        cookies: Mapping[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._path = path
        self._model = model
        self._cookies = dict(cookies or {})
        self._timeout = timeout
        self._transport = transport

    @property
    def path(self) -> str:
        return self._path

    async def __call__(self) -> T:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                cookies=self._cookies,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.get(self._path, headers={"Accept": "application/json"})
        except httpx.HTTPError as exc:
            raise SnapshotFetchError(f"Snapshot request to {self._path} failed: {exc}") from exc

        if response.status_code == 401:
            raise AuthenticationError("Session is no longer authenticated")
        if response.is_error:
            raise SnapshotFetchError(
                f"Snapshot request to {self._path} returned {response.status_code}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise SnapshotFetchError(
                f"Snapshot response from {self._path} is not JSON", status_code=response.status_code
            ) from exc

        if isinstance(body, dict) and "success" in body:
            if not body.get("success") or body.get("data") is None:
                message = body.get("error") or body.get("message") or "Failed to fetch snapshot"
                raise SnapshotFetchError(str(message), status_code=response.status_code)
            body = body["data"]

        if self._model is None:
            return body  # type: ignore[return-value]
        try:
            return self._model.model_validate(body)  # type: ignore[return-value]
        except ValidationError as exc:
            raise SnapshotFetchError(
                f"Snapshot response from {self._path} has an unexpected shape",
                status_code=response.status_code,
            ) from exc


class PollingFallback(Generic[T]):
    """Fetch a snapshot immediately and then once per interval until stopped.

    One background task drives the loop, so repeated ``start_polling`` calls
    never stack timers. An authentication failure stops polling for good;
    every other failure is retried on the next tick.
    """

    def __init__(
        self,
        fetch: Callable[[], Awaitable[T]],
        *,
        interval: float = DEFAULT_POLLING_INTERVAL,
        source: str = "dashboard",
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if interval <= 0:
            raise ValueError("Polling interval must be positive")
        self._fetch = fetch
        self._interval = float(interval)
        self._source = source
        self._sleep = sleep
        self._active = False
        self._generation = 0
        self._task: asyncio.Task[Any] | None = None
        self._on_data: DataCallback | None = None
        self._on_error: ErrorCallback | None = None

    @property
    def interval(self) -> float:
        return self._interval

    def is_active(self) -> bool:
        return self._active

    def start_polling(self, on_data: DataCallback, on_error: ErrorCallback | None = None) -> None:
        if self._active:
            logger.info("Polling already active", extra={"source": self._source})
            return

        logger.info(
            "Starting polling fallback (%ss interval)", self._interval, extra={"source": self._source}
        )
        self._active = True
        self._generation += 1
        self._on_data = on_data
        self._on_error = on_error
        self._task = asyncio.create_task(
            self._run(self._generation), name=f"polling-{self._source}"
        )

    def stop_polling(self) -> None:
        if not self._active:
            return

        logger.info("Stopping polling fallback", extra={"source": self._source})
        self._active = False
        self._generation += 1
        task = self._task
        self._task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
        self._on_data = None
        self._on_error = None

    def set_polling_interval(self, seconds: float) -> None:
        if seconds <= 0:
            raise ValueError("Polling interval must be positive")
        self._interval = float(seconds)
        if self._active and self._on_data is not None:
            on_data, on_error = self._on_data, self._on_error
            self.stop_polling()
            self.start_polling(on_data, on_error)

    async def _run(self, generation: int) -> None:
        while generation == self._generation:
            await self._poll(generation)
            if generation != self._generation:
                return
            await self._sleep(self._interval)

    async def _poll(self, generation: int) -> None:
        try:
            snapshot = await self._fetch()
        except Exception as exc:
            if generation != self._generation:
                return
            auth_failure = is_authentication_failure(exc)
            polling_fetches_total.labels(self._source, "unauthorized" if auth_failure else "error").inc()
            logger.warning(
                "Polling error", extra={"source": self._source, "error": str(exc) or type(exc).__name__}
            )
            on_error = self._on_error
            if on_error is not None:
                try:
                    await invoke_callback(on_error, exc)
                except Exception:
                    logger.exception("Polling error callback failed", extra={"source": self._source})
            if auth_failure and generation == self._generation:
                logger.info("Authentication failed, stopping polling", extra={"source": self._source})
                self.stop_polling()
            return

        if generation != self._generation:
            return
        polling_fetches_total.labels(self._source, "ok").inc()
        on_data = self._on_data
        if on_data is None:
            return
        try:
            await invoke_callback(on_data, snapshot)
        except Exception:
            logger.exception("Polling data callback failed", extra={"source": self._source})
