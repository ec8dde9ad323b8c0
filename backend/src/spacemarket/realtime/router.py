"""Typed fan-out of inbound socket events to registered callbacks."""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from app.monitoring.metrics import (
    realtime_callback_errors_total,
    realtime_events_total,
    realtime_invalid_payloads_total,
)

from .events import EventKind, EventPayload, parse_payload


logger = logging.getLogger(__name__)

EventCallback = Callable[[Any], "Awaitable[None] | None"]


async def invoke_callback(callback: Callable[..., Any], *args: Any) -> None:
    """Call a sync or async callback and await it when needed."""

    result = callback(*args)
    if inspect.isawaitable(result):
        await result


class Subscription:
    """Handle returned by :meth:`EventRouter.subscribe`; call it to unsubscribe."""

    def __init__(self, router: "EventRouter", kind: EventKind, callback: EventCallback) -> None:
        self._router = router
        self._kind = kind
        self._callback = callback
        self._active = True

    @property
    def kind(self) -> EventKind:
        return self._kind

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        self._router._remove(self)

    __call__ = unsubscribe


class EventRouter:
    """Keeps subscriptions for a namespace independent of the socket that carries them.

    The router owns the callback table. Each new socket only receives one
    dispatcher per event kind via :meth:`attach`, so subscriptions survive
    any number of reconnects without the caller registering again.
    """

    def __init__(self, namespace: str, kinds: Iterable[EventKind]) -> None:
        self._namespace = namespace
        self._kinds = tuple(kinds)
        self._subscriptions: dict[EventKind, list[Subscription]] = defaultdict(list)

    @property
    def kinds(self) -> tuple[EventKind, ...]:
        return self._kinds

    def subscribe(self, kind: EventKind, callback: EventCallback) -> Subscription:
        kind = EventKind(kind)
        if kind not in self._kinds:
            raise ValueError(f"Event '{kind.value}' is not served on namespace '{self._namespace}'")
        subscription = Subscription(self, kind, callback)
        self._subscriptions[kind].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        bucket = self._subscriptions.get(subscription.kind)
        if not bucket:
            return
        # Identity match so equal callbacks registered twice stay independent.
        for index, candidate in enumerate(bucket):
            if candidate is subscription:
                del bucket[index]
                break
        if not bucket:
            self._subscriptions.pop(subscription.kind, None)

    def count(self, kind: EventKind | None = None) -> int:
        if kind is None:
            return sum(len(bucket) for bucket in self._subscriptions.values())
        return len(self._subscriptions.get(EventKind(kind), ()))

    def clear(self) -> None:
        for bucket in self._subscriptions.values():
            for subscription in bucket:
                subscription._active = False
        self._subscriptions.clear()

    def attach(self, socket: Any) -> None:
        """Register a dispatcher for every event kind on a freshly created socket."""

        for kind in self._kinds:
            socket.on(kind.value, self._make_dispatcher(kind), namespace=self._namespace)

    def _make_dispatcher(self, kind: EventKind) -> Callable[..., Awaitable[None]]:
        async def dispatcher(data: Any = None, *_extra: Any) -> None:
            await self.dispatch(kind, data)

        return dispatcher

    async def dispatch(self, kind: EventKind, raw: Any) -> None:
        try:
            payload = parse_payload(kind, raw)
        except ValidationError as exc:
            realtime_invalid_payloads_total.labels(self._namespace, kind.value).inc()
            logger.warning(
                "Dropped realtime event with invalid payload",
                extra={"namespace": self._namespace, "event": kind.value, "errors": exc.error_count()},
            )
            return

        realtime_events_total.labels(self._namespace, kind.value).inc()
        await self.deliver(kind, payload)

    async def deliver(self, kind: EventKind, payload: EventPayload | Any) -> None:
        """Invoke callbacks for *kind* in registration order, isolating failures."""

        for subscription in list(self._subscriptions.get(kind, ())):
            if not subscription.active:
                continue
            try:
                await invoke_callback(subscription._callback, payload)
            except Exception:
                realtime_callback_errors_total.labels(self._namespace, kind.value).inc()
                logger.exception(
                    "Realtime callback failed",
                    extra={"namespace": self._namespace, "event": kind.value},
                )
