"""Metric definitions for the realtime client."""

from __future__ import annotations

from .registry import registry


realtime_connection_attempts_total = registry.counter(
    "realtime_connection_attempts_total",
    "Socket connection attempts per namespace and outcome.",
    label_names=("namespace", "outcome"),
)

realtime_reconnects_scheduled_total = registry.counter(
    "realtime_reconnects_scheduled_total",
    "Delayed reconnect attempts scheduled after a transport failure.",
    label_names=("namespace",),
)

realtime_connection_failures_total = registry.counter(
    "realtime_connection_failures_total",
    "Terminal connection failures reported to the owner.",
    label_names=("namespace", "reason"),
)

realtime_connection_state = registry.gauge(
    "realtime_connection_state",
    "1 for the current state of each namespace connection, 0 otherwise.",
    label_names=("namespace", "state"),
)

realtime_events_total = registry.counter(
    "realtime_events_total",
    "Inbound realtime events dispatched to subscribers.",
    label_names=("namespace", "event"),
)

realtime_invalid_payloads_total = registry.counter(
    "realtime_invalid_payloads_total",
    "Inbound realtime events dropped because the payload failed validation.",
    label_names=("namespace", "event"),
)

realtime_callback_errors_total = registry.counter(
    "realtime_callback_errors_total",
    "Subscriber callbacks that raised while handling an event.",
    label_names=("namespace", "event"),
)

polling_fetches_total = registry.counter(
    "polling_fetches_total",
    "Snapshot fetches performed by the polling fallback.",
    label_names=("source", "outcome"),
)
