"""Metric registry and realtime client metrics."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
