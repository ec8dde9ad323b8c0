"""Realtime client for dashboard and messaging updates with a polling fallback."""

from .clients import (  # noqa: F401
    DashboardClient,
    MessagingClient,
    RealtimeClient,
    create_dashboard_client,
    create_messaging_client,
)
from .connection import ConnectionManager, ReconnectPolicy  # noqa: F401
from .events import (  # noqa: F401
    ConnectionState,
    EventKind,
    FailureReason,
    OutboundSignal,
)
from .exceptions import (  # noqa: F401
    AuthenticationError,
    RealtimeError,
    SnapshotFetchError,
)
from .feed import (  # noqa: F401
    DashboardFeed,
    FeedStatus,
    create_broker_dashboard_feed,
    create_landlord_dashboard_feed,
    create_tenant_dashboard_feed,
)
from .membership import ConversationMembership  # noqa: F401
from .polling import PollingFallback, SnapshotFetcher  # noqa: F401
from .router import EventRouter, Subscription  # noqa: F401

__all__ = [
    "create_dashboard_client",
    "create_messaging_client",
    "create_tenant_dashboard_feed",
    "create_landlord_dashboard_feed",
    "create_broker_dashboard_feed",
    "RealtimeClient",
    "DashboardClient",
    "MessagingClient",
    "DashboardFeed",
    "FeedStatus",
    "ConnectionManager",
    "ReconnectPolicy",
    "ConversationMembership",
    "EventRouter",
    "Subscription",
    "PollingFallback",
    "SnapshotFetcher",
    "ConnectionState",
    "EventKind",
    "FailureReason",
    "OutboundSignal",
    "RealtimeError",
    "AuthenticationError",
    "SnapshotFetchError",
]
