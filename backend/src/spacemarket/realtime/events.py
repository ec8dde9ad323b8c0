"""Event kinds, connection states and payload models of the realtime namespaces."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ConnectionState(str, Enum):
    """Lifecycle of a namespace connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why a connection gave up and handed control back to its owner."""

    EXHAUSTED = "exhausted"
    AUTHENTICATION = "authentication"


class EventKind(str, Enum):
    """Closed set of inbound domain events."""

    # /dashboard
    KPI_UPDATE = "kpi:update"
    BUSINESS_CREATED = "business:created"
    BUSINESS_UPDATED = "business:updated"
    BUSINESS_DELETED = "business:deleted"
    METRICS_UPDATED = "metrics:updated"
    RECONNECTED = "reconnected"
    PROPERTY_CREATED = "property:created"
    PROPERTY_UPDATED = "property:updated"
    PROPERTY_DELETED = "property:deleted"
    PROPERTY_STATUS_CHANGED = "property:status-changed"
    BROKER_KPI_UPDATE = "broker:kpi-update"
    BROKER_DEAL_CREATED = "broker:deal-created"
    BROKER_DEAL_UPDATED = "broker:deal-updated"
    BROKER_BUSINESS_STATS_UPDATED = "broker:business-stats-updated"
    BROKER_TENANT_APPROVED = "broker:tenant-approved"

    # /messaging
    MESSAGE_NEW = "message:new"
    MESSAGE_DELETED = "message:deleted"
    MESSAGE_READ = "message:read"
    CONVERSATION_NEW = "conversation:new"
    CONVERSATION_UPDATED = "conversation:updated"
    CONVERSATION_JOINED = "conversation:joined"
    CONVERSATION_LEFT = "conversation:left"
    UNREAD_UPDATE = "unread:update"
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"


class OutboundSignal(str, Enum):
    """Fire-and-forget signals sent to the server."""

    JOIN_CONVERSATION = "conversation:join"
    LEAVE_CONVERSATION = "conversation:leave"
    TYPING_START = "typing:start"
    TYPING_STOP = "typing:stop"
    MESSAGE_READ = "message:read"
    REQUEST_CURRENT_STATE = "request:current-state"


DASHBOARD_EVENTS: tuple[EventKind, ...] = (
    EventKind.KPI_UPDATE,
    EventKind.BUSINESS_CREATED,
    EventKind.BUSINESS_UPDATED,
    EventKind.BUSINESS_DELETED,
    EventKind.METRICS_UPDATED,
    EventKind.RECONNECTED,
    EventKind.PROPERTY_CREATED,
    EventKind.PROPERTY_UPDATED,
    EventKind.PROPERTY_DELETED,
    EventKind.PROPERTY_STATUS_CHANGED,
    EventKind.BROKER_KPI_UPDATE,
    EventKind.BROKER_DEAL_CREATED,
    EventKind.BROKER_DEAL_UPDATED,
    EventKind.BROKER_BUSINESS_STATS_UPDATED,
    EventKind.BROKER_TENANT_APPROVED,
)

MESSAGING_EVENTS: tuple[EventKind, ...] = (
    EventKind.MESSAGE_NEW,
    EventKind.MESSAGE_DELETED,
    EventKind.MESSAGE_READ,
    EventKind.CONVERSATION_NEW,
    EventKind.CONVERSATION_UPDATED,
    EventKind.CONVERSATION_JOINED,
    EventKind.CONVERSATION_LEFT,
    EventKind.UNREAD_UPDATE,
    EventKind.TYPING_START,
    EventKind.TYPING_STOP,
)


class EventPayload(BaseModel):
    """Base for inbound payloads; camelCase keys from the server map to snake_case."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    timestamp: datetime | None = None


# ---------------------------------------------------------------------------
# Dashboard payloads
# ---------------------------------------------------------------------------


class KPIUpdate(EventPayload):
    kpis: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_kpis(cls, data: Any) -> Any:
        # Some emitters send the KPI mapping itself instead of {"kpis": ...}.
        if isinstance(data, dict) and "kpis" not in data:
            kpis = {key: value for key, value in data.items() if key != "timestamp"}
            return {"kpis": kpis, "timestamp": data.get("timestamp")}
        return data


class BusinessChanged(EventPayload):
    business: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_business(cls, data: Any) -> Any:
        if isinstance(data, dict) and "business" not in data:
            return {"business": data}
        return data


class BusinessDeleted(EventPayload):
    business_id: str = Field(alias="businessId")


class MetricsUpdated(EventPayload):
    business_id: str | None = Field(default=None, alias="businessId")


class Reconnected(EventPayload):
    pass


class PropertyCreated(EventPayload):
    property: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_property(cls, data: Any) -> Any:
        if isinstance(data, dict) and "property" not in data:
            return {"property": data}
        return data


class PropertyUpdated(EventPayload):
    property_id: str = Field(alias="propertyId")
    property: dict[str, Any] = Field(default_factory=dict)


class PropertyDeleted(EventPayload):
    property_id: str = Field(alias="propertyId")


class PropertyStatusChanged(EventPayload):
    property_id: str = Field(alias="propertyId")
    old_status: str | None = Field(default=None, alias="oldStatus")
    new_status: str = Field(alias="newStatus")


class BrokerKPIUpdate(KPIUpdate):
    """Broker KPIs (active deals, commission pipeline, response rate, properties matched)."""


class BrokerDealCreated(EventPayload):
    deal: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def wrap_bare_deal(cls, data: Any) -> Any:
        if isinstance(data, dict) and "deal" not in data:
            return {"deal": data}
        return data


class BrokerDealUpdated(EventPayload):
    deal_id: str = Field(alias="dealId")
    deal: dict[str, Any] = Field(default_factory=dict)


class BrokerBusinessStatsUpdated(EventPayload):
    business_profile_id: str = Field(alias="businessProfileId")
    stats: dict[str, Any] = Field(default_factory=dict)


class BrokerTenantApproved(EventPayload):
    request: dict[str, Any]


# ---------------------------------------------------------------------------
# Messaging payloads
# ---------------------------------------------------------------------------


class NewMessage(EventPayload):
    message: dict[str, Any]

    @property
    def conversation_id(self) -> str | None:
        value = self.message.get("conversationId") or self.message.get("conversation_id")
        return str(value) if value is not None else None


class MessageDeleted(EventPayload):
    message_id: str = Field(alias="messageId")
    conversation_id: str = Field(alias="conversationId")


class MessageRead(EventPayload):
    conversation_id: str = Field(alias="conversationId")
    user_id: str = Field(alias="userId")


class NewConversation(EventPayload):
    conversation: dict[str, Any]


class ConversationUpdated(EventPayload):
    conversation_id: str = Field(alias="conversationId")
    last_message: dict[str, Any] | None = Field(default=None, alias="lastMessage")


class ConversationMembershipChanged(EventPayload):
    conversation_id: str = Field(alias="conversationId")


class UnreadUpdate(EventPayload):
    unread_count: int = Field(alias="unreadCount", ge=0)


class Typing(EventPayload):
    conversation_id: str = Field(alias="conversationId")
    user_id: str = Field(alias="userId")


PAYLOAD_MODELS: dict[EventKind, type[EventPayload]] = {
    EventKind.KPI_UPDATE: KPIUpdate,
    EventKind.BUSINESS_CREATED: BusinessChanged,
    EventKind.BUSINESS_UPDATED: BusinessChanged,
    EventKind.BUSINESS_DELETED: BusinessDeleted,
    EventKind.METRICS_UPDATED: MetricsUpdated,
    EventKind.RECONNECTED: Reconnected,
    EventKind.PROPERTY_CREATED: PropertyCreated,
    EventKind.PROPERTY_UPDATED: PropertyUpdated,
    EventKind.PROPERTY_DELETED: PropertyDeleted,
    EventKind.PROPERTY_STATUS_CHANGED: PropertyStatusChanged,
    EventKind.BROKER_KPI_UPDATE: BrokerKPIUpdate,
    EventKind.BROKER_DEAL_CREATED: BrokerDealCreated,
    EventKind.BROKER_DEAL_UPDATED: BrokerDealUpdated,
    EventKind.BROKER_BUSINESS_STATS_UPDATED: BrokerBusinessStatsUpdated,
    EventKind.BROKER_TENANT_APPROVED: BrokerTenantApproved,
    EventKind.MESSAGE_NEW: NewMessage,
    EventKind.MESSAGE_DELETED: MessageDeleted,
    EventKind.MESSAGE_READ: MessageRead,
    EventKind.CONVERSATION_NEW: NewConversation,
    EventKind.CONVERSATION_UPDATED: ConversationUpdated,
    EventKind.CONVERSATION_JOINED: ConversationMembershipChanged,
    EventKind.CONVERSATION_LEFT: ConversationMembershipChanged,
    EventKind.UNREAD_UPDATE: UnreadUpdate,
    EventKind.TYPING_START: Typing,
    EventKind.TYPING_STOP: Typing,
}


def parse_payload(kind: EventKind, raw: Any) -> EventPayload:
    """Validate *raw* against the payload model registered for *kind*."""

    model = PAYLOAD_MODELS[kind]
    if raw is None:
        raw = {}
    return model.model_validate(raw)


# ---------------------------------------------------------------------------
# REST snapshots served to the polling fallback
# ---------------------------------------------------------------------------


class DashboardSnapshot(BaseModel):
    """Body of ``GET /api/dashboard/tenant``."""

    model_config = ConfigDict(extra="allow")

    kpis: dict[str, Any] = Field(default_factory=dict)
    businesses: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0


class PropertyKPISnapshot(BaseModel):
    """Body of ``GET /api/dashboard/landlord/kpis``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    total_listings: dict[str, Any] | None = Field(default=None, alias="totalListings")
    active_listings: dict[str, Any] | None = Field(default=None, alias="activeListings")
    avg_days_on_market: dict[str, Any] | None = Field(default=None, alias="avgDaysOnMarket")
    response_rate: dict[str, Any] | None = Field(default=None, alias="responseRate")

    @property
    def kpis(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BrokerKPISnapshot(BaseModel):
    """Body of ``GET /api/dashboard/broker/kpis``."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    active_deals: dict[str, Any] | None = Field(default=None, alias="activeDeals")
    commission_pipeline: dict[str, Any] | None = Field(default=None, alias="commissionPipeline")
    response_rate: dict[str, Any] | None = Field(default=None, alias="responseRate")
    properties_matched: dict[str, Any] | None = Field(default=None, alias="propertiesMatched")

    @property
    def kpis(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)
