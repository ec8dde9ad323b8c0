from __future__ import annotations

import pytest
from pydantic import ValidationError

from spacemarket.realtime.events import (
    DASHBOARD_EVENTS,
    MESSAGING_EVENTS,
    PAYLOAD_MODELS,
    BrokerDealCreated,
    BrokerDealUpdated,
    BrokerKPISnapshot,
    BrokerKPIUpdate,
    BusinessChanged,
    EventKind,
    KPIUpdate,
    MessageRead,
    PropertyKPISnapshot,
    parse_payload,
)


def test_every_event_kind_has_a_payload_model() -> None:
    assert set(PAYLOAD_MODELS) == set(EventKind)
    assert set(DASHBOARD_EVENTS).isdisjoint(MESSAGING_EVENTS)
    assert len(DASHBOARD_EVENTS) + len(MESSAGING_EVENTS) == len(EventKind)


def test_kpi_update_accepts_wrapped_and_bare_mappings() -> None:
    wrapped = parse_payload(EventKind.KPI_UPDATE, {"kpis": {"leads": 4}, "timestamp": "2024-05-01T10:00:00Z"})
    bare = parse_payload(EventKind.KPI_UPDATE, {"leads": 4})

    assert isinstance(wrapped, KPIUpdate)
    assert wrapped.kpis == bare.kpis == {"leads": 4}
    assert wrapped.timestamp is not None
    assert bare.timestamp is None


def test_business_events_wrap_bare_business() -> None:
    payload = parse_payload(EventKind.BUSINESS_UPDATED, {"id": "b1", "name": "Loft"})

    assert isinstance(payload, BusinessChanged)
    assert payload.business == {"id": "b1", "name": "Loft"}


def test_camel_case_aliases_and_extra_fields() -> None:
    payload = parse_payload(
        EventKind.MESSAGE_READ,
        {"conversationId": "c1", "userId": "u1", "readAt": "2024-05-01T10:00:00Z"},
    )

    assert isinstance(payload, MessageRead)
    assert payload.conversation_id == "c1"
    assert payload.user_id == "u1"
    assert payload.model_extra == {"readAt": "2024-05-01T10:00:00Z"}


def test_missing_payload_is_validated_as_empty() -> None:
    assert parse_payload(EventKind.RECONNECTED, None).timestamp is None
    with pytest.raises(ValidationError):
        parse_payload(EventKind.TYPING_START, None)


def test_property_kpi_snapshot_exposes_kpis_by_alias() -> None:
    snapshot = PropertyKPISnapshot.model_validate({"activeListings": {"value": 2}})

    assert snapshot.kpis == {"activeListings": {"value": 2}}


def test_broker_events_parse_server_shapes() -> None:
    kpis = parse_payload(EventKind.BROKER_KPI_UPDATE, {"activeDeals": {"value": 5}})
    created = parse_payload(EventKind.BROKER_DEAL_CREATED, {"id": "d1", "status": "open"})
    updated = parse_payload(EventKind.BROKER_DEAL_UPDATED, {"dealId": "d1", "deal": {"status": "won"}})

    assert isinstance(kpis, BrokerKPIUpdate)
    assert kpis.kpis == {"activeDeals": {"value": 5}}
    assert isinstance(created, BrokerDealCreated)
    assert created.deal == {"id": "d1", "status": "open"}
    assert isinstance(updated, BrokerDealUpdated)
    assert updated.deal_id == "d1"
    assert updated.deal == {"status": "won"}
    with pytest.raises(ValidationError):
        parse_payload(EventKind.BROKER_DEAL_UPDATED, {"deal": {}})


def test_broker_kpi_snapshot_exposes_kpis_by_alias() -> None:
    snapshot = BrokerKPISnapshot.model_validate({"activeDeals": {"value": 1}, "propertiesMatched": {"value": 9}})

    assert snapshot.kpis == {"activeDeals": {"value": 1}, "propertiesMatched": {"value": 9}}
