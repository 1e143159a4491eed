"""
Tests for the event stream client.
"""

import asyncio
from datetime import timedelta

import httpx
import pytest

from fleetview.core.errors import UpstreamUnavailable, ValidationError
from fleetview.events.client import EventClient, parse_range
from fleetview.events.models import Event
from fleetview.gateway.client import BackendGateway

from conftest import BASE_URL, DESIGN_SERIAL, LAB_SERIAL, NOW


class TestEventModel:
    """Normalization of backend event records."""

    def test_from_backend(self):
        event = Event.from_backend({
            "id": 7,
            "deviceId": LAB_SERIAL,
            "kind": "WARNING",
            "timestamp": "2025-01-15T10:00:00Z",
            "details": "disk almost full",
        })
        assert event.id == "7"
        assert event.device == LAB_SERIAL
        assert event.kind == "warning"
        assert event.timestamp.tzinfo is not None
        assert event.payload == {"details": "disk almost full"}

    def test_bad_timestamp(self):
        event = Event.from_backend({"id": "x", "device": "S1", "ts": "yesterday-ish"})
        assert event.timestamp is None

    def test_non_string_message(self):
        event = Event.from_backend({"id": 7, "device": "S1", "ts": "2025-01-15T10:00:00Z", "message": 404})
        assert event.message == "404"
        event = Event.from_backend({"id": 8, "device": "S1", "message": {"code": 1}})
        assert event.message == "{'code': 1}"

    def test_module_tags(self):
        event = Event.from_backend({
            "id": "x",
            "device": "S1",
            "payload": {"moduleId": "hardware", "modules": ["network"]},
        })
        assert event.is_tagged("hardware")
        assert event.is_tagged("network")
        assert not event.is_tagged("installs")


class TestParseRange:
    """Range strings."""

    def test_units(self):
        assert parse_range("30m") == timedelta(minutes=30)
        assert parse_range("24h") == timedelta(hours=24)
        assert parse_range("7D") == timedelta(days=7)
        assert parse_range(None) is None

    @pytest.mark.parametrize("value", ["24", "h", "1w", "-5h"])
    def test_malformed(self, value):
        with pytest.raises(ValidationError):
            parse_range(value)


class TestEventClient:
    """Event slices from the backend."""

    def test_newest_first(self, events):
        result = asyncio.run(events.list_events(device=LAB_SERIAL))
        assert [e.id for e in result] == ["evt-1", "evt-3", "evt-2"]

    def test_limit(self, events):
        result = asyncio.run(events.list_events(device=LAB_SERIAL, limit=2))
        assert len(result) == 2

    def test_invalid_limit(self, events):
        with pytest.raises(ValidationError):
            asyncio.run(events.list_events(limit=0))
        with pytest.raises(ValidationError):
            asyncio.run(events.list_events(limit=10_000))

    def test_range_filter(self, events):
        result = asyncio.run(events.list_events(range_="24h", now=NOW))
        assert DESIGN_SERIAL not in {e.device for e in result}
        assert len(result) == 3

    def test_client_events_drop_noise(self, events):
        result = asyncio.run(events.list_client_events(LAB_SERIAL))
        assert "debug" not in {e.kind for e in result}
        assert len(result) == 2

    def test_events_for_module(self, events):
        tagged = asyncio.run(events.events_for_module(LAB_SERIAL, "installs"))
        assert [e.id for e in tagged] == ["evt-1", "evt-2"]

    def test_missing_endpoint_is_empty(self):
        gateway = BackendGateway(
            base_url=BASE_URL,
            transport=httpx.MockTransport(lambda request: httpx.Response(404)),
        )
        assert asyncio.run(EventClient(gateway).list_events()) == []

    def test_backend_down(self, events, backend):
        backend.events_down = True
        with pytest.raises(UpstreamUnavailable):
            asyncio.run(events.list_events())
