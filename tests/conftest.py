"""
Shared fixtures: a fake backend data API behind httpx.MockTransport.
"""

import asyncio
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest

from fleetview.api.dependencies import build_services
from fleetview.core.config import AppConfig, BackendConfig
from fleetview.events.client import EventClient
from fleetview.gateway.client import BackendGateway

BASE_URL = "http://backend.test"
NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)

LAB_SERIAL = "0F33V9G25083HJ"
LAB_ID = "79349310-287d-8166-52fc-0644e27378f7"
DESIGN_SERIAL = "C02XK1ZZJGH5"
DESIGN_ID = "0b8e6c1e-9f5a-4a56-b1d4-3f5bd0a7e2c4"


def make_devices() -> List[Dict[str, Any]]:
    return [
        {
            "serialNumber": LAB_SERIAL,
            "deviceId": LAB_ID,
            "name": "Unknown Device",
            "lastSeen": (NOW - timedelta(hours=2)).isoformat(),
            "modules": {"inventory": {"deviceName": "LAB-WS-014", "assetTag": "A004733"}},
        },
        {
            "serialNumber": DESIGN_SERIAL,
            "deviceId": DESIGN_ID,
            "deviceName": "Design-MBP",
            "assetTag": "A000101",
            "lastSeen": (NOW - timedelta(days=3)).isoformat(),
        },
    ]


def make_events() -> List[Dict[str, Any]]:
    return [
        {
            "id": "evt-1",
            "device": LAB_SERIAL,
            "kind": "info",
            "ts": (NOW - timedelta(hours=1)).isoformat(),
            "message": "Installs collected",
            "payload": {
                "module_id": "installs",
                "collection_type": "full",
                "data": {"pending": 2, "failed": 0},
            },
        },
        {
            "id": "evt-2",
            "device": LAB_SERIAL,
            "kind": "success",
            "ts": (NOW - timedelta(hours=5)).isoformat(),
            "message": "Inventory collected",
            "payload": {"modules": ["inventory", "installs"], "data": {"pending": 3}},
        },
        {
            "id": "evt-3",
            "device": LAB_SERIAL,
            "kind": "debug",
            "ts": (NOW - timedelta(hours=3)).isoformat(),
            "message": "Agent heartbeat",
            "payload": {},
        },
        {
            "id": "evt-4",
            "device": DESIGN_SERIAL,
            "kind": "error",
            "ts": (NOW - timedelta(hours=30)).isoformat(),
            "message": "Profile install failed",
            "payload": {"module": "profiles"},
        },
    ]


class FakeBackend:
    """
    In-memory backend data API.

    Records every request so tests can count backend calls per path.
    """

    def __init__(
        self,
        devices: Optional[List[Dict[str, Any]]] = None,
        modules: Optional[Dict[Tuple[str, str], Any]] = None,
        events: Optional[List[Dict[str, Any]]] = None,
    ):
        self.devices = make_devices() if devices is None else devices
        self.modules = {} if modules is None else modules
        self.events = make_events() if events is None else events
        self.failing_modules = set()
        self.devices_down = False
        self.events_down = False
        self.delay = 0.0
        self.requests: List[httpx.Request] = []
        self.paths = Counter()

    def count(self, path: str) -> int:
        return self.paths[path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        self.paths[path] += 1
        # State as of request arrival, like a backend read before a slow response
        devices = [dict(d) for d in self.devices]
        if self.delay:
            await asyncio.sleep(self.delay)

        if path == "/api/devices":
            if self.devices_down:
                return httpx.Response(503)
            serials = request.url.params.get("serials")
            if serials:
                wanted = set(serials.split(","))
                devices = [d for d in devices if d.get("serialNumber") in wanted]
            return httpx.Response(200, json={"devices": devices})

        if path == "/api/events":
            if self.events_down:
                return httpx.Response(503)
            device = request.url.params.get("device")
            events = [e for e in self.events if not device or e["device"] == device]
            return httpx.Response(200, json={"events": events})

        parts = path.strip("/").split("/")
        if len(parts) == 5 and parts[:2] == ["api", "device"] and parts[3] == "modules":
            serial, module = parts[2], parts[4]
            if module in self.failing_modules:
                return httpx.Response(503, json={"error": "module store down"})
            if (serial, module) in self.modules:
                return httpx.Response(200, json=self.modules[(serial, module)])
            return httpx.Response(404, json={"error": "not found"})

        return httpx.Response(404)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend(
        modules={
            (LAB_SERIAL, "hardware"): {
                "deviceId": LAB_ID,
                "collectedAt": (NOW - timedelta(hours=2)).isoformat(),
                "data": {"processor": "Intel Xeon", "memoryGb": 32},
            },
            (LAB_SERIAL, "installs"): {"data": {"pending": 0, "failed": 0}},
            (LAB_SERIAL, "network"): {"hostname": "lab-ws-014", "ipv4": "10.0.4.14"},
        }
    )


@pytest.fixture
def gateway(backend) -> BackendGateway:
    return BackendGateway(
        base_url=BASE_URL,
        internal_secret="s3cret",
        transport=backend.transport(),
    )


@pytest.fixture
def events(gateway) -> EventClient:
    return EventClient(gateway)


def make_config(**backend) -> AppConfig:
    backend.setdefault("base_url", BASE_URL)
    backend.setdefault("internal_secret", "s3cret")
    return AppConfig(backend=BackendConfig(**backend))


@pytest.fixture
def services(backend):
    return build_services(make_config(), transport=backend.transport())
