"""
Module data sources.

Each domain's data can come from two ranked sources behind one interface:
the module's own backend endpoint (primary) and a projection of the device's
event stream (fallback). Records carry the provenance of the source that
produced them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from fleetview.core.timestamps import parse_timestamp
from fleetview.events.client import EventClient
from fleetview.events.models import MODULE_TAG_KEYS, Event
from fleetview.gateway.client import BackendGateway, NotFoundPolicy

from .models import CanonicalDevice, ModuleName, ModuleRecord, Provenance

logger = logging.getLogger(__name__)


class ModuleSource(ABC):
    """A source of per-domain module records."""

    provenance: Provenance

    @abstractmethod
    async def fetch(
        self, device: CanonicalDevice, module: ModuleName
    ) -> Optional[ModuleRecord]:
        """
        Fetch one module for one device.

        Returns:
            The module record, or None when the source has no data for it

        Raises:
            UpstreamUnavailable: The source could not be reached
        """


class PrimaryModuleSource(ModuleSource):
    """Dedicated per-module endpoints of the backend data API."""

    provenance = Provenance.PRIMARY

    def __init__(self, gateway: BackendGateway, events: EventClient):
        self.gateway = gateway
        self.events = events

    async def fetch(
        self, device: CanonicalDevice, module: ModuleName
    ) -> Optional[ModuleRecord]:
        # Events are stored separately from module data
        if module == ModuleName.EVENTS:
            return await self._fetch_events(device)

        serial = quote(device.serial_number, safe="")
        payload = await self.gateway.call(
            f"/api/device/{serial}/modules/{module.value}",
            not_found=NotFoundPolicy.EMPTY,
        )
        return record_from_payload(device, module, payload)

    async def _fetch_events(self, device: CanonicalDevice) -> Optional[ModuleRecord]:
        events = await self.events.list_client_events(device.serial_number)
        if not events:
            return None
        newest = events[0].timestamp
        return ModuleRecord(
            device_id=device.id,
            module_name=ModuleName.EVENTS,
            data=[e.model_dump(mode="json") for e in events],
            collected_at=newest,
            updated_at=newest,
            provenance=self.provenance,
        )


class EventLogModuleSource(ModuleSource):
    """
    Lower-fidelity module data projected from the event stream.

    Only consulted when the primary source is unavailable.
    """

    provenance = Provenance.FALLBACK

    def __init__(self, events: EventClient, event_limit: int = 500):
        self.events = events
        self.event_limit = event_limit

    async def fetch(
        self, device: CanonicalDevice, module: ModuleName
    ) -> Optional[ModuleRecord]:
        tagged = await self.events.events_for_module(
            device.serial_number, module.value, limit=self.event_limit
        )
        if not tagged:
            return None

        newest = tagged[0].timestamp
        return ModuleRecord(
            device_id=device.id,
            module_name=module,
            data=project_events(tagged),
            collected_at=newest,
            updated_at=newest,
            provenance=self.provenance,
        )


def record_from_payload(
    device: CanonicalDevice,
    module: ModuleName,
    payload: Any,
) -> Optional[ModuleRecord]:
    """
    Build a ModuleRecord from a module endpoint response.

    The endpoint answers either with an envelope ({"data": ..., "collectedAt": ...})
    or with the module payload itself. Empty payloads mean "no data".
    """
    if payload is None:
        return None

    envelope: Dict[str, Any] = {}
    data = payload
    if isinstance(payload, dict) and "data" in payload:
        envelope = payload
        data = payload.get("data")
    elif isinstance(payload, dict):
        envelope = payload

    if data is None or data == {} or data == []:
        return None
    if not isinstance(data, (dict, list)):
        data = {"value": data}

    return ModuleRecord(
        device_id=str(envelope.get("deviceId") or device.id),
        module_name=module,
        data=data,
        collected_at=parse_timestamp(
            envelope.get("collectedAt") or envelope.get("collected_at")
        ),
        updated_at=parse_timestamp(
            envelope.get("updatedAt") or envelope.get("updated_at")
        ),
        provenance=Provenance.PRIMARY,
    )


def project_events(events: List[Event]) -> Dict[str, Any]:
    """Project module-tagged events (newest first) into a module-shaped dataset."""
    entries = [_project_entry(event) for event in events]
    latest = events[0].timestamp if events else None
    return {
        "entries": entries,
        "eventCount": len(entries),
        "latestEventAt": latest.isoformat() if latest else None,
    }


def _project_entry(event: Event) -> Dict[str, Any]:
    payload = event.payload
    data = payload.get("data")
    if not isinstance(data, (dict, list)):
        skip = set(MODULE_TAG_KEYS) | {
            "modules", "timestamp", "collected_at", "collectedAt",
            "collection_type", "collectionType", "data_size_kb", "dataSizeKb",
        }
        data = {k: v for k, v in payload.items() if k not in skip}

    return {
        "eventId": event.id,
        "kind": event.kind,
        "timestamp": event.timestamp.isoformat() if event.timestamp else None,
        "message": event.message,
        "collectedAt": payload.get("timestamp") or payload.get("collectedAt") or payload.get("collected_at"),
        "collectionType": payload.get("collection_type") or payload.get("collectionType"),
        "dataSizeKb": payload.get("data_size_kb") or payload.get("dataSizeKb"),
        "data": data,
    }
