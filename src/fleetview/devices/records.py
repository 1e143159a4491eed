"""
Helpers for reading device records returned by the backend data API.

The backend has shipped a few shapes over time: a bare list, {"devices": [...]},
and records with the identity fields either at the top level or under
"metadata" / "modules.inventory".
"""

from typing import Any, Dict, List, Optional


def parse_device_list(payload: Any) -> List[Dict[str, Any]]:
    """Extract the list of device records from a /api/devices payload."""
    if payload is None:
        return []
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = payload.get("devices") or payload.get("items") or []
    else:
        records = []
    return [r for r in records if isinstance(r, dict)]


def _inventory(record: Dict[str, Any]) -> Dict[str, Any]:
    modules = record.get("modules") or {}
    inventory = modules.get("inventory") if isinstance(modules, dict) else None
    return inventory if isinstance(inventory, dict) else {}


def _metadata(record: Dict[str, Any]) -> Dict[str, Any]:
    metadata = record.get("metadata")
    return metadata if isinstance(metadata, dict) else {}


def serial_of(record: Dict[str, Any]) -> Optional[str]:
    serial = (
        record.get("serialNumber")
        or record.get("serial_number")
        or _metadata(record).get("serialNumber")
    )
    return str(serial) if serial else None


def device_id_of(record: Dict[str, Any]) -> Optional[str]:
    device_id = (
        record.get("deviceId")
        or record.get("device_id")
        or _metadata(record).get("deviceId")
        or record.get("id")
    )
    return str(device_id) if device_id else None


def uuid_candidates(record: Dict[str, Any]) -> List[str]:
    """Every field a UUID identifier may match."""
    values = [
        record.get("deviceId"),
        record.get("device_id"),
        record.get("id"),
        _metadata(record).get("deviceId"),
    ]
    return [str(v) for v in values if v]


def asset_tag_of(record: Dict[str, Any]) -> Optional[str]:
    inventory = _inventory(record)
    tag = (
        record.get("assetTag")
        or record.get("asset_tag")
        or inventory.get("assetTag")
        or inventory.get("asset_tag")
    )
    return str(tag) if tag else None


def last_seen_of(record: Dict[str, Any]) -> Optional[str]:
    return (
        record.get("lastSeen")
        or record.get("last_seen")
        or _metadata(record).get("collectedAt")
        or record.get("collectedAt")
    )


def display_name(record: Dict[str, Any]) -> Optional[str]:
    """
    Display name for a device record.

    Uses the first meaningful name (non-empty, not the serial itself, not an
    "unknown" placeholder) and falls back to the serial number.
    """
    serial = serial_of(record)
    inventory = _inventory(record)
    candidates = [
        inventory.get("deviceName"),
        inventory.get("device_name"),
        inventory.get("computerName"),
        inventory.get("computer_name"),
        record.get("deviceName"),
        record.get("name"),
    ]
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        name = candidate.strip()
        if name and name != serial and "unknown" not in name.lower():
            return name
    return serial

