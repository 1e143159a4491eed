"""
Device data models.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IdentifierKind(str, Enum):
    """How a raw identifier string was classified."""

    SERIAL = "serial"
    UUID = "uuid"
    ASSET_TAG = "assetTag"


class DeviceStatus(str, Enum):
    """Derived device status, recomputed from last_seen on every read."""

    ACTIVE = "active"
    STALE = "stale"
    MISSING = "missing"
    UNKNOWN = "unknown"


class ModuleName(str, Enum):
    """Per-domain datasets attached to a device."""

    APPLICATIONS = "applications"
    EVENTS = "events"
    HARDWARE = "hardware"
    IDENTITY = "identity"
    INSTALLS = "installs"
    INVENTORY = "inventory"
    MANAGEMENT = "management"
    NETWORK = "network"
    PERIPHERALS = "peripherals"
    PROFILES = "profiles"
    SECURITY = "security"
    SYSTEM = "system"


# Served by GET /devices/{identifier} when no modules are requested
DEFAULT_MODULES: List[ModuleName] = [m for m in ModuleName if m != ModuleName.EVENTS]


class Provenance(str, Enum):
    """Where a module record came from."""

    PRIMARY = "primary"
    FALLBACK = "fallback"


class DeviceIdentifier(BaseModel):
    """A raw identifier and its classified kind. Never persisted."""

    raw: str
    kind: IdentifierKind


class ModuleRecord(BaseModel):
    """
    One domain dataset for one device.

    At most one record exists per (device_id, module_name).
    """

    device_id: str
    module_name: ModuleName
    data: Union[Dict[str, Any], List[Any]] = Field(
        default_factory=dict,
        description="Opaque structured payload",
    )
    collected_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    provenance: Provenance = Provenance.PRIMARY


class CanonicalDevice(BaseModel):
    """
    The single authoritative device record a raw identifier resolves to.

    serial_number is the stable unique key; id is the backend surrogate
    (deviceId) when the backend has one.
    """

    id: str = Field(..., description="Backend device ID, or the serial number")
    serial_number: str = Field(..., description="Stable unique device key")
    name: str = Field(..., description="Display name")
    asset_tag: Optional[str] = Field(None, description="Human-assigned asset tag")
    status: DeviceStatus = DeviceStatus.UNKNOWN
    last_seen: Optional[datetime] = None
    modules: Dict[str, Optional[ModuleRecord]] = Field(default_factory=dict)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "79349310-287d-8166-52fc-0644e27378f7",
                "serial_number": "0F33V9G25083HJ",
                "name": "LAB-WS-014",
                "asset_tag": "A004733",
                "status": "active",
                "last_seen": "2025-01-15T12:00:00Z",
                "modules": {},
            }
        }
    )


class DeviceView(BaseModel):
    """Aggregated device view returned to clients."""

    device: CanonicalDevice
    status: DeviceStatus
    modules: Dict[str, Optional[ModuleRecord]] = Field(default_factory=dict)
    sources: Dict[str, Provenance] = Field(
        default_factory=dict,
        description="Provenance of each populated module",
    )
    annotations: Dict[str, str] = Field(
        default_factory=dict,
        description="Why a module is null, or that it is degraded",
    )
    success: bool = True
    degraded: bool = False
    fetched_at: datetime = Field(default_factory=utcnow)

    def data_source(self) -> str:
        """Summary provenance for the X-Data-Source header."""
        kinds = set(self.sources.values())
        if Provenance.FALLBACK in kinds and Provenance.PRIMARY in kinds:
            return "mixed"
        if Provenance.FALLBACK in kinds:
            return Provenance.FALLBACK.value
        return Provenance.PRIMARY.value


class NameCacheEntry(BaseModel):
    """Advisory serial -> display name mapping."""

    serial: str
    name: str
    device_id: Optional[str] = None
    populated_at: datetime = Field(default_factory=utcnow)


class CacheInvalidationRequest(BaseModel):
    """
    Cache invalidation selector.

    Exactly one selector is meaningful: invalidate_all wins, then device_id,
    then serial_number.
    """

    device_id: Optional[str] = Field(
        None, validation_alias=AliasChoices("device_id", "deviceId")
    )
    serial_number: Optional[str] = Field(
        None, validation_alias=AliasChoices("serial_number", "serialNumber")
    )
    invalidate_all: bool = Field(
        False, validation_alias=AliasChoices("invalidate_all", "invalidateAll")
    )

    def selector(self) -> Optional[str]:
        """Name of the meaningful selector, or None when none is set."""
        if self.invalidate_all:
            return "invalidate_all"
        if self.device_id:
            return "device_id"
        if self.serial_number:
            return "serial_number"
        return None
