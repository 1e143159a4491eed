"""
Devices module for FleetView.

Resolves raw identifiers to canonical devices, derives device status from
last-seen time, and aggregates per-domain module data into device views.
"""

from .aggregator import ModuleAggregator, parse_modules
from .models import (
    DEFAULT_MODULES,
    CacheInvalidationRequest,
    CanonicalDevice,
    DeviceIdentifier,
    DeviceStatus,
    DeviceView,
    IdentifierKind,
    ModuleName,
    ModuleRecord,
    NameCacheEntry,
    Provenance,
)
from .resolver import IdentifierResolver, classify_identifier
from .status import StatusCalculator, compute_status

__all__ = [
    "DEFAULT_MODULES",
    "CacheInvalidationRequest",
    "CanonicalDevice",
    "DeviceIdentifier",
    "DeviceStatus",
    "DeviceView",
    "IdentifierKind",
    "ModuleName",
    "ModuleRecord",
    "NameCacheEntry",
    "Provenance",
    "IdentifierResolver",
    "classify_identifier",
    "StatusCalculator",
    "compute_status",
    "ModuleAggregator",
    "parse_modules",
]
