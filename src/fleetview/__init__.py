"""
FleetView - device gateway for managed fleet telemetry

This package resolves ambiguous device identifiers (serial number, UUID, asset
tag) to a canonical device, aggregates per-domain module data from the backend
data API into a single device view, derives a time-based status, and keeps a
process-wide serial -> display name cache for bulk list views.

Main modules:
- core: configuration and error taxonomy
- gateway: outbound calls to the backend data API
- devices: identifier resolution, status calculation, module aggregation
- events: event stream client (also the fallback source for module data)
- names: device name cache
- api: FastAPI routers and HTTP server
- cli: fleetctl operational CLI
"""

__version__ = "0.3.0"
__author__ = "FleetView Team"

__all__ = ["__version__", "__author__"]
