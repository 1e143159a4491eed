"""
Device API endpoints.

Resolves raw identifiers (serial, UUID, asset tag) and serves aggregated
device views, single module domains and bulk device names.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from fleetview.core.errors import UpstreamUnavailable, ValidationError
from fleetview.devices.aggregator import parse_modules
from fleetview.devices.models import ModuleName
from fleetview.devices.resolver import classify_identifier

from .dependencies import Services, get_services
from .responses import fresh_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/devices", tags=["devices"])


@router.get("")
async def get_device_names(
    names: Optional[str] = Query(None, description="Comma-separated serial numbers"),
    complete: bool = Query(False, description="Wait for names missing from the cache"),
    services: Services = Depends(get_services),
):
    """
    Bulk serial -> display name lookup for list views.

    With complete=false only cached names are returned and misses are
    fetched in the background.
    """
    serials = [s.strip() for s in (names or "").split(",") if s.strip()]
    if not serials:
        raise ValidationError("Missing parameters", details="names must list at least one serial number")

    logger.info(f"Looking up {len(serials)} device name(s) (complete={complete})")
    if complete:
        found = await services.name_cache.lookup_complete(serials)
    else:
        found = await services.name_cache.lookup(serials)

    return fresh_json({"success": True, "deviceNames": found})


@router.get("/resolve/{identifier}")
async def resolve_device(
    identifier: str,
    services: Services = Depends(get_services),
):
    """
    Resolve an identifier to its canonical device.

    Returns the serial number and the path the caller should use.
    """
    kind = classify_identifier(identifier).kind
    device = await services.resolver.resolve(identifier)
    return fresh_json(
        {
            "success": True,
            "identifier": identifier,
            "identifierType": kind.value,
            "serialNumber": device.serial_number,
            "deviceId": device.id,
            "name": device.name,
            "assetTag": device.asset_tag,
            "status": device.status.value,
            "redirectTo": f"/devices/{device.serial_number}",
        }
    )


@router.get("/{identifier}")
async def get_device(
    identifier: str,
    modules: Optional[str] = Query(
        None, description="Comma-separated module domains (default: all but events)"
    ),
    services: Services = Depends(get_services),
):
    """
    Get the aggregated view of a device.

    Every requested domain is present in the response; a domain is null
    when it has no data or its sources failed (see annotations).
    """
    requested = parse_modules(modules)
    device = await services.resolver.resolve(identifier)
    view = await services.aggregator.aggregate(device, requested)
    return fresh_json(view.model_dump(mode="json"), data_source=view.data_source())


@router.get("/{identifier}/modules/{domain}")
async def get_device_module(
    identifier: str,
    domain: str,
    services: Services = Depends(get_services),
):
    """Get one module domain of a device."""
    try:
        module = ModuleName(domain)
    except ValueError:
        raise ValidationError(
            f"Unknown module: {domain}",
            details="valid modules: " + ", ".join(m.value for m in ModuleName),
        )

    device = await services.resolver.resolve(identifier)
    outcome = await services.aggregator.fetch_outcome(device, module)
    if outcome.unavailable:
        raise UpstreamUnavailable(
            f"Module '{module.value}' unavailable for {device.serial_number}",
            details=outcome.annotation,
        )

    # No provenance to report when no source served data
    record = outcome.record
    source = record.provenance.value if record else None

    return fresh_json(
        {
            "success": True,
            "module": module.value,
            "serialNumber": device.serial_number,
            "source": source,
            "annotation": outcome.annotation,
            "data": record.model_dump(mode="json") if record else None,
        },
        data_source=source,
    )
