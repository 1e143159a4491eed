"""
Cache management endpoints.

Write-side collaborators that change a device's display name call
POST /cache/invalidate so bulk list views never serve the old name.
"""

import json
import logging

import pydantic
from fastapi import APIRouter, Depends, Request

from fleetview.core.errors import ValidationError
from fleetview.devices.models import CacheInvalidationRequest, utcnow

from .dependencies import Services, get_services
from .responses import fresh_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cache", tags=["cache"])

# Cache domains held by this process
NAME_CACHE_DOMAIN = "device-names"


@router.post("/invalidate")
async def invalidate_cache(
    request: Request,
    services: Services = Depends(get_services),
):
    """
    Invalidate cached device names.

    Body: {deviceId?, serialNumber?, invalidateAll?}. invalidateAll wins,
    then deviceId, then serialNumber.
    """
    try:
        body = await request.json()
        selector = CacheInvalidationRequest.model_validate(body)
    except json.JSONDecodeError:
        raise ValidationError("Invalid request body", details="body must be a JSON object")
    except pydantic.ValidationError as e:
        raise ValidationError("Invalid request body", details=str(e))

    removed = services.name_cache.invalidate(selector)

    content = {
        "success": True,
        "invalidated": [NAME_CACHE_DOMAIN],
        "entries": removed,
        "timestamp": utcnow().isoformat(),
    }
    if selector.invalidate_all:
        content["message"] = "All caches invalidated"
    else:
        device = selector.device_id or selector.serial_number
        content["message"] = f"Cache invalidated for device: {device}"
        content["device"] = device
    return fresh_json(content)


@router.get("/status")
async def cache_status(services: Services = Depends(get_services)):
    """Name cache statistics."""
    return fresh_json({"success": True, NAME_CACHE_DOMAIN: services.name_cache.stats()})
