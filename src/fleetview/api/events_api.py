"""
Event stream API endpoints.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from .dependencies import Services, get_services
from .responses import fresh_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.get("")
async def list_events(
    device: Optional[str] = Query(None, description="Serial number filter"),
    limit: int = Query(100, description="Maximum events to return (1-5000)"),
    range_: Optional[str] = Query(None, alias="range", description="Time window, e.g. 30m, 24h, 7d"),
    services: Services = Depends(get_services),
):
    """
    Get recent events, newest first.

    Args:
        device: Only events for this serial number
        limit: Maximum events to return
        range_: Only events within this window

    Returns:
        Events and their count
    """
    logger.info(f"Listing events (device={device}, limit={limit}, range={range_})")
    events = await services.events.list_events(device=device, limit=limit, range_=range_)
    return fresh_json(
        {
            "success": True,
            "events": [e.model_dump(mode="json") for e in events],
            "count": len(events),
        }
    )
