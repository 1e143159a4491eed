"""
Event stream client.

Reads event slices from the backend data API through the gateway. A 404
from the events endpoint means "no events", not an error.
"""

import logging
import re
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from fleetview.core.errors import ValidationError
from fleetview.gateway.client import BackendGateway, NotFoundPolicy

from .models import VALID_EVENT_KINDS, Event


logger = logging.getLogger(__name__)

RANGE_PATTERN = re.compile(r"^(\d+)\s*([mhd])$", re.IGNORECASE)
RANGE_UNITS = {"m": "minutes", "h": "hours", "d": "days"}

MAX_EVENT_LIMIT = 5000


def parse_range(value: Optional[str]) -> Optional[timedelta]:
    """
    Parse a time range like "30m", "24h" or "7d".

    Raises:
        ValidationError: If the range is malformed
    """
    if value is None or value == "":
        return None
    match = RANGE_PATTERN.match(value.strip())
    if not match:
        raise ValidationError(
            f"Invalid range: {value}",
            details="expected <number><m|h|d>, e.g. 24h",
        )
    amount, unit = int(match.group(1)), match.group(2).lower()
    return timedelta(**{RANGE_UNITS[unit]: amount})


class EventClient:
    """
    Client for the backend event stream.

    Usage:
        events = EventClient(gateway)
        recent = await events.list_events(device="0F33V9G25083HJ", range_="24h")
        installs = await events.events_for_module("0F33V9G25083HJ", "installs")
    """

    def __init__(self, gateway: BackendGateway):
        self.gateway = gateway

    async def list_events(
        self,
        device: Optional[str] = None,
        limit: int = 100,
        range_: Optional[str] = None,
        kinds: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[Event]:
        """
        Fetch a slice of the event stream, newest first.

        Args:
            device: Only events for this serial number
            limit: Maximum events to return (1-5000)
            range_: Only events within this window (e.g. "24h")
            kinds: Only these event kinds (e.g. VALID_EVENT_KINDS)
            now: Reference time for the range window

        Returns:
            List of events, newest first

        Raises:
            ValidationError: Bad limit or range
            GatewayError: Backend unavailable or not configured
        """
        if limit < 1 or limit > MAX_EVENT_LIMIT:
            raise ValidationError(
                f"Invalid limit: {limit}", details=f"must be between 1 and {MAX_EVENT_LIMIT}"
            )
        window = parse_range(range_)

        payload = await self.gateway.call(
            "/api/events",
            params={"device": device, "limit": limit, "range": range_},
            not_found=NotFoundPolicy.EMPTY,
        )
        events = [Event.from_backend(raw) for raw in _event_records(payload)]

        # The backend may ignore filters it does not support, so apply them here too
        if device:
            events = [e for e in events if e.device == device]
        if window is not None:
            cutoff = (now or datetime.now(timezone.utc)) - window
            events = [e for e in events if e.timestamp and e.timestamp >= cutoff]
        if kinds is not None:
            allowed = {k.lower() for k in kinds}
            events = [e for e in events if e.kind in allowed]

        events.sort(
            key=lambda e: e.timestamp or datetime.min.replace(tzinfo=timezone.utc),
            reverse=True,
        )
        logger.debug(f"Fetched {len(events)} event(s) (device={device}, range={range_})")
        return events[:limit]

    async def list_client_events(
        self,
        device: str,
        limit: int = 50,
        range_: Optional[str] = None,
    ) -> List[Event]:
        """Events for one device, restricted to the client-facing kinds."""
        return await self.list_events(
            device=device, limit=limit, range_=range_, kinds=VALID_EVENT_KINDS
        )

    async def events_for_module(
        self,
        device: str,
        module: str,
        limit: int = 500,
    ) -> List[Event]:
        """Events for a device whose payload is tagged with a module."""
        events = await self.list_events(device=device, limit=limit)
        tagged = [e for e in events if e.is_tagged(module)]
        logger.debug(f"{len(tagged)} of {len(events)} event(s) tagged '{module}' for {device}")
        return tagged


def _event_records(payload) -> list:
    if payload is None:
        return []
    if isinstance(payload, list):
        records = payload
    elif isinstance(payload, dict):
        records = payload.get("events") or []
    else:
        records = []
    return [r for r in records if isinstance(r, dict)]
