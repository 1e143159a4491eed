"""
Identifier classification middleware.

Requests under /devices/{identifier} whose identifier is a UUID or an asset
tag are flagged in the response so a routing layer can finish resolution
client-side.
"""

import logging
from typing import Optional
from urllib.parse import unquote

from fastapi import Request

from fleetview.core.errors import ValidationError
from fleetview.devices.models import IdentifierKind
from fleetview.devices.resolver import classify_identifier

logger = logging.getLogger(__name__)

RESOLUTION_NEEDED_HEADER = "X-Device-Resolution-Needed"
IDENTIFIER_TYPE_HEADER = "X-Device-Identifier-Type"


def identifier_from_path(path: str) -> Optional[str]:
    """Raw identifier of a /devices/{identifier}... path, if any."""
    segments = [s for s in path.split("/") if s]
    if len(segments) < 2 or segments[0] != "devices":
        return None
    if segments[1] == "resolve":
        return unquote(segments[2]) if len(segments) > 2 else None
    return unquote(segments[1])


async def identifier_classification(request: Request, call_next):
    response = await call_next(request)

    identifier = identifier_from_path(request.url.path)
    if identifier is None:
        return response
    try:
        kind = classify_identifier(identifier).kind
    except ValidationError:
        return response

    if kind in (IdentifierKind.UUID, IdentifierKind.ASSET_TAG):
        logger.debug(f"Flagging {identifier} as {kind.value} for client-side resolution")
        response.headers[RESOLUTION_NEEDED_HEADER] = "true"
        response.headers[IDENTIFIER_TYPE_HEADER] = kind.value
    return response
