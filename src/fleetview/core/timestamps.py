"""
Timestamp parsing and normalization shared by device and event records.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

_timestamp_adapter = TypeAdapter(datetime)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch value to an aware UTC datetime.

    Returns None when the value is absent or unparseable.
    """
    if value is None or value == "":
        return None
    try:
        return as_utc(_timestamp_adapter.validate_python(value))
    except PydanticValidationError:
        logger.warning(f"Ignoring unparseable timestamp: {value!r}")
        return None
