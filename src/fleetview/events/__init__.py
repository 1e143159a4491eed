"""
Events package for the device event stream.
"""

from .models import Event, VALID_EVENT_KINDS
from .client import EventClient, parse_range

__all__ = [
    "Event",
    "VALID_EVENT_KINDS",
    "EventClient",
    "parse_range",
]
