"""
Event model for the device event stream.

Events are append-only and time ordered. They are served raw through
GET /events and are also the fallback source for module data when a
module's own endpoint is unavailable.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fleetview.core.timestamps import parse_timestamp

# Event categories shown to clients; anything else is backend noise
VALID_EVENT_KINDS = ("system", "info", "error", "warning", "success")

# Payload keys that tag an event with the module it carries data for
MODULE_TAG_KEYS = ("module_id", "moduleId", "module")


class Event(BaseModel):
    """A single device event."""

    id: str = Field(..., description="Event ID")
    device: str = Field(..., description="Serial number of the reporting device")
    kind: str = Field("info", description="Event category (system, info, error, ...)")
    timestamp: Optional[datetime] = Field(None, description="When the event occurred")
    message: Optional[str] = Field(None, description="User-facing message")
    payload: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_backend(cls, raw: Dict[str, Any]) -> "Event":
        """
        Normalize a backend event record.

        Accepts the spellings the backend has used over time
        (ts/timestamp, device/deviceId/device_id, payload/details).
        """
        payload = raw.get("payload")
        if payload is None:
            payload = raw.get("details")
        if not isinstance(payload, dict):
            payload = {} if payload is None else {"details": payload}

        message = raw.get("message")
        if message is not None and not isinstance(message, str):
            message = str(message)

        timestamp = parse_timestamp(
            raw.get("ts") or raw.get("timestamp") or raw.get("created_at")
        )
        return cls(
            id=str(raw.get("id", "")),
            device=str(
                raw.get("device") or raw.get("deviceId") or raw.get("device_id") or ""
            ),
            kind=str(raw.get("kind") or raw.get("event_type") or "info").lower(),
            timestamp=timestamp,
            message=message,
            payload=payload,
        )

    def module_tags(self) -> List[str]:
        """Modules this event carries data for."""
        tags = [str(self.payload[k]) for k in MODULE_TAG_KEYS if self.payload.get(k)]
        modules = self.payload.get("modules")
        if isinstance(modules, list):
            tags.extend(str(m) for m in modules)
        return tags

    def is_tagged(self, module: str) -> bool:
        return module in self.module_tags()

    def summary(self) -> str:
        """One-line summary suitable for logging or display."""
        parts = [f"[{self.kind.upper()}]", self.device]
        if self.timestamp:
            parts.append(self.timestamp.isoformat())
        if self.message:
            parts.append(self.message)
        return " ".join(parts)
