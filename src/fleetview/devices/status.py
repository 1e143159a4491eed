"""
Device status calculation logic.
"""

from datetime import datetime, timezone
from typing import Optional

from fleetview.core.timestamps import as_utc

from .models import DeviceStatus


class StatusCalculator:
    """
    Maps a last-seen timestamp to a device status.

    - no timestamp: unknown
    - seen within the active window (24h): active
    - seen within the stale window (168h): stale
    - older: missing

    Pure and deterministic; status is recomputed on every read so it never
    drifts from the underlying timestamp.
    """

    def __init__(
        self,
        active_threshold_hours: float = 24.0,
        stale_threshold_hours: float = 168.0,
    ):
        if active_threshold_hours >= stale_threshold_hours:
            raise ValueError("active threshold must be shorter than stale threshold")
        self.active_threshold_hours = active_threshold_hours
        self.stale_threshold_hours = stale_threshold_hours

    @classmethod
    def from_config(cls, config) -> "StatusCalculator":
        return cls(
            active_threshold_hours=config.active_threshold_hours,
            stale_threshold_hours=config.stale_threshold_hours,
        )

    def compute_status(
        self,
        last_seen: Optional[datetime],
        now: Optional[datetime] = None,
    ) -> DeviceStatus:
        """
        Compute the status for a last-seen timestamp.

        Args:
            last_seen: When the device last reported (naive values are UTC)
            now: Reference time (defaults to the current UTC time)

        Returns:
            Device status
        """
        if last_seen is None:
            return DeviceStatus.UNKNOWN

        now = as_utc(now) if now is not None else datetime.now(timezone.utc)
        elapsed_hours = (now - as_utc(last_seen)).total_seconds() / 3600

        if elapsed_hours <= self.active_threshold_hours:
            return DeviceStatus.ACTIVE
        if elapsed_hours <= self.stale_threshold_hours:
            return DeviceStatus.STALE
        return DeviceStatus.MISSING


_default_calculator = StatusCalculator()


def compute_status(
    last_seen: Optional[datetime],
    now: Optional[datetime] = None,
) -> DeviceStatus:
    """Compute status with the default 24h / 168h thresholds."""
    return _default_calculator.compute_status(last_seen, now)
