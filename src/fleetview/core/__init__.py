"""
Core module for FleetView.

Contains configuration and the error taxonomy used across all modules.
"""

from fleetview.core.config import AppConfig, get_config, reload_config
from fleetview.core.errors import (
    AmbiguousIdentifier,
    ConfigurationError,
    FleetViewError,
    GatewayError,
    NotFound,
    UpstreamUnavailable,
    ValidationError,
)

__all__ = [
    "AppConfig",
    "get_config",
    "reload_config",
    "FleetViewError",
    "GatewayError",
    "ConfigurationError",
    "NotFound",
    "UpstreamUnavailable",
    "ValidationError",
    "AmbiguousIdentifier",
]
