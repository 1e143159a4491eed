"""
HTTP API for the FleetView device gateway.
"""

from .dependencies import Services, build_services, get_services
from .http_server import create_app

__all__ = ["Services", "build_services", "get_services", "create_app"]
