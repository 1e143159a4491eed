"""
Gateway package for outbound calls to the backend data API.
"""

from .client import BackendGateway, NotFoundPolicy, create_gateway

__all__ = ["BackendGateway", "NotFoundPolicy", "create_gateway"]
