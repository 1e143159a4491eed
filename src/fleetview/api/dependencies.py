"""
Service wiring for the HTTP API.

One Services bundle is built per process and stored on ``app.state``;
route handlers receive it through FastAPI dependency injection.
"""

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from fleetview.core.config import AppConfig, get_config
from fleetview.devices.aggregator import ModuleAggregator
from fleetview.devices.resolver import IdentifierResolver
from fleetview.devices.status import StatusCalculator
from fleetview.events.client import EventClient
from fleetview.gateway.client import BackendGateway
from fleetview.names.cache import DeviceNameCache


@dataclass
class Services:
    """Process-wide collaborators shared by every request."""

    config: AppConfig
    gateway: BackendGateway
    events: EventClient
    resolver: IdentifierResolver
    aggregator: ModuleAggregator
    name_cache: DeviceNameCache

    async def close(self) -> None:
        await self.name_cache.join()
        await self.gateway.close()


def build_services(
    config: Optional[AppConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Services:
    """
    Build the service bundle from configuration.

    Args:
        config: Application config (defaults to the global config)
        transport: Optional httpx transport for the backend gateway
    """
    config = config or get_config()
    gateway = BackendGateway.from_config(config.backend, transport=transport)
    events = EventClient(gateway)
    status_calculator = StatusCalculator.from_config(config.status)

    return Services(
        config=config,
        gateway=gateway,
        events=events,
        resolver=IdentifierResolver(gateway, status_calculator),
        aggregator=ModuleAggregator.create(
            gateway, events, config.aggregator, status_calculator
        ),
        name_cache=DeviceNameCache(gateway, ttl_seconds=config.name_cache.ttl_seconds),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
