"""
Module aggregation for a resolved device.

Fans out one fetch per requested domain, waits for every fetch to settle,
and merges the outcomes into a DeviceView. A failing domain never cancels
or invalidates its siblings: it is reported as null with an annotation.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fleetview.core.config import AggregatorConfig
from fleetview.core.errors import ConfigurationError, UpstreamUnavailable, ValidationError
from fleetview.events.client import EventClient
from fleetview.gateway.client import BackendGateway

from .models import (
    DEFAULT_MODULES,
    CanonicalDevice,
    DeviceView,
    ModuleName,
    ModuleRecord,
    Provenance,
)
from .sources import EventLogModuleSource, ModuleSource, PrimaryModuleSource
from .status import StatusCalculator

logger = logging.getLogger(__name__)


@dataclass
class ModuleOutcome:
    """Settled result of fetching one domain."""

    module: ModuleName
    record: Optional[ModuleRecord] = None
    annotation: Optional[str] = None
    failed: bool = False  # primary source unavailable
    unavailable: bool = False  # no source reachable


def parse_modules(value: Optional[Iterable[str]]) -> List[ModuleName]:
    """
    Parse requested module names, keeping order and dropping duplicates.

    Raises:
        ValidationError: For unknown module names
    """
    if value is None:
        return list(DEFAULT_MODULES)
    if isinstance(value, str):
        value = value.split(",")

    modules: List[ModuleName] = []
    for raw in value:
        name = raw.strip()
        if not name:
            continue
        try:
            module = ModuleName(name)
        except ValueError:
            raise ValidationError(
                f"Unknown module: {name}",
                details="valid modules: " + ", ".join(m.value for m in ModuleName),
            )
        if module not in modules:
            modules.append(module)
    return modules or list(DEFAULT_MODULES)


class ModuleAggregator:
    """
    Builds device views from per-domain module data.

    Usage:
        aggregator = ModuleAggregator.create(gateway, events)
        view = await aggregator.aggregate(device, [ModuleName.HARDWARE, ModuleName.NETWORK])
    """

    def __init__(
        self,
        primary: ModuleSource,
        fallback: Optional[ModuleSource] = None,
        status_calculator: Optional[StatusCalculator] = None,
    ):
        """
        Initialize the aggregator.

        Args:
            primary: Source consulted first for every domain
            fallback: Source consulted only when the primary is unavailable
            status_calculator: Status calculator (defaults to 24h / 168h)
        """
        self.primary = primary
        self.fallback = fallback
        self.status_calculator = status_calculator or StatusCalculator()

    @classmethod
    def create(
        cls,
        gateway: BackendGateway,
        events: EventClient,
        config: Optional[AggregatorConfig] = None,
        status_calculator: Optional[StatusCalculator] = None,
    ) -> "ModuleAggregator":
        """Wire the standard primary/fallback source chain."""
        config = config or AggregatorConfig()
        fallback = None
        if config.fallback_enabled:
            fallback = EventLogModuleSource(events, event_limit=config.fallback_event_limit)
        return cls(
            primary=PrimaryModuleSource(gateway, events),
            fallback=fallback,
            status_calculator=status_calculator,
        )

    async def aggregate(
        self,
        device: CanonicalDevice,
        modules: Optional[Iterable[ModuleName]] = None,
        now: Optional[datetime] = None,
    ) -> DeviceView:
        """
        Fetch the requested domains concurrently and merge them into a view.

        Args:
            device: The resolved device
            modules: Domains to fetch (defaults to every module except events)
            now: Reference time for the status calculation

        Returns:
            Device view; every requested domain is present, null when
            empty or failed

        Raises:
            ConfigurationError: The backend is not configured
        """
        requested = parse_modules(modules)
        logger.info(
            f"Aggregating {len(requested)} module(s) for {device.serial_number}: "
            f"{', '.join(m.value for m in requested)}"
        )

        # Wait for every domain to settle; never abort siblings on a failure
        results = await asyncio.gather(
            *(self.fetch_outcome(device, module) for module in requested),
            return_exceptions=True,
        )

        module_map: Dict[str, Optional[ModuleRecord]] = {}
        sources: Dict[str, Provenance] = {}
        annotations: Dict[str, str] = {}
        degraded = False

        for module, result in zip(requested, results):
            if isinstance(result, (ConfigurationError, asyncio.CancelledError)):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    f"Module '{module.value}' failed for {device.serial_number}: {result}"
                )
                module_map[module.value] = None
                annotations[module.value] = f"error: {result}"
                degraded = True
                continue

            module_map[module.value] = result.record
            if result.record is not None:
                sources[module.value] = result.record.provenance
            if result.annotation:
                annotations[module.value] = result.annotation
            if result.failed:
                degraded = True

        status = self.status_calculator.compute_status(device.last_seen, now)
        view_device = device.model_copy(update={"status": status, "modules": module_map})

        view = DeviceView(
            device=view_device,
            status=status,
            modules=module_map,
            sources=sources,
            annotations=annotations,
            # The status alone is a usable result for a resolved device
            success=True,
            degraded=degraded,
        )
        populated = sum(1 for r in module_map.values() if r is not None)
        logger.info(
            f"Aggregated {device.serial_number}: {populated}/{len(requested)} module(s) populated, "
            f"status={status.value}, source={view.data_source()}"
        )
        return view

    async def fetch_module(
        self, device: CanonicalDevice, module: ModuleName
    ) -> Optional[ModuleRecord]:
        """
        Fetch a single domain through the primary/fallback chain.

        Returns:
            The module record, or None when the domain has no data

        Raises:
            UpstreamUnavailable: Neither the primary nor the fallback source
                could be reached
        """
        outcome = await self.fetch_outcome(device, module)
        if outcome.unavailable:
            raise UpstreamUnavailable(
                f"Module '{module.value}' unavailable for {device.serial_number}",
                details=outcome.annotation,
            )
        return outcome.record

    async def fetch_outcome(self, device: CanonicalDevice, module: ModuleName) -> ModuleOutcome:
        """Fetch one domain and report how it settled. Never raises UpstreamUnavailable."""
        try:
            record = await self.primary.fetch(device, module)
        except UpstreamUnavailable as e:
            logger.warning(
                f"Primary source for '{module.value}' unavailable on {device.serial_number}: {e.message}"
            )
            return await self._fetch_fallback(device, module, e)

        if record is None:
            return ModuleOutcome(module=module, annotation="no data")
        return ModuleOutcome(module=module, record=record)

    async def _fetch_fallback(
        self,
        device: CanonicalDevice,
        module: ModuleName,
        primary_error: UpstreamUnavailable,
    ) -> ModuleOutcome:
        # The events module already is the event stream
        if self.fallback is None or module == ModuleName.EVENTS:
            return ModuleOutcome(
                module=module,
                annotation=f"unavailable: {primary_error.message}",
                failed=True,
                unavailable=True,
            )

        try:
            record = await self.fallback.fetch(device, module)
        except UpstreamUnavailable as e:
            logger.warning(
                f"Fallback source for '{module.value}' also unavailable on {device.serial_number}: {e.message}"
            )
            return ModuleOutcome(
                module=module,
                annotation="unavailable: primary and fallback sources unreachable",
                failed=True,
                unavailable=True,
            )

        if record is None:
            return ModuleOutcome(
                module=module,
                annotation="unavailable: primary source down, no fallback data in event log",
                failed=True,
            )

        logger.warning(
            f"Serving '{module.value}' for {device.serial_number} from the event log (degraded source)"
        )
        return ModuleOutcome(
            module=module,
            record=record,
            annotation="degraded: derived from event log",
            failed=True,
        )
