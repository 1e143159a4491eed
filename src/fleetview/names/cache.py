"""
Process-wide serial -> display name cache for bulk list views.

Entries are advisory. Population is single-flight: concurrent lookups for
overlapping serial sets share one backend call per serial. Write-side
collaborators that change a device's display name must invalidate it here.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Set

from fleetview.core.errors import ValidationError
from fleetview.devices import records
from fleetview.devices.models import CacheInvalidationRequest, NameCacheEntry
from fleetview.gateway.client import BackendGateway, NotFoundPolicy

logger = logging.getLogger(__name__)


def _normalize(serials: Iterable[str]) -> List[str]:
    seen: List[str] = []
    for serial in serials:
        serial = (serial or "").strip()
        if serial and serial not in seen:
            seen.append(serial)
    return seen


class DeviceNameCache:
    """
    Serial -> name cache with single-flight population and invalidation.

    Construct one per process and pass it to whatever needs it.

    Usage:
        cache = DeviceNameCache(gateway)
        names = await cache.lookup(["S1", "S2"])           # cached subset now
        names = await cache.lookup_complete(["S1", "S2"])  # waits for misses
        cache.invalidate(CacheInvalidationRequest(serial_number="S1"))
    """

    def __init__(self, gateway: BackendGateway, ttl_seconds: float = 0.0):
        """
        Initialize an empty cache.

        Args:
            gateway: Backend gateway used to populate misses
            ttl_seconds: Entry freshness window; 0 keeps entries until invalidated
        """
        self.gateway = gateway
        self.ttl_seconds = ttl_seconds
        self.backend_calls = 0

        self._entries: Dict[str, NameCacheEntry] = {}
        self._inflight: Dict[str, asyncio.Future] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._generation = 0

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, serial: str, now: Optional[datetime] = None) -> Optional[str]:
        """Cached name for a serial, if present and fresh."""
        entry = self._entries.get(serial)
        if entry is None or not self._is_fresh(entry, now):
            return None
        return entry.name

    def cached(self, serials: Iterable[str]) -> Dict[str, str]:
        """Fresh cached names for the requested serials. No I/O."""
        now = datetime.now(timezone.utc)
        found = {}
        for serial in _normalize(serials):
            name = self.get(serial, now)
            if name is not None:
                found[serial] = name
        return found

    async def lookup(self, serials: Iterable[str]) -> Dict[str, str]:
        """
        Return cached names for the requested serials without blocking.

        Misses are populated in the background and show up in later calls.
        """
        wanted = _normalize(serials)
        found = self.cached(wanted)
        misses = [s for s in wanted if s not in found]
        if misses:
            logger.debug(f"Scheduling background population of {len(misses)} name(s)")
            self._start(misses)
        return found

    async def lookup_complete(self, serials: Iterable[str]) -> Dict[str, str]:
        """
        Return names for the requested serials, waiting for any misses.

        Serials the backend does not know are left out of the result.

        Raises:
            GatewayError: Population of the misses failed
        """
        wanted = _normalize(serials)
        found = self.cached(wanted)
        misses = [s for s in wanted if s not in found]
        if misses:
            found.update(await self._await(self._start(misses)))
        return found

    async def populate(self, serials: Iterable[str]) -> Dict[str, str]:
        """
        Fetch names for the given serials, refreshing cached entries.

        Serials already being fetched are awaited rather than fetched again.
        """
        wanted = _normalize(serials)
        if not wanted:
            return {}
        return await self._await(self._start(wanted))

    def invalidate(self, request: CacheInvalidationRequest) -> List[str]:
        """
        Drop entries selected by an invalidation request.

        Returns:
            Serials whose entries were removed

        Raises:
            ValidationError: No selector set
        """
        selector = request.selector()
        if selector is None:
            raise ValidationError(
                "Missing parameters",
                details="Please provide deviceId, serialNumber, or set invalidateAll=true",
            )

        # Populations started before this point must not write back
        self._generation += 1

        if selector == "invalidate_all":
            removed = list(self._entries)
            self._entries.clear()
            detached = list(self._inflight)
        elif selector == "device_id":
            removed = [
                serial
                for serial, entry in self._entries.items()
                if entry.device_id == request.device_id or serial == request.device_id
            ]
            for serial in removed:
                del self._entries[serial]
            detached = removed + [request.device_id]
        else:
            removed = [request.serial_number] if request.serial_number in self._entries else []
            self._entries.pop(request.serial_number, None)
            detached = [request.serial_number]

        # Later lookups must start a fresh fetch instead of joining a stale one
        for serial in detached:
            self._inflight.pop(serial, None)

        logger.info(f"Invalidated {len(removed)} device name(s) ({selector})")
        return removed

    def invalidate_all(self) -> List[str]:
        return self.invalidate(CacheInvalidationRequest(invalidate_all=True))

    async def join(self) -> None:
        """Wait for background populations started so far to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def stats(self) -> Dict[str, object]:
        return {
            "entries": len(self._entries),
            "in_flight": len(self._inflight),
            "generation": self._generation,
            "ttl_seconds": self.ttl_seconds,
            "backend_calls": self.backend_calls,
        }

    def _is_fresh(self, entry: NameCacheEntry, now: Optional[datetime] = None) -> bool:
        if not self.ttl_seconds:
            return True
        now = now or datetime.now(timezone.utc)
        return now - entry.populated_at < timedelta(seconds=self.ttl_seconds)

    def _start(self, serials: List[str]) -> Dict[str, asyncio.Future]:
        """
        Register in-flight futures for the serials and start one backend
        fetch for those nobody is fetching yet.

        Check-and-register has no await in it, so it is atomic on the loop.
        """
        loop = asyncio.get_running_loop()
        futures: Dict[str, asyncio.Future] = {}
        fresh: Dict[str, asyncio.Future] = {}

        for serial in serials:
            future = self._inflight.get(serial)
            if future is None:
                future = loop.create_future()
                self._inflight[serial] = future
                fresh[serial] = future
            futures[serial] = future

        if fresh:
            task = loop.create_task(self._populate_batch(fresh))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        return futures

    async def _await(self, futures: Dict[str, asyncio.Future]) -> Dict[str, str]:
        # Shielded so a cancelled caller never cancels a shared population
        results = await asyncio.gather(*(asyncio.shield(f) for f in futures.values()))
        return {serial: name for serial, name in zip(futures, results) if name is not None}

    async def _populate_batch(self, futures: Dict[str, asyncio.Future]) -> None:
        serials = list(futures)
        generation = self._generation
        try:
            self.backend_calls += 1
            payload = await self.gateway.call(
                "/api/devices",
                params={"serials": ",".join(serials)},
                not_found=NotFoundPolicy.EMPTY,
            )
        except asyncio.CancelledError:
            for future in futures.values():
                future.cancel()
            raise
        except Exception as e:
            logger.error(f"Failed to populate {len(serials)} device name(s): {e}")
            for future in futures.values():
                if not future.done():
                    future.set_exception(e)
                    # Mark retrieved; waiters still receive the exception
                    future.exception()
            return
        finally:
            for serial, future in futures.items():
                if self._inflight.get(serial) is future:
                    del self._inflight[serial]

        wanted = set(serials)
        now = datetime.now(timezone.utc)
        entries: Dict[str, NameCacheEntry] = {}
        for record in records.parse_device_list(payload):
            serial = records.serial_of(record)
            if serial not in wanted:
                continue
            entries[serial] = NameCacheEntry(
                serial=serial,
                name=records.display_name(record) or serial,
                device_id=records.device_id_of(record),
                populated_at=now,
            )

        if generation == self._generation:
            self._entries.update(entries)
            logger.info(f"Cached {len(entries)} device name(s) ({len(self._entries)} total)")
        else:
            logger.info(
                f"Not caching {len(entries)} name(s) fetched before an invalidation"
            )

        for serial, future in futures.items():
            if not future.done():
                entry = entries.get(serial)
                future.set_result(entry.name if entry else None)
