"""
Tests for the device name cache.
"""

import asyncio
from datetime import timedelta

import pytest

from fleetview.core.errors import UpstreamUnavailable, ValidationError
from fleetview.devices.models import CacheInvalidationRequest
from fleetview.names.cache import DeviceNameCache

from conftest import DESIGN_ID, DESIGN_SERIAL, LAB_SERIAL

NAMES = {LAB_SERIAL: "LAB-WS-014", DESIGN_SERIAL: "Design-MBP"}


class TestLookup:
    """Reads served from the cache."""

    def test_populate_then_lookup_is_free(self, gateway, backend):
        cache = DeviceNameCache(gateway)
        assert asyncio.run(cache.populate([LAB_SERIAL, DESIGN_SERIAL])) == NAMES
        calls = backend.count("/api/devices")

        assert asyncio.run(cache.lookup([LAB_SERIAL])) == {LAB_SERIAL: "LAB-WS-014"}
        assert backend.count("/api/devices") == calls

    def test_one_backend_call_per_batch(self, gateway, backend):
        cache = DeviceNameCache(gateway)
        asyncio.run(cache.populate([LAB_SERIAL, DESIGN_SERIAL]))
        assert backend.count("/api/devices") == 1
        assert backend.requests[-1].url.params["serials"] == f"{LAB_SERIAL},{DESIGN_SERIAL}"

    def test_lookup_returns_cached_subset(self, gateway, backend):
        async def scenario():
            cache = DeviceNameCache(gateway)
            await cache.populate([LAB_SERIAL])
            partial = await cache.lookup([LAB_SERIAL, DESIGN_SERIAL])
            await cache.join()
            return partial, await cache.lookup([LAB_SERIAL, DESIGN_SERIAL])

        partial, complete = asyncio.run(scenario())
        assert partial == {LAB_SERIAL: "LAB-WS-014"}
        assert complete == NAMES
        assert backend.count("/api/devices") == 2

    def test_lookup_complete_waits(self, gateway):
        cache = DeviceNameCache(gateway)
        assert asyncio.run(cache.lookup_complete([DESIGN_SERIAL, " ", DESIGN_SERIAL])) == {
            DESIGN_SERIAL: "Design-MBP"
        }

    def test_unknown_serial_is_left_out(self, gateway):
        cache = DeviceNameCache(gateway)
        assert asyncio.run(cache.lookup_complete(["NOPE", LAB_SERIAL])) == {
            LAB_SERIAL: "LAB-WS-014"
        }
        assert cache.get("NOPE") is None

    def test_population_failure_propagates(self, gateway, backend):
        backend.devices_down = True
        cache = DeviceNameCache(gateway)
        with pytest.raises(UpstreamUnavailable):
            asyncio.run(cache.lookup_complete([LAB_SERIAL]))
        assert len(cache) == 0
        assert cache.stats()["in_flight"] == 0

    def test_ttl_expiry(self, gateway):
        cache = DeviceNameCache(gateway, ttl_seconds=60)
        asyncio.run(cache.populate([LAB_SERIAL]))
        entry = cache._entries[LAB_SERIAL]
        later = entry.populated_at + timedelta(seconds=61)
        assert cache.get(LAB_SERIAL, entry.populated_at) == "LAB-WS-014"
        assert cache.get(LAB_SERIAL, later) is None


class TestSingleFlight:
    """Concurrent lookups share one population per serial."""

    def test_concurrent_cold_lookups(self, gateway, backend):
        backend.delay = 0.05
        cache = DeviceNameCache(gateway)

        async def scenario():
            return await asyncio.gather(
                cache.lookup_complete([LAB_SERIAL, DESIGN_SERIAL]),
                cache.lookup_complete([DESIGN_SERIAL]),
                cache.lookup_complete([LAB_SERIAL]),
            )

        first, second, third = asyncio.run(scenario())
        assert first == NAMES
        assert second == {DESIGN_SERIAL: "Design-MBP"}
        assert third == {LAB_SERIAL: "LAB-WS-014"}
        assert backend.count("/api/devices") == 1

    def test_cancelled_waiter_does_not_cancel_population(self, gateway, backend):
        backend.delay = 0.05
        cache = DeviceNameCache(gateway)

        async def scenario():
            waiter = asyncio.ensure_future(cache.lookup_complete([LAB_SERIAL]))
            await asyncio.sleep(0.01)
            waiter.cancel()
            with pytest.raises(asyncio.CancelledError):
                await waiter
            await cache.join()

        asyncio.run(scenario())
        assert cache.get(LAB_SERIAL) == "LAB-WS-014"
        assert backend.count("/api/devices") == 1


class TestInvalidation:
    """Explicit invalidation."""

    def test_invalidate_all_then_one_fetch(self, gateway, backend):
        async def scenario():
            cache = DeviceNameCache(gateway)
            await cache.populate([LAB_SERIAL, DESIGN_SERIAL])
            calls = backend.count("/api/devices")

            removed = cache.invalidate_all()
            assert sorted(removed) == sorted(NAMES)
            assert await cache.lookup([LAB_SERIAL]) == {}
            await cache.join()
            assert backend.count("/api/devices") == calls + 1
            return await cache.lookup([LAB_SERIAL])

        assert asyncio.run(scenario()) == {LAB_SERIAL: "LAB-WS-014"}

    def test_device_scoped(self, gateway):
        cache = DeviceNameCache(gateway)
        asyncio.run(cache.populate([LAB_SERIAL, DESIGN_SERIAL]))

        removed = cache.invalidate(CacheInvalidationRequest(deviceId=DESIGN_ID))
        assert removed == [DESIGN_SERIAL]
        assert cache.get(DESIGN_SERIAL) is None
        assert cache.get(LAB_SERIAL) == "LAB-WS-014"

    def test_serial_scoped(self, gateway):
        cache = DeviceNameCache(gateway)
        asyncio.run(cache.populate([LAB_SERIAL, DESIGN_SERIAL]))

        assert cache.invalidate(CacheInvalidationRequest(serialNumber=LAB_SERIAL)) == [LAB_SERIAL]
        assert cache.invalidate(CacheInvalidationRequest(serialNumber=LAB_SERIAL)) == []
        assert len(cache) == 1

    def test_invalidate_all_wins(self, gateway):
        cache = DeviceNameCache(gateway)
        asyncio.run(cache.populate([LAB_SERIAL, DESIGN_SERIAL]))
        request = CacheInvalidationRequest(invalidateAll=True, serialNumber=LAB_SERIAL)
        assert len(cache.invalidate(request)) == 2

    def test_requires_selector(self, gateway):
        with pytest.raises(ValidationError):
            DeviceNameCache(gateway).invalidate(CacheInvalidationRequest())

    def test_population_racing_invalidation_is_discarded(self, gateway, backend):
        backend.delay = 0.05
        cache = DeviceNameCache(gateway)

        async def scenario():
            await cache.lookup([LAB_SERIAL])
            await asyncio.sleep(0.01)
            cache.invalidate_all()
            await cache.join()

        asyncio.run(scenario())
        assert len(cache) == 0
        assert cache.stats()["generation"] == 1

    @pytest.mark.parametrize(
        "request_",
        [
            CacheInvalidationRequest(invalidateAll=True),
            CacheInvalidationRequest(serialNumber=LAB_SERIAL),
        ],
    )
    def test_invalidation_during_population_forces_fresh_fetch(self, gateway, backend, request_):
        backend.delay = 0.05
        cache = DeviceNameCache(gateway)

        async def scenario():
            await cache.lookup([LAB_SERIAL])
            await asyncio.sleep(0.01)
            backend.devices[0] = {
                **backend.devices[0],
                "modules": {"inventory": {"deviceName": "LAB-WS-014-RENAMED"}},
            }
            cache.invalidate(request_)
            names = await cache.lookup_complete([LAB_SERIAL])
            await cache.join()
            return names

        assert asyncio.run(scenario()) == {LAB_SERIAL: "LAB-WS-014-RENAMED"}
        assert backend.count("/api/devices") == 2
        assert cache.get(LAB_SERIAL) == "LAB-WS-014-RENAMED"
        assert cache.stats()["in_flight"] == 0
