"""
Tests for identifier classification and resolution.
"""

import asyncio

import pytest

from fleetview.core.errors import AmbiguousIdentifier, NotFound, ValidationError
from fleetview.devices.models import DeviceStatus, IdentifierKind
from fleetview.devices.resolver import IdentifierResolver, classify_identifier

from conftest import DESIGN_SERIAL, LAB_ID, LAB_SERIAL


class TestClassification:
    """Identifier kinds are decided by pattern alone."""

    def test_uuid(self):
        assert classify_identifier(LAB_ID).kind == IdentifierKind.UUID
        assert classify_identifier(LAB_ID.upper()).kind == IdentifierKind.UUID

    def test_asset_tag(self):
        assert classify_identifier("A004733").kind == IdentifierKind.ASSET_TAG
        assert classify_identifier("a004733").kind == IdentifierKind.ASSET_TAG

    def test_serial(self):
        assert classify_identifier(LAB_SERIAL).kind == IdentifierKind.SERIAL
        assert classify_identifier("12345").kind == IdentifierKind.SERIAL
        assert classify_identifier("SN-42").kind == IdentifierKind.SERIAL

    def test_strips_whitespace(self):
        identifier = classify_identifier("  A004733 ")
        assert identifier.raw == "A004733"

    @pytest.mark.parametrize("raw", ["", "   ", "a/b", "bad\x00id", "x" * 300])
    def test_rejects_malformed(self, raw):
        with pytest.raises(ValidationError):
            classify_identifier(raw)


class TestResolution:
    """Resolution against the backend device list."""

    def test_resolves_serial(self, gateway):
        device = asyncio.run(IdentifierResolver(gateway).resolve(LAB_SERIAL))
        assert device.serial_number == LAB_SERIAL
        assert device.id == LAB_ID
        assert device.name == "LAB-WS-014"
        assert device.asset_tag == "A004733"

    def test_resolves_asset_tag_case_insensitively(self, gateway):
        device = asyncio.run(IdentifierResolver(gateway).resolve("a004733"))
        assert device.serial_number == LAB_SERIAL

    def test_resolves_uuid(self, gateway):
        device = asyncio.run(IdentifierResolver(gateway).resolve(LAB_ID.upper()))
        assert device.serial_number == LAB_SERIAL

    def test_top_level_asset_tag(self, gateway):
        device = asyncio.run(IdentifierResolver(gateway).resolve("A000101"))
        assert device.serial_number == DESIGN_SERIAL
        assert device.name == "Design-MBP"

    def test_one_backend_call_per_resolution(self, gateway, backend):
        resolver = IdentifierResolver(gateway)
        asyncio.run(resolver.resolve("A004733"))
        asyncio.run(resolver.resolve("A004733"))
        assert backend.count("/api/devices") == 2

    def test_idempotent(self, gateway):
        resolver = IdentifierResolver(gateway)
        first = asyncio.run(resolver.resolve("A004733"))
        second = asyncio.run(resolver.resolve("A004733"))
        assert first.serial_number == second.serial_number
        assert first.id == second.id

    def test_idempotent_for_serial_sequential_and_concurrent(self, gateway):
        resolver = IdentifierResolver(gateway)

        async def scenario():
            first = await resolver.resolve(LAB_SERIAL)
            second = await resolver.resolve(LAB_SERIAL)
            concurrent = await asyncio.gather(
                resolver.resolve(LAB_SERIAL), resolver.resolve(LAB_SERIAL)
            )
            return [first, second, *concurrent]

        devices = asyncio.run(scenario())
        assert {d.id for d in devices} == {LAB_ID}
        assert {d.serial_number for d in devices} == {LAB_SERIAL}

    def test_status_is_derived(self, gateway):
        device = asyncio.run(IdentifierResolver(gateway).resolve(LAB_SERIAL))
        # Fixture timestamps are fixed in the past
        assert device.status in (DeviceStatus.STALE, DeviceStatus.MISSING)
        assert device.last_seen is not None

    def test_not_found(self, gateway):
        with pytest.raises(NotFound):
            asyncio.run(IdentifierResolver(gateway).resolve("NOPE-0000"))

    def test_empty_backend(self, gateway, backend):
        backend.devices = []
        with pytest.raises(NotFound):
            asyncio.run(IdentifierResolver(gateway).resolve(LAB_SERIAL))


class TestPrecedence:
    """serial > assetTag > uuid, and cross-device matches are errors."""

    def test_serial_beats_asset_tag_on_same_device(self):
        resolver = IdentifierResolver(gateway=None)
        records = [{"serialNumber": "A100200", "assetTag": "A100200"}]
        assert resolver.match("A100200", records)["serialNumber"] == "A100200"

    def test_cross_kind_ambiguity(self):
        resolver = IdentifierResolver(gateway=None)
        records = [
            {"serialNumber": "A100200"},
            {"serialNumber": "XYZ999", "assetTag": "A100200"},
        ]
        with pytest.raises(AmbiguousIdentifier) as exc_info:
            resolver.match("A100200", records)
        assert exc_info.value.status_code == 409
        assert set(exc_info.value.matches.values()) == {"A100200", "XYZ999"}

    def test_duplicate_asset_tag_is_ambiguous(self):
        resolver = IdentifierResolver(gateway=None)
        records = [
            {"serialNumber": "S1", "assetTag": "A555"},
            {"serialNumber": "S2", "assetTag": "A555"},
        ]
        with pytest.raises(AmbiguousIdentifier):
            resolver.match("A555", records)

    def test_records_without_serial_are_ignored(self):
        resolver = IdentifierResolver(gateway=None)
        records = [{"assetTag": "A555"}, {"serialNumber": "S2", "assetTag": "A555"}]
        assert resolver.match("A555", records)["serialNumber"] == "S2"
