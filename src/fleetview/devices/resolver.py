"""
Device identifier classification and resolution.

A raw identifier is classified by pattern (uuid, asset tag, otherwise serial),
then matched against the backend device list under every kind. Precedence when
several kinds match is serial > assetTag > uuid; when those matches point to
different devices the identifier is ambiguous and resolution fails.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from fleetview.core.errors import AmbiguousIdentifier, NotFound, ValidationError
from fleetview.core.timestamps import parse_timestamp
from fleetview.gateway.client import BackendGateway, NotFoundPolicy

from . import records
from .models import CanonicalDevice, DeviceIdentifier, IdentifierKind
from .status import StatusCalculator

logger = logging.getLogger(__name__)

UUID_PATTERN = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)
ASSET_TAG_PATTERN = re.compile(r"^[A-Z][0-9A-Z]{3,}$", re.IGNORECASE)
CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")

MAX_IDENTIFIER_LENGTH = 256

# Highest precedence first
RESOLUTION_ORDER = [IdentifierKind.SERIAL, IdentifierKind.ASSET_TAG, IdentifierKind.UUID]


def validate_identifier(raw: Optional[str]) -> str:
    """Strip and sanity-check a raw identifier."""
    if raw is None or not raw.strip():
        raise ValidationError("Missing device identifier")
    identifier = raw.strip()
    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            "Device identifier too long",
            details=f"at most {MAX_IDENTIFIER_LENGTH} characters",
        )
    if "/" in identifier or CONTROL_CHARS.search(identifier):
        raise ValidationError("Malformed device identifier", details=repr(identifier))
    return identifier


def classify_identifier(raw: str) -> DeviceIdentifier:
    """
    Classify a raw identifier. First match wins:
    UUID grammar -> uuid, asset-tag grammar -> assetTag, otherwise serial.
    """
    identifier = validate_identifier(raw)
    if UUID_PATTERN.match(identifier):
        kind = IdentifierKind.UUID
    elif ASSET_TAG_PATTERN.match(identifier):
        kind = IdentifierKind.ASSET_TAG
    else:
        kind = IdentifierKind.SERIAL
    return DeviceIdentifier(raw=identifier, kind=kind)


class IdentifierResolver:
    """
    Resolves raw identifiers to canonical devices.

    Stateless: one backend call per resolution, no caching.
    """

    def __init__(
        self,
        gateway: BackendGateway,
        status_calculator: Optional[StatusCalculator] = None,
    ):
        self.gateway = gateway
        self.status_calculator = status_calculator or StatusCalculator()

    async def resolve(self, raw: str) -> CanonicalDevice:
        """
        Resolve a raw identifier to its canonical device.

        Args:
            raw: Serial number, UUID, or asset tag

        Returns:
            The canonical device

        Raises:
            ValidationError: Malformed identifier
            NotFound: No device matches under any kind
            AmbiguousIdentifier: Different devices match under different kinds
        """
        identifier = classify_identifier(raw)
        logger.info(f"Resolving {identifier.kind.value}: {identifier.raw}")

        payload = await self.gateway.call("/api/devices", not_found=NotFoundPolicy.EMPTY)
        device_records = records.parse_device_list(payload)
        logger.debug(f"Searching {len(device_records)} devices for {identifier.raw}")

        record = self.match(identifier.raw, device_records)
        device = self.to_canonical(record)
        logger.info(f"Resolved {identifier.raw} -> {device.serial_number}")
        return device

    def match(self, identifier: str, device_records: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Pick the single record an identifier refers to."""
        matches: Dict[IdentifierKind, List[Dict[str, Any]]] = {
            kind: [] for kind in RESOLUTION_ORDER
        }
        folded = identifier.casefold()

        for record in device_records:
            serial = records.serial_of(record)
            if not serial:
                continue
            if serial == identifier:
                matches[IdentifierKind.SERIAL].append(record)
            tag = records.asset_tag_of(record)
            if tag and tag.casefold() == folded:
                matches[IdentifierKind.ASSET_TAG].append(record)
            if any(c.casefold() == folded for c in records.uuid_candidates(record)):
                matches[IdentifierKind.UUID].append(record)

        serials_by_kind: Dict[str, str] = {}
        chosen: Optional[Dict[str, Any]] = None
        for kind in RESOLUTION_ORDER:
            serials = {records.serial_of(r) for r in matches[kind]}
            if len(serials) > 1:
                raise AmbiguousIdentifier(
                    identifier,
                    {f"{kind.value}[{i}]": s for i, s in enumerate(sorted(serials))},
                )
            if serials:
                serials_by_kind[kind.value] = serials.pop()
                if chosen is None:
                    chosen = matches[kind][0]

        if chosen is None:
            raise NotFound(f"No device found for identifier: {identifier}")

        if len(set(serials_by_kind.values())) > 1:
            logger.warning(f"Identifier {identifier} is ambiguous: {serials_by_kind}")
            raise AmbiguousIdentifier(identifier, serials_by_kind)

        return chosen

    def to_canonical(self, record: Dict[str, Any]) -> CanonicalDevice:
        """Convert a backend device record to a CanonicalDevice."""
        serial = records.serial_of(record)
        last_seen = parse_timestamp(records.last_seen_of(record))
        return CanonicalDevice(
            id=records.device_id_of(record) or serial,
            serial_number=serial,
            name=records.display_name(record) or serial,
            asset_tag=records.asset_tag_of(record),
            last_seen=last_seen,
            status=self.status_calculator.compute_status(last_seen),
        )

