#!/usr/bin/env python3
"""
fleetctl - FleetView operational CLI

A lightweight CLI for day-2 operations:
- Health checks (fleetctl doctor)
- Identifier classification and resolution (fleetctl classify / resolve)
- Device views, names and events straight from the backend
- Version info (fleetctl version)
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Tuple

from fleetview import __version__
from fleetview.api.dependencies import Services, build_services
from fleetview.core.config import get_config
from fleetview.core.errors import FleetViewError
from fleetview.devices import records
from fleetview.devices.aggregator import parse_modules
from fleetview.devices.resolver import classify_identifier
from fleetview.gateway.client import NotFoundPolicy


class Colors:
    """ANSI color codes for terminal output."""

    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BLUE = "\033[94m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colorize(text: str, color: str) -> str:
    """Colorize text if stdout is a TTY."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.RESET}"
    return text


def format_check_result(name: str, status: str, message: str, width: int = 40) -> str:
    """Format a check result line."""
    padding = " " * max(1, width - len(name))

    if status == "OK":
        status_str = colorize("[OK]", Colors.GREEN)
    elif status == "WARN":
        status_str = colorize("[WARN]", Colors.YELLOW)
    else:  # ERROR
        status_str = colorize("[ERROR]", Colors.RED)

    return f"{name}:{padding}{status_str} {message}"


def print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def print_error(error: FleetViewError) -> None:
    message = f"✗ {error.message}"
    if error.details:
        message += f" ({error.details})"
    print(colorize(message, Colors.RED), file=sys.stderr)


def check_configuration(services: Services) -> Tuple[str, str]:
    """
    Check the backend configuration.

    Returns:
        (status, message) where status is "OK", "WARN", or "ERROR"
    """
    gateway = services.gateway
    if not gateway.configured:
        return "ERROR", "API_BASE_URL environment variable not set"
    if not gateway.auth_headers():
        return "WARN", f"{gateway.base_url} (no API_INTERNAL_SECRET or API_CLIENT_PRINCIPAL_ID)"
    return "OK", gateway.base_url


async def check_devices(services: Services) -> Tuple[str, str]:
    """Check the backend device list answers."""
    try:
        payload = await services.gateway.call("/api/devices", not_found=NotFoundPolicy.EMPTY)
    except FleetViewError as e:
        return "ERROR", e.message
    if payload is None:
        return "WARN", "device list endpoint returned 404"
    return "OK", f"{len(records.parse_device_list(payload))} device(s) listed"


async def check_events(services: Services) -> Tuple[str, str]:
    """Check the backend event stream answers."""
    try:
        events = await services.events.list_events(limit=1)
    except FleetViewError as e:
        return "WARN", e.message
    return "OK", f"event stream reachable ({len(events)} recent event(s) sampled)"


async def cmd_doctor(args) -> int:
    """
    Run configuration and backend checks and print a summary.

    Returns:
        Exit code (0 on success, non-zero on critical failure)
    """
    print(colorize("\nFleetView Doctor", Colors.BOLD))
    print(colorize("=" * 60, Colors.BOLD))
    print()

    config = get_config()
    services = build_services(config)
    all_ok = True

    try:
        status, message = check_configuration(services)
        print(format_check_result("Backend configuration", status, message))
        if status == "ERROR":
            all_ok = False
        else:
            status, message = await check_devices(services)
            print(format_check_result("Device list (/api/devices)", status, message))
            if status == "ERROR":
                all_ok = False

            status, message = await check_events(services)
            print(format_check_result("Event stream (/api/events)", status, message))

        print(format_check_result(
            "Status thresholds",
            "OK",
            f"active <= {config.status.active_threshold_hours}h, "
            f"stale <= {config.status.stale_threshold_hours}h",
        ))
        ttl = config.name_cache.ttl_seconds
        print(format_check_result(
            "Name cache TTL", "OK", f"{ttl}s" if ttl else "no expiry (invalidation only)"
        ))
        fallback = "enabled" if config.aggregator.fallback_enabled else "disabled"
        print(format_check_result("Event-log fallback", "OK", fallback))
    finally:
        await services.close()

    print()

    if all_ok:
        print(colorize("✓ All critical checks passed", Colors.GREEN))
        return 0
    else:
        print(colorize("✗ One or more critical checks failed", Colors.RED))
        return 1


def cmd_classify(args) -> int:
    """Print the kind of an identifier. No backend call."""
    try:
        identifier = classify_identifier(args.identifier)
    except FleetViewError as e:
        print_error(e)
        return 2
    print(f"{identifier.raw}: {identifier.kind.value}")
    return 0


async def cmd_resolve(args) -> int:
    """Resolve an identifier to its canonical device."""
    services = build_services()
    try:
        device = await services.resolver.resolve(args.identifier)
    except FleetViewError as e:
        print_error(e)
        return 1
    finally:
        await services.close()

    print_json(device.model_dump(mode="json", exclude={"modules"}))
    return 0


async def cmd_device(args) -> int:
    """Print the aggregated view of a device."""
    services = build_services()
    try:
        modules = parse_modules(args.modules)
        device = await services.resolver.resolve(args.identifier)
        view = await services.aggregator.aggregate(device, modules)
    except FleetViewError as e:
        print_error(e)
        return 1
    finally:
        await services.close()

    print_json(view.model_dump(mode="json"))
    if view.degraded:
        print(colorize(f"! Degraded view (source: {view.data_source()})", Colors.YELLOW), file=sys.stderr)
    return 0


async def cmd_names(args) -> int:
    """Look up display names for serial numbers."""
    services = build_services()
    try:
        names = await services.name_cache.lookup_complete(args.serials)
    except FleetViewError as e:
        print_error(e)
        return 1
    finally:
        await services.close()

    for serial in args.serials:
        print(f"{serial}\t{names.get(serial, colorize('(unknown)', Colors.YELLOW))}")
    return 0


async def cmd_events(args) -> int:
    """Print recent events, newest first."""
    services = build_services()
    try:
        events = await services.events.list_events(
            device=args.device, limit=args.limit, range_=args.range
        )
    except FleetViewError as e:
        print_error(e)
        return 1
    finally:
        await services.close()

    for event in events:
        print(event.summary())
    print(colorize(f"\n{len(events)} event(s)", Colors.BLUE))
    return 0


def cmd_version(args) -> int:
    """
    Print version information.

    Returns:
        Exit code (always 0)
    """
    print(f"fleetctl version {__version__}")
    print("FleetView - device gateway for managed fleet telemetry")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for fleetctl."""
    parser = argparse.ArgumentParser(
        description="FleetView operational CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  fleetctl doctor                          # Check configuration and backend
  fleetctl classify A004733                # Show identifier kind
  fleetctl resolve A004733                 # Resolve to the canonical device
  fleetctl device 0F33V9G25083HJ --modules hardware,network
  fleetctl names 0F33V9G25083HJ C02XK1ZZJGH5
  fleetctl events --device 0F33V9G25083HJ --range 24h
  fleetctl version                         # Show version information

Environment variables:
  API_BASE_URL                             # Backend data API URL (required)
  API_INTERNAL_SECRET                      # Shared secret (takes precedence)
  API_CLIENT_PRINCIPAL_ID                  # Platform identity principal
  LOG_LEVEL                                # Logging level (default: INFO)
        """
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log backend calls to stderr"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("doctor", help="Check configuration and backend reachability")

    classify_parser = subparsers.add_parser("classify", help="Show the kind of an identifier")
    classify_parser.add_argument("identifier", help="Serial number, UUID, or asset tag")

    resolve_parser = subparsers.add_parser("resolve", help="Resolve an identifier to a device")
    resolve_parser.add_argument("identifier", help="Serial number, UUID, or asset tag")

    device_parser = subparsers.add_parser("device", help="Show the aggregated device view")
    device_parser.add_argument("identifier", help="Serial number, UUID, or asset tag")
    device_parser.add_argument(
        "--modules",
        default=None,
        help="Comma-separated module domains (default: all but events)"
    )

    names_parser = subparsers.add_parser("names", help="Look up device display names")
    names_parser.add_argument("serials", nargs="+", help="Serial numbers")

    events_parser = subparsers.add_parser("events", help="Show recent events")
    events_parser.add_argument("--device", default=None, help="Serial number filter")
    events_parser.add_argument(
        "--limit",
        type=int,
        default=50,
        help="Maximum events to show (default: 50)"
    )
    events_parser.add_argument("--range", default=None, help="Time window, e.g. 30m, 24h, 7d")

    subparsers.add_parser("version", help="Show version information")

    return parser


def main(argv=None):
    """Main entry point for fleetctl CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    logging.basicConfig(
        level="DEBUG" if args.verbose else get_config().log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    # Dispatch to command handlers
    if args.command == "doctor":
        return asyncio.run(cmd_doctor(args))
    elif args.command == "classify":
        return cmd_classify(args)
    elif args.command == "resolve":
        return asyncio.run(cmd_resolve(args))
    elif args.command == "device":
        return asyncio.run(cmd_device(args))
    elif args.command == "names":
        return asyncio.run(cmd_names(args))
    elif args.command == "events":
        return asyncio.run(cmd_events(args))
    elif args.command == "version":
        return cmd_version(args)
    else:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
