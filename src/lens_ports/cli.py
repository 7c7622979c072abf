"""Command line entry point for port detection.

Resolves a frontend/backend port pair from command line flags and prints
it, or reports diagnostics about the local port space.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from .config import PORT_MAX, PORT_MIN, Settings, get_settings, load_settings_file
from .errors import ErrorCategory, PortError, log_and_format_error, setup_logger
from .models import CLIOptions, PortConfiguration
from .port_allocator import PortAllocator
from .validation import is_valid_port

logger = logging.getLogger("lens_ports.cli")

EXIT_OK = 0
EXIT_FAILURE = 1


def port_number(value: str) -> int:
    """argparse type for a port in 1..65535."""
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid port number: {value!r}")
    if not is_valid_port(port):
        raise argparse.ArgumentTypeError(
            f"port must be between {PORT_MIN} and {PORT_MAX}, got {port}"
        )
    return port


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="lens-ports",
        description="Find a free frontend/backend port pair for a local dev server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Pick a random free pair
  lens-ports

  # Ask for 3000 (backend 3001), falling back if taken
  lens-ports --port 3000

  # Ask for an explicit pair
  lens-ports --frontend-port 4000 --backend-port 4100

  # List free ports in a range
  lens-ports --scan 8000 8050

Environment variables:
  LENS_PORTS_PROBE_TIMEOUT  - Seconds per bind probe (default: 0.5)
  LENS_PORTS_CACHE_TTL      - Seconds a probe result is cached (default: 5)
  LENS_PORTS_IPV6_POLICY    - strict or lenient (default: strict)
        """,
    )
    parser.add_argument(
        "-p", "--port",
        type=port_number,
        help="Frontend port (backend will be port+1)",
    )
    parser.add_argument(
        "-f", "--frontend-port",
        type=port_number,
        help="Frontend port",
    )
    parser.add_argument(
        "-b", "--backend-port",
        type=port_number,
        help="Backend port",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Don't open the browser automatically",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="YAML file with allocator settings",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print machine-readable JSON",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        help="Run an allocator health check and exit",
    )
    parser.add_argument(
        "--scan",
        nargs=2,
        type=port_number,
        metavar=("START", "END"),
        help="Report free ports between START and END",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments.

    Port flags are validated here; the parsed ``CLIOptions`` is attached
    as ``args.options``.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        args.options = CLIOptions(
            port=args.port,
            frontend_port=args.frontend_port,
            backend_port=args.backend_port,
            no_open=args.no_open,
            verbose=args.verbose,
        )
    except ValidationError as e:
        messages = "; ".join(err["msg"] for err in e.errors())
        parser.error(messages)

    if args.scan and args.scan[0] > args.scan[1]:
        parser.error(f"--scan START must not exceed END ({args.scan[0]} > {args.scan[1]})")

    return args


def format_configuration(config: PortConfiguration) -> str:
    """Render a resolved configuration for the terminal."""
    lines = []
    requested = config.requested_ports
    if requested is not None:
        if requested.frontend is not None and requested.frontend != config.frontend:
            lines.append(
                f"Requested port {requested.frontend} unavailable, using {config.frontend} instead"
            )
        if requested.backend is not None and requested.backend != config.backend:
            lines.append(
                f"Requested backend port {requested.backend} unavailable, "
                f"using {config.backend} instead"
            )
    lines.append(f"Frontend: {config.frontend_url}")
    lines.append(f"Backend:  {config.backend_url}")
    return "\n".join(lines)


def _load_settings(args: argparse.Namespace) -> Settings:
    if args.config:
        return load_settings_file(args.config)
    return get_settings()


async def async_main(args: argparse.Namespace) -> int:
    """Async entry point.

    Returns:
        Process exit code
    """
    try:
        settings = _load_settings(args)
    except (OSError, ValueError) as e:
        print(
            log_and_format_error("load_settings", e, category=ErrorCategory.CONFIG, path=args.config),
            file=sys.stderr,
        )
        return EXIT_FAILURE

    setup_logger(
        "lens_ports",
        log_file=settings.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )

    allocator = PortAllocator(settings=settings)

    if args.health:
        report = await allocator.health_check()
        if args.json:
            print(json.dumps(report.to_dict(), indent=2))
        else:
            print(f"Healthy: {'yes' if report.is_healthy else 'no'}")
            for issue in report.issues:
                print(f"  - {issue}")
            print(f"Test port {settings.health_test_port} available: {report.test_port_available}")
        return EXIT_OK if report.is_healthy else EXIT_FAILURE

    if args.scan:
        start, end = args.scan
        stats = await allocator.get_port_usage_stats(start, end)
        if args.json:
            print(json.dumps(stats.to_dict(), indent=2))
        else:
            print(f"{stats.available} of {stats.total} ports free in {start}-{end}")
            for port in stats.available_ports:
                print(f"  {port}")
        return EXIT_OK

    try:
        config = await allocator.detect_ports(args.options)
    except PortError as e:
        print(
            log_and_format_error("detect_ports", e, **args.options.model_dump(exclude_none=True)),
            file=sys.stderr,
        )
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(config.to_dict(), indent=2))
    else:
        print(format_configuration(config))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> None:
    """Sync entry point."""
    args = parse_args(argv)
    try:
        sys.exit(asyncio.run(async_main(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(130)


if __name__ == "__main__":
    main()
