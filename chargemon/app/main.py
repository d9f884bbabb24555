# chargemon/app/main.py
from __future__ import annotations

import argparse
import logging
import socket
import sys
import time
from typing import Callable, List, Optional

from ..adapters.address_book import AddressBook
from ..adapters.device_probe import DeviceProbe, ProbeConfig
from ..adapters.http_client import HttpConfig, MetricsSession
from ..domain.discovery import prefix_from_address
from ..domain.telemetry import PortStateModel
from ..usecases.monitor_session import MonitorSession
from ..usecases.poll_telemetry import PollerConfig, PollOutcome, TelemetryPoller
from ..usecases.scan_network import ScanNetwork
from ..utils import logging as logging_utils
from .console import ConsoleDisplay
from .settings import MonitorSettings, default_settings_path, load_settings

log = logging.getLogger("chargemon.app")

# any routable address works; connect() on UDP sends nothing
_ROUTE_PROBE_ADDR = ("8.8.8.8", 80)


def detect_local_ip() -> Optional[str]:
    """Address of the interface holding the default route, if any."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(_ROUTE_PROBE_ADDR)
            address = sock.getsockname()[0]
    except OSError as exc:
        log.debug("Local address detection failed: %s", exc)
        return None
    if not address or address.startswith("0."):
        return None
    return address


def build_scanner(settings: MonitorSettings, book: AddressBook) -> ScanNetwork:
    probe = DeviceProbe(
        ProbeConfig(
            port=settings.probe_port,
            connect_timeout_s=settings.probe_connect_timeout_ms / 1000.0,
            read_timeout_s=settings.probe_read_timeout_ms / 1000.0,
        )
    )
    return ScanNetwork(
        probe,
        book,
        shards=settings.scan_shards,
        stop_on_first=settings.scan_stop_on_first,
    )


def build_session(
    settings: MonitorSettings,
    *,
    book: Optional[AddressBook] = None,
    clock: Callable[[], float] = time.monotonic,
) -> MonitorSession:
    """Compose adapters and use cases into a ready ``MonitorSession``."""
    book = book or AddressBook(settings.data_dir)
    http_cfg = HttpConfig(request_timeout_s=float(settings.http_timeout_s))
    model = PortStateModel()
    poller = TelemetryPoller(
        lambda: MetricsSession(http_cfg),
        model,
        PollerConfig(
            interval_ms=settings.refresh_interval_ms,
            error_threshold=settings.error_threshold,
            cooldown_ms=settings.cooldown_ms,
        ),
        clock=clock,
    )
    return MonitorSession(
        build_scanner(settings, book),
        poller,
        book,
        fallback_url=settings.fallback_url,
        service_port=settings.probe_port,
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chargemon", description="Charging hub power monitor")
    parser.add_argument(
        "--settings",
        default=None,
        help=f"Settings JSON file (default: {default_settings_path()})",
    )
    parser.add_argument("--debug", action="store_true", help="Enable DEBUG logging")
    parser.add_argument(
        "--local-ip",
        default=None,
        help="Local IPv4 address used to derive the scan prefix (default: auto-detect)",
    )
    parser.add_argument("--once", action="store_true", help="Run a single monitor step and exit")
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("run", help="Poll the hub and print port power (default)")
    scan = sub.add_parser("scan", help="Search a /24 for the hub and print hits")
    scan.add_argument("prefix", nargs="?", default=None, help='First three octets, e.g. "192.168.1"')
    return parser


def _cmd_scan(args: argparse.Namespace, settings: MonitorSettings, local_ip: Optional[str]) -> int:
    prefix = args.prefix
    if not prefix:
        if not local_ip:
            log.error("No prefix given and the local address could not be detected")
            return 2
        prefix = prefix_from_address(local_ip)

    scanner = build_scanner(settings, AddressBook(settings.data_dir))

    def report(address: str, success: bool) -> None:
        if success:
            print(f"hub found at {address}", flush=True)

    try:
        result = scanner(prefix, report)
    except ValueError as exc:
        log.error("Invalid prefix %r: %s", prefix, exc)
        return 2
    if result.failed:
        log.error("Scan did not start every worker")
    if not result.found:
        print(f"no hub found ({result.probes} probes)")
        return 1
    return 0


def _cmd_run(args: argparse.Namespace, settings: MonitorSettings, local_ip: Optional[str]) -> int:
    session = build_session(settings)
    display = ConsoleDisplay(
        max_total_watts=settings.max_total_watts,
        max_port_watts=settings.max_port_watts,
    )
    session.start()
    # a desktop host is assumed online; discovery falls back to the URL host without a local address
    session.update_link(True, True, local_ip)
    period_s = session.poller.cfg.interval_ms / 1000.0
    try:
        while True:
            outcome = session.tick()
            if outcome is PollOutcome.SUCCESS or args.once:
                display.render(*session.snapshot())
            if args.once:
                return 0 if outcome is PollOutcome.SUCCESS else 1
            time.sleep(period_s)
    except KeyboardInterrupt:
        log.info("Interrupted, shutting down")
        return 0
    finally:
        session.poller.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging_utils.configure_root(logging.DEBUG if args.debug else logging.INFO)

    try:
        settings = load_settings(args.settings)
    except (OSError, ValueError) as exc:
        log.error("Cannot load settings: %s", exc)
        return 2
    if not args.debug:
        logging_utils.apply_preferences(settings.debug_logging)

    local_ip = args.local_ip or detect_local_ip()
    if args.command == "scan":
        return _cmd_scan(args, settings, local_ip)
    return _cmd_run(args, settings, local_ip)


if __name__ == "__main__":
    sys.exit(main())
