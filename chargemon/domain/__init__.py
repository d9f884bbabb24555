"""Domain package exports for the port model, parser and discovery types."""

from .discovery import ScanEvent, ScanResult, metrics_url_for, normalize_prefix, shard_ranges
from .errors import ChargemonError, DiscoveryFailure, ParseError, PersistenceError, ProbeTimeout
from .metrics_parser import ParseReport, parse_metrics
from .telemetry import (
    MAX_PORTS,
    PORT_NAMES,
    ConnectivityState,
    PortRecord,
    PortSnapshot,
    PortStateModel,
    PortView,
)

__all__ = [
    "ChargemonError",
    "ConnectivityState",
    "DiscoveryFailure",
    "MAX_PORTS",
    "PORT_NAMES",
    "ParseError",
    "ParseReport",
    "PersistenceError",
    "PortRecord",
    "PortSnapshot",
    "PortStateModel",
    "PortView",
    "ProbeTimeout",
    "ScanEvent",
    "ScanResult",
    "metrics_url_for",
    "normalize_prefix",
    "parse_metrics",
    "shard_ranges",
]
