"""Discovery value objects and address arithmetic for the /24 hub scan.

Everything here is pure: prefix validation, shard partitioning of hosts
1..254 and the metrics URL helpers used when a scan hit replaces the target.
"""

from __future__ import annotations

import ipaddress
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from chargemon.domain.errors import DiscoveryFailure

HOST_MIN = 1
HOST_MAX = 254
METRICS_PATH = "/metrics"


@dataclass(frozen=True)
class ScanEvent:
    """Outcome of probing one candidate address."""
    address: str
    success: bool
    shard: Optional[int] = None   # None for the cached-address fast path


@dataclass
class ScanResult:
    """Summary of one ``ScanNetwork`` call."""
    found_address: Optional[str] = None
    events: List[ScanEvent] = field(default_factory=list)
    probes: int = 0
    used_cache: bool = False
    failed: bool = False          # a shard worker could not be started

    @property
    def found(self) -> bool:
        return self.found_address is not None

    def ensure_found(self) -> str:
        """Return the hub address or raise ``DiscoveryFailure``."""
        if self.found_address is None:
            reason = "scan could not start every worker" if self.failed else "no hub answered"
            raise DiscoveryFailure(reason, context=f"{self.probes} probes")
        return self.found_address


def normalize_prefix(prefix: str) -> str:
    """Return ``"a.b.c."`` for ``"a.b.c"`` or ``"a.b.c."``.

    Raises:
        ValueError: If ``prefix`` is not three valid IPv4 octets.
    """
    text = (prefix or "").strip()
    if text.endswith("."):
        text = text[:-1]
    parts = text.split(".")
    if len(parts) != 3:
        raise ValueError(f"expected three octets, got {prefix!r}")
    for part in parts:
        if not part.isdigit() or not 0 <= int(part) <= 255:
            raise ValueError(f"invalid octet {part!r} in {prefix!r}")
    return ".".join(str(int(p)) for p in parts) + "."


def prefix_from_address(address: str) -> str:
    """Derive the /24 scan prefix from the monitor's own address."""
    ip = ipaddress.IPv4Address(address.strip())
    return str(ip).rsplit(".", 1)[0] + "."


def is_ipv4(address: str) -> bool:
    try:
        ipaddress.IPv4Address((address or "").strip())
    except ValueError:
        return False
    return True


def shard_ranges(shards: int, first: int = HOST_MIN, last: int = HOST_MAX) -> List[Tuple[int, int]]:
    """Partition ``[first, last]`` into contiguous inclusive ranges.

    Every shard gets ``count // shards`` hosts and the last one absorbs the
    remainder, so 3 shards over 1..254 yield 1-84, 85-168, 169-254.
    """
    if shards < 1:
        raise ValueError("shards must be >= 1")
    count = last - first + 1
    shards = min(shards, count)
    size = count // shards
    ranges = []
    for i in range(shards):
        start = first + i * size
        end = last if i == shards - 1 else start + size - 1
        ranges.append((start, end))
    return ranges


def metrics_url_for(address: str, path: str = METRICS_PATH, port: int = 80) -> str:
    host = address if port == 80 else f"{address}:{port}"
    return f"http://{host}{path}"


def host_from_url(url: str) -> Optional[str]:
    """Extract the host part of a metrics URL (``None`` if there is none)."""
    text = (url or "").strip()
    if not text:
        return None
    if "://" not in text:
        text = f"http://{text}"
    return urlsplit(text).hostname
