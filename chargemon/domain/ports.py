"""Protocols separating the use cases from storage, probing and HTTP."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

Address = str
ScanCallback = Callable[[Address, bool], None]
LinkProvider = Callable[[], bool]


# ---- Ports (Hexagonal boundaries) ----
class AddressStorePort(Protocol):
    """Durable single-value store for the last confirmed hub address."""

    def get(self) -> Optional[Address]: ...
    def set(self, address: Address) -> None: ...


class ProbePort(Protocol):
    """One bounded check of a single candidate address."""

    def __call__(self, address: Address) -> bool: ...


class MetricsSessionPort(Protocol):
    """HTTP session fetching the metrics document from one URL.

    ``fetch`` returns the body of a 200 response and raises
    ``FetchHTTPError``/``FetchTransportError`` for everything else.
    """

    def fetch(self, url: str) -> str: ...
    def close(self) -> None: ...
