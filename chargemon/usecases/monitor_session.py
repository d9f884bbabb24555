"""Single owning task that ties discovery and polling together.

``MonitorSession`` holds the link flags reported by the network collaborator,
decides when discovery has to run, swaps the poller's target when a scan
confirms a different hub and exposes ``(PortSnapshot, ConnectivityState)`` to
the display. Nothing raised below this layer escapes ``tick()``.

Call context:
    - Driven by ``chargemon.app.main`` once per refresh interval.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional, Tuple

from chargemon.domain.discovery import (
    METRICS_PATH,
    ScanResult,
    host_from_url,
    is_ipv4,
    metrics_url_for,
    prefix_from_address,
)
from chargemon.domain.errors import ChargemonError, DiscoveryFailure, PersistenceError
from chargemon.domain.ports import AddressStorePort, ScanCallback
from chargemon.domain.telemetry import ConnectivityState, PortSnapshot
from chargemon.usecases.poll_telemetry import PollOutcome, TelemetryPoller
from chargemon.usecases.scan_network import ScanNetwork

DEFAULT_FALLBACK_URL = "http://192.168.32.2/metrics"


class MonitorSession:
    """Owns link state, discovery scheduling and the poll loop."""

    def __init__(
        self,
        scanner: ScanNetwork,
        poller: TelemetryPoller,
        address_book: AddressStorePort,
        *,
        fallback_url: str = DEFAULT_FALLBACK_URL,
        service_port: int = 80,
        metrics_path: str = METRICS_PATH,
        on_scan_event: Optional[ScanCallback] = None,
    ) -> None:
        """Wire the session.

        Args:
            scanner: Discovery use case.
            poller: Fetch loop whose target this session manages.
            address_book: Read once in ``start`` to pick the first URL.
            fallback_url: Used when no address has been stored yet.
            service_port: Port used to build metrics URLs from scan hits.
            metrics_path: Path used to build metrics URLs from scan hits.
            on_scan_event: Optional observer for every probed address.
        """
        self.scanner = scanner
        self.poller = poller
        self.model = poller.model
        self._book = address_book
        self.fallback_url = fallback_url
        self._port = service_port
        self._path = metrics_path
        self._observer = on_scan_event
        self._log = logging.getLogger(__name__)

        self._lock = threading.Lock()
        self._started = False
        self._connected = False
        self._got_ip = False
        self._local_ip: Optional[str] = None
        self._discovery_armed = True
        self._validated = False
        self._force_fetch = False
        self._scan_hit = False
        self._seen_rebuilds = 0
        self.last_scan: Optional[ScanResult] = None
        poller.bind_link(lambda: self.link_up)

    # ---- lifecycle ----
    def start(self) -> str:
        """Pick the initial metrics URL and hand it to the poller."""
        url = self._initial_url()
        self.poller.set_url(url)
        self._seen_rebuilds = self.poller.rebuilds
        self._started = True
        self._log.info("Monitoring metrics at %s", url)
        return url

    def _initial_url(self) -> str:
        try:
            stored = self._book.get()
        except PersistenceError as exc:
            self._log.warning("Cannot read saved hub address (%s); using %s", exc, self.fallback_url)
            return self.fallback_url
        if not stored:
            self._log.info("No saved hub address; using %s", self.fallback_url)
            return self.fallback_url
        return self._url_for(stored)

    def _url_for(self, address: str) -> str:
        return metrics_url_for(address, self._path, self._port)

    # ---- collaborator input ----
    @property
    def link_up(self) -> bool:
        return self._connected and self._got_ip

    def update_link(self, connected: bool, got_ip: bool, local_ip: Optional[str] = None) -> None:
        """Record link flags from the network collaborator.

        A down-to-up transition re-arms discovery and forgets any earlier
        validation of the stored address.
        """
        was_up = self.link_up
        self._connected = bool(connected)
        self._got_ip = bool(got_ip)
        if local_ip:
            self._local_ip = local_ip.strip()
        if self.link_up and not was_up:
            self._log.info("Link up (local address %s); discovery armed", self._local_ip or "unknown")
            self._discovery_armed = True
            self._validated = False
        elif was_up and not self.link_up:
            self._log.warning("Link lost")
            self._validated = False

    # ---- loop step ----
    def tick(self) -> Optional[PollOutcome]:
        """Run one cooperative step: discovery when armed, then one poll.

        Returns the poll outcome, or ``None`` if the poll step itself failed
        unexpectedly (logged).
        """
        if not self._started:
            self.start()
        if self.link_up and self._discovery_armed:
            self._discover()

        force = self._force_fetch
        try:
            outcome = self.poller.poll(force=force)
        except Exception:
            self._log.exception("Poll step failed")
            return None
        if outcome.attempted:
            self._force_fetch = False
        self.poller.check_stale()

        if self.poller.rebuilds != self._seen_rebuilds:
            self._seen_rebuilds = self.poller.rebuilds
            self._log.warning("Hub at %s keeps failing; re-running discovery", self.poller.url)
            self._discovery_armed = True
            self._validated = False
        return outcome

    def snapshot(self) -> Tuple[PortSnapshot, ConnectivityState]:
        if not self._connected:
            state = ConnectivityState.DISCONNECTED
        elif not self._got_ip:
            state = ConnectivityState.CONNECTING
        else:
            state = self.poller.connectivity
        return self.model.snapshot(), state

    # ---- discovery ----
    def _discover(self) -> None:
        self._discovery_armed = False
        if self._validated and self._current_is_stored():
            self._log.info("Current URL already targets the validated hub; skipping scan")
            return

        prefix = self._scan_prefix()
        if prefix is None:
            self._log.warning("No local IPv4 address known; discovery postponed to next link up")
            return

        self._scan_hit = False
        try:
            result = self.scanner(prefix, self._on_scan_event, skip_validation=self._validated)
        except (ValueError, ChargemonError) as exc:
            self._log.error("Discovery on %s* failed: %s", prefix, exc)
            return
        self.last_scan = result
        try:
            address = result.ensure_found()
        except DiscoveryFailure as exc:
            self._log.warning("No hub on %s* (%s); keeping %s", prefix, exc, self.poller.url)
            return
        self._validated = True
        self._log.info("Hub confirmed at %s", address)

    def _scan_prefix(self) -> Optional[str]:
        candidates = [self._local_ip, host_from_url(self.poller.url)]
        for candidate in candidates:
            if candidate and is_ipv4(candidate):
                return prefix_from_address(candidate)
        return None

    def _current_is_stored(self) -> bool:
        try:
            stored = self._book.get()
        except PersistenceError:
            return False
        return bool(stored) and self._url_for(stored) == self.poller.url

    def _on_scan_event(self, address: str, success: bool) -> None:
        if self._observer is not None:
            try:
                self._observer(address, success)
            except Exception:
                self._log.exception("Scan observer failed for %s", address)
        if not success:
            return
        with self._lock:
            if self._scan_hit:
                return
            self._scan_hit = True
            url = self._url_for(address)
            if url == self.poller.url:
                return
            self.poller.set_url(url)
            self.model.reset()
            self._force_fetch = True


__all__ = ["DEFAULT_FALLBACK_URL", "MonitorSession"]
