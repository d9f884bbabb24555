"""Use case for the rate-limited metrics fetch loop.

``TelemetryPoller.poll`` is called on every cooperative tick. It decides
whether a fetch is due, performs at most one HTTP GET, feeds a 200 body into
the metrics parser and tracks consecutive failures. After ``error_threshold``
failures in a row the HTTP session is discarded and rebuilt lazily on the next
attempt, which recovers from a wedged keep-alive connection.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from chargemon.adapters.api_errors import ApiError, FetchHTTPError, FetchTransportError
from chargemon.domain.metrics_parser import ParseReport, parse_metrics
from chargemon.domain.ports import LinkProvider, MetricsSessionPort
from chargemon.domain.telemetry import ConnectivityState, PortStateModel

MIN_INTERVAL_MS = 500
DEFAULT_ERROR_THRESHOLD = 5
DEFAULT_COOLDOWN_MS = 1000
STALE_LOG_PERIOD_S = 1.0

SessionFactory = Callable[[], MetricsSessionPort]


class PollOutcome(str, Enum):
    """Result of one ``poll`` call."""

    SKIPPED_INTERVAL = "skipped_interval"
    SKIPPED_LINK_DOWN = "skipped_link_down"
    SKIPPED_COOLDOWN = "skipped_cooldown"
    SKIPPED_NO_URL = "skipped_no_url"
    SKIPPED_BUSY = "skipped_busy"
    SUCCESS = "success"
    HTTP_ERROR = "http_error"
    TRANSPORT_ERROR = "transport_error"

    @property
    def attempted(self) -> bool:
        return self in (PollOutcome.SUCCESS, PollOutcome.HTTP_ERROR, PollOutcome.TRANSPORT_ERROR)


class PollerState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


@dataclass
class PollerConfig:
    """Timing policy for the poller.

    Attributes:
        interval_ms: Minimum spacing between fetch starts; clamped to 500 ms.
        error_threshold: Consecutive failures that trigger a session rebuild.
        cooldown_ms: Quiet window after a failure before the next attempt.
    """
    interval_ms: int = MIN_INTERVAL_MS
    error_threshold: int = DEFAULT_ERROR_THRESHOLD
    cooldown_ms: int = DEFAULT_COOLDOWN_MS

    def __post_init__(self) -> None:
        self.interval_ms = max(MIN_INTERVAL_MS, int(self.interval_ms))
        self.error_threshold = max(1, int(self.error_threshold))
        self.cooldown_ms = max(0, int(self.cooldown_ms))


class TelemetryPoller:
    """Serialized fetch loop feeding the port model."""

    def __init__(
        self,
        session_factory: SessionFactory,
        model: PortStateModel,
        cfg: Optional[PollerConfig] = None,
        *,
        url: str = "",
        link_up: Optional[LinkProvider] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Wire the poller.

        Args:
            session_factory: Builds a fresh ``MetricsSessionPort``; called on
                first use and after every rebuild.
            model: Port model written by the parser on success.
            cfg: Interval, threshold and cooldown policy.
            url: Initial metrics URL; ``set_url`` replaces it.
            link_up: Returns ``True`` while the network link has an address.
            clock: Monotonic seconds, injectable for tests.
        """
        self._factory = session_factory
        self.model = model
        self.cfg = cfg or PollerConfig()
        self._url = url.strip()
        self._link_up = link_up or (lambda: True)
        self._clock = clock
        self._log = logging.getLogger(__name__)

        self._fetch_lock = threading.Lock()
        self._session: Optional[MetricsSessionPort] = None

        self.state = PollerState.IDLE
        self.has_error = False
        self.consecutive_errors = 0
        self.rebuilds = 0
        self.requests = 0
        self.last_error: Optional[ApiError] = None
        self.last_report: Optional[ParseReport] = None
        self._last_fetch_at: Optional[float] = None
        self._last_error_at: Optional[float] = None
        self._last_stale_log_at: Optional[float] = None

    # ---- target ----
    @property
    def url(self) -> str:
        return self._url

    def set_url(self, url: str) -> bool:
        """Point the poller at ``url``; returns ``True`` if the target changed."""
        url = (url or "").strip()
        if url == self._url:
            return False
        with self._fetch_lock:
            self._log.info("Metrics URL changed: %s -> %s", self._url or "<none>", url)
            self._url = url
            self._discard_session()
        return True

    def bind_link(self, provider: LinkProvider) -> None:
        """Replace the link-state provider (the owning session reports it)."""
        self._link_up = provider

    # ---- status ----
    @property
    def connectivity(self) -> ConnectivityState:
        """Coarse status for the display, derived from link and last outcome."""
        if not self._link_up():
            return ConnectivityState.DISCONNECTED
        if self._last_fetch_at is None:
            return ConnectivityState.CONNECTING
        if self.has_error:
            return ConnectivityState.DATA_ERROR
        return ConnectivityState.CONNECTED

    # ---- loop step ----
    def poll(self, force: bool = False) -> PollOutcome:
        """Fetch and parse once if every gate allows it.

        Args:
            force: Skip the interval gate (used right after the target URL
                changed). Link and cooldown gates still apply.

        Returns:
            PollOutcome: Which gate stopped the call, or how the fetch went.
        """
        if not self._link_up():
            return PollOutcome.SKIPPED_LINK_DOWN
        if not self._url:
            return PollOutcome.SKIPPED_NO_URL

        now = self._clock()
        if not force and self._last_fetch_at is not None:
            if (now - self._last_fetch_at) * 1000.0 < self.cfg.interval_ms:
                return PollOutcome.SKIPPED_INTERVAL
        if self._last_error_at is not None and self.has_error:
            if (now - self._last_error_at) * 1000.0 < self.cfg.cooldown_ms:
                return PollOutcome.SKIPPED_COOLDOWN

        if not self._fetch_lock.acquire(blocking=False):
            return PollOutcome.SKIPPED_BUSY
        try:
            return self._fetch(now)
        finally:
            self._fetch_lock.release()

    def _fetch(self, now: float) -> PollOutcome:
        if self._session is None:
            self._log.debug("Creating HTTP session for %s", self._url)
            self._session = self._factory()
        self.state = PollerState.FETCHING
        self._last_fetch_at = now
        self.requests += 1
        try:
            body = self._session.fetch(self._url)
        except FetchHTTPError as exc:
            return self._on_error(PollOutcome.HTTP_ERROR, exc)
        except FetchTransportError as exc:
            return self._on_error(PollOutcome.TRANSPORT_ERROR, exc)

        self.last_report = parse_metrics(body, self.model)
        self.state = PollerState.SUCCESS
        if self.has_error:
            self._log.info("Metrics fetch recovered after %d error(s)", self.consecutive_errors)
        self.has_error = False
        self.consecutive_errors = 0
        self.last_error = None
        return PollOutcome.SUCCESS

    def _on_error(self, outcome: PollOutcome, exc: ApiError) -> PollOutcome:
        self.state = PollerState.ERROR
        self.has_error = True
        self.last_error = exc
        self._last_error_at = self._clock()
        self.consecutive_errors += 1
        self._log.warning(
            "Metrics fetch failed (%d/%d): %s",
            self.consecutive_errors,
            self.cfg.error_threshold,
            exc,
        )
        if self.consecutive_errors >= self.cfg.error_threshold:
            self._log.warning(
                "%d consecutive fetch errors, rebuilding HTTP session", self.consecutive_errors
            )
            self._discard_session()
            self.consecutive_errors = 0
            self.rebuilds += 1
        return outcome

    def _discard_session(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        try:
            session.close()
        except Exception as exc:
            self._log.debug("Ignoring error while closing HTTP session: %s", exc)

    # ---- diagnostics ----
    def check_stale(self) -> bool:
        """Warn when no fetch has started for more than two intervals.

        Returns ``True`` when the loop is stale. The warning itself is
        rate-limited to one per second.
        """
        if self._last_fetch_at is None:
            return False
        now = self._clock()
        elapsed_ms = (now - self._last_fetch_at) * 1000.0
        if elapsed_ms <= 2 * self.cfg.interval_ms:
            return False
        if self._last_stale_log_at is None or now - self._last_stale_log_at >= STALE_LOG_PERIOD_S:
            self._last_stale_log_at = now
            self._log.warning(
                "No metrics fetch for %.0f ms (interval %d ms)", elapsed_ms, self.cfg.interval_ms
            )
        return True

    def close(self) -> None:
        with self._fetch_lock:
            self._discard_session()
        self.state = PollerState.IDLE


__all__ = [
    "MIN_INTERVAL_MS",
    "PollOutcome",
    "PollerConfig",
    "PollerState",
    "SessionFactory",
    "TelemetryPoller",
]
