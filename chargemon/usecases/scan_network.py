"""Discovery use case: find the hub on the local /24.

``ScanNetwork`` first re-checks the address remembered by the address book.
Only when that fails does it fan probes out over hosts 1..254, one worker per
contiguous shard, and block until every worker has finished.

Dependencies:
    - ``concurrent.futures.ThreadPoolExecutor`` for the shard workers.
    - A ``ProbePort`` (``DeviceProbe`` at runtime) and an ``AddressStorePort``.

Call context:
    - Invoked by ``MonitorSession.tick`` after the link comes up or after the
      poller keeps failing against the current address; also by the CLI
      ``scan`` command.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor, wait
from typing import Callable, List, Optional

from chargemon.domain.discovery import ScanEvent, ScanResult, normalize_prefix, shard_ranges
from chargemon.domain.errors import PersistenceError
from chargemon.domain.ports import AddressStorePort, ProbePort, ScanCallback

DEFAULT_SHARDS = 3

ExecutorFactory = Callable[[int], Executor]


def _default_executor(workers: int) -> Executor:
    return ThreadPoolExecutor(max_workers=workers, thread_name_prefix="scan")


class _ShardState:
    """Shared bookkeeping for one fallback scan."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.stop = threading.Event()
        self.found: Optional[str] = None
        self.events: List[ScanEvent] = []
        self.probes = 0


class ScanNetwork:
    """Use case: locate the hub, preferring the cached address."""

    def __init__(
        self,
        probe: ProbePort,
        address_book: AddressStorePort,
        *,
        shards: int = DEFAULT_SHARDS,
        stop_on_first: bool = False,
        executor_factory: Optional[ExecutorFactory] = None,
    ) -> None:
        """Bind the probe and address book.

        Args:
            probe: Callable returning ``True`` when an address is the hub.
            address_book: Store consulted for the fast path and updated with
                the first confirmed address.
            shards: Number of concurrent workers over the host range.
            stop_on_first: Let workers skip their remaining addresses once
                any worker has confirmed the hub.
            executor_factory: Builds the executor for ``shards`` workers.
        """
        if shards < 1:
            raise ValueError("shards must be >= 1")
        self._probe = probe
        self._book = address_book
        self._shards = shards
        self._stop_on_first = stop_on_first
        self._executor_factory = executor_factory or _default_executor
        self._log = logging.getLogger(__name__)

    def __call__(
        self,
        prefix: str,
        callback: Optional[ScanCallback] = None,
        *,
        skip_validation: bool = False,
    ) -> ScanResult:
        """Scan ``prefix`` (``"192.168.1."``) for the hub.

        Args:
            prefix: First three octets of the network.
            callback: Invoked as ``callback(address, success)``; from worker
                threads on the fallback path, ascending within a shard.
            skip_validation: The caller already validated the cached address
                in this link session; report it without probing.

        Returns:
            ScanResult: Hit (if any), collected events and probe count.

        Raises:
            ValueError: The fallback path is needed and ``prefix`` is invalid.
        """
        cached = self._load_cached()
        if cached:
            result = self._fast_path(cached, callback, skip_validation)
            if result is not None:
                return result
            self._log.warning("Saved address %s no longer answers, rescanning", cached)
        else:
            self._log.info("No saved hub address, scanning network")

        base = normalize_prefix(prefix)
        return self._scan_range(base, callback, cached)

    # ---- fast path ----
    def _load_cached(self) -> Optional[str]:
        try:
            return self._book.get()
        except PersistenceError as exc:
            self._log.warning("Address book unreadable (%s); ignoring cache", exc)
            return None

    def _fast_path(
        self, cached: str, callback: Optional[ScanCallback], skip_validation: bool
    ) -> Optional[ScanResult]:
        if skip_validation:
            self._log.info("Using saved address %s without re-validation", cached)
            self._notify(callback, cached, True)
            return ScanResult(
                found_address=cached,
                events=[ScanEvent(cached, True)],
                used_cache=True,
            )

        self._log.info("Validating saved address %s", cached)
        ok = self._safe_probe(cached)
        if not ok:
            return None
        self._notify(callback, cached, True)
        return ScanResult(
            found_address=cached,
            events=[ScanEvent(cached, True)],
            probes=1,
            used_cache=True,
        )

    # ---- fallback path ----
    def _scan_range(
        self, base: str, callback: Optional[ScanCallback], cached: Optional[str]
    ) -> ScanResult:
        ranges = shard_ranges(self._shards)
        state = _ShardState()
        failed = False
        # the failed cache probe counts
        probes_before = 1 if cached else 0

        executor = self._executor_factory(len(ranges))
        futures: List[Future] = []
        try:
            for shard_id, (start, end) in enumerate(ranges):
                self._log.debug("Starting shard %d: %s%d-%s%d", shard_id, base, start, base, end)
                try:
                    futures.append(
                        executor.submit(
                            self._scan_shard, shard_id, base, start, end, state, callback, cached
                        )
                    )
                except RuntimeError as exc:
                    self._log.error("Could not start scan shard %d: %s", shard_id, exc)
                    failed = True
                    # workers already running wind down early
                    state.stop.set()
                    break
            wait(futures)
        finally:
            executor.shutdown(wait=True)

        for fut in futures:
            exc = fut.exception()
            if exc is not None:
                self._log.error("Scan shard crashed: %s", exc)
                failed = True

        result = ScanResult(
            found_address=state.found,
            events=list(state.events),
            probes=state.probes + probes_before,
            failed=failed,
        )
        if result.found:
            self._log.info("Scan of %s* found hub at %s (%d probes)", base, result.found_address, result.probes)
        else:
            self._log.warning("Scan of %s* found no hub (%d probes)", base, result.probes)
        return result

    def _scan_shard(
        self,
        shard_id: int,
        base: str,
        start: int,
        end: int,
        state: _ShardState,
        callback: Optional[ScanCallback],
        cached: Optional[str],
    ) -> None:
        for host in range(start, end + 1):
            if state.stop.is_set() and (self._stop_on_first or state.found is None):
                break
            address = f"{base}{host}"
            ok = self._safe_probe(address)
            first = False
            with state.lock:
                state.probes += 1
                state.events.append(ScanEvent(address, ok, shard_id))
                if ok and state.found is None:
                    state.found = address
                    first = True
                    if self._stop_on_first:
                        state.stop.set()
            if first:
                self._remember(address, cached)
            self._notify(callback, address, ok)
        self._log.debug("Shard %d finished (%s%d-%s%d)", shard_id, base, start, base, end)

    # ---- helpers ----
    def _safe_probe(self, address: str) -> bool:
        try:
            return bool(self._probe(address))
        except Exception:
            self._log.exception("Probe of %s raised", address)
            return False

    def _notify(self, callback: Optional[ScanCallback], address: str, ok: bool) -> None:
        if callback is None:
            return
        try:
            callback(address, ok)
        except Exception:
            self._log.exception("Scan callback failed for %s", address)

    def _remember(self, address: str, cached: Optional[str]) -> None:
        if address == cached:
            return
        try:
            self._book.set(address)
        except (PersistenceError, ValueError) as exc:
            self._log.error("Could not save hub address %s: %s", address, exc)


__all__ = ["DEFAULT_SHARDS", "ScanNetwork"]
