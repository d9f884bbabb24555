"""Raw TCP probe that recognizes the charging hub on one address.

A probe connects to the service port, sends a minimal ``GET /metrics`` and
looks for a token that only the hub's firmware emits. Every failure mode
(refused, timed out, wrong content) is a clean ``False``.

Dependencies:
    - ``socket`` for the bounded connect/read (the hub speaks plain HTTP/1.1
      and the probe must not outlive ``connect_timeout + read_timeout``).

Call context:
    - Invoked by ``ScanNetwork`` from its shard workers, concurrently.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from dataclasses import dataclass

from chargemon.domain.discovery import METRICS_PATH, is_ipv4
from chargemon.domain.errors import ProbeTimeout
from chargemon.domain.ports import ProbePort

DEVICE_TOKEN = "ionbridge_port_current"
SERVICE_PORT = 80


@dataclass(frozen=True)
class ProbeConfig:
    """Fixed parameters of one probe.

    Attributes:
        port: TCP service port of the metrics endpoint.
        path: Request path of the metrics endpoint.
        token: Substring proving the responder is the hub.
        connect_timeout_s: Upper bound for the TCP connect.
        read_timeout_s: Upper bound for send plus the whole response read.
        max_response_bytes: Bytes read before giving up on finding the token.
    """
    port: int = SERVICE_PORT
    path: str = METRICS_PATH
    token: str = DEVICE_TOKEN
    connect_timeout_s: float = 0.5
    read_timeout_s: float = 1.0
    max_response_bytes: int = 2048


@dataclass
class ProbeStats:
    attempts: int = 0
    hits: int = 0
    timeouts: int = 0
    refused: int = 0


class DeviceProbe(ProbePort):
    """Callable probe implementing ``ProbePort``. Thread-safe."""

    def __init__(self, cfg: ProbeConfig | None = None) -> None:
        self.cfg = cfg or ProbeConfig()
        self.stats = ProbeStats()
        self._stats_lock = threading.Lock()
        self._log = logging.getLogger(__name__)

    def __call__(self, address: str) -> bool:
        return self.check(address)

    def check(self, address: str) -> bool:
        """Return ``True`` iff ``address`` serves the hub's metrics document."""
        self._count("attempts")
        if not is_ipv4(address):
            self._log.debug("[%s] not an IPv4 address, skipping", address)
            return False

        try:
            sock = socket.create_connection(
                (address, self.cfg.port), timeout=self.cfg.connect_timeout_s
            )
        except socket.timeout:
            self._count("timeouts")
            self._log.debug("[%s] connect timed out", address)
            return False
        except OSError as exc:
            self._count("refused")
            self._log.debug("[%s] connect failed: %s", address, exc)
            return False

        with sock:
            try:
                response = self._exchange(sock, address)
            except (socket.timeout, ProbeTimeout):
                self._count("timeouts")
                self._log.debug("[%s] read timed out", address)
                return False
            except OSError as exc:
                self._log.debug("[%s] exchange failed: %s", address, exc)
                return False

        if self.cfg.token.encode("ascii") in response:
            self._count("hits")
            self._log.info("[%s] metrics token found, hub confirmed", address)
            return True
        self._log.debug("[%s] %d bytes without metrics token", address, len(response))
        return False

    def _exchange(self, sock: socket.socket, address: str) -> bytes:
        deadline = time.monotonic() + self.cfg.read_timeout_s
        request = (
            f"GET {self.cfg.path} HTTP/1.1\r\n"
            f"Host: {address}\r\n"
            "Connection: close\r\n\r\n"
        ).encode("ascii")
        sock.settimeout(self._remaining(deadline))
        sock.sendall(request)

        token = self.cfg.token.encode("ascii")
        limit = self.cfg.max_response_bytes
        buf = bytearray()
        while len(buf) < limit:
            sock.settimeout(self._remaining(deadline))
            chunk = sock.recv(min(1024, limit - len(buf)))
            if not chunk:
                break
            buf.extend(chunk)
            if token in buf:
                break
        return bytes(buf)

    @staticmethod
    def _remaining(deadline: float) -> float:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ProbeTimeout("probe read deadline exceeded")
        return remaining

    def _count(self, name: str) -> None:
        with self._stats_lock:
            setattr(self.stats, name, getattr(self.stats, name) + 1)


__all__ = ["DEVICE_TOKEN", "DeviceProbe", "ProbeConfig", "ProbeStats", "SERVICE_PORT"]
