"""Port telemetry model shared between the poller and the display.

The model owns one ``PortRecord`` per hub port plus the aggregate power. The
metrics parser is its only writer; display collaborators read immutable
``PortSnapshot`` copies on their own schedule.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple

MAX_PORTS = 5
PORT_NAMES: Tuple[str, ...] = ("A", "C1", "C2", "C3", "C4")

MAX_TOTAL_WATTS = 160
MAX_PORT_WATTS = 140


class ConnectivityState(str, Enum):
    """Coarse link/data status surfaced to the display."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DATA_ERROR = "data_error"


@dataclass
class PortRecord:
    """Mutable per-port record, owned by ``PortStateModel``.

    Attributes:
        id: Port index in ``0..MAX_PORTS-1``.
        name: Label printed on the hub (``A``, ``C1`` ...).
        state: Raw port state code reported by the firmware.
        fc_protocol: Raw fast-charge protocol code.
        current_ma: Output current in milliamps.
        voltage_mv: Output voltage in millivolts.
        power_w: Derived power in watts, recomputed on every parse pass.
    """

    id: int
    name: str
    state: int = 0
    fc_protocol: int = 0
    current_ma: int = 0
    voltage_mv: int = 0
    power_w: float = 0.0

    def recompute_power(self) -> float:
        self.power_w = self.current_ma * self.voltage_mv / 1_000_000.0
        return self.power_w


@dataclass(frozen=True)
class PortView:
    """Read-only copy of one port handed to display collaborators."""

    id: int
    name: str
    state: int
    fc_protocol: int
    current_ma: int
    voltage_mv: int
    power_w: float

    def load_percent(self, max_watts: float = MAX_PORT_WATTS) -> int:
        """Return power as a 0..100 share of ``max_watts``.

        Any non-zero power reports at least 1 so a trickle charge is still
        visible on a bar.
        """
        return _percent(self.power_w, max_watts)

    @property
    def voltage_band(self) -> str:
        return voltage_band(self.voltage_mv)


@dataclass(frozen=True)
class PortSnapshot:
    """Consistent view of all ports and their total at one instant."""

    ports: Tuple[PortView, ...]
    total_w: float
    updated_at: Optional[float] = None

    def total_percent(self, max_watts: float = MAX_TOTAL_WATTS) -> int:
        return _percent(self.total_w, max_watts)

    def port(self, name: str) -> PortView:
        for view in self.ports:
            if view.name == name:
                return view
        raise KeyError(name)


def voltage_band(voltage_mv: int) -> str:
    """Classify a port voltage into the bands the hub display distinguishes."""
    if voltage_mv < 0:
        return "unknown"
    if voltage_mv <= 6000:
        return "idle"
    if voltage_mv <= 10000:
        return "5v-9v"
    if voltage_mv <= 13000:
        return "12v"
    if voltage_mv <= 16000:
        return "15v"
    if voltage_mv <= 21000:
        return "20v"
    return "pps-high"


def _percent(value: float, max_value: float) -> int:
    if max_value <= 0 or value <= 0:
        return 0
    pct = int(value / max_value * 100)
    if pct == 0:
        return 1
    return min(pct, 100)


@dataclass
class PortStateModel:
    """Owner of the per-port records and the aggregate total.

    All writes happen under ``_lock`` so a display thread can call
    ``snapshot()`` while the poller parses.
    """

    clock: Callable[[], float] = time.time
    ports: List[PortRecord] = field(
        default_factory=lambda: [PortRecord(id=i, name=PORT_NAMES[i]) for i in range(MAX_PORTS)]
    )
    total_w: float = 0.0
    updated_at: Optional[float] = None

    def __post_init__(self) -> None:
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def set_field(self, port_id: int, attr: str, value: int) -> bool:
        """Write one raw field; ids outside the port range are rejected."""
        if not 0 <= port_id < MAX_PORTS:
            return False
        with self._lock:
            setattr(self.ports[port_id], attr, value)
        return True

    def recompute(self) -> float:
        """Recompute every port's power and the total from raw readings."""
        with self._lock:
            total = 0.0
            for record in self.ports:
                total += record.recompute_power()
            self.total_w = total
            self.updated_at = self.clock()
            return total

    def reset(self) -> None:
        with self._lock:
            for record in self.ports:
                record.state = 0
                record.fc_protocol = 0
                record.current_ma = 0
                record.voltage_mv = 0
                record.power_w = 0.0
            self.total_w = 0.0
            self.updated_at = None

    def snapshot(self) -> PortSnapshot:
        with self._lock:
            views = tuple(
                PortView(
                    id=r.id,
                    name=r.name,
                    state=r.state,
                    fc_protocol=r.fc_protocol,
                    current_ma=r.current_ma,
                    voltage_mv=r.voltage_mv,
                    power_w=r.power_w,
                )
                for r in self.ports
            )
            return PortSnapshot(ports=views, total_w=self.total_w, updated_at=self.updated_at)


__all__ = [
    "ConnectivityState",
    "MAX_PORTS",
    "MAX_PORT_WATTS",
    "MAX_TOTAL_WATTS",
    "PORT_NAMES",
    "PortRecord",
    "PortSnapshot",
    "PortStateModel",
    "PortView",
    "voltage_band",
]
