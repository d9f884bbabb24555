"""Console display collaborator: one summary line per port snapshot."""

from __future__ import annotations

import sys
from typing import Optional, TextIO

from chargemon.domain.telemetry import (
    MAX_PORT_WATTS,
    MAX_TOTAL_WATTS,
    ConnectivityState,
    PortSnapshot,
)

_STATE_LABELS = {
    ConnectivityState.DISCONNECTED: "offline",
    ConnectivityState.CONNECTING: "connecting",
    ConnectivityState.CONNECTED: "ok",
    ConnectivityState.DATA_ERROR: "data error",
}


class ConsoleDisplay:
    """Render snapshots as text; reads the model only through snapshots."""

    def __init__(
        self,
        stream: Optional[TextIO] = None,
        *,
        max_total_watts: float = MAX_TOTAL_WATTS,
        max_port_watts: float = MAX_PORT_WATTS,
    ) -> None:
        self.stream = stream or sys.stdout
        self.max_total_watts = max_total_watts
        self.max_port_watts = max_port_watts

    def format_line(self, snapshot: PortSnapshot, state: ConnectivityState) -> str:
        parts = [f"[{_STATE_LABELS.get(state, state.value)}]"]
        for view in snapshot.ports:
            parts.append(
                f"{view.name}:{view.power_w:5.2f}W/{view.load_percent(self.max_port_watts):3d}%"
                f"({view.voltage_band})"
            )
        parts.append(
            f"Total:{snapshot.total_w:6.2f}W/{snapshot.total_percent(self.max_total_watts):3d}%"
        )
        return " ".join(parts)

    def render(self, snapshot: PortSnapshot, state: ConnectivityState) -> None:
        self.stream.write(self.format_line(snapshot, state) + "\n")
        self.stream.flush()


__all__ = ["ConsoleDisplay"]
