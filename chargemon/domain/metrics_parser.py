"""Parse the hub's exposition-format ``/metrics`` body into the port model.

Only four series are consumed, each keyed by a quoted port id::

    ionbridge_port_current{id="0"} 1500
    ionbridge_port_voltage{id="0"} 5000
    ionbridge_port_state{id="0"} 1
    ionbridge_port_fc_protocol{id="0"} 7

Malformed lines of a known series are skipped and counted; every other line
(comments, ``# HELP``/``# TYPE``, unrelated series) is ignored. After each
pass the model recomputes all powers and the total from scratch.
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from chargemon.domain.errors import ParseError
from chargemon.domain.telemetry import MAX_PORTS, PortStateModel

METRIC_CURRENT = "ionbridge_port_current"
METRIC_VOLTAGE = "ionbridge_port_voltage"
METRIC_STATE = "ionbridge_port_state"
METRIC_PROTOCOL = "ionbridge_port_fc_protocol"

# metric name -> PortRecord attribute
METRIC_FIELDS: Dict[str, str] = {
    METRIC_CURRENT: "current_ma",
    METRIC_VOLTAGE: "voltage_mv",
    METRIC_STATE: "state",
    METRIC_PROTOCOL: "fc_protocol",
}

_NAME_RE = re.compile(r"^([a-zA-Z_:][a-zA-Z0-9_:]*)\{")
_ID_RE = re.compile(r'(?:^|,)\s*id\s*=\s*"([^"]*)"')

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ParseReport:
    """Counters for one parse pass.

    Attributes:
        lines: Non-empty lines examined.
        applied: Values written into the model.
        skipped: Lines of a known series rejected as malformed or out of range.
    """

    lines: int = 0
    applied: int = 0
    skipped: int = 0


def parse_line(line: str) -> Optional[Tuple[str, int, int]]:
    """Split one line into ``(attribute, port_id, value)``.

    Returns ``None`` for lines that do not belong to a consumed series.

    Raises:
        ParseError: The line names a consumed series but is malformed.
    """
    match = _NAME_RE.match(line)
    if not match:
        return None
    attr = METRIC_FIELDS.get(match.group(1))
    if attr is None:
        return None

    close = line.find("}", match.end())
    if close < 0:
        raise ParseError("unterminated label block", line=line)
    labels = line[match.end():close]
    if labels.count('"') % 2:
        raise ParseError("unbalanced quotes in labels", line=line)
    id_match = _ID_RE.search(labels)
    if not id_match:
        raise ParseError("missing id label", line=line)
    try:
        port_id = int(id_match.group(1).strip())
    except ValueError:
        raise ParseError(f"non-numeric id {id_match.group(1)!r}", line=line) from None

    tail = line[close + 1:].split()
    if not tail:
        raise ParseError("missing value", line=line)
    try:
        number = float(tail[0])
    except ValueError:
        raise ParseError(f"non-numeric value {tail[0]!r}", line=line) from None
    if not math.isfinite(number):
        raise ParseError(f"non-finite value {tail[0]!r}", line=line)
    return attr, port_id, int(number)


def parse_metrics(body: Optional[str], model: PortStateModel) -> ParseReport:
    """Apply a metrics body to ``model`` and recompute derived power.

    A ``None`` or blank body leaves the model untouched so a failed fetch
    never shows recomputed garbage.
    """
    if body is None or not body.strip():
        _log.warning("Empty metrics payload; port state left unchanged")
        return ParseReport()

    lines = applied = skipped = 0
    with model.lock:
        for raw in body.splitlines():
            line = raw.strip()
            if not line:
                continue
            lines += 1
            try:
                parsed = parse_line(line)
            except ParseError as exc:
                skipped += 1
                _log.debug("Skipping metrics line (%s): %s", exc.message, exc.line)
                continue
            if parsed is None:
                continue
            attr, port_id, value = parsed
            if not 0 <= port_id < MAX_PORTS:
                skipped += 1
                _log.debug("Skipping out-of-range port id %d", port_id)
                continue
            model.set_field(port_id, attr, value)
            applied += 1
        total = model.recompute()

        if _log.isEnabledFor(logging.DEBUG):
            summary = ", ".join(
                f"{r.name}={r.power_w:.2f}W({r.current_ma}mA,{r.voltage_mv}mV)" for r in model.ports
            )
            _log.debug("Power info: %s, Total=%.2fW", summary, total)

    return ParseReport(lines=lines, applied=applied, skipped=skipped)


__all__ = [
    "METRIC_CURRENT",
    "METRIC_FIELDS",
    "METRIC_PROTOCOL",
    "METRIC_STATE",
    "METRIC_VOLTAGE",
    "ParseReport",
    "parse_line",
    "parse_metrics",
]
