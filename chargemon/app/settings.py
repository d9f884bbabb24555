"""Monitor settings: a flat JSON document coerced into ``MonitorSettings``.

Only keys declared on the dataclass are accepted. Values are coerced the same
way whether they come from the settings file or from CLI overrides, and the
refresh interval is clamped to the poller's 500 ms floor.
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from chargemon.usecases.monitor_session import DEFAULT_FALLBACK_URL
from chargemon.usecases.poll_telemetry import MIN_INTERVAL_MS

HOME_ENV_VAR = "CHARGEMON_HOME"
SETTINGS_ENV_VAR = "CHARGEMON_SETTINGS"
SETTINGS_FILENAME = "settings.json"


def default_data_dir() -> str:
    """Per-user data directory (``~/.chargemon`` unless ``CHARGEMON_HOME``)."""
    override = os.getenv(HOME_ENV_VAR)
    if override and override.strip():
        return override.strip()
    return str(Path.home() / ".chargemon")


def default_settings_path() -> Path:
    override = os.getenv(SETTINGS_ENV_VAR)
    if override and override.strip():
        return Path(override.strip())
    return Path(default_data_dir()) / SETTINGS_FILENAME


@dataclass
class MonitorSettings:
    """Every tunable of the monitor.

    Attributes:
        fallback_url: Metrics URL used before any hub has been discovered.
        refresh_interval_ms: Minimum spacing between fetches (>= 500).
        http_timeout_s: Connect/read timeout of one metrics GET.
        error_threshold: Consecutive fetch errors before the session rebuild.
        cooldown_ms: Quiet window after a failed fetch.
        scan_shards: Concurrent discovery workers over hosts 1..254.
        scan_stop_on_first: Stop remaining probes once a hub is confirmed.
        probe_port: TCP port probed during discovery.
        probe_connect_timeout_ms: Connect bound of one probe.
        probe_read_timeout_ms: Read bound of one probe.
        data_dir: Directory holding the address book.
        max_total_watts: Scale for the total load percentage.
        max_port_watts: Scale for per-port load percentages.
        debug_logging: Run the root logger at DEBUG.
    """
    fallback_url: str = DEFAULT_FALLBACK_URL
    refresh_interval_ms: int = MIN_INTERVAL_MS
    http_timeout_s: int = 5
    error_threshold: int = 5
    cooldown_ms: int = 1000
    scan_shards: int = 3
    scan_stop_on_first: bool = False
    probe_port: int = 80
    probe_connect_timeout_ms: int = 500
    probe_read_timeout_ms: int = 1000
    data_dir: str = ""
    max_total_watts: int = 160
    max_port_watts: int = 140
    debug_logging: bool = False

    def __post_init__(self) -> None:
        if not self.data_dir:
            self.data_dir = default_data_dir()

    @classmethod
    def field_names(cls) -> set:
        return {f.name for f in fields(cls)}

    def apply_dict(self, payload: Mapping[str, Any]) -> "MonitorSettings":
        """Return a copy with ``payload`` coerced and applied.

        Raises:
            ValueError: Unknown keys or values that cannot be coerced.
        """
        if not isinstance(payload, Mapping):
            raise ValueError("Settings payload must be a mapping of flat keys.")
        unknown = set(payload.keys()) - self.field_names()
        if unknown:
            raise ValueError(f"Unsupported settings keys: {', '.join(sorted(str(k) for k in unknown))}")

        updates: Dict[str, Any] = {}
        for key, raw in payload.items():
            updates[key] = _coerce_value(key, raw)
        return replace(self, **updates) if updates else replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_POSITIVE_INTS = {
    "http_timeout_s",
    "error_threshold",
    "scan_shards",
    "probe_port",
    "probe_connect_timeout_ms",
    "probe_read_timeout_ms",
    "max_total_watts",
    "max_port_watts",
}


def _coerce_value(key: str, raw: Any) -> Any:
    if key == "refresh_interval_ms":
        return max(MIN_INTERVAL_MS, _coerce_int(key, raw))
    if key == "cooldown_ms":
        value = _coerce_int(key, raw)
        if value < 0:
            raise ValueError("cooldown_ms must not be negative.")
        return value
    if key in _POSITIVE_INTS:
        value = _coerce_int(key, raw)
        if value <= 0:
            raise ValueError(f"{key} must be a positive integer.")
        return value
    if key in {"scan_stop_on_first", "debug_logging"}:
        return _coerce_bool(raw)
    if key == "fallback_url":
        text = _coerce_str(raw)
        if not text.startswith(("http://", "https://")):
            raise ValueError("fallback_url must be an http(s) URL.")
        return text
    if key == "data_dir":
        return _coerce_str(raw) or default_data_dir()
    raise ValueError(f"Unhandled settings field: {key}")


def _coerce_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        return value.strip().lower() in {"1", "true", "yes", "on"}
    return bool(value)


def _coerce_int(name: str, value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{name} must be an integer.")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ValueError(f"{name} must be an integer.") from exc
    raise ValueError(f"{name} must be an integer.")


def load_settings(path: Optional[Union[str, Path]] = None) -> MonitorSettings:
    """Read settings from ``path`` (defaults when the file does not exist).

    Raises:
        ValueError: The file is not valid JSON or holds invalid values.
    """
    target = Path(path) if path else default_settings_path()
    settings = MonitorSettings()
    if not target.exists():
        return settings
    with open(target, "r", encoding="utf-8") as f:
        try:
            payload = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Settings file {target} is not valid JSON: {exc}") from exc
    return settings.apply_dict(payload)


def save_settings(settings: MonitorSettings, path: Optional[Union[str, Path]] = None) -> Path:
    target = Path(path) if path else default_settings_path()
    target.parent.mkdir(parents=True, exist_ok=True)
    with open(target, "w", encoding="utf-8") as f:
        json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
    return target


__all__ = [
    "HOME_ENV_VAR",
    "MonitorSettings",
    "SETTINGS_ENV_VAR",
    "default_data_dir",
    "default_settings_path",
    "load_settings",
    "save_settings",
]
