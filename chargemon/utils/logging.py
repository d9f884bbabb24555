"""Root logger setup with environment overrides."""

from __future__ import annotations

import logging
import os
from typing import Optional

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_DATEFMT = "%H:%M:%S"
LEVEL_ENV_VAR = "CHARGEMON_LOG_LEVEL"
DEBUG_ENV_VAR = "CHARGEMON_DEBUG"
# chatty third-party loggers kept at WARNING unless we run at DEBUG
_NOISY_LOGGERS = ("urllib3", "urllib3.connectionpool")


def _coerce_level(value: Optional[str], fallback: int) -> int:
    text = (value or "").strip()
    if not text:
        return fallback
    if text.isdigit():
        return int(text)
    candidate = logging.getLevelName(text.upper())
    return candidate if isinstance(candidate, int) else fallback


def _env_truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def env_level() -> Optional[int]:
    """Level forced by the environment, or ``None`` if nothing is set."""
    explicit = os.getenv(LEVEL_ENV_VAR)
    if explicit:
        return _coerce_level(explicit, logging.INFO)
    if _env_truthy(os.getenv(DEBUG_ENV_VAR)):
        return logging.DEBUG
    return None


def _tune_library_loggers(level: int) -> None:
    lib_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(lib_level)


def configure_root(default_level: int | str = logging.INFO) -> int:
    """
    Configure the root logger with a compact format.

    Environment overrides:
      - CHARGEMON_LOG_LEVEL: explicit level name or number
      - CHARGEMON_DEBUG: truthy -> DEBUG
    """
    fallback = (
        _coerce_level(default_level, logging.INFO)
        if isinstance(default_level, str)
        else int(default_level)
    )
    forced = env_level()
    effective = forced if forced is not None else fallback

    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=effective, format=_FORMAT, datefmt=_DATEFMT)
    root.setLevel(effective)
    _tune_library_loggers(effective)
    return effective


def apply_preferences(debug_enabled: bool) -> int:
    """
    Update the root level from the ``debug_logging`` setting while honoring
    env overrides. Returns the effective level.
    """
    forced = env_level()
    level = forced if forced is not None else (logging.DEBUG if debug_enabled else logging.INFO)
    logging.getLogger().setLevel(level)
    _tune_library_loggers(level)
    return level


__all__ = ["DEBUG_ENV_VAR", "LEVEL_ENV_VAR", "apply_preferences", "configure_root", "env_level"]
