"""famseries.config

Configuration for the recurrence engine, its stores and the batch job.

- Reads YAML with PyYAML (``safe_load`` also accepts JSON documents).
- Exposes a typed dataclass ``Config`` and a ``load_config()`` helper that
  accepts an optional path override.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

from .dateutils import WEEKDAY_KEYS

logger = logging.getLogger(__name__)

CONFIG_ENV = "FAMSERIES_CONFIG"
DEFAULT_CONFIG_PATH = Path("famseries.yaml")


@dataclass
class Config:
    """Typed configuration for famseries.

    Fields:
        store_path: JSON store file used by the CLI (None keeps state in memory)
        max_expansion_days: widest window a single expansion may cover (1..3660)
        default_window_days: window length used when a caller gives no end date
        batch_size: rows generated per series per batch job run (1..366)
        max_instances: per-series cap on instances returned by one engine call
        week_start: weekday that starts a week bucket for weekly intervals
        log_level: logging level name
    """

    store_path: Optional[str] = None
    max_expansion_days: int = 731
    default_window_days: int = 14
    batch_size: int = 7
    max_instances: int = 1000
    week_start: str = "monday"
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Optional[dict[str, Any]]) -> Config:
        """Create Config from a plain mapping, applying defaults and bounds.

        Numeric-like values are coerced to int; out-of-range values are clamped
        with a warning rather than rejected.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low:
                logger.warning("Config %s %d below minimum; coercing to %d", key, value, low)
                return low
            if value > high:
                logger.warning("Config %s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        week_start = str(data.get("week_start") or "monday").lower()
        if week_start not in WEEKDAY_KEYS:
            logger.warning("Config week_start=%r is not a weekday; using monday", week_start)
            week_start = "monday"

        store_path = data.get("store_path")
        log_level = data.get("log_level", "INFO")

        return cls(
            store_path=str(store_path) if store_path else None,
            max_expansion_days=_coerce_int("max_expansion_days", 731, 1, 3660),
            default_window_days=_coerce_int("default_window_days", 14, 1, 366),
            batch_size=_coerce_int("batch_size", 7, 1, 366),
            max_instances=_coerce_int("max_instances", 1000, 1, 100000),
            week_start=week_start,
            log_level=str(log_level).upper() if log_level is not None else "INFO",
        )


def load_config(path: str | os.PathLike[str] | None = None) -> Config:
    """Load configuration from a YAML file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to $FAMSERIES_CONFIG,
              then ./famseries.yaml.

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    if path:
        p = Path(path)
    elif os.environ.get(CONFIG_ENV):
        p = Path(os.environ[CONFIG_ENV])
    else:
        p = Path.cwd() / DEFAULT_CONFIG_PATH
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    logger.debug("Configuration values: %s", cfg)
    return cfg
