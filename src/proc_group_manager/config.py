"""PGM environment variable configuration.

Environment variables:
    PGM_GRACE_PERIOD: Seconds to wait for a natural exit before escalating
        - default 2.0, clamped to 0.05-60

    PGM_SETTLE_PERIOD: Seconds to wait after bulk kill signals
        - default 0.5, clamped to 0-10

    PGM_DEFAULT_TIMEOUT: Deadline used when callers pass no timeout
        - default 5.0, clamped to 0.1-300

    PGM_MONITOR_INTERVAL: Parent process poll interval in seconds
        - default 2.0, clamped to 0.1-60

    PGM_FORCE_BEST_EFFORT: Use the best-effort capability even where
        process groups are available
        - true/1/yes = on
        - false/0/no = off (default)

    PGM_LOG_DEBUG: Debug logging to a file
        - true/1/yes = on (logs go to a temp file at DEBUG level)
        - false/0/no = off (default, logs go to stderr)

    PGM_LOG_LEVEL: Level of the stderr handler (default INFO)
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_GRACE_PERIOD = 2.0
DEFAULT_SETTLE_PERIOD = 0.5
DEFAULT_TIMEOUT = 5.0
DEFAULT_MONITOR_INTERVAL = 2.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_seconds(
    value: str | None,
    default: float,
    minimum: float,
    maximum: float,
) -> float:
    """Parse a duration in seconds, clamped to [minimum, maximum].

    Args:
        value: Raw environment variable value
        default: Value used when unset or unparsable
        minimum: Lower bound
        maximum: Upper bound

    Returns:
        Duration in seconds
    """
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if seconds != seconds:  # NaN
        return default
    return max(minimum, min(seconds, maximum))


def _parse_log_level(value: str | None) -> int:
    """Parse a logging level name, falling back to INFO."""
    if not value:
        return logging.INFO
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


@dataclass
class Config:
    """PGM configuration.

    Attributes:
        grace_period: Phase 1 grace window (seconds)
        settle_period: Wait after bulk kill signals (seconds)
        default_timeout: Deadline used when none is given (seconds)
        monitor_interval: Parent monitor poll interval (seconds)
        force_best_effort: Skip process group support even if available
        log_debug: Debug logging to a temp file
        log_file: Log file path (set when log_debug=True)
        log_level: Level of the stderr handler
    """

    grace_period: float = DEFAULT_GRACE_PERIOD
    settle_period: float = DEFAULT_SETTLE_PERIOD
    default_timeout: float = DEFAULT_TIMEOUT
    monitor_interval: float = DEFAULT_MONITOR_INTERVAL
    force_best_effort: bool = False
    log_debug: bool = False
    log_file: str | None = None
    log_level: int = logging.INFO

    def __repr__(self) -> str:
        return (
            f"Config(grace_period={self.grace_period}, "
            f"settle_period={self.settle_period}, "
            f"default_timeout={self.default_timeout}, "
            f"monitor_interval={self.monitor_interval}, "
            f"force_best_effort={self.force_best_effort}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"log_level={logging.getLevelName(self.log_level)})"
        )


def _generate_log_file_path() -> str:
    """Build a timestamped log file path under the system temp dir."""
    log_dir = Path(tempfile.gettempdir()) / "proc-group-manager"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pgm_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """Load configuration from environment variables."""
    log_debug = _parse_bool(os.environ.get("PGM_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        grace_period=_parse_seconds(
            os.environ.get("PGM_GRACE_PERIOD"), DEFAULT_GRACE_PERIOD, 0.05, 60.0
        ),
        settle_period=_parse_seconds(
            os.environ.get("PGM_SETTLE_PERIOD"), DEFAULT_SETTLE_PERIOD, 0.0, 10.0
        ),
        default_timeout=_parse_seconds(
            os.environ.get("PGM_DEFAULT_TIMEOUT"), DEFAULT_TIMEOUT, 0.1, 300.0
        ),
        monitor_interval=_parse_seconds(
            os.environ.get("PGM_MONITOR_INTERVAL"), DEFAULT_MONITOR_INTERVAL, 0.1, 60.0
        ),
        force_best_effort=_parse_bool(
            os.environ.get("PGM_FORCE_BEST_EFFORT"), default=False
        ),
        log_debug=log_debug,
        log_file=log_file,
        log_level=_parse_log_level(os.environ.get("PGM_LOG_LEVEL")),
    )


# Lazily loaded global instance
_config: Config | None = None


def get_config() -> Config:
    """Return the global configuration instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload configuration from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
