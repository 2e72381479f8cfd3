"""
Persistent configuration for the monitor.

Settings live in a small JSON file in the platform's config directory. The
file is optional; anything missing falls back to the defaults below.
"""

import json
import logging
import os
import platform
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from .core import DEFAULT_DEVICE_ADDRESS, DEFAULT_STEP_TIMEOUT, DeviceIdentity
from .supervisor import BackoffRetry, ImmediateRetry, RetryPolicy

logger = logging.getLogger(__name__)

_NUMERIC_KEYS = ("step_timeout", "retry_delay", "retry_factor", "max_retry_delay", "max_attempts")
_UNLIMITED_IF_ZERO = ("step_timeout", "max_attempts")


@dataclass
class MonitorConfig:
    """User-tunable monitor settings.

    A ``retry_delay`` of 0 with no ``max_attempts`` reconnects immediately
    and forever; any other combination uses exponential backoff.
    """

    address: str = DEFAULT_DEVICE_ADDRESS
    name: Optional[str] = None
    step_timeout: Optional[float] = DEFAULT_STEP_TIMEOUT
    retry_delay: float = 0.0
    retry_factor: float = 2.0
    max_retry_delay: float = 30.0
    max_attempts: Optional[int] = None

    @property
    def identity(self) -> DeviceIdentity:
        return DeviceIdentity(self.address, self.name)

    def retry_policy(self) -> RetryPolicy:
        """Build the retry policy these settings describe."""
        if self.retry_delay <= 0 and self.max_attempts is None:
            return ImmediateRetry()
        return BackoffRetry(
            initial=max(self.retry_delay, 0.0),
            factor=self.retry_factor,
            max_delay=max(self.max_retry_delay, self.retry_delay),
            max_attempts=self.max_attempts,
        )

    @classmethod
    def from_dict(cls, data: dict) -> "MonitorConfig":
        """Build config from a dict, ignoring unknown keys.

        A ``step_timeout`` or ``max_attempts`` of 0 (or less) means no limit,
        as on the command line.

        Raises:
            ValueError: If a numeric setting holds something else
        """
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {', '.join(sorted(unknown))}")
        values = {key: value for key, value in data.items() if key in known}

        for key in _NUMERIC_KEYS:
            if key not in values:
                continue
            value = values[key]
            if value is None and key in _UNLIMITED_IF_ZERO:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"{key} must be a number, got {value!r}")
            if key == "max_attempts" and not isinstance(value, int):
                raise ValueError(f"max_attempts must be a whole number, got {value!r}")

        for key in _UNLIMITED_IF_ZERO:
            if values.get(key) is not None and values[key] <= 0:
                values[key] = None

        return cls(**values)

    def to_dict(self) -> dict:
        return asdict(self)


def get_config_dir() -> Path:
    """Get the platform config directory for ftmsmon."""
    # Check XDG_CONFIG_HOME first (Linux/Unix standard)
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "ftmsmon"

    system = platform.system()
    if system == "Darwin":  # macOS
        return Path.home() / "Library" / "Application Support" / "ftmsmon"
    if system == "Windows":
        appdata = os.environ.get("APPDATA", str(Path.home() / "AppData" / "Roaming"))
        return Path(appdata) / "ftmsmon"
    return Path.home() / ".config" / "ftmsmon"


def get_config_file() -> Path:
    """Get the config file path."""
    return get_config_dir() / "config.json"


def load_config(path: Optional[Path] = None) -> MonitorConfig:
    """Load configuration, falling back to defaults if unreadable.

    Args:
        path: Config file to read (platform default if None)
    """
    config_file = path or get_config_file()
    if not config_file.exists():
        return MonitorConfig()

    try:
        with open(config_file, "r") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("top level is not an object")
        return MonitorConfig.from_dict(data)
    except (OSError, ValueError, TypeError) as e:
        logger.warning(f"Failed to load config from {config_file}: {e}")
        return MonitorConfig()


def save_config(config: MonitorConfig, path: Optional[Path] = None) -> None:
    """Save configuration to file.

    Args:
        config: Settings to persist
        path: Config file to write (platform default if None)
    """
    config_file = path or get_config_file()
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, "w") as f:
            json.dump(config.to_dict(), f, indent=2)
        logger.info(f"Saved config to {config_file}")
    except OSError as e:
        logger.warning(f"Failed to save config: {e}")


def clear_config(path: Optional[Path] = None) -> bool:
    """Delete the config file.

    Returns:
        True if a file was removed
    """
    config_file = path or get_config_file()
    try:
        if config_file.exists():
            config_file.unlink()
            logger.info("Cleared saved config")
            return True
    except OSError as e:
        logger.warning(f"Failed to clear config: {e}")
    return False
