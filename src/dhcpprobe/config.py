"""
Configuration management for dhcpprobe.

Probe defaults can come from environment variables (or a .env file);
command line options override them.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from netaddr import EUI, AddrFormatError

# number of packets to try sending
TRIES_MIN = 1
TRIES_MAX = 32
TRIES_DEFAULT = 3

# how long between packet sends (seconds)
INTERVAL_MIN = 1
INTERVAL_MAX = 10
INTERVAL_DEFAULT = 2

# maximum wait time (seconds)
MAXWAIT_MIN = 3
MAXWAIT_MAX = 60
MAXWAIT_DEFAULT = 8

ENV_LOCATIONS = [
    Path.home() / ".dhcpprobe" / ".env",
    Path.home() / ".config" / "dhcpprobe" / ".env",
    Path.cwd() / ".env",
]


class ConfigError(Exception):
    """Invalid probe configuration."""
    pass


def _check_range(name: str, value: int, low: int, high: int, unit: str = ""):
    if value < low:
        raise ConfigError(f"{name} {value}{unit}: too small")
    if value > high:
        raise ConfigError(f"{name} {value}{unit}: too large")


@dataclass
class ProbeConfig:
    """Validated input for a single probe run."""

    mac: str
    server: str
    local: str | None = None

    interval: int = INTERVAL_DEFAULT
    retries: int = TRIES_DEFAULT
    maxwait: int = MAXWAIT_DEFAULT

    user: str | None = None
    verbose: bool = False

    def validate(self) -> "ProbeConfig":
        """
        Check bounds and the retry budget against the maximum wait.

        Raises:
            ConfigError: first problem found
        """
        _check_range("interval", self.interval, INTERVAL_MIN, INTERVAL_MAX, " s")
        _check_range("tries", self.retries, TRIES_MIN, TRIES_MAX)
        _check_range("wait", self.maxwait, MAXWAIT_MIN, MAXWAIT_MAX, " s")

        if self.retries * self.interval > self.maxwait:
            raise ConfigError(
                f"tries {self.retries} by interval {self.interval} s > wait {self.maxwait} s"
            )

        # Parse once so a bad MAC fails before anything is opened
        self.mac_bytes
        return self

    @property
    def mac_bytes(self) -> bytes:
        """The hardware address as 6 packed bytes."""
        try:
            eui = EUI(self.mac)
        except (AddrFormatError, TypeError, ValueError):
            raise ConfigError(f"invalid mac {self.mac}") from None
        if eui.version != 48:
            raise ConfigError(f"invalid mac {self.mac}")
        return eui.packed


def load_env_file() -> Path | None:
    """Load the first .env file found in the usual locations."""
    for env_path in ENV_LOCATIONS:
        if env_path.exists():
            load_dotenv(env_path)
            return env_path
    return None


def _env_int(name: str) -> int | None:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return None
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name}={value!r}: not an integer") from None


def defaults_from_env() -> dict[str, Any]:
    """
    Read probe defaults from the environment.

    Only variables that are set appear in the result, so callers can
    layer the result over their own defaults.
    """
    load_env_file()

    env = {
        "interval": _env_int("DHCPPROBE_INTERVAL"),
        "retries": _env_int("DHCPPROBE_TRIES"),
        "maxwait": _env_int("DHCPPROBE_WAIT"),
        "local": os.getenv("DHCPPROBE_LOCAL") or None,
        "user": os.getenv("DHCPPROBE_USER") or None,
    }
    return {key: value for key, value in env.items() if value is not None}
