"""
vault-hwi settings.

All configuration is read from the environment (and an optional .env file)
once, when `Settings()` is instantiated, and validated immediately so a bad
address or probe name fails at startup instead of during discovery.

Usage:
    from vault_hwi.settings import Settings

    settings = Settings()
    host, port = parse_address(settings.NETWORK_SIGNER_ADDRESS)
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_NETWORK_SIGNER_ADDRESS = "127.0.0.1:8080"
DEFAULT_SIMULATOR_ADDRESS = "127.0.0.1:8789"

# USB identifiers of the line-protocol hardware wallet.
DEFAULT_SERIAL_VID = 61525
DEFAULT_SERIAL_PID = 38914
DEFAULT_SERIAL_BAUD_RATE = 9600

PROBE_NETWORK_SIGNER = "network_signer"
PROBE_SIMULATOR = "simulator"
PROBE_SERIAL = "serial"
KNOWN_PROBES = (PROBE_NETWORK_SIGNER, PROBE_SIMULATOR, PROBE_SERIAL)


class SettingsValidationError(Exception):
    """Raised when settings validation fails."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        super().__init__(f"Invalid configuration for {field}={value!r}: {message}")


def _parse_int(value: str | None, default: int | None = None) -> int | None:
    """Parse an integer from environment variable."""
    if value is None or value.strip() == "":
        return default
    try:
        return int(value.strip(), 0)  # Support hex with 0x prefix
    except ValueError:
        return default


def _parse_float(value: str | None, default: float | None = None) -> float | None:
    """Parse a float from environment variable."""
    if value is None or value.strip() == "":
        return default
    try:
        return float(value.strip())
    except ValueError:
        return default


def _parse_csv_list(value: str | None, default: Tuple[str, ...]) -> Tuple[str, ...]:
    """Parse an ordered comma-separated list of lowercase names."""
    if value is None or value.strip() == "":
        return default
    return tuple(v.strip().lower() for v in value.split(",") if v.strip())


def parse_address(address: str) -> Tuple[str, int]:
    """
    Split "host:port" into its parts.

    IPv6 hosts must be bracketed: "[::1]:8080".
    """
    s = (address or "").strip()
    host, sep, port_s = s.rpartition(":")
    if not sep or not host or not port_s.isdigit():
        raise ValueError(f"expected host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    port = int(port_s)
    if not (1 <= port <= 65535):
        raise ValueError(f"port out of range in {address!r}")
    return host, port


@dataclass
class Settings:
    """
    Backend discovery and driver settings.
    """

    NETWORK_SIGNER_ADDRESS: str = field(
        default_factory=lambda: os.getenv("NETWORK_SIGNER_ADDRESS", DEFAULT_NETWORK_SIGNER_ADDRESS).strip()
    )
    SIMULATOR_ADDRESS: str = field(default_factory=lambda: os.getenv("SIMULATOR_ADDRESS", DEFAULT_SIMULATOR_ADDRESS).strip())

    SERIAL_VID: int = field(default_factory=lambda: _parse_int(os.getenv("SERIAL_VID"), DEFAULT_SERIAL_VID))
    SERIAL_PID: int = field(default_factory=lambda: _parse_int(os.getenv("SERIAL_PID"), DEFAULT_SERIAL_PID))
    SERIAL_BAUD_RATE: int = field(
        default_factory=lambda: _parse_int(os.getenv("SERIAL_BAUD_RATE"), DEFAULT_SERIAL_BAUD_RATE)
    )

    # Probe order for discovery; drop a name to skip that backend.
    HWI_DISCOVERY_ORDER: Tuple[str, ...] = field(
        default_factory=lambda: _parse_csv_list(os.getenv("HWI_DISCOVERY_ORDER"), KNOWN_PROBES)
    )

    # Unset means no deadline: an unresponsive device blocks the caller.
    HWI_CALL_TIMEOUT_SEC: float | None = field(default_factory=lambda: _parse_float(os.getenv("HWI_CALL_TIMEOUT_SEC")))

    HWI_LOG_LEVEL: str = field(default_factory=lambda: os.getenv("HWI_LOG_LEVEL", "info").strip().lower())
    HWI_SERVICE_NAME: str = field(default_factory=lambda: os.getenv("HWI_SERVICE_NAME", "vault-hwi").strip())

    def __post_init__(self) -> None:
        self._validate()

    def _validate(self) -> None:
        errors: list[str] = []

        for name in ("NETWORK_SIGNER_ADDRESS", "SIMULATOR_ADDRESS"):
            try:
                parse_address(getattr(self, name))
            except ValueError as e:
                errors.append(f"{name}: {e}")

        for name in ("SERIAL_VID", "SERIAL_PID"):
            value = getattr(self, name)
            if not (0 <= value <= 0xFFFF):
                errors.append(f"{name} must be a 16-bit USB identifier, got {value}")

        if self.SERIAL_BAUD_RATE <= 0:
            errors.append(f"SERIAL_BAUD_RATE must be positive, got {self.SERIAL_BAUD_RATE}")

        unknown = [p for p in self.HWI_DISCOVERY_ORDER if p not in KNOWN_PROBES]
        if unknown:
            errors.append(f"HWI_DISCOVERY_ORDER has unknown probes {unknown}; known: {list(KNOWN_PROBES)}")
        if len(set(self.HWI_DISCOVERY_ORDER)) != len(self.HWI_DISCOVERY_ORDER):
            errors.append("HWI_DISCOVERY_ORDER lists a probe twice")

        if self.HWI_CALL_TIMEOUT_SEC is not None and self.HWI_CALL_TIMEOUT_SEC <= 0:
            errors.append(f"HWI_CALL_TIMEOUT_SEC must be positive, got {self.HWI_CALL_TIMEOUT_SEC}")

        if errors:
            raise SettingsValidationError("MULTIPLE", None, "; ".join(errors))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for key in dir(self):
            if key.startswith("_") or key.isupper() is False:
                continue
            value = getattr(self, key)
            result[key] = list(value) if isinstance(value, tuple) else value
        return result
