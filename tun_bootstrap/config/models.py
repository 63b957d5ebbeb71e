"""Configuration data models."""

import ipaddress
from dataclasses import dataclass
from enum import Enum
from typing import Optional

GOST_LOG_LEVELS = ("trace", "debug", "info", "warn", "error", "fatal")


class TopologyMode(str, Enum):
    """How the TUN service reaches the remote server."""
    DIRECT = "direct"
    RELAYED = "relayed"


class AllocationProfile(str, Enum):
    """Where the local tunnel address and target port come from."""
    SERVICE_ID = "service_id"
    EXPLICIT = "explicit"


def _check_port(name: str, port: Optional[int]) -> None:
    if port is not None and not (1 <= port <= 65535):
        raise ValueError(f"{name} must be between 1 and 65535")


@dataclass
class TunnelConfig:
    """Validated tunnel parameters."""
    mode: TopologyMode
    server_address: str
    service_id: Optional[int] = None
    relay_port: Optional[int] = None
    target_port: Optional[int] = None
    local_ip: Optional[str] = None

    def __post_init__(self):
        """Validate tunnel parameters after initialization."""
        if not self.server_address:
            raise ValueError("SERVER_IP cannot be empty")

        if self.service_id is not None and not (0 <= self.service_id <= 9):
            raise ValueError("SERVICE_ID must be a single decimal digit (0-9)")

        _check_port("RELAY_PORT", self.relay_port)
        _check_port("TARGET_PORT", self.target_port)

        if self.mode is TopologyMode.DIRECT:
            if self.relay_port is not None:
                raise ValueError("RELAY_PORT is only valid in relayed mode")
            if self.service_id is None:
                raise ValueError("SERVICE_ID is required in direct mode")

        if self.mode is TopologyMode.RELAYED and self.relay_port is None:
            raise ValueError("RELAY_PORT is required in relayed mode")

        if self.service_id is None and (self.local_ip is None or self.target_port is None):
            raise ValueError("Either SERVICE_ID or both LOCAL_IP and TARGET_PORT are required")

        if self.local_ip is not None:
            try:
                ipaddress.IPv4Address(self.local_ip)
            except ipaddress.AddressValueError as e:
                raise ValueError(f"LOCAL_IP must be an IPv4 address: {e}") from e

    @property
    def profile(self) -> AllocationProfile:
        """Allocation profile implied by the supplied parameters."""
        if self.service_id is None:
            return AllocationProfile.EXPLICIT
        return AllocationProfile.SERVICE_ID


@dataclass
class EngineConfig:
    """gost engine settings."""
    binary: str = "gost"
    config_path: str = "gost.yml"
    log_level: str = "info"

    def __post_init__(self):
        """Validate engine settings after initialization."""
        if not self.binary:
            raise ValueError("GOST_BINARY cannot be empty")

        if not self.config_path:
            raise ValueError("GOST_CONFIG_PATH cannot be empty")

        if self.log_level not in GOST_LOG_LEVELS:
            raise ValueError(f"GOST_LOG_LEVEL must be one of {', '.join(GOST_LOG_LEVELS)}")


@dataclass
class AppConfig:
    """Complete application configuration."""
    tunnel: TunnelConfig
    engine: EngineConfig
    dry_run: bool = False
