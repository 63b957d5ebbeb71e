"""Local tunnel address and target port allocation."""

import ipaddress
import random
from dataclasses import dataclass
from typing import Optional

from ..config.models import AllocationProfile, TunnelConfig
from ..utils.exceptions import ConfigurationError
from ..utils.logging import get_logger

logger = get_logger("core.allocator")

BASE_TARGET_PORT = 8880
NETWORK_PREFIX_LENGTH = 24


@dataclass(frozen=True)
class LocalAllocation:
    """Local side of the tunnel, computed once at startup."""
    service_id: Optional[int]
    local_address: ipaddress.IPv4Interface
    target_port: int

    @property
    def network(self) -> ipaddress.IPv4Network:
        return self.local_address.network


def allocate(
        service_id: int,
        target_port: Optional[int] = None,
        rng: Optional[random.Random] = None
) -> LocalAllocation:
    """
    Derive the local tunnel address and target port from a service id.

    The network is 192.168.10<service_id>.0/24 and the target port defaults to
    8880 + service_id. The host octet is drawn at random from [1, 254] on every
    call, so two instances sharing the subnet are unlikely to collide.

    Args:
        service_id: Single decimal digit identifying the service
        target_port: Explicit target port overriding the derived one
        rng: Random source, the module-level generator when omitted

    Returns:
        The local allocation

    Raises:
        ConfigurationError: If service_id is not a single decimal digit
    """
    if isinstance(service_id, bool) or not isinstance(service_id, int) or not 0 <= service_id <= 9:
        raise ConfigurationError(f"SERVICE_ID must be a single decimal digit (0-9), got {service_id!r}")

    if target_port is None:
        target_port = BASE_TARGET_PORT + service_id
    elif not 1 <= target_port <= 65535:
        raise ConfigurationError(f"TARGET_PORT must be between 1 and 65535, got {target_port}")

    host = (rng or random).randint(1, 254)
    local_address = ipaddress.IPv4Interface(f"192.168.10{service_id}.{host}/{NETWORK_PREFIX_LENGTH}")

    logger.info(f"Allocated local address {local_address} with target port {target_port}")
    return LocalAllocation(service_id=service_id, local_address=local_address, target_port=target_port)


def explicit_allocation(local_ip: str, target_port: int) -> LocalAllocation:
    """Build an allocation from an operator-supplied local address and target port."""
    try:
        address = ipaddress.IPv4Address(local_ip)
    except ipaddress.AddressValueError as e:
        raise ConfigurationError(f"LOCAL_IP must be an IPv4 address: {e}") from e

    if not 1 <= target_port <= 65535:
        raise ConfigurationError(f"TARGET_PORT must be between 1 and 65535, got {target_port}")

    local_address = ipaddress.IPv4Interface(f"{address}/{NETWORK_PREFIX_LENGTH}")
    logger.info(f"Using explicit local address {local_address} with target port {target_port}")
    return LocalAllocation(service_id=None, local_address=local_address, target_port=target_port)


def allocate_for(config: TunnelConfig, rng: Optional[random.Random] = None) -> LocalAllocation:
    """Resolve either allocation profile into a LocalAllocation."""
    if config.profile is AllocationProfile.EXPLICIT:
        return explicit_allocation(config.local_ip, config.target_port)
    return allocate(config.service_id, config.target_port, rng=rng)
