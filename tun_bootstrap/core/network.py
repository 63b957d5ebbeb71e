"""Network utilities and validation functions."""

import ipaddress
import socket

from ..utils.logging import get_logger
from ..utils.exceptions import DiscoveryError

logger = get_logger("core.network")


def is_ipv4_address(value: str) -> bool:
    try:
        ipaddress.IPv4Address(value)
        return True
    except ipaddress.AddressValueError:
        return False


def resolve_hostname(hostname: str) -> str:
    """
    Resolve hostname to IPv4 address.

    Args:
        hostname: Hostname or IPv4 literal to resolve

    Returns:
        IP address as string

    Raises:
        DiscoveryError: If hostname cannot be resolved
    """
    if is_ipv4_address(hostname):
        return hostname

    try:
        ip = socket.gethostbyname(hostname)
        logger.info(f"Resolved {hostname} to {ip}")
        return ip
    except (socket.gaierror, UnicodeError) as e:
        logger.error(f"Failed to resolve hostname {hostname}: {e}")
        raise DiscoveryError(f"Failed to resolve hostname {hostname}: {e}") from e
