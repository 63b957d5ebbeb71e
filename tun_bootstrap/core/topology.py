"""Tunnel topology selection."""

from dataclasses import dataclass
from typing import Optional, Union

from .allocator import LocalAllocation
from ..config.models import TopologyMode
from ..utils.exceptions import ConfigurationError


@dataclass(frozen=True)
class TunnelEndpoint:
    """Remote side of the tunnel."""
    server_address: str
    target_port: int
    relay_port: Optional[int] = None


@dataclass(frozen=True)
class DirectTopology:
    """TUN service forwards straight to the remote target."""
    forward_to: str


@dataclass(frozen=True)
class RelayHop:
    """Relay connector over TLS to the remote relay port."""
    relay_address: str
    tls_server_name: str
    transport: str = "tls"


@dataclass(frozen=True)
class RelayedTopology:
    """TUN service forwards to a local port, egress goes through the relay hop."""
    local_forward_to: int
    relay_hop: RelayHop


TunnelTopology = Union[DirectTopology, RelayedTopology]


def build_endpoint(server_address: str, allocation: LocalAllocation, relay_port: Optional[int] = None) -> TunnelEndpoint:
    return TunnelEndpoint(server_address=server_address, target_port=allocation.target_port, relay_port=relay_port)


def select_topology(mode: TopologyMode, endpoint: TunnelEndpoint, tls_server_name: Optional[str] = None) -> TunnelTopology:
    """
    Build the topology for the chosen mode.

    Args:
        mode: Topology mode chosen during validation
        endpoint: Remote side, with server_address already resolved for routing
        tls_server_name: Name the relay certificate is verified against,
            defaults to endpoint.server_address

    Returns:
        DirectTopology or RelayedTopology
    """
    if mode is TopologyMode.DIRECT:
        return DirectTopology(forward_to=f"{endpoint.server_address}:{endpoint.target_port}")

    if endpoint.relay_port is None:
        raise ConfigurationError("Relayed topology requires RELAY_PORT")

    return RelayedTopology(
        local_forward_to=endpoint.target_port,
        relay_hop=RelayHop(
            relay_address=f"{endpoint.server_address}:{endpoint.relay_port}",
            tls_server_name=tls_server_name or endpoint.server_address
        )
    )
