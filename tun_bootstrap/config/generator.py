"""gost configuration generation utilities."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.allocator import LocalAllocation
from ..core.topology import DirectTopology, RelayedTopology, TunnelTopology
from ..utils.exceptions import EngineLaunchError
from ..utils.logging import get_logger

logger = get_logger("config.generator")

SERVICE_NAME = "tun-service"
FORWARD_NODE_NAME = "target-0"
CHAIN_NAME = "chain-0"
HOP_NAME = "hop-0"
RELAY_NODE_NAME = "node-0"
TUN_BUFFER_SIZE = 65535
CATCH_ALL_ROUTE = "0.0.0.0/0"


@dataclass
class NodeConfig:
    name: str
    addr: str
    connector: Optional[Dict[str, Any]] = None
    dialer: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name, "addr": self.addr}
        if self.connector is not None:
            data["connector"] = self.connector
        if self.dialer is not None:
            data["dialer"] = self.dialer
        return data


@dataclass
class HopConfig:
    name: str
    nodes: List[NodeConfig]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "nodes": [node.to_dict() for node in self.nodes]}


@dataclass
class ChainConfig:
    name: str
    hops: List[HopConfig]

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "hops": [hop.to_dict() for hop in self.hops]}


@dataclass
class ServiceConfig:
    """A gost service: TUN listener, TUN handler and a single-node forwarder."""
    name: str
    addr: str
    listener_net: str
    forward_nodes: List[NodeConfig]
    chain: Optional[str] = None
    buffer_size: int = TUN_BUFFER_SIZE
    keep_alive: bool = True
    route: str = CATCH_ALL_ROUTE

    def to_dict(self) -> Dict[str, Any]:
        handler: Dict[str, Any] = {"type": "tun"}
        if self.chain is not None:
            handler["chain"] = self.chain
        # gost reads TUN metadata values as strings
        handler["metadata"] = {
            "bufferSize": str(self.buffer_size),
            "keepAlive": "true" if self.keep_alive else "false",
        }

        return {
            "name": self.name,
            "addr": self.addr,
            "handler": handler,
            "listener": {
                "type": "tun",
                "metadata": {"net": self.listener_net, "route": self.route},
            },
            "forwarder": {"nodes": [node.to_dict() for node in self.forward_nodes]},
        }


@dataclass
class LogConfig:
    output: str = "stdout"
    level: str = "info"
    format: str = "text"

    def to_dict(self) -> Dict[str, Any]:
        return {"output": self.output, "level": self.level, "format": self.format}


@dataclass
class ForwardingConfig:
    """Declarative document consumed by gost."""
    services: List[ServiceConfig]
    chains: List[ChainConfig] = field(default_factory=list)
    log: LogConfig = field(default_factory=LogConfig)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"services": [service.to_dict() for service in self.services]}
        if self.chains:
            data["chains"] = [chain.to_dict() for chain in self.chains]
        data["log"] = self.log.to_dict()
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, default_flow_style=False)


def render(allocation: LocalAllocation, topology: TunnelTopology, log_level: str = "info") -> ForwardingConfig:
    """
    Render a topology into the gost configuration model.

    Args:
        allocation: Local tunnel address and target port
        topology: DirectTopology or RelayedTopology
        log_level: Level written into the log block

    Returns:
        The forwarding configuration
    """
    chains: List[ChainConfig] = []
    chain_name = None

    if isinstance(topology, DirectTopology):
        forward_addr = topology.forward_to
    elif isinstance(topology, RelayedTopology):
        forward_addr = f":{topology.local_forward_to}"
        hop = topology.relay_hop
        relay_node = NodeConfig(
            name=RELAY_NODE_NAME,
            addr=hop.relay_address,
            connector={"type": "relay"},
            dialer={"type": hop.transport, "tls": {"serverName": hop.tls_server_name}}
        )
        chains.append(ChainConfig(name=CHAIN_NAME, hops=[HopConfig(name=HOP_NAME, nodes=[relay_node])]))
        chain_name = CHAIN_NAME
    else:
        raise TypeError(f"Unsupported topology: {topology!r}")

    service = ServiceConfig(
        name=SERVICE_NAME,
        addr=":0",
        listener_net=str(allocation.local_address),
        forward_nodes=[NodeConfig(name=FORWARD_NODE_NAME, addr=forward_addr)],
        chain=chain_name
    )

    return ForwardingConfig(services=[service], chains=chains, log=LogConfig(level=log_level))


def validate_forwarding_config(config: ForwardingConfig) -> bool:
    """
    Check that the configuration is complete and every referenced name resolves.

    Args:
        config: Configuration to check

    Returns:
        True if configuration is valid

    Raises:
        EngineLaunchError: If configuration is inconsistent
    """
    if not config.services:
        raise EngineLaunchError("gost configuration has no services")

    chain_names = [chain.name for chain in config.chains]
    if len(set(chain_names)) != len(chain_names):
        raise EngineLaunchError(f"Duplicate chain names in gost configuration: {chain_names}")

    for chain in config.chains:
        if not chain.hops:
            raise EngineLaunchError(f"Chain {chain.name} has no hops")
        for hop in chain.hops:
            if not hop.nodes:
                raise EngineLaunchError(f"Hop {hop.name} in chain {chain.name} has no nodes")
            for node in hop.nodes:
                if not node.addr:
                    raise EngineLaunchError(f"Node {node.name} in hop {hop.name} has no address")

    for service in config.services:
        if not service.forward_nodes:
            raise EngineLaunchError(f"Service {service.name} has no forwarder nodes")

        for node in service.forward_nodes:
            if not node.addr:
                raise EngineLaunchError(f"Forwarder node {node.name} has no address")

        if service.chain is not None and service.chain not in chain_names:
            raise EngineLaunchError(f"Service {service.name} references unknown chain {service.chain}")

    logger.debug("gost configuration validation passed")
    return True


def write_forwarding_config(config: ForwardingConfig, config_path: str = "gost.yml") -> Path:
    """
    Write the gost configuration file.

    Args:
        config: Configuration to write
        config_path: Path where to write the configuration file

    Returns:
        Path of the written file

    Raises:
        EngineLaunchError: If the configuration cannot be written
    """
    logger.info(f"Writing gost configuration to {config_path}")

    validate_forwarding_config(config)

    try:
        path = Path(config_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w") as f:
            f.write(config.to_yaml())

        os.chmod(path, 0o644)

        logger.info(f"gost configuration written to {path}")
        return path

    except (IOError, OSError) as e:
        logger.error(f"Failed to write gost configuration: {e}")
        raise EngineLaunchError(f"Failed to write gost configuration: {e}") from e
