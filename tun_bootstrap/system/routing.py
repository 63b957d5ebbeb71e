"""Kernel routing table management for the tunnel bootstrap."""

import ipaddress
import subprocess
from dataclasses import dataclass
from typing import Optional, Sequence

from ..utils.console import console
from ..utils.exceptions import DiscoveryError, RouteMutationError
from ..utils.logging import get_logger

logger = get_logger("system.routing")

OUT_INTERFACE = "eth0"

# iproute2 stderr for an existing route on add / a missing route on del
ROUTE_EXISTS_ERRORS = ("File exists",)
ROUTE_MISSING_ERRORS = ("No such process", "No such file or directory")


@dataclass(frozen=True)
class RouteState:
    """Routing changes made by the bootstrap. Never rolled back."""
    previous_default_gateway: str
    host_route: str
    via: str
    out_interface: str


class RoutingBackend:
    """Capability over the host routing table."""

    def current_default_gateway(self) -> str:
        """
        Return the gateway of the current default route.

        Raises:
            DiscoveryError: If there is no default route
        """
        raise NotImplementedError

    def add_host_route(self, destination: str, gateway: str, out_interface: str) -> None:
        """
        Add a /32 route to destination via gateway. An existing route is success.

        Raises:
            RouteMutationError: If the kernel rejects the route
        """
        raise NotImplementedError

    def remove_default_route(self) -> None:
        """
        Remove the default route. A missing default route is success.

        Raises:
            RouteMutationError: If the kernel rejects the deletion
        """
        raise NotImplementedError


class IpRouteBackend(RoutingBackend):
    """Routing backend driving the iproute2 `ip` command."""

    def __init__(self, ip_binary: str = "ip"):
        self.ip_binary = ip_binary

    def current_default_gateway(self) -> str:
        command = [self.ip_binary, "route", "show", "0.0.0.0/0"]

        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise DiscoveryError(f"{self.ip_binary} command not available: {e}") from e
        except subprocess.CalledProcessError as e:
            stderr = (e.stderr or "").strip()
            logger.error(f"Failed to read routing table: {stderr}")
            raise DiscoveryError(f"Failed to read routing table: {stderr or e}") from e

        gateway = parse_default_gateway(result.stdout)
        if gateway is None:
            raise DiscoveryError("No default route found")

        logger.info(f"Discovered default gateway {gateway}")
        return gateway

    def add_host_route(self, destination: str, gateway: str, out_interface: str) -> None:
        self._run(
            [self.ip_binary, "route", "add", f"{destination}/32", "via", gateway, "dev", out_interface],
            ignore_errors=ROUTE_EXISTS_ERRORS
        )

    def remove_default_route(self) -> None:
        self._run([self.ip_binary, "route", "del", "default"], ignore_errors=ROUTE_MISSING_ERRORS)

    def _run(self, command: Sequence[str], ignore_errors: Sequence[str] = ()) -> None:
        cmd = list(command)
        cmd_str = " ".join(cmd)
        logger.debug(f"Running command: {cmd_str}")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except FileNotFoundError as e:
            raise RouteMutationError(cmd, str(e)) from e

        stderr = (result.stderr or "").strip()
        if result.returncode == 0:
            return

        if any(err in stderr for err in ignore_errors):
            logger.debug(f"Ignoring error for command {cmd_str}: {stderr}")
            return

        logger.error(f"Command failed (rc={result.returncode}): {cmd_str}")
        raise RouteMutationError(cmd, stderr)


def parse_default_gateway(output: str) -> Optional[str]:
    """Extract the gateway from the first line of `ip route show 0.0.0.0/0` output."""
    for line in output.splitlines():
        parts = line.split()
        if "via" not in parts:
            continue

        index = parts.index("via")
        if index + 1 >= len(parts):
            continue

        candidate = parts[index + 1]
        try:
            ipaddress.ip_address(candidate)
        except ValueError:
            continue
        return candidate

    return None


class RouteMutator:
    """Replaces the default route with a host route to the tunnel server."""

    def __init__(self, backend: RoutingBackend, out_interface: str = OUT_INTERFACE):
        self.backend = backend
        self.out_interface = out_interface

    def install_tunnel_route(self, server_address: str, gateway: str, out_interface: Optional[str] = None) -> None:
        """Add the /32 host route to the server via the physical gateway."""
        out_interface = out_interface or self.out_interface
        logger.info(f"Adding host route {server_address}/32 via {gateway} dev {out_interface}")
        self.backend.add_host_route(server_address, gateway, out_interface)

    def remove_default_route(self) -> None:
        logger.info("Removing default route")
        self.backend.remove_default_route()

    def replace_default_route(self, server_address: str, gateway: str) -> RouteState:
        """
        Install the host route, then drop the default route.

        The default route is only removed once the host route is in place, so a
        failed install leaves the existing connectivity untouched.

        Raises:
            RouteMutationError: If either change is rejected
        """
        self.install_tunnel_route(server_address, gateway)
        self.remove_default_route()

        console.print_success(f"Default route replaced by host route to {server_address} via {gateway}")
        return RouteState(
            previous_default_gateway=gateway,
            host_route=f"{server_address}/32",
            via=gateway,
            out_interface=self.out_interface
        )
