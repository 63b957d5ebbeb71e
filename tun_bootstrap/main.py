"""Main orchestration module for the tunnel bootstrap."""

import os
import random
import sys
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional

from .config.environment import load_environment_config
from .config.generator import ForwardingConfig, render, validate_forwarding_config, write_forwarding_config
from .config.models import AppConfig
from .core.allocator import LocalAllocation, allocate_for
from .core.engine import GostEngine
from .core.network import resolve_hostname
from .core.topology import TunnelTopology, build_endpoint, select_topology
from .system.platform import PlatformManager
from .system.routing import OUT_INTERFACE, IpRouteBackend, RouteMutator, RouteState, RoutingBackend
from .utils.console import console
from .utils.exceptions import (
    TunnelBootstrapError, ConfigurationError, DiscoveryError, RouteMutationError,
    EngineLaunchError, PlatformNotSupportedError
)
from .utils.logging import setup_logging, get_logger

logger = get_logger("main")

EXIT_FAILURE = 1
EXIT_DRY_RUN = 0


class BootstrapState(str, Enum):
    VALIDATING = "validating"
    ALLOCATING = "allocating"
    DISCOVERING_GATEWAY = "discovering_gateway"
    MUTATING_ROUTES = "mutating_routes"
    EMITTING = "emitting"
    RUNNING = "running"
    TERMINATED = "terminated"


class TunnelBootstrap:
    """Runs the bootstrap steps in order and hands over to gost."""

    def __init__(
            self,
            environ: Optional[Mapping[str, str]] = None,
            backend: Optional[RoutingBackend] = None,
            engine: Optional[GostEngine] = None,
            platform_manager: Optional[PlatformManager] = None,
            rng: Optional[random.Random] = None
    ):
        self.environ = environ
        self.backend = backend or IpRouteBackend()
        self.engine = engine
        self.platform_manager = platform_manager or PlatformManager()
        self.rng = rng

        self.state = BootstrapState.VALIDATING
        self.config: Optional[AppConfig] = None
        self.allocation: Optional[LocalAllocation] = None
        self.server_ip: Optional[str] = None
        self.gateway: Optional[str] = None
        self.route_state: Optional[RouteState] = None
        self.topology: Optional[TunnelTopology] = None
        self.forwarding_config: Optional[ForwardingConfig] = None

    def run(self) -> int:
        """
        Run the bootstrap to completion.

        Returns:
            Process exit status: 1 after any failure or after gost exits,
            0 only for a dry run

        Raises:
            TunnelBootstrapError: If any step fails
        """
        try:
            self._validate()
            self._allocate()
            self._discover_gateway()
            self._print_banner()

            if self.config.dry_run:
                self._emit()
                console.print_header("Dry run: rendered gost configuration")
                console.print_document(self.forwarding_config.to_yaml())
                console.print_warning("Dry run: routing table and gost left untouched")
                return EXIT_DRY_RUN

            self._mutate_routes()
            config_path = self._emit()
            return self._run_engine(config_path)
        finally:
            self._transition(BootstrapState.TERMINATED)

    def _transition(self, state: BootstrapState) -> None:
        logger.debug(f"Bootstrap state: {self.state.value} -> {state.value}")
        self.state = state

    def _validate(self) -> None:
        self._transition(BootstrapState.VALIDATING)
        console.print_header("Loading Configuration")
        self.config = load_environment_config(self.environ)

        if not self.config.dry_run:
            console.print_step("Performing pre-flight checks")
            self.platform_manager.preflight(self.config.engine.binary, OUT_INTERFACE)
            console.print_success("Pre-flight checks completed")

    def _allocate(self) -> None:
        self._transition(BootstrapState.ALLOCATING)
        self.allocation = allocate_for(self.config.tunnel, rng=self.rng)

    def _discover_gateway(self) -> None:
        self._transition(BootstrapState.DISCOVERING_GATEWAY)
        console.print_step("Discovering default gateway")
        self.server_ip = resolve_hostname(self.config.tunnel.server_address)
        self.gateway = self.backend.current_default_gateway()

    def _mutate_routes(self) -> None:
        self._transition(BootstrapState.MUTATING_ROUTES)
        console.print_step(f"Routing {self.server_ip} via {self.gateway} and removing default route")
        self.route_state = RouteMutator(self.backend).replace_default_route(self.server_ip, self.gateway)
        logger.info(
            f"Host route {self.route_state.host_route} via {self.route_state.via} dev {self.route_state.out_interface} "
            f"replaced default route via {self.route_state.previous_default_gateway}"
        )

    def _emit(self) -> Optional[Path]:
        self._transition(BootstrapState.EMITTING)
        tunnel = self.config.tunnel
        endpoint = build_endpoint(self.server_ip, self.allocation, tunnel.relay_port)
        self.topology = select_topology(tunnel.mode, endpoint, tls_server_name=tunnel.server_address)
        self.forwarding_config = render(self.allocation, self.topology, log_level=self.config.engine.log_level)
        validate_forwarding_config(self.forwarding_config)

        if self.config.dry_run:
            return None
        return write_forwarding_config(self.forwarding_config, self.config.engine.config_path)

    def _run_engine(self, config_path: Path) -> int:
        self._transition(BootstrapState.RUNNING)
        engine = self.engine or GostEngine(self.config.engine.binary)
        returncode = engine.run(config_path)
        console.print_error(f"gost exited with status {returncode}, exiting for restart")
        return EXIT_FAILURE

    def _print_banner(self) -> None:
        tunnel = self.config.tunnel
        console.print_banner("Client Config", {
            "Mode": tunnel.mode.value,
            "Server IP": tunnel.server_address,
            "Resolved server IP": self.server_ip if self.server_ip != tunnel.server_address else None,
            "Service ID": self.allocation.service_id,
            "Target port": self.allocation.target_port,
            "Relay port": tunnel.relay_port,
            "Default gateway": self.gateway,
            "Local IP": self.allocation.local_address,
            "Local network": self.allocation.network,
        })


def main():
    """Main entry point."""

    setup_logging(level=os.getenv("LOG_LEVEL", "INFO"), log_file=os.getenv("LOG_FILE"))
    logger = get_logger("main")

    try:
        sys.exit(TunnelBootstrap().run())

    except ConfigurationError as e:
        console.print_error(f"Configuration error: {e}")
    except PlatformNotSupportedError as e:
        console.print_error(f"Platform not supported: {e}")
    except DiscoveryError as e:
        console.print_error(f"Discovery error: {e}")
    except RouteMutationError as e:
        console.print_error(f"Route error: {e}")
    except EngineLaunchError as e:
        console.print_error(f"gost launch error: {e}")
    except TunnelBootstrapError as e:
        console.print_error(f"Tunnel bootstrap error: {e}")
    except Exception as e:
        logger.exception("Unexpected error in main")
        console.print_error(f"Unexpected error: {e}")

    sys.exit(EXIT_FAILURE)


if __name__ == "__main__":
    main()
