"""Shared fixtures for the tunnel bootstrap tests."""

import random
from pathlib import Path

import pytest

from tun_bootstrap.system.routing import RoutingBackend
from tun_bootstrap.utils.exceptions import DiscoveryError, RouteMutationError


class InMemoryRoutingBackend(RoutingBackend):
    """Routing table held in a dict of destination -> (gateway, interface)."""

    def __init__(self, default_gateway="10.0.0.1", reject_host_routes=False):
        self.routes = {}
        if default_gateway:
            self.routes["0.0.0.0/0"] = (default_gateway, "eth0")
        self.reject_host_routes = reject_host_routes
        self.calls = []

    def current_default_gateway(self):
        self.calls.append(("current_default_gateway",))
        if "0.0.0.0/0" not in self.routes:
            raise DiscoveryError("No default route found")
        return self.routes["0.0.0.0/0"][0]

    def add_host_route(self, destination, gateway, out_interface):
        self.calls.append(("add_host_route", destination, gateway, out_interface))
        if self.reject_host_routes:
            raise RouteMutationError(["ip", "route", "add", f"{destination}/32"], "Nexthop has invalid gateway")
        self.routes[f"{destination}/32"] = (gateway, out_interface)

    def remove_default_route(self):
        self.calls.append(("remove_default_route",))
        self.routes.pop("0.0.0.0/0", None)

    @property
    def mutations(self):
        return [call for call in self.calls if call[0] != "current_default_gateway"]


class RecordingEngine:
    """Stands in for gost: records the configuration it was given."""

    def __init__(self, returncode=0):
        self.returncode = returncode
        self.config_paths = []
        self.config_text = None

    def run(self, config_path):
        self.config_paths.append(Path(config_path))
        self.config_text = Path(config_path).read_text()
        return self.returncode


class PassingPlatform:
    """Platform manager whose pre-flight checks always pass."""

    def __init__(self):
        self.preflight_calls = []

    def preflight(self, engine_binary, out_interface):
        self.preflight_calls.append((engine_binary, out_interface))


@pytest.fixture
def backend():
    return InMemoryRoutingBackend()


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def platform_manager():
    return PassingPlatform()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def config_path(tmp_path):
    return str(tmp_path / "gost.yml")
