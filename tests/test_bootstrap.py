"""
Test cases for the bootstrap sequence and entry point.
"""

import ipaddress
import os
import socket

import pytest
import yaml

from conftest import InMemoryRoutingBackend, RecordingEngine
from tun_bootstrap import main as main_module
from tun_bootstrap.config.generator import render
from tun_bootstrap.main import BootstrapState, TunnelBootstrap
from tun_bootstrap.utils.exceptions import (
    ConfigurationError, DiscoveryError, EngineLaunchError, RouteMutationError
)


def make_bootstrap(environ, backend, engine, platform_manager, rng, config_path):
    environ = dict(environ)
    environ.setdefault("GOST_CONFIG_PATH", config_path)
    return TunnelBootstrap(
        environ=environ,
        backend=backend,
        engine=engine,
        platform_manager=platform_manager,
        rng=rng
    )


class TestTunnelBootstrap:
    """Test cases for the full bootstrap run."""

    def test_relayed_end_to_end(self, backend, engine, platform_manager, rng, config_path):
        environ = {"SERVICE_ID": "3", "SERVER_IP": "203.0.113.9", "RELAY_PORT": "8443"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        assert bootstrap.run() == 1

        document = yaml.safe_load(engine.config_text)
        service, = document["services"]
        assert service["forwarder"]["nodes"][0]["addr"] == ":8883"
        net = ipaddress.IPv4Interface(service["listener"]["metadata"]["net"])
        assert net.network == ipaddress.IPv4Network("192.168.103.0/24")

        node = document["chains"][0]["hops"][0]["nodes"][0]
        assert node["addr"] == "203.0.113.9:8443"
        assert node["dialer"]["tls"]["serverName"] == "203.0.113.9"

        assert backend.routes == {"203.0.113.9/32": ("10.0.0.1", "eth0")}
        assert bootstrap.state is BootstrapState.TERMINATED

    def test_direct_end_to_end(self, backend, engine, platform_manager, rng, config_path):
        environ = {"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        assert bootstrap.run() == 1

        document = yaml.safe_load(engine.config_text)
        assert "chains" not in document
        assert document["services"][0]["forwarder"]["nodes"][0]["addr"] == "10.0.0.5:8881"
        assert str(engine.config_paths[0]) == config_path
        assert backend.routes == {"10.0.0.5/32": ("10.0.0.1", "eth0")}

    def test_explicit_profile(self, backend, engine, platform_manager, rng, config_path):
        environ = {
            "SERVER_IP": "203.0.113.9", "RELAY_PORT": "8443",
            "LOCAL_IP": "192.168.50.7", "TARGET_PORT": "9000",
        }

        make_bootstrap(environ, backend, engine, platform_manager, rng, config_path).run()

        service = yaml.safe_load(engine.config_text)["services"][0]
        assert service["listener"]["metadata"]["net"] == "192.168.50.7/24"
        assert service["forwarder"]["nodes"][0]["addr"] == ":9000"

    def test_clean_engine_exit_is_failure(self, backend, platform_manager, rng, config_path):
        engine = RecordingEngine(returncode=0)
        environ = {"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5"}

        assert make_bootstrap(environ, backend, engine, platform_manager, rng, config_path).run() == 1

    def test_missing_server_ip_touches_nothing(self, backend, engine, platform_manager, rng, config_path):
        bootstrap = make_bootstrap({"SERVICE_ID": "1"}, backend, engine, platform_manager, rng, config_path)

        with pytest.raises(ConfigurationError, match="SERVER_IP"):
            bootstrap.run()

        assert backend.calls == []
        assert platform_manager.preflight_calls == []
        assert engine.config_paths == []
        assert not os.path.exists(config_path)
        assert bootstrap.state is BootstrapState.TERMINATED

    def test_no_default_route(self, engine, platform_manager, rng, config_path):
        backend = InMemoryRoutingBackend(default_gateway=None)
        bootstrap = make_bootstrap(
            {"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5"}, backend, engine, platform_manager, rng, config_path
        )

        with pytest.raises(DiscoveryError):
            bootstrap.run()

        assert backend.mutations == []
        assert engine.config_paths == []

    def test_rejected_host_route_keeps_default_route(self, engine, platform_manager, rng, config_path):
        backend = InMemoryRoutingBackend(reject_host_routes=True)
        bootstrap = make_bootstrap(
            {"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5"}, backend, engine, platform_manager, rng, config_path
        )

        with pytest.raises(RouteMutationError):
            bootstrap.run()

        assert "0.0.0.0/0" in backend.routes
        assert engine.config_paths == []

    def test_dry_run_leaves_host_untouched(self, backend, engine, platform_manager, rng, config_path):
        environ = {"SERVICE_ID": "2", "SERVER_IP": "10.0.0.5", "DRY_RUN": "1"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        assert bootstrap.run() == 0

        assert backend.mutations == []
        assert platform_manager.preflight_calls == []
        assert engine.config_paths == []
        assert not os.path.exists(config_path)
        assert bootstrap.forwarding_config.to_dict()["services"][0]["forwarder"]["nodes"][0]["addr"] == "10.0.0.5:8882"

    def test_preflight_runs_before_mutation(self, backend, engine, platform_manager, rng, config_path):
        environ = {"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5", "GOST_BINARY": "/opt/gost"}

        make_bootstrap(environ, backend, engine, platform_manager, rng, config_path).run()

        assert platform_manager.preflight_calls == [("/opt/gost", "eth0")]

    def test_hostname_resolved_once_for_routes_and_nodes(
            self, monkeypatch, backend, engine, platform_manager, rng, config_path):
        lookups = []

        def fake_gethostbyname(name):
            lookups.append(name)
            return "198.51.100.7"

        monkeypatch.setattr(socket, "gethostbyname", fake_gethostbyname)
        environ = {"SERVICE_ID": "1", "SERVER_IP": "relay.example.net", "RELAY_PORT": "8443"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        bootstrap.run()

        assert lookups == ["relay.example.net"]
        assert backend.routes == {"198.51.100.7/32": ("10.0.0.1", "eth0")}
        assert bootstrap.route_state.host_route == "198.51.100.7/32"
        node = yaml.safe_load(engine.config_text)["chains"][0]["hops"][0]["nodes"][0]
        assert node["addr"] == "198.51.100.7:8443"
        assert node["dialer"]["tls"]["serverName"] == "relay.example.net"

    def test_direct_forwarder_uses_resolved_address(
            self, monkeypatch, backend, engine, platform_manager, rng, config_path):
        monkeypatch.setattr(socket, "gethostbyname", lambda name: "198.51.100.7")
        environ = {"SERVICE_ID": "1", "SERVER_IP": "tunnel.example.net"}

        make_bootstrap(environ, backend, engine, platform_manager, rng, config_path).run()

        service = yaml.safe_load(engine.config_text)["services"][0]
        assert service["forwarder"]["nodes"][0]["addr"] == "198.51.100.7:8881"

    def test_unresolvable_hostname_touches_nothing(
            self, monkeypatch, backend, engine, platform_manager, rng, config_path):
        def fail_lookup(name):
            raise socket.gaierror(-2, "Name or service not known")

        monkeypatch.setattr(socket, "gethostbyname", fail_lookup)
        environ = {"SERVICE_ID": "1", "SERVER_IP": "missing.example.net"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        with pytest.raises(DiscoveryError, match="missing.example.net"):
            bootstrap.run()

        assert backend.mutations == []
        assert engine.config_paths == []

    @pytest.mark.parametrize("server_address", ["relay..example.net", "a" * 64 + ".example.net"])
    def test_malformed_hostname_is_discovery_error(
            self, server_address, backend, engine, platform_manager, rng, config_path):
        environ = {"SERVICE_ID": "1", "SERVER_IP": server_address}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        with pytest.raises(DiscoveryError):
            bootstrap.run()

        assert backend.mutations == []
        assert engine.config_paths == []

    def test_dry_run_rejects_inconsistent_config(
            self, monkeypatch, backend, engine, platform_manager, rng, config_path):
        def render_dangling_chain(allocation, topology, log_level="info"):
            config = render(allocation, topology, log_level=log_level)
            config.services[0].chain = "chain-9"
            return config

        monkeypatch.setattr(main_module, "render", render_dangling_chain)
        environ = {"SERVICE_ID": "2", "SERVER_IP": "10.0.0.5", "DRY_RUN": "1"}
        bootstrap = make_bootstrap(environ, backend, engine, platform_manager, rng, config_path)

        with pytest.raises(EngineLaunchError, match="chain-9"):
            bootstrap.run()

        assert backend.mutations == []


class TestMain:
    """Test cases for the process entry point."""

    @pytest.fixture(autouse=True)
    def isolated_environment(self, monkeypatch, tmp_path):
        monkeypatch.setattr(os, "environ", {"PATH": os.environ.get("PATH", "")})
        monkeypatch.chdir(tmp_path)
        monkeypatch.setattr(main_module, "setup_logging", lambda **kwargs: None)

    def test_missing_server_ip_exits_1(self, monkeypatch):
        backend = InMemoryRoutingBackend()
        monkeypatch.setattr(main_module, "IpRouteBackend", lambda: backend)
        os.environ["SERVICE_ID"] = "1"

        with pytest.raises(SystemExit) as excinfo:
            main_module.main()

        assert excinfo.value.code == 1
        assert backend.calls == []

    def test_engine_launch_error_exits_1(self, monkeypatch, platform_manager):
        backend = InMemoryRoutingBackend()
        monkeypatch.setattr(main_module, "IpRouteBackend", lambda: backend)
        monkeypatch.setattr(main_module, "PlatformManager", lambda: platform_manager)
        os.environ.update({"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5", "GOST_BINARY": "/nonexistent/gost"})

        with pytest.raises(SystemExit) as excinfo:
            main_module.main()

        assert excinfo.value.code == 1
        assert backend.routes == {"10.0.0.5/32": ("10.0.0.1", "eth0")}

    def test_engine_exit_exits_1(self, monkeypatch, platform_manager):
        engine = RecordingEngine(returncode=0)
        monkeypatch.setattr(main_module, "IpRouteBackend", lambda: InMemoryRoutingBackend())
        monkeypatch.setattr(main_module, "PlatformManager", lambda: platform_manager)
        monkeypatch.setattr(main_module, "GostEngine", lambda binary: engine)
        os.environ.update({"SERVICE_ID": "1", "SERVER_IP": "10.0.0.5"})

        with pytest.raises(SystemExit) as excinfo:
            main_module.main()

        assert excinfo.value.code == 1
        assert engine.config_paths

