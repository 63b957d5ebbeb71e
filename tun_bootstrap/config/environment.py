"""Environment variable loading and validation."""

import os
from typing import Mapping, Optional

from dotenv import load_dotenv

from .models import AppConfig, EngineConfig, TopologyMode, TunnelConfig
from ..utils.exceptions import ConfigurationError
from ..utils.logging import get_logger

logger = get_logger("config")

TRUTHY_VALUES = ("1", "true", "yes", "on")


def load_environment_config(
        environ: Optional[Mapping[str, str]] = None,
        env_file: Optional[str] = None
) -> AppConfig:
    """
    Load and validate configuration from environment variables.

    Args:
        environ: Parameter mapping to read instead of the process environment
        env_file: Optional path to .env file, only used with the process environment

    Returns:
        Validated application configuration

    Raises:
        ConfigurationError: If a required parameter is missing or invalid
    """
    if environ is None:
        if env_file:
            load_dotenv(env_file)
        else:
            load_dotenv()
        environ = os.environ

    logger.info("Loading configuration from environment variables")

    try:
        server_address = _get_required(environ, "SERVER_IP")
        mode = select_mode(environ)
        tunnel_config = TunnelConfig(mode=mode, server_address=server_address, **_read_profile(environ, mode))

        engine_config = EngineConfig(
            binary=_get_optional(environ, "GOST_BINARY") or "gost",
            config_path=_get_optional(environ, "GOST_CONFIG_PATH") or "gost.yml",
            log_level=(_get_optional(environ, "GOST_LOG_LEVEL") or "info").lower()
        )

        config = AppConfig(
            tunnel=tunnel_config,
            engine=engine_config,
            dry_run=(_get_optional(environ, "DRY_RUN") or "").lower() in TRUTHY_VALUES
        )

        logger.info(f"Configuration loaded: {mode.value} mode, {tunnel_config.profile.value} profile")
        return config

    except (ValueError, KeyError) as e:
        message = e.args[0] if isinstance(e, KeyError) and e.args else str(e)
        logger.error(f"Configuration validation failed: {message}")
        raise ConfigurationError(f"Configuration validation failed: {message}") from e


def select_mode(environ: Mapping[str, str]) -> TopologyMode:
    """Choose the topology mode once, from TUNNEL_MODE or the presence of RELAY_PORT."""
    requested = _get_optional(environ, "TUNNEL_MODE")
    if requested:
        try:
            return TopologyMode(requested.lower())
        except ValueError:
            choices = ", ".join(mode.value for mode in TopologyMode)
            raise ValueError(f"TUNNEL_MODE must be one of: {choices}") from None

    if _get_optional(environ, "RELAY_PORT"):
        return TopologyMode.RELAYED
    return TopologyMode.DIRECT


def _read_profile(environ: Mapping[str, str], mode: TopologyMode) -> dict:
    """Read the parameters required by the selected mode."""
    values = {}

    if mode is TopologyMode.RELAYED:
        relay_port = _get_required(environ, "RELAY_PORT")
    else:
        # rejected by TunnelConfig when set in direct mode
        relay_port = _get_optional(environ, "RELAY_PORT")

    if relay_port is not None:
        values["relay_port"] = _parse_int("RELAY_PORT", relay_port)

    if mode is TopologyMode.RELAYED and _get_optional(environ, "SERVICE_ID") is None:
        values["local_ip"] = _get_required(environ, "LOCAL_IP")
        values["target_port"] = _parse_int("TARGET_PORT", _get_required(environ, "TARGET_PORT"))
        return values

    values["service_id"] = _parse_service_id(_get_required(environ, "SERVICE_ID"))

    target_port = _get_optional(environ, "TARGET_PORT")
    if target_port is not None:
        values["target_port"] = _parse_int("TARGET_PORT", target_port)

    return values


def _parse_service_id(value: str) -> int:
    if len(value) != 1 or value not in "0123456789":
        raise ValueError(f"SERVICE_ID must be a single decimal digit, got {value!r}")
    return int(value)


def _parse_int(key: str, value: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {value!r}") from None


def _get_required(environ: Mapping[str, str], key: str) -> str:
    """Get required parameter or raise error."""
    value = _get_optional(environ, key)
    if value is None:
        raise KeyError(f"Missing required environment variable: {key}")
    return value


def _get_optional(environ: Mapping[str, str], key: str) -> Optional[str]:
    """Get a parameter, treating empty values as absent."""
    value = environ.get(key)
    if value is None:
        return None
    value = value.strip()
    return value or None
