"""Custom exception classes for the tunnel bootstrap."""

from typing import Optional, Sequence


class TunnelBootstrapError(Exception):
    """Base exception for all tunnel bootstrap errors."""
    pass


class ConfigurationError(TunnelBootstrapError):
    """Exception raised when a required parameter is missing or invalid."""
    pass


class DiscoveryError(TunnelBootstrapError):
    """Exception raised when the default gateway or server address cannot be found."""
    pass


class RouteMutationError(TunnelBootstrapError):
    """Exception raised when the kernel rejects a route change."""

    def __init__(self, command: Sequence[str], stderr: Optional[str] = None):
        self.command = list(command)
        self.stderr = stderr
        message = f"Route command failed: {' '.join(self.command)}"
        if stderr:
            message += f" ({stderr})"
        super().__init__(message)


class EngineLaunchError(TunnelBootstrapError):
    """Exception raised when the forwarding engine cannot be started."""
    pass


class PlatformNotSupportedError(TunnelBootstrapError):
    """Exception raised when the host cannot run the bootstrap."""
    pass
