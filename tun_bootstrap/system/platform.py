"""Platform-specific operations and checks."""

import os
import platform
import subprocess
from typing import Dict, Iterable

import psutil

from ..utils.logging import get_logger
from ..utils.exceptions import PlatformNotSupportedError

logger = get_logger("system.platform")


class PlatformManager:
    """Checks that the host can run the tunnel bootstrap."""

    def __init__(self):
        self._system = platform.system().lower()
        logger.debug(f"Detected platform: {self._system}")

    @property
    def system(self) -> str:
        return self._system

    def is_admin(self) -> bool:
        """Check if running with root privileges."""
        try:
            return os.geteuid() == 0
        except AttributeError:
            return False

    def check_required_tools(self, tools: Iterable[str]) -> Dict[str, bool]:
        """Check availability of required system tools."""
        return {tool: self._check_command(tool) for tool in tools}

    def interface_exists(self, name: str) -> bool:
        """Check if a network interface is present on the host."""
        return name in psutil.net_if_addrs()

    def preflight(self, engine_binary: str, out_interface: str) -> None:
        """
        Verify the host before any routing change is made.

        Raises:
            PlatformNotSupportedError: If the host cannot run the bootstrap
        """
        if self._system != "linux":
            raise PlatformNotSupportedError(f"Tunnel bootstrap requires Linux, running on {self._system}")

        if not self.is_admin():
            raise PlatformNotSupportedError("Root privileges required to change the routing table")

        tools = self.check_required_tools(["ip", engine_binary])
        missing_tools = [tool for tool, available in tools.items() if not available]
        if missing_tools:
            raise PlatformNotSupportedError(f"Required tools not available: {missing_tools}")

        if not self.interface_exists(out_interface):
            raise PlatformNotSupportedError(f"Outbound interface {out_interface} not found")

        logger.info("Pre-flight checks passed")

    def _check_command(self, command: str) -> bool:
        """Check if a command is available in PATH."""
        try:
            subprocess.run(["which", command],
                           check=True,
                           stdout=subprocess.DEVNULL,
                           stderr=subprocess.DEVNULL)
            return True
        except (subprocess.CalledProcessError, FileNotFoundError):
            return False
