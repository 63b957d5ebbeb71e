"""gost forwarding engine management."""

import signal
import subprocess
from pathlib import Path
from typing import List, Optional

from ..utils.console import console
from ..utils.exceptions import EngineLaunchError
from ..utils.logging import get_logger

logger = get_logger("core.engine")

FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class GostEngine:
    """Runs gost in the foreground with an emitted configuration."""

    def __init__(self, binary: str = "gost"):
        self.binary = binary
        self._process: Optional[subprocess.Popen] = None

    def build_command(self, config_path: Path) -> List[str]:
        return [self.binary, "-C", str(config_path)]

    def run(self, config_path: Path) -> int:
        """
        Start gost and block until it exits.

        SIGINT and SIGTERM received meanwhile are passed on to gost.

        Args:
            config_path: Path of the gost configuration file

        Returns:
            gost exit status

        Raises:
            EngineLaunchError: If gost cannot be started
        """
        command = self.build_command(config_path)
        logger.info(f"Starting gost: {' '.join(command)}")

        try:
            self._process = subprocess.Popen(command)
        except OSError as e:
            logger.error(f"Failed to start gost: {e}")
            raise EngineLaunchError(f"Failed to start gost: {e}") from e

        console.print_success(f"gost started (PID {self._process.pid})")

        previous_handlers = {signum: signal.signal(signum, self._forward_signal) for signum in FORWARDED_SIGNALS}
        try:
            returncode = self._process.wait()
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)
            self._process = None

        logger.warning(f"gost exited with status {returncode}")
        return returncode

    def _forward_signal(self, signum, frame) -> None:
        """Pass a shutdown signal on to gost."""
        if self._process and self._process.poll() is None:
            logger.info(f"Forwarding signal {signum} to gost")
            self._process.send_signal(signum)
