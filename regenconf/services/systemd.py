"""systemd service control for post_regen side effects."""
import subprocess
from typing import List

from regenconf.core.logger import get_logger

logger = get_logger(__name__)


class ServiceError(RuntimeError):
    """A service command exited non-zero."""
    pass


class ServiceManager:
    """Thin wrapper around systemctl with a mock mode."""

    def __init__(self, mock: bool = False):
        self.mock = mock
        self.history: List[List[str]] = []

    def _run(self, cmd: List[str]) -> None:
        self.history.append(cmd)
        if self.mock:
            logger.info(f"MOCK: Would run {' '.join(cmd)}")
            return

        try:
            subprocess.run(cmd, check=True, capture_output=True, text=True)
        except subprocess.CalledProcessError as e:
            detail = (e.stderr or e.stdout or "").strip()
            raise ServiceError(f"{' '.join(cmd)} failed: {detail or e}") from e

    def reload_or_restart(self, unit: str) -> None:
        """Reload the unit if it supports it, otherwise restart it."""
        logger.info(f"Reloading {unit}")
        self._run(["systemctl", "reload-or-restart", unit])

    def restart(self, unit: str) -> None:
        logger.info(f"Restarting {unit}")
        self._run(["systemctl", "restart", unit])

    def run_command(self, cmd: List[str]) -> None:
        """Run a helper command (e.g. ``sshd -t``), raising on failure."""
        self._run(cmd)
