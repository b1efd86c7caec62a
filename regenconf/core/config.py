"""regenconf runtime configuration and settings."""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


@dataclass
class RegenConfig:
    """Runtime configuration for regeneration cycles.

    Attributes:
        live_root: Filesystem root the live configuration files live under (default: /)
        state_dir: Directory holding the ownership manifest (default: /var/lib/regenconf)
        staging_parent: Parent directory for per-cycle staging trees (default: system temp)
        config_file: Host configuration file (default: /etc/regenconf/regenconf.yml)
        marker_dir: Directory holding per-hook escape-hatch markers (default: /etc/regenconf/noregen)
        lock_file: Single-orchestrator lock file (default: /run/regenconf/regen.lock)
        lock_attempts: Attempts to take the orchestrator lock (default: 5)
        dpkg_lock_attempts: Attempts to wait for the package database lock (default: 10)
        mock: Log service and package commands instead of running them
    """

    live_root: str = "/"
    state_dir: str = "/var/lib/regenconf"
    staging_parent: Optional[str] = None
    config_file: str = "/etc/regenconf/regenconf.yml"
    marker_dir: str = "/etc/regenconf/noregen"
    lock_file: str = "/run/regenconf/regen.lock"
    lock_attempts: int = 5
    dpkg_lock_attempts: int = 10
    mock: bool = False

    @property
    def manifest_file(self) -> Path:
        return Path(self.state_dir) / "ownership.json"

    @classmethod
    def from_env(cls) -> "RegenConfig":
        """Create config from environment variables.

        Environment variables:
            REGENCONF_LIVE_ROOT: Live filesystem root
            REGENCONF_STATE_DIR: Ownership manifest directory
            REGENCONF_STAGING_DIR: Parent directory for staging trees
            REGENCONF_CONFIG: Host configuration file
            REGENCONF_MARKER_DIR: Escape-hatch marker directory
            REGENCONF_LOCK_FILE: Orchestrator lock file
            REGENCONF_LOCK_ATTEMPTS: Orchestrator lock attempts
            REGENCONF_DPKG_LOCK_ATTEMPTS: Package database lock attempts
            REGENCONF_MOCK: Set to 1 to simulate service and package commands

        Returns:
            RegenConfig instance with values from environment or defaults
        """
        return cls(
            live_root=os.getenv("REGENCONF_LIVE_ROOT", cls.live_root),
            state_dir=os.getenv("REGENCONF_STATE_DIR", cls.state_dir),
            staging_parent=os.getenv("REGENCONF_STAGING_DIR", cls.staging_parent),
            config_file=os.getenv("REGENCONF_CONFIG", cls.config_file),
            marker_dir=os.getenv("REGENCONF_MARKER_DIR", cls.marker_dir),
            lock_file=os.getenv("REGENCONF_LOCK_FILE", cls.lock_file),
            lock_attempts=int(
                os.getenv("REGENCONF_LOCK_ATTEMPTS", cls.lock_attempts)
            ),
            dpkg_lock_attempts=int(
                os.getenv("REGENCONF_DPKG_LOCK_ATTEMPTS", cls.dpkg_lock_attempts)
            ),
            mock=os.getenv("REGENCONF_MOCK") == "1",
        )


# Global config instance (can be overridden)
_config: Optional[RegenConfig] = None


def get_config() -> RegenConfig:
    """Get the global regenconf configuration.

    Returns:
        RegenConfig instance (creates from environment if not set)
    """
    global _config
    if _config is None:
        _config = RegenConfig.from_env()
    return _config


def set_config(config: Optional[RegenConfig]):
    """Set the global regenconf configuration.

    Args:
        config: RegenConfig instance to use globally, or None to re-read the environment
    """
    global _config
    _config = config
