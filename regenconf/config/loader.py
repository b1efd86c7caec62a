"""YAML host configuration: per-hook settings and external hook scripts.

Example ``/etc/regenconf/regenconf.yml``::

    settings:
      ssh:
        port: 2222
        allow_deprecated_dsa_key: false
      apt:
        pin_out: [snapd]
    scripts:
      - id: fail2ban
        path: /usr/share/regenconf/hooks/fail2ban
        owns: [/etc/fail2ban/jail.d/regenconf.conf]
"""
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from regenconf.core.config import RegenConfig
from regenconf.core.errors import ConfigValidationError
from regenconf.core.hooks import HOOK_ID_PATTERN, HostSnapshot
from regenconf.core.logger import get_logger

logger = get_logger(__name__)

IPV6_PROC_FILE = Path("/proc/net/if_inet6")


class ScriptHookSpec(BaseModel):
    """An external executable hook speaking the pre/post CLI protocol."""

    model_config = ConfigDict(extra='forbid')

    id: str
    path: str
    owns: List[str] = Field(default_factory=list)
    description: str = ""

    @field_validator('id')
    @classmethod
    def validate_id(cls, v):
        if not HOOK_ID_PATTERN.match(v):
            raise ValueError(f"Hook id '{v}' must be lowercase letters, digits, '.', '_' or '-'")
        return v

    @field_validator('path')
    @classmethod
    def validate_path(cls, v):
        if not v.startswith('/'):
            raise ValueError(f"Hook script path must be absolute. Got: {v}")
        return v

    @field_validator('owns')
    @classmethod
    def validate_owns(cls, v):
        for path in v:
            if not path.startswith('/'):
                raise ValueError(f"Owned path must be absolute. Got: {path}")
        return v


class HostConfig(BaseModel):
    """Parsed host configuration file."""

    model_config = ConfigDict(extra='forbid')

    settings: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    scripts: List[ScriptHookSpec] = Field(default_factory=list)


class HostConfigLoader:
    """Loads and validates the host configuration file."""

    def __init__(self, config_path: str = "/etc/regenconf/regenconf.yml"):
        self.config_path = Path(config_path)
        self.config: Optional[HostConfig] = None

    def load(self) -> HostConfig:
        """Load the YAML file. A missing or empty file yields defaults.

        Raises:
            ConfigValidationError: If the file is not valid YAML or fails validation
        """
        if not self.config_path.exists():
            logger.debug(f"No host config at {self.config_path}, using defaults")
            self.config = HostConfig()
            return self.config

        try:
            with open(self.config_path) as f:
                raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigValidationError(f"{self.config_path} must contain a mapping")

        try:
            self.config = HostConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigValidationError(f"Invalid host config {self.config_path}:\n{e}") from e

        logger.debug(f"Loaded host config from {self.config_path}")
        return self.config


def detect_ipv6(proc_file: Path = IPV6_PROC_FILE) -> bool:
    """Return True when the kernel reports at least one IPv6 address."""
    # procfs reports st_size 0, so the content has to be read
    try:
        return bool(proc_file.read_text().strip())
    except OSError:
        return False


def read_markers(marker_dir: Path) -> List[str]:
    """Names of the escape-hatch markers present in marker_dir."""
    marker_dir = Path(marker_dir)
    if not marker_dir.is_dir():
        return []
    return sorted(entry.name for entry in marker_dir.iterdir())


def capture_host_snapshot(config: RegenConfig, host_config: HostConfig,
                          ipv6_available: Optional[bool] = None) -> HostSnapshot:
    """Freeze settings, markers and host facts for the rest of the process."""
    if ipv6_available is None:
        ipv6_available = detect_ipv6()
    return HostSnapshot(
        settings=host_config.settings,
        markers=frozenset(read_markers(Path(config.marker_dir))),
        ipv6_available=ipv6_available,
    )
