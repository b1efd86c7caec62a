"""Shared utilities for regenconf CLI modules."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console

from regenconf.config.loader import HostConfig, HostConfigLoader, capture_host_snapshot
from regenconf.core.config import RegenConfig, get_config
from regenconf.core.hooks import HookRegistry, HostSnapshot
from regenconf.core.manifest import OwnershipManifest
from regenconf.hooks import build_registry

TRUE_VALUES = {"1", "true", "yes", "y", "on"}
FALSE_VALUES = {"0", "false", "no", "n", "off", ""}


@dataclass
class Runtime:
    """Everything a command needs, built once at process start."""
    config: RegenConfig
    host_config: HostConfig
    host: HostSnapshot
    registry: HookRegistry
    manifest: OwnershipManifest

    @property
    def live_root(self) -> Path:
        return Path(self.config.live_root)


def load_runtime(config: Optional[RegenConfig] = None) -> Runtime:
    """Load host config, capture the host snapshot and build the registry.

    Raises:
        ConfigValidationError: If the host config file is invalid
        RegistryError: If hook registrations overlap
    """
    config = config or get_config()
    host_config = HostConfigLoader(config.config_file).load()
    return Runtime(
        config=config,
        host_config=host_config,
        host=capture_host_snapshot(config, host_config),
        registry=build_registry(config, host_config.scripts),
        manifest=OwnershipManifest(config.manifest_file),
    )


def parse_flag(value: str) -> bool:
    """Parse a protocol boolean (0/1/true/false/yes/no)."""
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise ValueError(f"Expected a boolean (0/1/true/false), got '{value}'")


def setup_file_logging(log_file: Optional[str] = None, verbose: bool = False) -> None:
    """Set up file logging for CLI commands.

    Args:
        log_file: Path to log file (optional)
        verbose: Enable verbose logging
    """
    from regenconf.core.logger import setup_file_logging as _setup_file_logging
    _setup_file_logging(log_file=log_file, verbose=verbose)


def handle_cli_error(
    e: Exception,
    console: Console,
    verbose: bool = False,
    exit_code: int = 1
) -> NoReturn:
    """Handle CLI errors with consistent formatting.

    Args:
        e: Exception to handle
        console: Rich console for output
        verbose: Show exception traceback if True
        exit_code: Exit code to use
    """
    console.print(f"[red]Error:[/red] {e}")
    if verbose:
        console.print_exception()
    raise typer.Exit(exit_code)


def print_success(console: Console, message: str, prefix: str = "✓") -> None:
    console.print(f"[green]{prefix}[/green] {message}")


def print_error(console: Console, message: str, prefix: str = "✗") -> None:
    console.print(f"[red]{prefix}[/red] {message}")


def print_warning(console: Console, message: str, prefix: str = "⚠") -> None:
    console.print(f"[yellow]{prefix}[/yellow] {message}")
