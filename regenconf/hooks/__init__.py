"""Built-in hooks and the startup registration table.

Registration order is execution order: apt runs before ssh so that package
pinning is in place before any service hook reloads its daemon.
"""
from pathlib import Path
from typing import Iterable, List

from regenconf.config.loader import ScriptHookSpec
from regenconf.core.config import RegenConfig
from regenconf.core.hooks import HookRegistration, HookRegistry
from regenconf.hooks.apt import AptHook
from regenconf.hooks.script import ScriptHook
from regenconf.hooks.ssh import SshHook


def builtin_registrations(config: RegenConfig) -> List[HookRegistration]:
    return [
        HookRegistration(
            "apt",
            AptHook(max_attempts=config.dpkg_lock_attempts),
            owns=AptHook.owns,
            description="APT configuration and package pinning",
        ),
        HookRegistration(
            "ssh",
            SshHook(),
            owns=SshHook.owns,
            description="OpenSSH server configuration",
        ),
    ]


def script_registrations(scripts: Iterable[ScriptHookSpec]) -> List[HookRegistration]:
    return [
        HookRegistration(
            spec.id,
            ScriptHook(spec.id, Path(spec.path)),
            owns=tuple(spec.owns),
            description=spec.description or f"External hook {spec.path}",
        )
        for spec in scripts
    ]


def build_registry(config: RegenConfig, scripts: Iterable[ScriptHookSpec] = ()) -> HookRegistry:
    """Build the process-wide registry: built-in hooks first, then scripts."""
    return HookRegistry(builtin_registrations(config) + script_registrations(scripts))


__all__ = ['AptHook', 'ScriptHook', 'SshHook', 'build_registry']
