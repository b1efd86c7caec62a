"""Host configuration loading."""
from .loader import HostConfig, HostConfigLoader, ScriptHookSpec, capture_host_snapshot

__all__ = ['HostConfig', 'HostConfigLoader', 'ScriptHookSpec', 'capture_host_snapshot']
