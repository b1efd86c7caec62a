"""Host services used by hooks: systemd units and the package database lock."""
from .dpkg import DpkgLock
from .systemd import ServiceManager

__all__ = ['DpkgLock', 'ServiceManager']
