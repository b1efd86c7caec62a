"""Hook contract and the static hook registration table.

Every service-specific generator implements :class:`Hook`. Hooks are bound to
identifiers once at startup through :class:`HookRegistry`; the registry is the
universe of regeneration targets and its order is the execution order.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple

from regenconf.core.errors import RegistryError, UnknownHookError

HOOK_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, list):
        return tuple(_freeze(item) for item in value)
    return value


@dataclass(frozen=True)
class HostSnapshot:
    """Read-only view of host-level state consulted by hooks.

    Captured once per process; hooks never look these values up globally.
    """

    settings: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)
    markers: FrozenSet[str] = frozenset()
    ipv6_available: bool = False

    def __post_init__(self):
        object.__setattr__(self, "settings", _freeze(dict(self.settings)))
        object.__setattr__(self, "markers", frozenset(self.markers))

    def setting(self, hook_id: str, key: str, default: Any = None) -> Any:
        return self.settings.get(hook_id, {}).get(key, default)

    def settings_for(self, hook_id: str) -> Dict[str, Any]:
        """Return a mutable copy of one hook's settings."""
        return _thaw(self.settings.get(hook_id, {}))

    def has_marker(self, hook_id: str) -> bool:
        """Return True when the escape-hatch marker for hook_id is present."""
        return hook_id in self.markers


@dataclass(frozen=True)
class HookContext:
    """Per-call, read-only inputs handed to every hook entry point."""

    force: bool = False
    dry_run: bool = False
    live_root: Path = Path("/")
    host: HostSnapshot = field(default_factory=HostSnapshot)
    mock: bool = False

    def live_path(self, path: str) -> Path:
        """Map a canonical absolute path to its location under live_root."""
        return Path(self.live_root) / path.lstrip("/")


class Hook(ABC):
    """Interface implemented by each per-service configuration generator."""

    @abstractmethod
    def pre_regen(self, staging, context: HookContext) -> None:
        """Write candidate files into the staging view.

        Args:
            staging: StagingView mirroring live absolute paths
            context: Read-only cycle context

        Must not touch the live system. Producing no files is not an error.
        """
        pass

    @abstractmethod
    def post_regen(self, changed_files: List[str], context: HookContext) -> None:
        """Apply live side effects for files that changed this cycle.

        Args:
            changed_files: Absolute live paths owned by this hook that changed
            context: Read-only cycle context

        Must be a no-op for an empty list and idempotent otherwise.
        """
        pass


@dataclass(frozen=True)
class HookRegistration:
    """Immutable binding of a hook id to its implementation."""

    hook_id: str
    hook: Hook
    owns: Tuple[str, ...] = ()
    description: str = ""

    def __post_init__(self):
        if not HOOK_ID_PATTERN.match(self.hook_id):
            raise RegistryError(f"Invalid hook id: {self.hook_id!r}")
        owns = tuple(sorted(set(self.owns)))
        for path in owns:
            if not path.startswith("/"):
                raise RegistryError(f"{self.hook_id}: owned path must be absolute: {path}")
        object.__setattr__(self, "owns", owns)


class HookRegistry:
    """Process-wide, read-only table of hook registrations."""

    def __init__(self, registrations: Iterable[HookRegistration]):
        ordered: Dict[str, HookRegistration] = {}
        owners: Dict[str, str] = {}

        for registration in registrations:
            if registration.hook_id in ordered:
                raise RegistryError(f"Hook registered twice: {registration.hook_id}")
            for path in registration.owns:
                if path in owners:
                    raise RegistryError(
                        f"{path} is declared by both {owners[path]} and {registration.hook_id}"
                    )
                owners[path] = registration.hook_id
            ordered[registration.hook_id] = registration

        self._registrations: Tuple[HookRegistration, ...] = tuple(ordered.values())
        self._by_id = MappingProxyType(ordered)
        self._owners = MappingProxyType(owners)

    def __iter__(self) -> Iterator[HookRegistration]:
        return iter(self._registrations)

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, hook_id: str) -> bool:
        return hook_id in self._by_id

    def get(self, hook_id: str) -> Optional[HookRegistration]:
        return self._by_id.get(hook_id)

    def ids(self) -> List[str]:
        return [registration.hook_id for registration in self._registrations]

    @property
    def declared_owners(self) -> Mapping[str, str]:
        """Statically declared ownership, path -> hook_id."""
        return self._owners

    def resolve(self, targets: Sequence[str] = ()) -> List[HookRegistration]:
        """Resolve requested hook ids to registrations in registration order.

        Raises:
            UnknownHookError: If any target is not registered
        """
        if not targets:
            return list(self._registrations)

        unknown = [target for target in targets if target not in self._by_id]
        if unknown:
            raise UnknownHookError(unknown)

        wanted = set(targets)
        return [r for r in self._registrations if r.hook_id in wanted]
