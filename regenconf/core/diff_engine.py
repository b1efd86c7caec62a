"""Diff engine comparing staged candidate files against live files."""
import difflib
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional

from regenconf.core.errors import LiveReadError, OwnershipConflictError
from regenconf.core.logger import get_logger
from regenconf.core.staging import StagingView

logger = get_logger(__name__)

CHUNK_SIZE = 64 * 1024


class ChangeStatus(Enum):
    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


@dataclass(frozen=True)
class ChangeRecord:
    """One live file considered during a cycle."""
    path: str
    hook_id: str
    status: ChangeStatus

    @property
    def changed(self) -> bool:
        return self.status != ChangeStatus.UNCHANGED


@dataclass
class DiffResult:
    """Records plus the paths that were excluded from them.

    A path lands in ``conflicts`` when ownership forbids it and in
    ``read_errors`` when its live counterpart could not be inspected.
    """
    records: List[ChangeRecord] = field(default_factory=list)
    conflicts: List[OwnershipConflictError] = field(default_factory=list)
    read_errors: List[LiveReadError] = field(default_factory=list)

    def changed(self) -> List[ChangeRecord]:
        return [record for record in self.records if record.changed]

    def for_hook(self, hook_id: str) -> List[ChangeRecord]:
        return [record for record in self.records if record.hook_id == hook_id]

    def has_changes(self) -> bool:
        return any(record.changed for record in self.records)


def _read_lines(path: Optional[Path]) -> List[str]:
    if path is None or not path.is_file():
        return []
    return path.read_bytes().decode("utf-8", errors="replace").splitlines(keepends=True)


def unified_diff(path: str, live: Optional[Path], staged: Optional[Path]) -> str:
    """Unified diff from the live file to the staged candidate."""
    return "".join(difflib.unified_diff(
        _read_lines(live),
        _read_lines(staged),
        fromfile=f"live{path}",
        tofile=f"staged{path}",
    ))


def same_content(left: Path, right: Path) -> bool:
    """Byte-for-byte comparison; metadata is ignored."""
    if left.stat().st_size != right.stat().st_size:
        return False
    with open(left, "rb") as a, open(right, "rb") as b:
        while True:
            chunk_a = a.read(CHUNK_SIZE)
            chunk_b = b.read(CHUNK_SIZE)
            if chunk_a != chunk_b:
                return False
            if not chunk_a:
                return True


class DiffEngine:
    """Calculate which live files a cycle would change.

    Works on a staging tree laid out as ``<staging>/<hook_id>/<live path>``.
    Paths a hook owned in a previous cycle but no longer stages are reported
    as removed, but only for hooks that staged at least one file this cycle.
    """

    def __init__(
        self,
        live_root: Path,
        owned: Optional[Mapping[str, Iterable[str]]] = None,
        declared: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            live_root: Root the canonical live paths are resolved against
            owned: Ownership manifest, hook_id -> previously applied paths
            declared: Statically declared ownership, path -> hook_id
        """
        self.live_root = Path(live_root)
        self.owned = {hook_id: set(paths) for hook_id, paths in (owned or {}).items()}
        self.declared = dict(declared or {})

    def _owner_of(self, path: str) -> Optional[str]:
        for hook_id, paths in self.owned.items():
            if path in paths:
                return hook_id
        return self.declared.get(path)

    def live_path(self, path: str) -> Path:
        return self.live_root / path.lstrip("/")

    def calculate_diff(self, staging_path: Path) -> DiffResult:
        """Compare every hook view under staging_path with the live tree."""
        staging_path = Path(staging_path)
        views = []
        if staging_path.is_dir():
            for entry in sorted(staging_path.iterdir()):
                if entry.is_dir() and not entry.is_symlink():
                    views.append(StagingView(entry.name, entry))
        return self.compare_views(views)

    def compare_views(self, views: Iterable[StagingView]) -> DiffResult:
        result = DiffResult()
        staged_by_hook: Dict[str, List[str]] = {}
        sources: Dict[tuple, Path] = {}
        claims: Dict[str, List[str]] = {}

        for view in views:
            files = view.files()
            if not files:
                continue
            staged_by_hook[view.hook_id] = files
            for path in files:
                claims.setdefault(path, []).append(view.hook_id)
                sources[(view.hook_id, path)] = view.root / path.lstrip("/")

        for path in sorted(claims):
            claimants = sorted(claims[path])
            if len(claimants) > 1:
                for hook_id in claimants:
                    others = ", ".join(h for h in claimants if h != hook_id)
                    result.conflicts.append(OwnershipConflictError(path, hook_id, others))
                continue

            hook_id = claimants[0]
            owner = self._owner_of(path)
            if owner is not None and owner != hook_id:
                result.conflicts.append(OwnershipConflictError(path, hook_id, owner))
                continue

            try:
                status = self._compare(sources[(hook_id, path)], self.live_path(path))
            except OSError as e:
                result.read_errors.append(LiveReadError(path, hook_id, str(e)))
                continue
            result.records.append(ChangeRecord(path=path, hook_id=hook_id, status=status))

        for hook_id, files in staged_by_hook.items():
            staged = set(files)
            for path in sorted(self.owned.get(hook_id, ())):
                if path in staged:
                    continue
                try:
                    self.live_path(path).lstat()
                except (FileNotFoundError, NotADirectoryError):
                    continue
                except OSError as e:
                    result.read_errors.append(LiveReadError(path, hook_id, str(e)))
                    continue
                result.records.append(
                    ChangeRecord(path=path, hook_id=hook_id, status=ChangeStatus.REMOVED)
                )

        result.records.sort(key=lambda record: (record.path, record.hook_id))
        for error in result.conflicts + result.read_errors:
            logger.warning(str(error))
        return result

    def _compare(self, staged: Path, live: Path) -> ChangeStatus:
        """Classify one staged file against its live counterpart.

        Raises:
            OSError: If the live file cannot be inspected or read
        """
        try:
            live_stat = live.stat()
        except (FileNotFoundError, NotADirectoryError):
            return ChangeStatus.ADDED
        if stat.S_ISREG(live_stat.st_mode) and same_content(staged, live):
            return ChangeStatus.UNCHANGED
        return ChangeStatus.MODIFIED


def diff(staging_path: Path, live_root: Path,
         owned: Optional[Mapping[str, Iterable[str]]] = None) -> List[ChangeRecord]:
    """Return the ChangeRecords for a staging tree against live_root."""
    return DiffEngine(live_root, owned=owned).calculate_diff(staging_path).records
