"""
Change application for regenerated configuration files.

Copies staged candidates over their live counterparts and deletes files a
hook no longer generates. Each file is replaced atomically (temporary sibling,
then rename); a failure on one file never stops the others.
"""

import os
import shutil
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from rich.console import Console

from regenconf.core.diff_engine import ChangeRecord, ChangeStatus
from regenconf.core.errors import ApplyFileError
from regenconf.core.logger import get_logger

logger = get_logger(__name__)

DEFAULT_FILE_MODE = 0o644
DEFAULT_DIR_MODE = 0o755


@dataclass
class ApplyResult:
    applied: List[ChangeRecord] = field(default_factory=list)
    errors: List[ApplyFileError] = field(default_factory=list)

    def failed_paths(self) -> List[str]:
        return [error.path for error in self.errors]


class ChangeApplicator:
    """Applies changed records from a staging tree to the live filesystem."""

    def __init__(self, live_root: Path, console: Console = None):
        self.live_root = Path(live_root)
        self.console = console or Console()

    def live_path(self, path: str) -> Path:
        return self.live_root / path.lstrip("/")

    def apply_changes(self, records: List[ChangeRecord], staging_path: Path) -> ApplyResult:
        """Apply every changed record.

        Args:
            records: ChangeRecords from the diff engine (unchanged ones are skipped)
            staging_path: Root of the staging tree (``<staging>/<hook_id>/<path>``)

        Returns:
            ApplyResult listing applied records and per-file errors
        """
        result = ApplyResult()
        changed = [record for record in records if record.changed]

        if not changed:
            self.console.print("[dim]Nothing to do - configuration already up to date[/dim]")
            return result

        self.console.print("\nApplying changes...")

        for record in changed:
            try:
                if record.status == ChangeStatus.REMOVED:
                    self._remove(record.path)
                    self.console.print(f"[green]✓[/green] Removed {record.path}")
                else:
                    source = Path(staging_path) / record.hook_id / record.path.lstrip("/")
                    self._install(source, record.path)
                    verb = "Created" if record.status == ChangeStatus.ADDED else "Updated"
                    self.console.print(f"[green]✓[/green] {verb} {record.path}")
                result.applied.append(record)
            except ApplyFileError as e:
                logger.error(str(e))
                self.console.print(f"[red]✗[/red] {e}")
                result.errors.append(e)

        return result

    def _install(self, source: Path, path: str) -> None:
        """Copy source over the live path with an explicit permission policy.

        An existing file keeps its mode and owner. A new file gets
        DEFAULT_FILE_MODE. Staging-side metadata is never carried over.
        """
        dest = self.live_path(path)
        temp = dest.with_name(f".{dest.name}.regenconf-new")

        try:
            if dest.is_dir():
                raise ApplyFileError(path, "live path is a directory")

            existing: Optional[os.stat_result] = dest.stat() if dest.exists() else None
            self._make_parents(dest.parent)

            shutil.copyfile(source, temp)
            mode = stat.S_IMODE(existing.st_mode) if existing else DEFAULT_FILE_MODE
            os.chmod(temp, mode)

            if existing is not None:
                current = os.stat(temp)
                if (current.st_uid, current.st_gid) != (existing.st_uid, existing.st_gid):
                    os.chown(temp, existing.st_uid, existing.st_gid)

            os.replace(temp, dest)
            logger.info(f"Applied {path} (mode {oct(mode)})")
        except OSError as e:
            if temp.exists():
                temp.unlink()
            raise ApplyFileError(path, str(e)) from e

    def _make_parents(self, directory: Path) -> None:
        missing = []
        while not directory.exists():
            missing.append(directory)
            directory = directory.parent
        for parent in reversed(missing):
            parent.mkdir(mode=DEFAULT_DIR_MODE)
            os.chmod(parent, DEFAULT_DIR_MODE)

    def _remove(self, path: str) -> None:
        dest = self.live_path(path)
        try:
            dest.unlink()
            logger.info(f"Removed {path}")
        except FileNotFoundError:
            logger.debug(f"{path} already absent")
        except OSError as e:
            raise ApplyFileError(path, str(e)) from e
