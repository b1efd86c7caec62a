"""Per-cycle staging area for candidate configuration files.

Each hook gets its own view ``<staging>/<hook_id>/`` mirroring live absolute
paths, so ``/etc/ssh/sshd_config`` is staged at
``<staging>/ssh/etc/ssh/sshd_config``. The whole tree is removed when the
context manager exits, whatever the outcome.
"""
import os
import shutil
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Union

from regenconf.core.errors import StagingAreaError, StagingPathError
from regenconf.core.logger import get_logger

logger = get_logger(__name__)


def _contained(root: str, candidate: str) -> bool:
    return os.path.commonpath([root, candidate]) == root


class StagingView:
    """A single hook's window onto the staging tree."""

    def __init__(self, hook_id: str, root: Path):
        self.hook_id = hook_id
        self.root = Path(root)

    @property
    def path(self) -> Path:
        return self.root

    def path_for(self, live_path: str) -> Path:
        """Return the staging location for a live absolute path.

        Raises:
            StagingPathError: If the location resolves outside this view
        """
        if not live_path.startswith("/"):
            raise StagingPathError(f"{self.hook_id}: live path must be absolute: {live_path}")

        real_root = os.path.realpath(self.root)
        candidate = os.path.realpath(os.path.join(real_root, live_path.lstrip("/")))
        if candidate == real_root or not _contained(real_root, candidate):
            raise StagingPathError(f"{self.hook_id}: {live_path} escapes the staging area")
        return Path(candidate)

    def write(self, live_path: str, content: Union[str, bytes]) -> Path:
        """Stage content as the candidate for live_path."""
        target = self.path_for(live_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, str):
            content = content.encode("utf-8")
        target.write_bytes(content)
        logger.debug(f"Staged {live_path} for {self.hook_id}")
        return target

    def files(self) -> List[str]:
        """List staged files as canonical live paths, sorted.

        Raises:
            StagingPathError: If the view contains symlinks or special files
        """
        staged = []
        if not self.root.is_dir():
            return staged

        for dirpath, dirnames, filenames in os.walk(self.root, followlinks=False):
            for name in dirnames + filenames:
                entry = Path(dirpath) / name
                if entry.is_symlink():
                    rel = "/" + str(entry.relative_to(self.root))
                    raise StagingPathError(f"{self.hook_id}: symlink staged at {rel}")
            for name in filenames:
                entry = Path(dirpath) / name
                rel = "/" + entry.relative_to(self.root).as_posix()
                if not entry.is_file():
                    raise StagingPathError(f"{self.hook_id}: {rel} is not a regular file")
                staged.append(rel)

        return sorted(staged)


class StagingArea:
    """Isolated staging tree, created on enter and removed on exit."""

    def __init__(self, parent: Optional[str] = None, prefix: str = "regenconf-"):
        self.parent = parent
        self.prefix = prefix
        self.path: Optional[Path] = None
        self._views: Dict[str, StagingView] = {}

    def __enter__(self) -> "StagingArea":
        try:
            if self.parent:
                Path(self.parent).mkdir(parents=True, exist_ok=True)
            self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.parent))
        except OSError as e:
            raise StagingAreaError(f"Cannot create staging area: {e}") from e
        logger.debug(f"Created staging area {self.path}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.cleanup()
        return False

    def view(self, hook_id: str) -> StagingView:
        """Return (creating if needed) the staging view for hook_id."""
        if self.path is None:
            raise StagingAreaError("Staging area is not active")
        if hook_id not in self._views:
            root = self.path / hook_id
            try:
                root.mkdir(mode=0o755)
            except OSError as e:
                raise StagingAreaError(f"Cannot create staging view for {hook_id}: {e}") from e
            self._views[hook_id] = StagingView(hook_id, root)
        return self._views[hook_id]

    def discard(self, hook_id: str) -> None:
        """Drop everything a hook staged (used after a failed pre_regen)."""
        view = self._views.pop(hook_id, None)
        if view is not None:
            shutil.rmtree(view.root, ignore_errors=True)
            logger.debug(f"Discarded staging output of {hook_id}")

    def views(self) -> List[StagingView]:
        return list(self._views.values())

    def cleanup(self) -> None:
        """Remove the staging tree."""
        if self.path is None:
            return
        try:
            shutil.rmtree(self.path)
            logger.debug(f"Removed staging area {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Error removing staging area {self.path}: {e}")
        finally:
            self.path = None
            self._views = {}
