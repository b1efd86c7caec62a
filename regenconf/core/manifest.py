"""Persisted ownership manifest: which hook owns which live paths."""
import json
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List

from regenconf.core.logger import get_logger

logger = get_logger(__name__)

MANIFEST_VERSION = 1


class OwnershipManifest:
    """Track the live paths each hook applied in previous cycles.

    The manifest is the only state that survives between cycles. It lets the
    diff engine report files a hook stopped generating as removed, and it
    keeps two hooks from claiming the same path.
    """

    def __init__(self, manifest_file: Path):
        """Initialize the manifest.

        Args:
            manifest_file: Path to the JSON manifest file
        """
        self.manifest_file = Path(manifest_file)
        self.data = self._load()

    def _load(self) -> dict:
        if not self.manifest_file.exists():
            return self._empty()

        try:
            with open(self.manifest_file, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning(f"Failed to load ownership manifest: {e}, using empty manifest")
            return self._empty()

        if not isinstance(data, dict) or not isinstance(data.get("hooks"), dict):
            logger.warning(f"Malformed ownership manifest {self.manifest_file}, using empty manifest")
            return self._empty()

        logger.debug(f"Loaded ownership manifest from {self.manifest_file}")
        return data

    def _empty(self) -> dict:
        return {
            "version": MANIFEST_VERSION,
            "updated_at": None,
            "hooks": {},
        }

    def save(self) -> bool:
        """Write the manifest atomically (temp file, fsync, rename).

        Returns:
            True if saved successfully
        """
        temp_file = self.manifest_file.with_name(f".{self.manifest_file.name}.tmp")
        try:
            self.manifest_file.parent.mkdir(parents=True, exist_ok=True)
            self.data["updated_at"] = datetime.now().isoformat()

            with open(temp_file, 'w') as f:
                json.dump(self.data, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())

            os.replace(temp_file, self.manifest_file)
            logger.debug(f"Saved ownership manifest to {self.manifest_file}")
            return True

        except (IOError, OSError) as e:
            logger.error(f"Failed to save ownership manifest: {e}")
            if temp_file.exists():
                temp_file.unlink()
            return False

    def owned_paths(self, hook_id: str) -> List[str]:
        return list(self.data["hooks"].get(hook_id, []))

    def as_mapping(self) -> Dict[str, List[str]]:
        return {hook_id: list(paths) for hook_id, paths in self.data["hooks"].items()}

    def set_owned(self, hook_id: str, paths: Iterable[str]) -> None:
        """Replace the set of paths owned by hook_id (in memory)."""
        paths = sorted(set(paths))
        if paths:
            self.data["hooks"][hook_id] = paths
        else:
            self.data["hooks"].pop(hook_id, None)
