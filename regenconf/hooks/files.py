"""Ownership and permission helpers for post_regen."""
import grp
import os
import pwd
from pathlib import Path
from typing import Union

from regenconf.core.logger import get_logger

logger = get_logger(__name__)


def enforce_permissions(path: Path, user: Union[str, int] = "root",
                        group: Union[str, int] = "root", mode: int = 0o644,
                        mock: bool = False) -> None:
    """Set owner, group and mode on a live file.

    Raises:
        KeyError: If the user or group does not exist
        OSError: If ownership or mode cannot be changed
    """
    if mock:
        logger.info(f"MOCK: Would set {user}:{group} {oct(mode)} on {path}")
        return

    uid = pwd.getpwnam(user).pw_uid if isinstance(user, str) else user
    gid = grp.getgrnam(group).gr_gid if isinstance(group, str) else group

    os.chown(path, uid, gid)
    os.chmod(path, mode)
