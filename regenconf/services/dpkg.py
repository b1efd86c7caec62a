"""Package database lock, polled before package-affecting hook steps."""
import fcntl
import os
from pathlib import Path
from typing import Optional

from regenconf.core.logger import get_logger
from regenconf.core.resource_guard import ExclusiveResource

logger = get_logger(__name__)

DPKG_ADMIN_DIR = Path("/var/lib/dpkg")


class DpkgLock(ExclusiveResource):
    """Availability check for the dpkg frontend lock.

    apt and dpkg take the lock with POSIX record locks, so the check uses
    lockf and lets go immediately: the package tool invoked next takes the
    lock itself. A non-empty ``updates`` journal means a previous dpkg run was
    interrupted, which waiting cannot repair.
    """

    resource_id = "dpkg"

    def __init__(self, admin_dir: Optional[Path] = None):
        self.admin_dir = Path(admin_dir) if admin_dir else DPKG_ADMIN_DIR
        self.lock_file = self.admin_dir / "lock-frontend"
        self.journal_dir = self.admin_dir / "updates"

    def try_acquire(self) -> bool:
        if not self.lock_file.exists():
            return True

        fd = os.open(self.lock_file, os.O_RDWR)
        try:
            fcntl.lockf(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            logger.debug(f"{self.lock_file} is held by another process")
            return False
        else:
            fcntl.lockf(fd, fcntl.LOCK_UN)
            return True
        finally:
            os.close(fd)

    def corruption(self) -> Optional[str]:
        if not self.journal_dir.is_dir():
            return None
        pending = [entry for entry in self.journal_dir.iterdir() if entry.name[:1].isdigit()]
        if pending:
            return (
                f"{len(pending)} pending journal entr{'y' if len(pending) == 1 else 'ies'} "
                f"in {self.journal_dir}; run 'dpkg --configure -a'"
            )
        return None
