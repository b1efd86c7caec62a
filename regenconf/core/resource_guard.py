"""Bounded acquisition of exclusive external resources.

Hooks that must coordinate with a system-wide lock (for example the package
database) poll it through :func:`acquire`, which sleeps a caller-supplied
backoff between attempts and gives up with ResourceTimeoutError instead of
blocking forever.
"""
import fcntl
import os
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Optional

from regenconf.core.errors import CorruptedResourceError, ResourceTimeoutError
from regenconf.core.logger import get_logger

logger = get_logger(__name__)

BackoffFn = Callable[[int], float]


def quadratic_backoff(attempt: int, unit: float = 1.0) -> float:
    """Attempt n sleeps n² units."""
    return float(attempt * attempt) * unit


class ExclusiveResource(ABC):
    """A resource only one party may hold at a time."""

    resource_id: str = "resource"

    @abstractmethod
    def try_acquire(self) -> bool:
        """Make one non-blocking attempt; return True when acquired."""
        pass

    def release(self) -> None:
        """Give the resource back. Default: nothing to release."""
        pass

    def corruption(self) -> Optional[str]:
        """Describe a non-recoverable state, or return None when healthy."""
        return None


class FileLock(ExclusiveResource):
    """flock-based lock file that records the holder's PID and start time.

    The lock file is never removed, so every contender locks the same inode.
    """

    def __init__(self, lock_file: Path, resource_id: Optional[str] = None):
        self.lock_file = Path(lock_file)
        self.resource_id = resource_id or str(self.lock_file)
        self.lock_fd = None

    def try_acquire(self) -> bool:
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)

        # Append mode preserves the current holder's info if we lose the race
        lock_fd = open(self.lock_file, 'a+')
        try:
            fcntl.flock(lock_fd.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            lock_fd.close()
            return False

        lock_fd.seek(0)
        lock_fd.truncate()
        lock_fd.write(f"{os.getpid()}\n")
        lock_fd.write(f"{time.strftime('%Y-%m-%d %H:%M:%S')}\n")
        lock_fd.flush()
        self.lock_fd = lock_fd
        logger.debug(f"Acquired lock: {self.lock_file}")
        return True

    def release(self) -> None:
        if self.lock_fd is None:
            return
        try:
            fcntl.flock(self.lock_fd.fileno(), fcntl.LOCK_UN)
            self.lock_fd.close()
            logger.debug(f"Released lock: {self.lock_file}")
        except OSError as e:
            logger.warning(f"Error releasing lock: {e}")
        finally:
            self.lock_fd = None

    def holder(self) -> dict:
        """Read who holds the lock from the lock file."""
        try:
            lines = self.lock_file.read_text().splitlines()
        except OSError:
            lines = []
        if len(lines) >= 2:
            return {'pid': lines[0].strip(), 'time': lines[1].strip()}
        return {'pid': 'unknown', 'time': 'unknown'}


class Acquired:
    """Handle for an acquired resource; releases on context exit."""

    def __init__(self, resource: ExclusiveResource, attempts: int):
        self.resource = resource
        self.attempts = attempts
        self.released = False

    def release(self) -> None:
        if not self.released:
            self.resource.release()
            self.released = True

    def __enter__(self) -> "Acquired":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def acquire(
    resource: ExclusiveResource,
    max_attempts: int = 10,
    backoff_fn: BackoffFn = quadratic_backoff,
    sleep: Callable[[float], None] = time.sleep,
) -> Acquired:
    """Poll resource until it is acquired or attempts run out.

    Args:
        resource: Resource to acquire
        max_attempts: Number of attempts before giving up
        backoff_fn: Seconds to sleep after failed attempt n (monotonically increasing)
        sleep: Sleep function (injectable for tests)

    Returns:
        Acquired handle

    Raises:
        CorruptedResourceError: If the resource shows an interrupted prior writer
        ResourceTimeoutError: If every attempt failed
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    for attempt in range(1, max_attempts + 1):
        detail = resource.corruption()
        if detail:
            logger.error(f"{resource.resource_id} is corrupted: {detail}")
            raise CorruptedResourceError(resource.resource_id, detail)

        if resource.try_acquire():
            if attempt > 1:
                logger.info(f"Acquired {resource.resource_id} after {attempt} attempts")
            return Acquired(resource, attempt)

        if attempt == max_attempts:
            break

        delay = backoff_fn(attempt)
        logger.warning(
            f"{resource.resource_id} is busy (attempt {attempt}/{max_attempts}), "
            f"retrying in {delay:.1f}s..."
        )
        sleep(delay)

    logger.error(f"Gave up on {resource.resource_id} after {max_attempts} attempts")
    raise ResourceTimeoutError(resource.resource_id, max_attempts)
