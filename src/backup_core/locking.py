from __future__ import annotations

import fcntl
import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from backup_core.exceptions import RunLockedError
from backup_core.utils.paths import ensure_dir

logger = logging.getLogger(__name__)


@contextmanager
def run_lock(lock_path: Path | None) -> Iterator[None]:
    """Hold an exclusive, non-blocking ``flock`` on ``lock_path`` for a run.

    ``None`` disables locking. The lock file records the holder's PID and is
    left in place afterwards; only the lock itself is released.

    Raises:
        RunLockedError: Another process already holds the lock.
    """
    if lock_path is None:
        yield
        return

    ensure_dir(lock_path.parent)
    lock_fd = os.open(str(lock_path), os.O_RDWR | os.O_CREAT, 0o644)
    try:
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except (BlockingIOError, OSError) as exc:
            raise RunLockedError(
                f"Another backup run holds {lock_path}",
                context={"lock_file": str(lock_path)},
            ) from exc
        os.ftruncate(lock_fd, 0)
        os.write(lock_fd, f"{os.getpid()}\n".encode())
        logger.debug("Acquired run lock %s", lock_path)
        try:
            yield
        finally:
            fcntl.flock(lock_fd, fcntl.LOCK_UN)
            logger.debug("Released run lock %s", lock_path)
    finally:
        os.close(lock_fd)
