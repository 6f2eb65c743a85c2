"""Cross-process advisory lock for cache population.

The lock is an OS advisory lock (``flock`` on POSIX, ``msvcrt.locking`` on
Windows) held on an open handle to the lock file. The operating system
drops it when the handle closes, including when the owning process dies,
so a crashed population never blocks later callers. The lock file itself
is left in place: unlinking it would let a waiter lock an orphaned inode
while a newcomer locks a fresh file at the same path.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO

from bcdev.core.deadline import Deadline
from bcdev.errors import CacheLockTimeout

if os.name == "nt":
    import msvcrt
else:
    import fcntl

logger = logging.getLogger(__name__)


def _try_lock(handle: BinaryIO) -> bool:
    if os.name == "nt":
        handle.seek(0)
        try:
            msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
        except PermissionError:
            return False
        return True
    try:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


def _unlock(handle: BinaryIO) -> None:
    if os.name == "nt":
        handle.seek(0)
        msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
    else:
        fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


@contextmanager
def cache_lock(
    lock_path: Path,
    *,
    timeout: float = 1800.0,
    poll_interval: float = 0.2,
    deadline: Deadline | None = None,
) -> Iterator[Path]:
    """Hold the exclusive lock on *lock_path* for the duration of the block.

    Raises ``CacheLockTimeout`` when another holder keeps it longer than
    *timeout* seconds, and ``OperationCancelled`` when *deadline* runs out
    while waiting.
    """
    lock_path = Path(lock_path)
    lock_path.parent.mkdir(parents=True, exist_ok=True)
    deadline = deadline or Deadline.never()
    started = time.monotonic()
    waited_logged = False

    with lock_path.open("a+b") as handle:
        # msvcrt locks a byte range, so the file must not be empty
        handle.seek(0, os.SEEK_END)
        if handle.tell() == 0:
            handle.write(b"0")
            handle.flush()

        while True:
            deadline.check("waiting for cache lock")
            if _try_lock(handle):
                break
            if time.monotonic() - started >= timeout:
                raise CacheLockTimeout(
                    f"Timed out waiting for cache lock: {lock_path} "
                    f"(waited {timeout:.1f}s)"
                )
            if not waited_logged:
                logger.info("Waiting for another process to finish populating %s", lock_path.stem)
                waited_logged = True
            time.sleep(poll_interval)

        logger.debug("Acquired cache lock %s (pid %d)", lock_path, os.getpid())
        try:
            yield lock_path
        finally:
            _unlock(handle)
