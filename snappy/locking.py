"""Directory-scoped exclusive locks."""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

LOGGER = logging.getLogger(__name__)


@contextmanager
def directory_lock(directory: Path, name: str = ".lock") -> Iterator[Path]:
    """Hold an exclusive ``flock`` on ``directory/name`` for the duration of the block.

    The lock file is persistent; coordination happens through ``flock`` only,
    so a crashed holder never leaves a stale lock behind.
    """

    directory.mkdir(parents=True, exist_ok=True)
    lockfile = directory / name
    flags = os.O_RDWR | os.O_CREAT
    if hasattr(os, "O_CLOEXEC"):
        flags |= os.O_CLOEXEC
    fd = os.open(lockfile, flags, 0o600)
    try:
        LOGGER.debug("Waiting for lock %s", lockfile)
        fcntl.flock(fd, fcntl.LOCK_EX)
        try:
            yield lockfile
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            LOGGER.debug("Released lock %s", lockfile)
    finally:
        os.close(fd)


__all__ = ["directory_lock"]
