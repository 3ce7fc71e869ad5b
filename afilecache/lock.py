from __future__ import annotations

import fcntl
import logging
import os
import stat
from types import TracebackType

import anyio

from .errors import LockError, NoCacheDirectoryError

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".lock"


def check_cache_directory(root: str | os.PathLike[str]) -> None:
    """Raise `NoCacheDirectoryError` unless `root` is an existing directory."""
    try:
        stat_result = os.stat(root)
    except OSError as exc:
        raise NoCacheDirectoryError(root, exc.strerror or str(exc)) from exc

    if not stat.S_ISDIR(stat_result.st_mode):
        raise NoCacheDirectoryError(root, "Not a directory")


class CacheLock:
    """Exclusive lock over a whole cache directory.

    The lock is an advisory `flock` on `<root>/.lock`, shared by every
    process using the cache. Acquiring waits as long as it takes; there is
    no timeout. It is released on leaving the `async with` block, or by the
    operating system if the process dies first.

    The lock is not reentrant: a second `CacheLock` on the same directory
    waits for the first one even within a single process.

    Parameters:
        root: The cache directory. It is checked to exist right away.

    Raises:
        NoCacheDirectoryError: If `root` is missing or not a directory.
    """

    def __init__(self, root: str | os.PathLike[str]) -> None:
        check_cache_directory(root)
        self._path = os.path.join(root, LOCK_FILENAME)
        self._fd: int | None = None

    @property
    def path(self) -> str:
        """Path of the lock file"""
        return self._path

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    async def acquire(self) -> None:
        """Block until the lock is held.

        Raises:
            LockError: If the lock file cannot be opened or locked.
        """
        if self._fd is not None:
            raise RuntimeError("CacheLock is already held")

        try:
            fd = os.open(
                self._path, os.O_WRONLY | os.O_APPEND | os.O_CREAT | os.O_CLOEXEC, 0o666
            )
        except OSError as exc:
            raise LockError("open", self._path, exc) from exc

        logger.debug("waiting for %s", self._path)
        locked = False
        try:
            # flock blocks, keep it off the event loop and out of the
            # default thread pool the lock holder needs for its own I/O
            await anyio.to_thread.run_sync(
                fcntl.flock, fd, fcntl.LOCK_EX, limiter=anyio.CapacityLimiter(1)
            )
            locked = True
        except OSError as exc:
            raise LockError("lock", self._path, exc) from exc
        finally:
            if not locked:
                os.close(fd)

        self._fd = fd
        logger.debug("locked %s", self._path)

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("unlocked %s", self._path)

    async def __aenter__(self) -> CacheLock:
        await self.acquire()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.release()
