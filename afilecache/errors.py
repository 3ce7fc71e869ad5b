"""Error types raised by afilecache.

Each error carries the process exit code the command-line front end reports
for it. A cache miss is not an error: `FileCache.get` and `FileCache.delete`
return `None` for it.
"""

from __future__ import annotations

import os
from enum import IntEnum


class ExitCode(IntEnum):
    """Process exit codes of the `afilecache` command."""

    OK = 0
    USAGE = 1
    MISS = 2
    INTERNAL = 3
    NO_CACHE_DIR = 4
    FILE_OPS = 5
    LOCK = 6


class FileCacheError(Exception):
    """Base class of every error raised by afilecache."""

    exit_code: ExitCode = ExitCode.INTERNAL


class UsageError(FileCacheError, ValueError):
    """Malformed invocation or argument."""

    exit_code = ExitCode.USAGE


class InvalidIdentifierError(UsageError):
    """Identifier that cannot name a cache entry (e.g. empty)."""


class InternalError(FileCacheError):
    """A state that should be unreachable."""

    exit_code = ExitCode.INTERNAL


class NoCacheDirectoryError(FileCacheError):
    """The cache directory is missing or is not a directory."""

    exit_code = ExitCode.NO_CACHE_DIR

    def __init__(self, path: str | os.PathLike[str], reason: str) -> None:
        self.path = os.fspath(path)
        self.reason = reason
        super().__init__(f"{self.path}: {reason}")


class FileOpsError(FileCacheError):
    """A filesystem operation (create, copy, rename, unlink...) failed.

    Attributes:
        operation: Short verb naming what was attempted, e.g. `"rename"`.
        path: The path the operation was attempted on.
        reason: Human readable cause, usually the `strerror` of the
            underlying `OSError` (also available as `__cause__`).
    """

    exit_code = ExitCode.FILE_OPS

    def __init__(
        self,
        operation: str,
        path: str | os.PathLike[str],
        reason: str | None = None,
    ) -> None:
        self.operation = operation
        self.path = os.fspath(path)
        self.reason = reason
        message = f"failed to {operation} {self.path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    @classmethod
    def from_os_error(
        cls, operation: str, path: str | os.PathLike[str], error: OSError
    ) -> FileOpsError:
        return cls(operation, path, error.strerror or str(error))


class LockError(FileCacheError):
    """The cache lock file could not be opened or locked."""

    exit_code = ExitCode.LOCK

    def __init__(
        self, operation: str, path: str | os.PathLike[str], error: OSError
    ) -> None:
        self.operation = operation
        self.path = os.fspath(path)
        super().__init__(
            f"failed to {operation} {self.path}: {error.strerror or error}"
        )
