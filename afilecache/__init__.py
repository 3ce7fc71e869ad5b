# -*- coding: utf-8 -*-
"""afilecache is a file cache shared by concurrent processes. What does that
mean? Simply, that afilecache manages a directory where files are saved under
caller chosen identifiers, and any number of processes may put, get and delete
them at the same time without ever seeing a partially written file.

Typical use cases for this kind of system are ones where:

- Expensive build or download results are reused across runs.
- Several jobs on one machine share a cache directory.
- Identifiers are arbitrary strings (URLs, keys, command lines).
"""

from .afilecache import CacheEntry, FileCache
from .config import CacheConfig
from .errors import (
    ExitCode,
    FileCacheError,
    FileOpsError,
    InternalError,
    InvalidIdentifierError,
    LockError,
    NoCacheDirectoryError,
    UsageError,
)
from .lock import CacheLock

__all__ = (
    "CacheConfig",
    "CacheEntry",
    "CacheLock",
    "ExitCode",
    "FileCache",
    "FileCacheError",
    "FileOpsError",
    "InternalError",
    "InvalidIdentifierError",
    "LockError",
    "NoCacheDirectoryError",
    "UsageError",
)
