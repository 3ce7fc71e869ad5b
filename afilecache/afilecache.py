from __future__ import annotations

import logging
import os
import pathlib
import stat
from contextlib import asynccontextmanager, suppress
from dataclasses import dataclass
from typing import AsyncGenerator, AsyncIterator

import anyio
from blake3 import blake3

from ._utils import (
    AsyncFileReader,
    atomic_copy,
    find_files,
    find_shard_dirs,
    unlink_if_exists,
)
from .config import DEFAULT_CHUNK_SIZE, CacheConfig, load_config, save_config
from .entry_path import CacheEntryPath, IdentifierArg, iter_decodings, to_identifier
from .errors import FileOpsError, UsageError
from .lock import CacheLock, check_cache_directory

logger = logging.getLogger(__name__)

PathLikeArg = str | os.PathLike[str]

STAGING_FILENAME = ".?tmpfile"


@dataclass(frozen=True)
class CacheEntry:
    """A file stored in the cache.

    Attributes:
        identifier: Raw bytes of the identifier the entry is stored under.
        path: Entry path **relative** to `cache_root`.
        cache_root: Absolute path of the cache directory holding the entry.
    """

    identifier: bytes
    path: str
    cache_root: str

    def __post_init__(self) -> None:
        if pathlib.PurePath(self.path).is_absolute():
            raise ValueError("Entry's path must be a relative path")
        if not pathlib.PurePath(self.cache_root).is_absolute():
            raise ValueError("Entry's cache_root must be an absolute path")

    @property
    def full_path(self) -> str:
        return os.path.join(self.cache_root, self.path)


async def compute_checksum(file: AsyncFileReader | PathLikeArg) -> str:
    """Compute the BLAKE3 hexdigest of a file's contents."""
    if not isinstance(file, AsyncFileReader):
        file = AsyncFileReader(anyio.Path(file))

    hasher = blake3()
    async for data in file.read(DEFAULT_CHUNK_SIZE):
        hasher.update(data)
    return hasher.hexdigest()


class FileCache:
    """Stores files under arbitrary identifiers in a cache directory.

    Every operation runs while holding the cache's
    [`CacheLock`][afilecache.lock.CacheLock], so concurrent processes using
    the same directory never see each other's partial work. Entries become
    visible only through an atomic rename, so an entry is always either
    absent or a complete copy of the file last put under its identifier.

    Layout of the cache directory:

        .lock                   lock file
        <shard>/<escaped id>    entry files
        <shard>/.?tmpfile       staging file of an in-progress put

    Unless otherwise indicated, errors are raised as subclasses of
    [`FileCacheError`][afilecache.errors.FileCacheError]. A cache miss is
    reported by returning `None`.

    Parameters:
        root: **Absolute** path of an existing cache directory.
        config: Settings to use. If `None`, they are loaded from the cache's
            config file, falling back to the defaults.

    Raises:
        UsageError: If `root` is relative.
        NoCacheDirectoryError: If `root` is missing or not a directory.
    """

    def __init__(self, root: PathLikeArg, config: CacheConfig | None = None):
        sync_root = pathlib.Path(root)
        if not sync_root.is_absolute():
            raise UsageError("Cache root must be an absolute path")

        check_cache_directory(sync_root)

        self._root = anyio.Path(sync_root)
        self._config = config if config is not None else load_config(sync_root)
        self._lock_owner: int | None = None
        self._task_lock: anyio.Lock | None = None

    @property
    def root(self) -> str:
        """The cache's root directory path"""
        return str(self._root)

    @property
    def config(self) -> CacheConfig:
        return self._config

    def write_config(self, config: CacheConfig) -> None:
        """Persist `config` in the cache directory and start using it.

        Raises:
            FileExistsError: If the cache already has a config file.
        """
        save_config(pathlib.Path(self._root), config)
        self._config = config

    @asynccontextmanager
    async def locked(self) -> AsyncIterator[FileCache]:
        """Hold the cache lock for the duration of the block.

        Operations called inside the block from the same task reuse the lock
        instead of waiting on it, so several of them run as one critical
        section.
        """
        task_id = anyio.get_current_task().id
        if self._lock_owner == task_id:
            yield self
            return

        # tasks of this process queue here, so at most one of them waits on
        # the lock file at a time
        if self._task_lock is None:
            self._task_lock = anyio.Lock()

        async with self._task_lock, CacheLock(self._root):
            self._lock_owner = task_id
            try:
                yield self
            finally:
                self._lock_owner = None

    def _entry(self, identifier: bytes, entry_path: CacheEntryPath) -> CacheEntry:
        return CacheEntry(identifier, entry_path.relpath, str(self._root))

    async def _ensure_shard_dir(self, shard_dir: anyio.Path) -> None:
        try:
            stat_result = await shard_dir.stat()
        except FileNotFoundError:
            try:
                await shard_dir.mkdir(mode=self._config.dmode)
            except OSError as exc:
                raise FileOpsError.from_os_error(
                    "create directory", shard_dir, exc
                ) from exc
            return
        except OSError as exc:
            raise FileOpsError.from_os_error("stat", shard_dir, exc) from exc

        if not stat.S_ISDIR(stat_result.st_mode):
            raise FileOpsError("use", shard_dir, "Not a directory")

    async def _copy(self, destination: anyio.Path, source: anyio.Path) -> None:
        hasher = blake3() if self._config.verify else None

        await atomic_copy(
            destination,
            source,
            chunk_size=self._config.chunk_size,
            fmode=self._config.fmode,
            hasher=hasher,
        )

        if hasher is None:
            return

        try:
            written = await compute_checksum(destination)
        except OSError as exc:
            raise FileOpsError.from_os_error("verify", destination, exc) from exc

        if written != hasher.hexdigest():
            raise FileOpsError("verify", destination, "checksum mismatch")

    async def put(self, identifier: IdentifierArg, source: PathLikeArg) -> CacheEntry:
        """Store a copy of `source` under `identifier`.

        The copy is staged in the shard directory and renamed over the
        entry, replacing any previous entry in one step.

        Parameters:
            identifier: Entry identifier, any non-empty `bytes` or `str`.
            source: File to copy into the cache.

        Returns:
            CacheEntry: The stored entry.

        Raises:
            InvalidIdentifierError: If `identifier` is unusable.
            FileOpsError: If creating the shard directory, copying or
                renaming fails. A failed copy may leave the staging file
                behind; the next put into the shard removes it.
        """
        raw_id = to_identifier(identifier)
        entry_path = CacheEntryPath.from_id(raw_id)
        source_path = anyio.Path(source)

        async with self.locked():
            shard_dir = self._root.joinpath(entry_path.shard)
            await self._ensure_shard_dir(shard_dir)

            staging_path = shard_dir.joinpath(STAGING_FILENAME)
            await unlink_if_exists(staging_path)

            try:
                await self._copy(staging_path, source_path)
            except FileOpsError:
                if self._config.verify:
                    with suppress(OSError):
                        await staging_path.unlink()
                raise

            entry_file = self._root.joinpath(entry_path.relpath)
            try:
                # this is the atomic part
                await staging_path.rename(entry_file)
            except OSError as exc:
                raise FileOpsError.from_os_error("rename", staging_path, exc) from exc

        logger.debug("put %r as %s", raw_id, entry_path.relpath)
        return self._entry(raw_id, entry_path)

    async def get(
        self, identifier: IdentifierArg, destination: PathLikeArg
    ) -> CacheEntry | None:
        """Copy the entry stored under `identifier` to `destination`.

        Any file already at `destination` is replaced. On a miss
        `destination` is left untouched.

        Returns:
            CacheEntry: The entry that was copied, or `None` on a miss.

        Raises:
            InvalidIdentifierError: If `identifier` is unusable.
            FileOpsError: If replacing or writing `destination` fails. A
                partially written `destination` is removed.
        """
        raw_id = to_identifier(identifier)
        entry_path = CacheEntryPath.from_id(raw_id)
        dest_path = anyio.Path(destination)

        async with self.locked():
            entry_file = self._root.joinpath(entry_path.relpath)
            if not await self._entry_exists(entry_file):
                logger.info("miss %r", raw_id)
                return None

            await unlink_if_exists(dest_path)

            try:
                await self._copy(dest_path, entry_file)
            except FileOpsError:
                with suppress(OSError):
                    await dest_path.unlink()
                raise

        logger.debug("got %r into %s", raw_id, dest_path)
        return self._entry(raw_id, entry_path)

    async def delete(self, identifier: IdentifierArg) -> CacheEntry | None:
        """Remove the entry stored under `identifier`.

        Returns:
            CacheEntry: The removed entry, or `None` on a miss.

        Raises:
            InvalidIdentifierError: If `identifier` is unusable.
            FileOpsError: If the entry exists but cannot be removed.
        """
        raw_id = to_identifier(identifier)
        entry_path = CacheEntryPath.from_id(raw_id)

        async with self.locked():
            removed = await unlink_if_exists(self._root.joinpath(entry_path.relpath))

        if not removed:
            logger.info("miss %r", raw_id)
            return None

        logger.debug("deleted %r", raw_id)
        return self._entry(raw_id, entry_path)

    async def _entry_exists(self, entry_file: anyio.Path) -> bool:
        try:
            await entry_file.stat()
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise FileOpsError.from_os_error("stat", entry_file, exc) from exc
        return True

    async def exists(self, identifier: IdentifierArg) -> bool:
        """Check whether an entry is stored under `identifier`."""
        entry_path = CacheEntryPath.from_id(identifier)
        async with self.locked():
            return await self._entry_exists(self._root.joinpath(entry_path.relpath))

    async def _scan(self) -> AsyncGenerator[tuple[CacheEntry, os.stat_result], None]:
        # Must be called with the lock held.
        async for shard_dir in find_shard_dirs(self._root):
            async for file in find_files(shard_dir):
                identifier = next(
                    (
                        candidate
                        for candidate in iter_decodings(file.name)
                        if CacheEntryPath.from_id(candidate).shard == shard_dir.name
                    ),
                    None,
                )
                if identifier is None:
                    # staging files and anything else we never wrote
                    logger.debug("skipping %s", file)
                    continue

                yield (
                    self._entry(identifier, CacheEntryPath.from_id(identifier)),
                    await file.stat(),
                )

    async def get_all(self) -> AsyncGenerator[CacheEntry, None]:
        """Return async generator that yields all cache entries.

        The entries are listed while holding the lock and yielded after it
        is released, so they may be stale by the time they are consumed.
        """
        async with self.locked():
            entries = [entry async for entry, _ in self._scan()]

        for entry in entries:
            yield entry

    async def count(self) -> int:
        """Return the number of entries in the cache."""
        count = 0
        async for _ in self.get_all():
            count += 1
        return count

    async def size(self) -> int:
        """Return the total size in bytes of all entries."""
        async with self.locked():
            return sum([stat_result.st_size async for _, stat_result in self._scan()])

    async def clean(self, max_size_mb: int) -> list[CacheEntry]:
        """Shrink the cache to at most `max_size_mb` megabytes.

        Leftover staging files of interrupted puts are removed, then entries
        are deleted oldest first, by the time they were last put, until the
        total size of the remaining entries fits. Shard directories are
        kept.

        Returns:
            list[CacheEntry]: The deleted entries, oldest first.

        Raises:
            UsageError: If `max_size_mb` is negative.
            FileOpsError: If a file cannot be removed.
        """
        if max_size_mb < 0:
            raise UsageError("maximum size must not be negative")
        limit = max_size_mb * 1024 * 1024

        evicted: list[CacheEntry] = []
        async with self.locked():
            async for shard_dir in find_shard_dirs(self._root):
                if await unlink_if_exists(shard_dir.joinpath(STAGING_FILENAME)):
                    logger.debug("removed stale staging file in %s", shard_dir)

            scanned = [item async for item in self._scan()]
            total = sum(stat_result.st_size for _, stat_result in scanned)
            scanned.sort(key=lambda item: item[1].st_mtime_ns)

            for entry, stat_result in scanned:
                if total <= limit:
                    break
                await unlink_if_exists(self._root.joinpath(entry.path))
                total -= stat_result.st_size
                evicted.append(entry)

        logger.debug("evicted %d entries, %d bytes left", len(evicted), total)
        return evicted

    def __aiter__(self) -> AsyncGenerator[CacheEntry, None]:
        """Iterate over all entries in the cache."""
        return self.get_all()
