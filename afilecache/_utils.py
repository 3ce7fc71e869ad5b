from __future__ import annotations

import os
from contextlib import suppress
from typing import AsyncGenerator, Callable, Protocol

import anyio
from anyio.abc import AsyncResource

from .config import DEFAULT_CHUNK_SIZE
from .entry_path import is_shard_name
from .errors import FileOpsError


class Hasher(Protocol):
    def update(self, data: bytes, /) -> object:
        ...

    def hexdigest(self) -> str:
        ...


class AsyncFileReader:
    """Reads a file in chunks without blocking the event loop."""

    def __init__(self, source: anyio.Path) -> None:
        self._source = source

    @property
    def source_path(self) -> anyio.Path:
        return self._source

    async def read(self, size: int = -1) -> AsyncGenerator[bytes, None]:
        async with await self._source.open("rb") as file:
            while True:
                data = await file.read(size)
                if not data:
                    break
                yield data


def _opener(mode: int) -> Callable[[str, int], int]:
    def _open(path: str, flags: int) -> int:
        return os.open(path, flags, mode)

    return _open


async def _write_all(file, data: bytes) -> None:
    # Unbuffered writes may be short, keep going with the remainder.
    view = memoryview(data)
    while len(view):
        written = await file.write(view)
        view = view[written or 0 :]


async def _close(resource: AsyncResource, operation: str, path: anyio.Path) -> None:
    try:
        await resource.aclose()
    except OSError as exc:
        raise FileOpsError.from_os_error(operation, path, exc) from exc


async def atomic_copy(
    destination: anyio.Path,
    source: anyio.Path,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    fmode: int = 0o666,
    hasher: Hasher | None = None,
) -> int:
    """Copy the bytes of `source` into the new file `destination`.

    `destination` must not exist. If the copy fails it may be left partially
    written, and the caller is responsible for removing it.

    Args:
        destination: File to create.
        source: File to read.
        chunk_size: Largest read issued on `source`.
        fmode: Mode `destination` is created with, before the umask.
        hasher: Optional hash object fed every chunk read from `source`.

    Returns:
        Number of bytes copied.

    Raises:
        FileOpsError: If opening, creating, reading, writing or closing
            fails.
    """
    try:
        source_file = await anyio.open_file(source, "rb")
    except OSError as exc:
        raise FileOpsError.from_os_error("open", source, exc) from exc

    try:
        try:
            dest_file = await anyio.open_file(
                destination, "xb", buffering=0, opener=_opener(fmode)
            )
        except OSError as exc:
            raise FileOpsError.from_os_error("create", destination, exc) from exc

        copied = 0
        closed = False
        try:
            while True:
                data = await source_file.read(chunk_size)
                if not data:
                    break
                if hasher is not None:
                    hasher.update(data)
                await _write_all(dest_file, data)
                copied += len(data)

            # a delayed write error may only show up when closing
            closed = True
            await _close(dest_file, "close", destination)
        except OSError as exc:
            raise FileOpsError.from_os_error(
                "copy", f"{source} to {destination}", exc
            ) from exc
        finally:
            if not closed:
                with anyio.CancelScope(shield=True), suppress(OSError):
                    await dest_file.aclose()
    finally:
        with anyio.CancelScope(shield=True):
            await source_file.aclose()

    return copied


async def unlink_if_exists(path: anyio.Path) -> bool:
    """Unlink `path`, returning `False` if it did not exist.

    Raises:
        FileOpsError: For any failure other than the file being absent.
    """
    try:
        await path.unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise FileOpsError.from_os_error("unlink", path, exc) from exc
    return True


async def find_shard_dirs(root: anyio.Path) -> AsyncGenerator[anyio.Path, None]:
    async for sub_path in root.iterdir():
        if is_shard_name(sub_path.name) and await sub_path.is_dir():
            yield sub_path


async def find_files(path: anyio.Path) -> AsyncGenerator[anyio.Path, None]:
    async for sub_path in path.iterdir():
        if await sub_path.is_file():
            yield sub_path
