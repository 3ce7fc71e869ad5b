"""
Pytest configuration and fixtures for afilecache tests.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from afilecache import FileCache


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    """Provide an empty cache directory."""
    path = tmp_path / "cache"
    path.mkdir()
    return path


@pytest.fixture
def cache(cache_dir: Path) -> FileCache:
    return FileCache(cache_dir)


@pytest.fixture
def make_file(tmp_path: Path):
    """Return a helper writing `content` to a new file under tmp_path."""

    def _make_file(name: str, content: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(content)
        return path

    return _make_file
