"""Tests running several afilecache processes against one cache directory."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parent.parent


def spawn(*argv) -> subprocess.Popen:
    return subprocess.Popen(
        [sys.executable, "-m", "afilecache", *map(str, argv)],
        cwd=ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
    )


def finish(process: subprocess.Popen) -> int:
    _, err = process.communicate(timeout=60)
    assert process.returncode in (0, 2), err.decode()
    return process.returncode


@pytest.fixture
def contents(tmp_path):
    first = os.urandom(2 * 1024 * 1024)
    second = os.urandom(2 * 1024 * 1024)
    (tmp_path / "f1").write_bytes(first)
    (tmp_path / "f2").write_bytes(second)
    return first, second


def test_simultaneous_puts_leave_one_whole_file(cache_dir, tmp_path, contents):
    processes = [
        spawn(cache_dir, "put", "k", tmp_path / "f1"),
        spawn(cache_dir, "put", "k", tmp_path / "f2"),
    ]
    assert [finish(process) for process in processes] == [0, 0]

    assert finish(spawn(cache_dir, "get", "k", tmp_path / "out")) == 0
    assert (tmp_path / "out").read_bytes() in contents


def test_readers_never_see_partial_files(cache_dir, tmp_path, contents):
    assert finish(spawn(cache_dir, "put", "k", tmp_path / "f1")) == 0

    writers = [
        spawn(cache_dir, "put", "k", tmp_path / ("f2" if i % 2 else "f1"))
        for i in range(4)
    ]
    readers = [spawn(cache_dir, "get", "k", tmp_path / f"out{i}") for i in range(4)]

    for process in writers + readers:
        assert finish(process) == 0

    for i in range(4):
        assert (tmp_path / f"out{i}").read_bytes() in contents
