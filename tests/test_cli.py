"""Tests for the command-line front end and its exit codes."""

import pytest

from afilecache.cli import main
from afilecache.entry_path import CacheEntryPath


def run(*argv):
    return main(list(map(str, argv)), prog="afilecache")


def test_scenario_put_get_delete(cache_dir, make_file, tmp_path):
    source = make_file("a", b"hello")

    assert run(cache_dir, "put", "report-1", source) == 0
    assert run(cache_dir, "get", "report-1", tmp_path / "b") == 0
    assert (tmp_path / "b").read_bytes() == b"hello"

    assert run(cache_dir, "delete", "report-1") == 0
    assert run(cache_dir, "get", "report-1", tmp_path / "c") == 2
    assert not (tmp_path / "c").exists()


def test_get_miss(cache_dir, tmp_path, capsys):
    assert run(cache_dir, "get", "missing-id", tmp_path / "x") == 2
    assert not (tmp_path / "x").exists()
    assert capsys.readouterr().err == ""


def test_delete_miss(cache_dir):
    assert run(cache_dir, "delete", "missing-id") == 2


def test_relative_cache_dir(cache_dir, make_file, monkeypatch):
    monkeypatch.chdir(cache_dir.parent)
    source = make_file("a", b"hello")

    assert run(cache_dir.name, "put", "k", source) == 0
    assert (cache_dir / CacheEntryPath.from_id("k").relpath).read_bytes() == b"hello"


@pytest.mark.parametrize(
    "argv",
    [
        [],
        ["cache"],
        ["cache", "frobnicate"],
        ["cache", "put", "id"],
        ["cache", "put", "id", "file", "extra"],
        ["cache", "get", "", "file"],
        ["cache", "put", "id", ""],
        ["cache", "delete"],
        ["cache", "clean"],
        ["cache", "clean", "lots"],
        ["cache", "clean", "-5"],
        ["", "delete", "id"],
    ],
)
def test_usage_errors(argv, capsys):
    assert main(argv, prog="afilecache") == 1
    assert "Usage:" in capsys.readouterr().err


def test_invalid_identifier_is_a_usage_error(cache_dir, capsys):
    assert run(cache_dir, "delete", "..") == 1
    assert "Usage:" in capsys.readouterr().err


def test_missing_cache_dir(tmp_path, capsys):
    assert run(tmp_path / "missing", "delete", "id") == 4
    err = capsys.readouterr().err
    assert err.startswith("afilecache: ")
    assert str(tmp_path / "missing") in err


def test_cache_dir_is_a_file(make_file, capsys):
    path = make_file("file", b"")
    assert run(path, "delete", "id") == 4
    assert "Not a directory" in capsys.readouterr().err


def test_put_missing_source(cache_dir, tmp_path, capsys):
    assert run(cache_dir, "put", "k", tmp_path / "missing") == 5
    err = capsys.readouterr().err
    assert err.startswith("afilecache: failed to open")
    assert str(tmp_path / "missing") in err


def test_lock_failure(cache_dir, make_file, capsys):
    (cache_dir / ".lock").mkdir()

    assert run(cache_dir, "put", "k", make_file("a", b"x")) == 6
    assert "failed to open" in capsys.readouterr().err


def test_clean(cache_dir, make_file):
    assert run(cache_dir, "put", "k", make_file("a", b"x")) == 0
    assert run(cache_dir, "clean", 0) == 0
    assert run(cache_dir, "delete", "k") == 2


def test_verbose_logs_misses(cache_dir, tmp_path, capsys):
    assert run("-v", cache_dir, "get", "missing-id", tmp_path / "x") == 2
    assert "miss" in capsys.readouterr().err


def test_prog_name_prefixes_messages(tmp_path, capsys):
    assert main([str(tmp_path / "missing"), "delete", "id"], prog="./my%cache") == 4
    assert capsys.readouterr().err.startswith("./my%cache: ")
