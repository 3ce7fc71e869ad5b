"""Tests for cache configuration."""

import json

import pytest

from afilecache import CacheConfig, FileCache, UsageError
from afilecache.config import CONFIG_FILENAME, load_config


def test_defaults_without_config_file(cache_dir):
    config = load_config(cache_dir)
    assert config == CacheConfig()
    assert config.dmode == 0o777
    assert config.fmode == 0o666
    assert config.verify is False


def test_write_and_load(cache_dir):
    cache = FileCache(cache_dir)
    config = CacheConfig(chunk_size=1024, verify=True)

    cache.write_config(config)

    assert cache.config == config
    assert FileCache(cache_dir).config == config
    assert json.loads((cache_dir / CONFIG_FILENAME).read_text())["chunk_size"] == 1024


def test_write_refuses_to_overwrite(cache_dir):
    cache = FileCache(cache_dir)
    cache.write_config(CacheConfig())

    with pytest.raises(FileExistsError):
        cache.write_config(CacheConfig(verify=True))


def test_unknown_keys_are_ignored(cache_dir):
    (cache_dir / CONFIG_FILENAME).write_text(json.dumps({"verify": True, "color": "red"}))

    assert load_config(cache_dir) == CacheConfig(verify=True)


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"chunk_size": 0},
        {"chunk_size": "big"},
        {"fmode": 0o10000},
        {"dmode": True},
        {"verify": "yes"},
    ],
)
def test_invalid_config(cache_dir, data):
    (cache_dir / CONFIG_FILENAME).write_text(json.dumps(data))

    with pytest.raises(UsageError):
        load_config(cache_dir)


def test_malformed_json(cache_dir):
    (cache_dir / CONFIG_FILENAME).write_text("{")

    with pytest.raises(UsageError, match="invalid JSON"):
        FileCache(cache_dir)
