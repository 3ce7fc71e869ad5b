from __future__ import annotations

import json
import pathlib
from dataclasses import asdict, dataclass, fields
from typing import Any

from .errors import UsageError

CONFIG_FILENAME = ".afilecache_conf.json"

DEFAULT_CHUNK_SIZE = 4096 * 64


@dataclass(frozen=True)
class CacheConfig:
    """Tunables of a cache directory.

    Attributes:
        dmode: Mode of new shard directories, before the umask is applied.
        fmode: Mode of new entry files and copies handed out by `get`,
            before the umask is applied.
        chunk_size: Size of the reads and writes used when copying files.
        verify: Re-hash every copy and compare it with the bytes that were
            read, failing the operation on mismatch.
    """

    dmode: int = 0o777
    fmode: int = 0o666
    chunk_size: int = DEFAULT_CHUNK_SIZE
    verify: bool = False

    def __post_init__(self) -> None:
        for name in ("dmode", "fmode", "chunk_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise UsageError(f"{name} must be an integer, got {value!r}")
        if not 0 <= self.dmode <= 0o7777 or not 0 <= self.fmode <= 0o7777:
            raise UsageError("dmode and fmode must be valid permission bits")
        if self.chunk_size <= 0:
            raise UsageError("chunk_size must be positive")
        if not isinstance(self.verify, bool):
            raise UsageError(f"verify must be a boolean, got {self.verify!r}")

    @classmethod
    def from_json(cls, data: Any) -> CacheConfig:
        """Build a config from parsed JSON, ignoring unknown keys."""
        if not isinstance(data, dict):
            raise UsageError("cache config must be a JSON object")
        known = {field.name for field in fields(cls)}
        return cls(**{key: value for key, value in data.items() if key in known})

    def to_json(self) -> dict[str, Any]:
        return asdict(self)


def config_path(root: pathlib.Path) -> pathlib.Path:
    return root.joinpath(CONFIG_FILENAME)


def load_config(root: pathlib.Path) -> CacheConfig:
    """Load the config saved in `root`, or the defaults if there is none."""
    try:
        text = config_path(root).read_text()
    except FileNotFoundError:
        # no config file means defaults
        return CacheConfig()

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise UsageError(f"{config_path(root)}: invalid JSON: {exc}") from exc

    return CacheConfig.from_json(data)


def save_config(root: pathlib.Path, config: CacheConfig) -> None:
    path = config_path(root)
    if path.exists():
        raise FileExistsError("Overwriting existing config may change cache behavior")
    path.write_text(json.dumps(config.to_json()))
