"""Command-line front end: one cache operation per invocation."""

from __future__ import annotations

import argparse
import logging
import os
import sys

import anyio

from .afilecache import FileCache
from .errors import ExitCode, FileCacheError, InternalError, UsageError

logger = logging.getLogger(__name__)

USAGE = """\
Usage:
\t%(prog)s <cache directory> put <id> <file path>
\t%(prog)s <cache directory> get <id> <file path>
\t%(prog)s <cache directory> delete <id>
\t%(prog)s <cache directory> clean <max size in MB>
"""


class _ArgumentParser(argparse.ArgumentParser):
    # argparse exits with 2 on bad arguments, which is the miss code here
    def error(self, message: str):
        raise UsageError(message)


def setup_logging(prog: str, verbose: int = 0) -> None:
    """Send the package's log records to stderr, prefixed with `prog`."""
    package_logger = logging.getLogger("afilecache")
    package_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(prog.replace("%", "%%") + ": %(message)s"))
    package_logger.addHandler(handler)

    if verbose >= 2:
        package_logger.setLevel(logging.DEBUG)
    elif verbose == 1:
        package_logger.setLevel(logging.INFO)
    else:
        package_logger.setLevel(logging.WARNING)
    package_logger.propagate = False


def _non_empty(value: str) -> str:
    if not value:
        raise argparse.ArgumentTypeError("must not be empty")
    return value


def _size_mb(value: str) -> int:
    try:
        size = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid size: {value!r}") from None
    if size < 0:
        raise argparse.ArgumentTypeError("size must not be negative")
    return size


def build_parser(prog: str) -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog=prog,
        description="File cache safe for concurrent use by many processes",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0,
                        help="Log misses (-v) and every operation (-vv)")
    parser.add_argument("cache_dir", type=_non_empty, help="Cache directory")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_put = subparsers.add_parser("put", help="Store a file under an identifier")
    p_put.add_argument("id", type=_non_empty)
    p_put.add_argument("file", type=_non_empty, help="File to store")

    p_get = subparsers.add_parser("get", help="Copy a stored file out of the cache")
    p_get.add_argument("id", type=_non_empty)
    p_get.add_argument("file", type=_non_empty, help="Where to write the file")

    p_delete = subparsers.add_parser("delete", help="Remove a stored file")
    p_delete.add_argument("id", type=_non_empty)

    p_clean = subparsers.add_parser("clean", help="Evict files down to a size")
    p_clean.add_argument("max_size_mb", type=_size_mb, metavar="max-size-MB")

    return parser


async def run_command(args: argparse.Namespace) -> ExitCode:
    """Run the parsed command, returning its exit code.

    Raises:
        FileCacheError: If the operation fails.
    """
    cache = FileCache(os.path.abspath(args.cache_dir))

    match args.command:
        case "put":
            await cache.put(args.id, args.file)
        case "get":
            if await cache.get(args.id, args.file) is None:
                return ExitCode.MISS
        case "delete":
            if await cache.delete(args.id) is None:
                return ExitCode.MISS
        case "clean":
            evicted = await cache.clean(args.max_size_mb)
            logger.info("evicted %d entries", len(evicted))
        case _:
            raise InternalError(f"unknown command {args.command!r}")

    return ExitCode.OK


def main(argv: list[str] | None = None, prog: str | None = None) -> int:
    """Parse `argv`, run the command and return the process exit code."""
    if argv is None:
        argv = sys.argv[1:]
    if prog is None:
        prog = os.path.basename(sys.argv[0]) or "afilecache"

    parser = build_parser(prog)
    setup_logging(prog)

    try:
        args = parser.parse_args(argv)
    except UsageError as exc:
        sys.stderr.write(USAGE % {"prog": prog})
        logger.error("%s", exc)
        return ExitCode.USAGE

    setup_logging(prog, args.verbose)

    try:
        return anyio.run(run_command, args)
    except UsageError as exc:
        sys.stderr.write(USAGE % {"prog": prog})
        logger.error("%s", exc)
        return exc.exit_code
    except FileCacheError as exc:
        logger.error("%s", exc)
        return exc.exit_code
    except OSError as exc:
        logger.error("%s", exc)
        return ExitCode.FILE_OPS


def cli() -> None:
    sys.exit(main())
