"""Command-line interface for AsyncNuke."""

import argparse
import asyncio
import os
import sys

from . import __version__
from .nuker import DEFAULT_BUFFER_SIZE, async_main
from .validator import validate_args


def _env_int(name: str) -> int | None:
    value = os.getenv(name, "")
    return int(value) if value else None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser. Defaults can be set with ASYNCNUKE_* environment variables."""
    parser = argparse.ArgumentParser(
        prog="asyncnuke",
        description="AsyncNuke - Concurrent bulk deleter for large filesystem trees",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )

    parser.add_argument(
        "paths",
        nargs="+",
        help="Paths or glob patterns (* and ?) of the files and directories to delete",
    )

    parser.add_argument(
        "-t",
        "--threads",
        type=int,
        default=_env_int("ASYNCNUKE_THREADS"),
        help="Number of deletion workers per queue, 1-64 (default: CPU cores x 10)",
    )

    parser.add_argument(
        "-b",
        "--buffer",
        dest="buffer_size",
        type=int,
        default=int(os.getenv("ASYNCNUKE_BUFFER_SIZE", str(DEFAULT_BUFFER_SIZE))),
        help="Queue capacity between crawler and deleter, 100-2000",
    )

    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        help="Don't actually delete anything, just report what would be deleted",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log every discovered and deleted object",
    )

    parser.add_argument(
        "-l",
        "--logfile-path",
        dest="log_dir",
        default=os.getenv("ASYNCNUKE_LOGFILE_PATH") or None,
        help="Directory for a timestamped log file (in addition to stdout)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=os.getenv("ASYNCNUKE_LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--progress-interval",
        type=float,
        default=float(os.getenv("ASYNCNUKE_PROGRESS_INTERVAL", "30")),
        help="Seconds between progress updates",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"asyncnuke {__version__}",
    )

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        validate_args(args.paths, args.log_dir, args.buffer_size, args.threads)
    except ValueError as e:
        parser.error(str(e))

    if args.progress_interval <= 0:
        parser.error(f"--progress-interval must be > 0, got {args.progress_interval}")

    return args


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    args = parse_args(argv)

    try:
        stats = asyncio.run(
            async_main(
                paths=args.paths,
                threads=args.threads,
                buffer_size=args.buffer_size,
                dry_run=args.dry_run,
                log_level=args.log_level,
                verbose=args.verbose,
                log_dir=args.log_dir,
                progress_interval=args.progress_interval,
            )
        )
    except KeyboardInterrupt:
        print("\nOperation cancelled by user", file=sys.stderr)
        sys.exit(130)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(1)

    # Failed deletions are reported but only a failed crawl makes the run fail
    if stats["crawl_errors"]:
        print(f"Crawl failed for {stats['crawl_errors']} path(s)", file=sys.stderr)
        sys.exit(1)

    sys.exit(0)


if __name__ == "__main__":
    main()
