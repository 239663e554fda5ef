"""Filesystem crawler that feeds the file and directory channels.

Two independent passes run over the same patterns:

- the file pass queues every top-level file or symlink matched by a pattern
  and never descends into directories;
- the directory pass walks every matched directory depth-first and queues each
  directory after all of its children were visited (post-order).

Nested files are never queued; they go away with the recursive removal of the
directory that contains them.
"""

import asyncio
import glob
import logging
import os
import stat
from concurrent.futures import Executor
from pathlib import Path

import aiofiles.os

from .channels import ChannelClosedError, PathChannel
from .counters import Counters
from .logging import log_with_context


async def async_scandir(path: Path, executor: Executor | None = None) -> list[os.DirEntry]:
    """Async wrapper for os.scandir."""
    loop = asyncio.get_running_loop()

    def _scandir():
        with os.scandir(path) as entries:
            return list(entries)

    return await loop.run_in_executor(executor, _scandir)


async def async_glob(pattern: str, executor: Executor | None = None) -> list[Path]:
    """Expand a glob pattern without following the usual hidden-file exclusion."""
    loop = asyncio.get_running_loop()

    def _glob():
        return sorted(glob.glob(pattern, include_hidden=True))

    return [Path(match) for match in await loop.run_in_executor(executor, _glob)]


class CrawlError(Exception):
    """One or more crawl tasks of a pass failed."""

    def __init__(self, mode_name: str, errors: list[tuple[str, BaseException]]):
        self.mode_name = mode_name
        self.errors = errors
        shown = ", ".join(path for path, _ in errors[:5])
        more = f" (+{len(errors) - 5} more)" if len(errors) > 5 else ""
        super().__init__(f"{mode_name} crawl failed for {len(errors)} path(s): {shown}{more}")

    @property
    def failed_paths(self) -> list[str]:
        return [path for path, _ in self.errors]


class CrawlMode:
    """Policy applied to every path visited by a crawl pass."""

    name = "base"

    async def visit(self, crawler: "Crawler", path: Path, channel: PathChannel) -> None:
        raise NotImplementedError


class FileMode(CrawlMode):
    """Queue top-level files and symlinks, skip directories entirely."""

    name = "file"

    async def visit(self, crawler: "Crawler", path: Path, channel: PathChannel) -> None:
        st = await crawler.inspect(path)

        if stat.S_ISREG(st.st_mode) or stat.S_ISLNK(st.st_mode):
            await crawler.counters.objects_found.increment()
            await crawler.enqueue(path, channel)
        elif stat.S_ISDIR(st.st_mode):
            crawler.logger.debug(f"File pass skipping directory: {path}")
        else:
            crawler.logger.debug(f"File pass skipping special file: {path}")


class DirectoryMode(CrawlMode):
    """Walk directories depth-first and queue each one after its children."""

    name = "directory"

    async def visit(self, crawler: "Crawler", path: Path, channel: PathChannel) -> None:
        st = await crawler.inspect(path)

        # Files, symlinks and special files are removed with their parent directory
        if not stat.S_ISDIR(st.st_mode):
            return

        entries = await async_scandir(path, crawler.executor)
        for entry in entries:
            await self.visit(crawler, Path(entry.path), channel)

        await crawler.counters.directories_found.increment()
        await crawler.enqueue(path, channel)


class Crawler:
    """
    Discover filesystem objects under a set of path patterns.

    Every pattern match is crawled by its own task, so independent subtrees are
    walked concurrently while the walk below one match stays sequential.
    """

    def __init__(
        self,
        counters: Counters,
        logger: logging.Logger | None = None,
        executor: Executor | None = None,
    ):
        self.counters = counters
        self.logger = logger or logging.getLogger("asyncnuke")
        self.executor = executor

    async def inspect(self, path: Path) -> os.stat_result:
        """lstat a path, counting the crawl step and the stat call."""
        await self.counters.crawl_ops.increment()
        st = await aiofiles.os.stat(path, follow_symlinks=False, executor=self.executor)
        await self.counters.stat_ops.increment()
        self.logger.debug(f"Found object: {path}")
        return st

    async def enqueue(self, path: Path, channel: PathChannel) -> None:
        """Send a path to the deleter. A closed channel drops the path."""
        try:
            await channel.send(path)
        except ChannelClosedError as e:
            log_with_context(
                self.logger,
                "error",
                "Failed to queue path for deletion",
                {"path": str(path), "channel": channel.name, "error": str(e)},
            )

    async def _crawl_match(self, match: Path, channel: PathChannel, mode: CrawlMode) -> None:
        """Crawl one pattern match. The match itself may already be gone."""
        try:
            await mode.visit(self, match, channel)
        except FileNotFoundError as e:
            # Both passes expand the same patterns, so the other pass's workers
            # can remove a top-level match first. Anything deeper still fails.
            if e.filename is None or Path(e.filename) != match:
                raise
            self.logger.debug(f"{mode.name.capitalize()} pass skipping vanished path: {match}")

    async def run(self, patterns: list[str], channel: PathChannel, mode: CrawlMode) -> None:
        """
        Crawl all patterns with the given mode.

        Args:
            patterns: Path patterns, possibly containing glob wildcards
            channel: Channel receiving the discovered paths
            mode: FileMode or DirectoryMode

        Raises:
            CrawlError: If any pattern could not be expanded or any subtree walk failed.
                Raised only after every other task of the pass has finished.
        """
        errors: list[tuple[str, BaseException]] = []
        tasks: list[tuple[str, asyncio.Task]] = []

        for pattern in patterns:
            try:
                matches = await async_glob(pattern, self.executor)
            except Exception as e:
                log_with_context(
                    self.logger,
                    "error",
                    "Failed to expand path pattern",
                    {"pattern": pattern, "mode": mode.name, "error": str(e), "error_type": type(e).__name__},
                )
                errors.append((pattern, e))
                continue

            if not matches:
                log_with_context(self.logger, "warning", "Pattern matched no paths", {"pattern": pattern})
                continue

            for match in matches:
                tasks.append((str(match), asyncio.create_task(self._crawl_match(match, channel, mode))))

        results = await asyncio.gather(*(task for _, task in tasks), return_exceptions=True)

        for (path, _), result in zip(tasks, results):
            if isinstance(result, Exception):
                log_with_context(
                    self.logger,
                    "error",
                    "Crawl aborted for path",
                    {
                        "path": path,
                        "mode": mode.name,
                        "error": str(result),
                        "error_type": type(result).__name__,
                    },
                )
                errors.append((path, result))

        if errors:
            raise CrawlError(mode.name, errors)

        self.logger.debug(f"{mode.name.capitalize()} crawl finished for {len(tasks)} path(s)")
