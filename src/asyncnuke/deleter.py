"""Worker pool that removes the paths arriving on a channel."""

import asyncio
import logging
import os
import shutil
import stat
import sys
from concurrent.futures import Executor
from dataclasses import dataclass
from pathlib import Path

import aiofiles.os

from .channels import PathChannel
from .counters import Counters
from .logging import log_with_context


def _ignore_vanished_children(root: str):
    """
    Build an rmtree error handler that tolerates entries removed by someone else.

    A nested directory is queued before its ancestors, so its removal can run
    at the same time as an ancestor's. Entries below ``root`` that are already
    gone are skipped; a missing ``root`` and every other error are re-raised.
    """

    def handler(func, path, error):
        # onexc passes the exception, onerror passes sys.exc_info()
        exc = error[1] if isinstance(error, tuple) else error
        if isinstance(exc, FileNotFoundError) and os.fspath(path) != root:
            return
        raise exc

    return handler


def _rmtree(path: str) -> None:
    handler = _ignore_vanished_children(path)
    if sys.version_info >= (3, 12):
        shutil.rmtree(path, onexc=handler)
    else:
        shutil.rmtree(path, onerror=handler)


async def async_rmtree(path: Path, executor: Executor | None = None) -> None:
    """Async wrapper for shutil.rmtree that skips children already removed concurrently."""
    loop = asyncio.get_running_loop()
    await loop.run_in_executor(executor, _rmtree, os.fspath(path))


@dataclass
class DeletionResult:
    """Failures and freed bytes of one worker or one pool."""

    failed_deletions: int = 0
    bytes_deleted: int = 0

    def merge(self, other: "DeletionResult") -> "DeletionResult":
        return DeletionResult(
            failed_deletions=self.failed_deletions + other.failed_deletions,
            bytes_deleted=self.bytes_deleted + other.bytes_deleted,
        )


class Deleter:
    """
    Remove files, symlinks and directory trees received from the crawler.

    Files and symlinks are unlinked one by one. Directories are removed together
    with everything still inside them. A failed removal is counted and logged,
    and the worker moves on to the next path.
    """

    def __init__(
        self,
        counters: Counters,
        logger: logging.Logger | None = None,
        dry_run: bool = False,
        executor: Executor | None = None,
    ):
        """
        Initialize the deleter.

        Args:
            counters: Shared run counters
            logger: Logger instance (defaults to the "asyncnuke" logger)
            dry_run: If True, classify paths but never remove anything
            executor: Thread pool for blocking filesystem calls (None = loop default)
        """
        self.counters = counters
        self.logger = logger or logging.getLogger("asyncnuke")
        self.dry_run = dry_run
        self.executor = executor
        # Directories whose recursive removal has started
        self._removing: set[str] = set()

    def removed_with_ancestor(self, path: Path) -> bool:
        """True if an ancestor of ``path`` is being or has been removed recursively."""
        return any(os.fspath(parent) in self._removing for parent in Path(path).parents)

    async def delete_all(self, channel: PathChannel, worker_count: int) -> DeletionResult:
        """
        Drain a channel with ``worker_count`` competing workers.

        Returns once the channel is closed and every queued path was processed.

        Args:
            channel: Channel to drain
            worker_count: Number of concurrent workers

        Returns:
            Failed deletions and bytes deleted by this pool
        """
        if worker_count < 1:
            raise ValueError(f"worker_count must be >= 1, got {worker_count}")

        workers = [asyncio.create_task(self._worker(worker_id, channel)) for worker_id in range(worker_count)]
        tallies = await asyncio.gather(*workers)

        result = DeletionResult()
        for tally in tallies:
            result = result.merge(tally)

        self.logger.debug(f"All {channel.name} workers finished")
        return result

    async def _worker(self, worker_id: int, channel: PathChannel) -> DeletionResult:
        tally = DeletionResult()

        async for path in channel:
            self.logger.debug(f"Worker {worker_id} picked up path: {path}")
            try:
                tally.bytes_deleted += await self.process_path(path)
            except OSError as e:
                if isinstance(e, FileNotFoundError) and self.removed_with_ancestor(path):
                    self.logger.debug(f"Already removed with its ancestor: {path}")
                    continue
                tally.failed_deletions += 1
                await self.counters.failed_deletions.increment()
                log_with_context(
                    self.logger,
                    "warning",
                    "Failed to delete path",
                    {"worker": worker_id, "path": str(path), "error": str(e), "error_type": type(e).__name__},
                )
            except Exception as e:
                tally.failed_deletions += 1
                await self.counters.failed_deletions.increment()
                log_with_context(
                    self.logger,
                    "error",
                    "Unexpected error deleting path",
                    {"worker": worker_id, "path": str(path), "error": str(e), "error_type": type(e).__name__},
                )

        self.logger.debug(f"Worker {worker_id} finished processing {channel.name} paths")
        return tally

    async def process_path(self, path: Path) -> int:
        """
        Classify a path and remove it.

        Args:
            path: File, symlink or directory to remove

        Returns:
            Bytes freed by unlinking a file or symlink, 0 otherwise

        Raises:
            OSError: If the path cannot be inspected or removed
        """
        # Never follow symlinks: a link is removed, its target is left alone
        st = await aiofiles.os.stat(path, follow_symlinks=False, executor=self.executor)

        if stat.S_ISREG(st.st_mode) or stat.S_ISLNK(st.st_mode):
            if self.dry_run:
                self.logger.debug(f"Would delete file/symlink: {path}")
                return 0

            await aiofiles.os.remove(path, executor=self.executor)
            await self.counters.deletion_ops.increment()
            await self.counters.bytes_deleted.increment(st.st_size)
            self.logger.debug(f"Deleted file/symlink: {path}")
            return st.st_size

        if stat.S_ISDIR(st.st_mode):
            if self.dry_run:
                self.logger.debug(f"Would delete directory: {path}")
                return 0

            self._removing.add(os.fspath(path))
            await async_rmtree(path, self.executor)
            await self.counters.deletion_ops.increment()
            await self.counters.directories_removed.increment()
            self.logger.debug(f"Deleted directory: {path}")
            return 0

        self.logger.debug(f"Skipping special file: {path}")
        return 0
