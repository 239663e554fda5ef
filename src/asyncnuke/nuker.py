"""Concurrent crawl-and-delete pipeline."""

import asyncio
import logging
import time
from concurrent.futures import ThreadPoolExecutor

import psutil

from . import __version__
from .channels import PathChannel
from .counters import Counters
from .crawler import CrawlError, Crawler, CrawlMode, DirectoryMode, FileMode
from .deleter import DeletionResult, Deleter
from .logging import log_with_context, resolve_log_file, setup_logging, shutdown_logging
from .threads import ThreadInfo

DEFAULT_BUFFER_SIZE = 100


def get_memory_usage_mb() -> float:
    """Get current memory usage in MB."""
    return psutil.Process().memory_info().rss / 1024 / 1024


class AsyncNuker:
    """
    Delete everything matched by a set of path patterns.

    Runs two crawl passes and two deleter pools at the same time:
    - file pass -> file channel -> file workers (unlink)
    - directory pass -> directory channel -> directory workers (recursive removal)

    Each channel is closed when its crawl pass ends, and each pool finishes once
    its channel is closed and drained.
    """

    def __init__(
        self,
        patterns: list[str],
        threads: int | None = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        dry_run: bool = False,
        log_level: str = "INFO",
        verbose: bool = False,
        log_file: str | None = None,
        progress_interval: float = 30,
    ):
        """
        Initialize the nuker.

        Args:
            patterns: Paths or glob patterns to delete
            threads: Explicit worker count per pool (None = cores x 10)
            buffer_size: Capacity of each channel
            dry_run: If True, only report what would be deleted
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
            verbose: Log every discovered and deleted object (forces DEBUG)
            log_file: Optional file receiving a copy of every log line
            progress_interval: Seconds between progress updates

        Raises:
            ValueError: If invalid parameters are provided
        """
        if not patterns:
            raise ValueError("At least one path pattern is required")
        if threads is not None and threads < 1:
            raise ValueError(f"threads must be >= 1, got {threads}")
        if buffer_size < 1:
            raise ValueError(f"buffer_size must be >= 1, got {buffer_size}")
        if progress_interval <= 0:
            raise ValueError(f"progress_interval must be > 0, got {progress_interval}")

        self.patterns = [str(pattern) for pattern in patterns]
        self.thread_info = ThreadInfo.detect(threads)
        self.worker_count = self.thread_info.total_thread_count
        self.buffer_size = buffer_size
        self.dry_run = dry_run
        self.verbose = verbose
        self.log_file = log_file
        self.progress_interval = progress_interval

        self.counters = Counters()
        self.crawl_errors: list[BaseException] = []
        self.deletion = DeletionResult()

        self.file_channel: PathChannel | None = None
        self.dir_channel: PathChannel | None = None

        self.logger = setup_logging("asyncnuke", "DEBUG" if verbose else log_level, log_file)

        self.start_time = time.time()

    async def _crawl_pass(self, crawler: Crawler, mode: CrawlMode, channel: PathChannel) -> None:
        """Run one crawl pass and close its channel however the pass ends."""
        try:
            await crawler.run(self.patterns, channel, mode)
        finally:
            await channel.close()

    async def _delete_pass(self, deleter: Deleter, channel: PathChannel) -> DeletionResult:
        """Run one deleter pool. If the pool dies, close the channel so the crawler cannot block on it."""
        try:
            return await deleter.delete_all(channel, self.worker_count)
        except BaseException:
            await channel.close()
            raise

    async def _background_progress_reporter(self) -> None:
        """Log counter snapshots every progress_interval seconds."""
        while True:
            await asyncio.sleep(self.progress_interval)

            elapsed = time.time() - self.start_time
            snapshot = self.counters.snapshot()
            total_ops = self.counters.total_operations()

            progress_data = {
                "elapsed_seconds": round(elapsed, 1),
                "objects_found": snapshot["objects_found"],
                "directories_found": snapshot["directories_found"],
                "deletion_ops": snapshot["deletion_ops"],
                "failed_deletions": snapshot["failed_deletions"],
                "operations_per_second": round(total_ops / elapsed, 1) if elapsed > 0 else 0.0,
                "memory_mb": round(get_memory_usage_mb(), 1),
            }

            if self.logger.isEnabledFor(logging.DEBUG):
                progress_data["crawl_ops"] = snapshot["crawl_ops"]
                progress_data["stat_ops"] = snapshot["stat_ops"]
                progress_data["bytes_deleted"] = snapshot["bytes_deleted"]
                if self.file_channel is not None:
                    progress_data["file_queue_depth"] = len(self.file_channel)
                if self.dir_channel is not None:
                    progress_data["dir_queue_depth"] = len(self.dir_channel)

            log_with_context(self.logger, "info", "Progress update", progress_data)

    def _record_results(self, crawl_results: list, delete_results: list) -> None:
        for result in crawl_results:
            if isinstance(result, CrawlError):
                self.crawl_errors.append(result)
                log_with_context(
                    self.logger,
                    "error",
                    "Crawl pass failed",
                    {"mode": result.mode_name, "failed_paths": result.failed_paths[:10], "failures": len(result.errors)},
                )
            elif isinstance(result, BaseException):
                self.crawl_errors.append(result)
                log_with_context(
                    self.logger,
                    "error",
                    "Crawl pass crashed",
                    {"error": str(result), "error_type": type(result).__name__},
                )

        for result in delete_results:
            if isinstance(result, BaseException):
                log_with_context(
                    self.logger,
                    "error",
                    "Deleter pool crashed",
                    {"error": str(result), "error_type": type(result).__name__},
                )
            else:
                self.deletion = self.deletion.merge(result)

    def crawl_error_count(self) -> int:
        """Number of failed crawl tasks across both passes."""
        return sum(len(e.errors) if isinstance(e, CrawlError) else 1 for e in self.crawl_errors)

    async def nuke(self) -> dict:
        """
        Main operation - crawl and delete everything matched by the patterns.

        Returns:
            Dictionary with operation statistics
        """
        self.start_time = time.time()
        mode = "DRY RUN" if self.dry_run else "NUKE"

        log_with_context(
            self.logger,
            "info",
            f"Starting AsyncNuke - {mode} MODE",
            {
                "version": __version__,
                "patterns": self.patterns,
                "dry_run": self.dry_run,
                "log_file": self.log_file or "None",
                "core_count": self.thread_info.core_count,
                "thread_count": self.thread_info.total_thread_count,
                "worker_count": self.worker_count,
                "buffer_size": self.buffer_size,
                "progress_interval_seconds": self.progress_interval,
            },
        )

        executor = ThreadPoolExecutor(
            max_workers=self.thread_info.total_thread_count, thread_name_prefix="asyncnuke"
        )
        self.file_channel = PathChannel(self.buffer_size, "files")
        self.dir_channel = PathChannel(self.buffer_size, "directories")
        crawler = Crawler(self.counters, self.logger, executor)
        deleter = Deleter(self.counters, self.logger, self.dry_run, executor)

        progress_task = asyncio.create_task(self._background_progress_reporter())

        try:
            results = await asyncio.gather(
                self._crawl_pass(crawler, FileMode(), self.file_channel),
                self._crawl_pass(crawler, DirectoryMode(), self.dir_channel),
                self._delete_pass(deleter, self.file_channel),
                self._delete_pass(deleter, self.dir_channel),
                return_exceptions=True,
            )
        finally:
            progress_task.cancel()
            try:
                await progress_task
            except asyncio.CancelledError:
                pass  # Expected
            executor.shutdown(wait=True)

        self._record_results(results[:2], results[2:])

        snapshot = self.counters.snapshot()
        log_with_context(
            self.logger,
            "info",
            "Crawl summary",
            {
                "total_directories": snapshot["directories_found"],
                "total_files_and_symlinks": snapshot["objects_found"],
            },
        )

        duration = time.time() - self.start_time
        total_ops = self.counters.total_operations()
        ops_per_second = total_ops / duration if duration > 0 else 0.0
        mb_deleted = snapshot["bytes_deleted"] / 1024 / 1024

        final_stats = {
            "duration_seconds": round(duration, 2),
            "objects_found": snapshot["objects_found"],
            "directories_found": snapshot["directories_found"],
            "deletion_ops": snapshot["deletion_ops"],
            "directories_removed": snapshot["directories_removed"],
            "failed_deletions": snapshot["failed_deletions"],
            "crawl_errors": self.crawl_error_count(),
            "bytes_deleted": snapshot["bytes_deleted"],
            "mb_deleted": round(mb_deleted, 2),
            "crawl_ops": snapshot["crawl_ops"],
            "stat_ops": snapshot["stat_ops"],
            "operations_per_second": round(ops_per_second, 2),
            "peak_memory_mb": round(get_memory_usage_mb(), 1),
            "dry_run": self.dry_run,
        }

        log_with_context(self.logger, "info", "Nuke operation completed", final_stats)

        return final_stats


async def async_main(
    paths: list[str],
    threads: int | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    dry_run: bool = False,
    log_level: str = "INFO",
    verbose: bool = False,
    log_dir: str | None = None,
    progress_interval: float = 30,
) -> dict:
    """
    Async entry point for the nuker.

    Args:
        paths: Paths or glob patterns to delete
        threads: Explicit worker count per pool (None = automatic)
        buffer_size: Capacity of each channel
        dry_run: If True, don't actually delete anything
        log_level: Logging level
        verbose: Log every discovered and deleted object
        log_dir: Directory for a timestamped log file (None = console only)
        progress_interval: Seconds between progress updates

    Returns:
        Operation statistics
    """
    nuker = AsyncNuker(
        patterns=paths,
        threads=threads,
        buffer_size=buffer_size,
        dry_run=dry_run,
        log_level=log_level,
        verbose=verbose,
        log_file=resolve_log_file(log_dir),
        progress_interval=progress_interval,
    )

    try:
        return await nuker.nuke()
    finally:
        # Flush the background log writer before the process exits
        shutdown_logging("asyncnuke")
