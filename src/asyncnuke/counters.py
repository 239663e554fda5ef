"""Shared run counters.

Every counter carries its own lock so that the file pipeline and the directory
pipeline never serialize on each other. Values are only read for reporting.
"""

import asyncio


class Counter:
    """An integer that many tasks can increment."""

    def __init__(self, name: str):
        self.name = name
        self._value = 0
        self._lock = asyncio.Lock()

    async def increment(self, amount: int = 1) -> None:
        """Add ``amount`` to the counter."""
        async with self._lock:
            self._value += amount

    @property
    def value(self) -> int:
        return self._value

    def __repr__(self) -> str:
        return f"Counter({self.name}={self._value})"


class Counters:
    """All counters of a single run."""

    NAMES = (
        "objects_found",
        "directories_found",
        "crawl_ops",
        "stat_ops",
        "deletion_ops",
        "failed_deletions",
        "bytes_deleted",
        "directories_removed",
    )

    def __init__(self):
        self.objects_found = Counter("objects_found")  # files + symlinks queued by the file pass
        self.directories_found = Counter("directories_found")
        self.crawl_ops = Counter("crawl_ops")
        self.stat_ops = Counter("stat_ops")
        self.deletion_ops = Counter("deletion_ops")
        self.failed_deletions = Counter("failed_deletions")
        self.bytes_deleted = Counter("bytes_deleted")
        self.directories_removed = Counter("directories_removed")

    def snapshot(self) -> dict[str, int]:
        """Return the current value of every counter."""
        return {name: getattr(self, name).value for name in self.NAMES}

    def total_operations(self) -> int:
        """Metadata operations used for the operations-per-second figure."""
        return self.crawl_ops.value + self.stat_ops.value + self.deletion_ops.value
