"""Worker thread sizing."""

from dataclasses import dataclass

import psutil

# Threads per CPU core when the user does not pass --threads
DEFAULT_THREAD_RATIO = 10


def compute_thread_count(explicit_override: int | None, core_count: int, ratio: int = DEFAULT_THREAD_RATIO) -> int:
    """
    Derive the total worker thread count.

    Args:
        explicit_override: User supplied thread count (already range-checked), or None
        core_count: Number of logical CPU cores
        ratio: Threads per core used when no override is given

    Returns:
        The override verbatim when given, otherwise ``core_count * ratio``
    """
    if explicit_override is not None:
        return explicit_override
    return core_count * ratio


@dataclass(frozen=True)
class ThreadInfo:
    """CPU core count and the number of threads used by the deleter pools."""

    core_count: int
    total_thread_count: int

    @classmethod
    def detect(cls, explicit_override: int | None = None, ratio: int = DEFAULT_THREAD_RATIO) -> "ThreadInfo":
        """Build ThreadInfo from the logical core count of this machine."""
        core_count = psutil.cpu_count(logical=True) or 1
        return cls(
            core_count=core_count,
            total_thread_count=compute_thread_count(explicit_override, core_count, ratio),
        )
