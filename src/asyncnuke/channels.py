"""Bounded, closable path channels between the crawler and the deleter."""

import asyncio
from collections import deque
from pathlib import Path


class ChannelClosedError(RuntimeError):
    """Raised when sending on a channel that has been closed."""


class PathChannel:
    """
    Bounded multi-producer/multi-consumer queue of paths.

    Producers block in ``send`` while the channel is full, which bounds memory
    regardless of how large the crawled tree is. Consumers block in ``receive``
    while the channel is empty and open. Once the channel is closed and drained,
    ``receive`` returns None so every consumer can exit on its own.
    """

    def __init__(self, capacity: int, name: str = "paths"):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")

        self.capacity = capacity
        self.name = name
        self._items: deque[Path] = deque()
        self._closed = False
        self._condition = asyncio.Condition()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, path: Path) -> None:
        """
        Put a path on the channel, waiting for free space.

        Raises:
            ChannelClosedError: If the channel was closed before space became available
        """
        async with self._condition:
            await self._condition.wait_for(lambda: self._closed or len(self._items) < self.capacity)
            if self._closed:
                raise ChannelClosedError(f"Channel '{self.name}' is closed, dropping {path}")
            self._items.append(path)
            self._condition.notify_all()

    async def receive(self) -> Path | None:
        """
        Take the next path, waiting while the channel is empty.

        Returns:
            The next path, or None once the channel is closed and empty
        """
        async with self._condition:
            await self._condition.wait_for(lambda: self._closed or len(self._items) > 0)
            if not self._items:
                return None
            path = self._items.popleft()
            # Wake producers waiting for space
            self._condition.notify_all()
            return path

    async def close(self) -> None:
        """Stop accepting paths. Already queued paths can still be received."""
        async with self._condition:
            self._closed = True
            self._condition.notify_all()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Path:
        path = await self.receive()
        if path is None:
            raise StopAsyncIteration
        return path
