"""Process-wide cache of parsed archive indices."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable

import structlog

from rangefs.formats.index import ArchiveEntry

logger = structlog.get_logger()

IndexMapping = dict[str, ArchiveEntry]


class IndexCache:
    """Holds the parsed index of the archive currently being served.

    The cache is keyed by archive identity (the blob name read from the
    config store). Only one archive is held at a time: looking up a
    different name misses and the next load replaces the cached index.
    Concurrent misses for the same name share a single in-flight load.

    Args:
        ttl: Seconds a loaded index stays valid; None keeps it until the
            archive name changes
        clock: Monotonic time source
    """

    def __init__(
        self,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl is not None and ttl < 0:
            raise ValueError("TTL must be non-negative")
        self.ttl = ttl
        self._clock = clock
        self._name: str | None = None
        self._index: IndexMapping | None = None
        self._loaded_at = 0.0
        self._inflight: dict[str, asyncio.Future[IndexMapping]] = {}
        self.hits = 0
        self.misses = 0
        self.loads = 0

    @property
    def archive_name(self) -> str | None:
        """Name of the archive whose index is cached."""
        return self._name

    def _expired(self) -> bool:
        return self.ttl is not None and self._clock() - self._loaded_at >= self.ttl

    def get(self, name: str) -> IndexMapping | None:
        """Return the cached index for name if present and fresh."""
        if self._index is None or self._name != name or self._expired():
            return None
        return self._index

    def put(self, name: str, index: IndexMapping) -> None:
        """Store the index for name, replacing any other archive's index."""
        if self._name is not None and self._name != name:
            logger.info("index_cache_rotated", previous=self._name, current=name)
        self._name = name
        self._index = index
        self._loaded_at = self._clock()

    def invalidate(self) -> None:
        """Drop the cached index."""
        self._name = None
        self._index = None
        self._loaded_at = 0.0

    async def get_or_load(
        self,
        name: str,
        loader: Callable[[], Awaitable[IndexMapping]],
    ) -> IndexMapping:
        """Return the index for name, loading it on a miss.

        Args:
            name: Archive identity
            loader: Coroutine factory producing the parsed index

        Returns:
            Mapping of path to entry

        Raises:
            Exception: Whatever the loader raises; failures are not cached
        """
        cached = self.get(name)
        if cached is not None:
            self.hits += 1
            return cached

        self.misses += 1
        future = self._inflight.get(name)
        if future is None:
            future = asyncio.ensure_future(self._load(name, loader))
            self._inflight[name] = future
        else:
            logger.debug("index_load_joined", archive=name)

        # One caller being cancelled must not abort the shared load
        return await asyncio.shield(future)

    async def _load(
        self,
        name: str,
        loader: Callable[[], Awaitable[IndexMapping]],
    ) -> IndexMapping:
        try:
            index = await loader()
            self.loads += 1
            self.put(name, index)
            return index
        finally:
            self._inflight.pop(name, None)
