"""
The shared set of named cache partitions under one storage root.
"""

import asyncio
import logging
import shutil
from pathlib import Path

from sitecache.exceptions import StorageError
from sitecache.models.http import Request, Response

from .partition import CachePartition

log = logging.getLogger(__name__)


class CacheStorage:
    """
    Durable, process-wide storage of cache partitions. Each partition is a
    directory below the storage root; it outlives any single worker.
    """

    def __init__(self, root_dir: Path):
        self.root_dir = root_dir
        self.root_dir.mkdir(parents=True, exist_ok=True)
        self._partitions: dict[str, CachePartition] = {}

    async def open(self, name: str) -> CachePartition:
        """Returns the named partition, creating it on first open."""
        partition = self._get(name)
        await partition.ensure_exists()
        return partition

    def _get(self, name: str) -> CachePartition:
        partition = self._partitions.get(name)
        if partition is None:
            partition = self._partitions[name] = CachePartition(name, self.root_dir)
        return partition

    async def has(self, name: str) -> bool:
        return await asyncio.to_thread((self.root_dir / name).is_dir)

    async def keys(self) -> list[str]:
        """Returns the names of all existing partitions."""
        return await asyncio.to_thread(self._list_names)

    def _list_names(self) -> list[str]:
        if not self.root_dir.is_dir():
            return []
        return sorted(p.name for p in self.root_dir.iterdir() if p.is_dir())

    async def delete(self, name: str) -> bool:
        """Deletes a partition and all its entries. Returns False if it did not exist."""
        self._partitions.pop(name, None)
        path = self.root_dir / name
        if not await asyncio.to_thread(path.is_dir):
            return False
        try:
            await asyncio.to_thread(shutil.rmtree, path)
        except OSError as e:
            raise StorageError(f"Failed to delete partition '{name}': {e}") from e
        return True

    async def match(self, request: Request) -> Response | None:
        """Looks a request up in every partition and returns the first hit."""
        for name in await self.keys():
            partition = self._get(name)
            response = await partition.match(request)
            if response is not None:
                return response
        return None

    async def total_size(self) -> int:
        """
        Sums the body sizes of every entry in every partition. An unreadable
        entry raises StorageError.
        """
        total_size = 0
        for name in await self.keys():
            total_size += await self._get(name).size()
        return total_size

    async def describe(self) -> list[dict[str, int | str]]:
        """Returns name, entry count and byte size for each partition."""
        summary = []
        for name in await self.keys():
            partition = self._get(name)
            requests = await partition.keys()
            size = 0
            for request in requests:
                response = await partition.match(request)
                if response is not None:
                    size += response.size
            summary.append({"name": name, "entries": len(requests), "size": size})
        return summary

    async def clear(self) -> int:
        """Removes all partitions. Returns how many were removed."""
        log.info("Clearing all cache partitions...")
        removed = 0
        for name in await self.keys():
            if await self.delete(name):
                removed += 1
        return removed
