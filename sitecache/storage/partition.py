"""
A single named cache partition: a durable, file-based store mapping requests
to responses.
"""

import asyncio
import hashlib
import json
import logging
import time
from collections import OrderedDict
from pathlib import Path
from uuid import uuid4

import aiofiles
import aiofiles.os

from sitecache.exceptions import StorageError
from sitecache.models.http import Request, Response

log = logging.getLogger(__name__)


def vary_names(response: Response) -> list[str]:
    vary = response.headers.get("Vary", "")
    return [name.strip() for name in vary.split(",") if name.strip()]


def vary_matches(
    stored_request: Request, stored_response: Response, request: Request
) -> bool:
    """
    Checks the headers named by the stored response's Vary header.
    A 'Vary: *' response never matches a later request.
    """
    names = vary_names(stored_response)
    if "*" in names:
        return False
    return all(
        request.headers.get(name) == stored_request.headers.get(name) for name in names
    )


class CachePartition:
    """
    Stores each entry as two files named after the MD5 of the request key:
    '<hash>.json' holds the request and response metadata, '<hash>.body' the
    raw body. The metadata file is written last, so an entry only becomes
    visible once its body is on disk.
    """

    def __init__(self, name: str, root_dir: Path):
        self.name = name
        self.path = root_dir / name
        self._write_locks: OrderedDict[str, asyncio.Lock] = OrderedDict()
        self._max_locks = 256

    def __repr__(self) -> str:
        return f"CachePartition({self.name!r})"

    def _entry_paths(self, key: str) -> tuple[Path, Path]:
        hashed_key = hashlib.md5(key.encode("utf-8")).hexdigest()  # noqa: S324
        return self.path / f"{hashed_key}.json", self.path / f"{hashed_key}.body"

    async def ensure_exists(self) -> None:
        try:
            await asyncio.to_thread(self.path.mkdir, parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create partition '{self.name}': {e}") from e

    def _lock_for(self, key: str) -> asyncio.Lock:
        """Returns the lock that serialises writes to one entry."""
        lock = self._write_locks.get(key)
        if lock is not None:
            self._write_locks.move_to_end(key)
            return lock
        lock = self._write_locks[key] = asyncio.Lock()
        if len(self._write_locks) > self._max_locks:
            # Evict the oldest idle lock
            for old_key, old_lock in self._write_locks.items():
                if not old_lock.locked() and old_key != key:
                    del self._write_locks[old_key]
                    break
        return lock

    async def put(self, request: Request, response: Response) -> None:
        """
        Stores a response, replacing any entry with the same key.

        Raises:
            StorageError: If the response carries 'Vary: *', which could never
            be matched again, or if the entry cannot be written.
        """
        if "*" in vary_names(response):
            raise StorageError(
                f"Refusing to cache '{request.cache_key}': response has 'Vary: *'."
            )
        meta_path, body_path = self._entry_paths(request.cache_key)
        payload = {
            "key": request.cache_key,
            "timestamp": time.time_ns(),
            "request": request.to_dict(),
            "response": response.to_metadata(),
        }
        await self.ensure_exists()
        async with self._lock_for(request.cache_key):
            try:
                await _write_atomic(body_path, response.body)
                await _write_atomic(meta_path, json.dumps(payload).encode("utf-8"))
            except (TypeError, OSError) as e:
                raise StorageError(
                    f"Cache write failed for '{request.cache_key}' "
                    f"in '{self.name}': {e}"
                ) from e

    async def put_all(self, entries: list[tuple[Request, Response]]) -> None:
        """
        Stores every entry or none of them. Entries this call created are
        removed again before the error propagates. Entries that already existed
        keep whatever was written over them, so a partition that is already
        serving never loses a key to a failed re-install.
        """
        created: list[Request] = []
        try:
            for request, response in entries:
                meta_path, _ = self._entry_paths(request.cache_key)
                existed = await aiofiles.os.path.isfile(meta_path)
                await self.put(request, response)
                if not existed:
                    created.append(request)
        except StorageError:
            for request in created:
                await self.delete(request)
            raise

    async def _read_entry(self, meta_path: Path) -> tuple[Request, Response, Path]:
        try:
            async with aiofiles.open(meta_path, encoding="utf-8") as f:
                data = json.loads(await f.read())
            return (
                Request.from_dict(data["request"]),
                Response.from_metadata(data["response"], b""),
                meta_path.with_suffix(".body"),
            )
        except (json.JSONDecodeError, KeyError, ValueError, OSError) as e:
            raise StorageError(f"Unreadable cache entry '{meta_path.name}': {e}") from e

    async def _read_body(self, body_path: Path) -> bytes:
        try:
            async with aiofiles.open(body_path, "rb") as f:
                return await f.read()
        except OSError as e:
            raise StorageError(f"Unreadable cache body '{body_path.name}': {e}") from e

    async def match(self, request: Request, strict: bool = False) -> Response | None:
        """
        Returns the stored response for a request, or None. A damaged entry is
        treated as a miss unless strict is set, in which case it raises.
        """
        meta_path, _ = self._entry_paths(request.cache_key)
        if not await aiofiles.os.path.isfile(meta_path):
            return None
        try:
            stored_request, response, body_path = await self._read_entry(meta_path)
            if not vary_matches(stored_request, response, request):
                return None
            response.body = await self._read_body(body_path)
            return response
        except StorageError as e:
            if strict:
                raise
            log.debug(f"Cache read failed for '{request.cache_key}': {e}")
            return None

    async def _read_metadata(self, meta_path: Path) -> dict:
        try:
            async with aiofiles.open(meta_path, encoding="utf-8") as f:
                data = json.loads(await f.read())
            Request.from_dict(data["request"])
            return data
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, OSError) as e:
            raise StorageError(f"Unreadable cache entry '{meta_path.name}': {e}") from e

    async def keys(self, strict: bool = False) -> list[Request]:
        """
        Returns the stored requests in the order they were written. Unreadable
        entries are skipped unless strict is set, in which case they raise.
        """
        meta_paths = await asyncio.to_thread(self._list_metadata)
        entries = []
        for meta_path in meta_paths:
            try:
                data = await self._read_metadata(meta_path)
            except StorageError as e:
                if strict:
                    raise
                log.debug(f"Skipping unreadable entry {meta_path.name}: {e}")
                continue
            entries.append((data.get("timestamp", 0), Request.from_dict(data["request"])))
        entries.sort(key=lambda entry: entry[0])
        return [request for _, request in entries]

    async def size(self) -> int:
        """
        Sums the stored body sizes of every entry, regardless of Vary.
        Any unreadable entry raises StorageError.
        """
        total = 0
        for meta_path in await asyncio.to_thread(self._list_metadata):
            await self._read_metadata(meta_path)
            body_path = meta_path.with_suffix(".body")
            try:
                total += await aiofiles.os.path.getsize(body_path)
            except OSError as e:
                raise StorageError(
                    f"Unreadable cache body '{body_path.name}': {e}"
                ) from e
        return total

    def _list_metadata(self) -> list[Path]:
        if not self.path.is_dir():
            return []
        return list(self.path.glob("*.json"))

    async def delete(self, request: Request) -> bool:
        """Removes an entry. Returns False if there was nothing to remove."""
        meta_path, body_path = self._entry_paths(request.cache_key)
        removed = False
        for path in (meta_path, body_path):
            try:
                await aiofiles.os.remove(path)
                removed = True
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to remove '{path.name}': {e}") from e
        return removed


async def _write_atomic(path: Path, data: bytes) -> None:
    # Unique per write so concurrent writers never share a temp file
    tmp_path = path.with_name(f"{path.name}.{uuid4().hex}.tmp")
    try:
        async with aiofiles.open(tmp_path, "wb") as f:
            await f.write(data)
        await aiofiles.os.replace(tmp_path, path)
    except OSError:
        try:
            await aiofiles.os.remove(tmp_path)
        except FileNotFoundError:
            pass
        raise
