import asyncio

import pytest

from sitecache.exceptions import StorageError
from sitecache.models.http import Request, Response
from sitecache.storage.partition import CachePartition

ORIGIN = "https://example.com"


def req(path: str, **kwargs) -> Request:
    return Request(ORIGIN + path, **kwargs)


async def test_put_and_match(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a.css"), Response(body=b"body{}", headers={"X": "1"}))

    response = await partition.match(req("/a.css"))
    assert response.body == b"body{}"
    assert response.headers["X"] == "1"
    assert await partition.match(req("/missing.css")) is None


async def test_put_same_key_overwrites(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a.css"), Response(body=b"old"))
    await partition.put(req("/a.css"), Response(body=b"new"))

    keys = await partition.keys()
    assert [k.url for k in keys] == [ORIGIN + "/a.css"]
    assert (await partition.match(req("/a.css"))).body == b"new"


async def test_vary_header_is_part_of_the_match(storage):
    partition = await storage.open("dynamic-v1")
    stored = req("/api", headers={"Accept-Language": "en"})
    await partition.put(stored, Response(body=b"hello", headers={"Vary": "Accept-Language"}))

    assert await partition.match(req("/api", headers={"Accept-Language": "en"}))
    assert await partition.match(req("/api", headers={"Accept-Language": "fr"})) is None


async def test_vary_star_responses_are_refused(storage):
    partition = await storage.open("dynamic-v1")
    with pytest.raises(StorageError, match="Vary"):
        await partition.put(req("/api"), Response(body=b"x", headers={"Vary": "*"}))
    assert await partition.keys() == []


async def test_keys_keep_insertion_order(storage):
    partition = await storage.open("static-v1")
    for path in ("/3", "/1", "/2"):
        await partition.put(req(path), Response(body=b""))
    assert [k.url for k in await partition.keys()] == [ORIGIN + p for p in ("/3", "/1", "/2")]


async def test_delete_entry(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a"), Response(body=b"a"))
    assert await partition.delete(req("/a")) is True
    assert await partition.delete(req("/a")) is False
    assert await partition.match(req("/a")) is None


async def test_put_all_rolls_back_on_failure(storage, monkeypatch):
    partition = await storage.open("static-v1")
    entries = [(req(f"/{i}"), Response(body=b"x")) for i in range(3)]
    original_put = CachePartition.put
    calls = 0

    async def flaky_put(self, request, response):
        nonlocal calls
        calls += 1
        if calls == 3:
            raise StorageError("disk full")
        await original_put(self, request, response)

    monkeypatch.setattr(CachePartition, "put", flaky_put)
    with pytest.raises(StorageError):
        await partition.put_all(entries)
    assert await partition.keys() == []


async def test_damaged_entry_is_a_miss_unless_strict(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a"), Response(body=b"a"))
    _, body_path = partition._entry_paths(req("/a").cache_key)
    body_path.unlink()

    assert await partition.match(req("/a")) is None
    with pytest.raises(StorageError):
        await partition.match(req("/a"), strict=True)


async def test_storage_lists_and_deletes_partitions(storage):
    await storage.open("static-v1")
    await storage.open("dynamic-v1")
    assert await storage.keys() == ["dynamic-v1", "static-v1"]
    assert await storage.has("static-v1")

    assert await storage.delete("static-v1") is True
    assert await storage.delete("static-v1") is False
    assert await storage.keys() == ["dynamic-v1"]


async def test_storage_match_searches_every_partition(storage):
    dynamic = await storage.open("dynamic-v1")
    await storage.open("static-v1")
    await dynamic.put(req("/api/data.json"), Response(body=b"{}"))

    response = await storage.match(req("/api/data.json"))
    assert response.body == b"{}"
    assert await storage.match(req("/nothing")) is None


async def test_total_size_sums_every_body(storage):
    partition = await storage.open("static-v1")
    for i, size in enumerate((100, 250, 1024)):
        await partition.put(req(f"/{i}"), Response(body=b"x" * size))
    assert await storage.total_size() == 1374


async def test_total_size_fails_on_unreadable_body(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a"), Response(body=b"abc"))
    _, body_path = partition._entry_paths(req("/a").cache_key)
    body_path.unlink()

    with pytest.raises(StorageError):
        await storage.total_size()


async def test_describe_and_clear(storage):
    partition = await storage.open("static-v1")
    await partition.put(req("/a"), Response(body=b"abcd"))
    await storage.open("dynamic-v1")

    summary = await storage.describe()
    assert summary == [
        {"name": "dynamic-v1", "entries": 0, "size": 0},
        {"name": "static-v1", "entries": 1, "size": 4},
    ]
    assert await storage.clear() == 2
    assert await storage.keys() == []


async def test_total_size_fails_on_unreadable_metadata(storage):
    partition = await storage.open("static-v1")
    for i, size in enumerate((100, 250, 1024)):
        await partition.put(req(f"/{i}"), Response(body=b"x" * size))
    meta_path, _ = partition._entry_paths(req("/1").cache_key)
    meta_path.write_text("{not json", encoding="utf-8")

    assert len(await partition.keys()) == 2
    with pytest.raises(StorageError):
        await partition.keys(strict=True)
    with pytest.raises(StorageError):
        await storage.total_size()


async def test_total_size_ignores_vary(storage):
    partition = await storage.open("dynamic-v1")
    await partition.put(req("/a"), Response(body=b"x" * 100))
    await partition.put(
        req("/v", headers={"Accept-Language": "en"}),
        Response(body=b"x" * 250, headers={"Vary": "Accept-Language"}),
    )
    assert await storage.total_size() == 350


async def test_concurrent_writes_to_same_key(storage):
    partition = await storage.open("dynamic-v1")
    bodies = [bytes([65 + i]) * 200_000 for i in range(4)]

    await asyncio.gather(
        *(partition.put(req("/same"), Response(body=body)) for body in bodies)
    )

    response = await partition.match(req("/same"))
    assert response.body in bodies
    assert len(await partition.keys()) == 1
    assert not list(partition.path.glob("*.tmp"))


async def test_put_all_rollback_keeps_existing_entries(storage, monkeypatch):
    partition = await storage.open("static-v1")
    await partition.put(req("/0"), Response(body=b"served"))
    entries = [(req(f"/{i}"), Response(body=b"new")) for i in range(3)]
    original_put = CachePartition.put
    calls = 0

    async def flaky_put(self, request, response):
        nonlocal calls
        calls += 1
        if calls == 3:
            raise StorageError("disk full")
        await original_put(self, request, response)

    monkeypatch.setattr(CachePartition, "put", flaky_put)
    with pytest.raises(StorageError):
        await partition.put_all(entries)

    assert [k.url for k in await partition.keys()] == [ORIGIN + "/0"]
    assert (await partition.match(req("/0"))).body == b"new"
