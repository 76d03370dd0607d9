import pytest

from sitecache.core.lifecycle import WorkerState
from sitecache.core.messaging import MessageChannel
from sitecache.core.registration import WorkerRegistration
from sitecache.models.config import WorkerConfig
from sitecache.models.http import Request

from .conftest import ORIGIN


def html(path: str) -> Request:
    return Request(ORIGIN + path, headers={"Accept": "text/html"})


async def test_first_version_installs_and_activates(registration, config):
    worker = await registration.register(config)

    assert worker.state is WorkerState.ACTIVATED
    assert registration.active is worker
    assert registration.waiting is None
    assert await registration.storage.keys() == ["dynamic-v1", "static-v1"]


async def test_same_configuration_is_not_reinstalled(registration, config, fetcher):
    first = await registration.register(config)
    calls = len(fetcher.calls)

    again = await registration.register(config.model_copy())
    assert again is first
    assert len(fetcher.calls) == calls


async def test_version_upgrade_sweeps_old_partitions(storage, fetcher):
    registration = WorkerRegistration(storage, fetcher)
    old = await registration.register(WorkerConfig(origin=ORIGIN, version="1"))
    await storage.open("static-v0")

    new = await registration.register(WorkerConfig(origin=ORIGIN, version="2"))

    assert new.state is WorkerState.ACTIVATED
    assert old.state is WorkerState.REDUNDANT
    assert registration.active is new
    assert await storage.keys() == ["dynamic-v2", "static-v2"]


async def test_failed_install_keeps_previous_version_serving(registration, config, fetcher):
    active = await registration.register(config)
    fetcher.add("/scripts/main.js", b"", status=404)

    broken = await registration.register(config.model_copy(update={"version": "2"}))

    assert broken.state is WorkerState.FAILED
    assert registration.active is active
    partition = await registration.storage.open("static-v2")
    assert await partition.keys() == []

    response = await registration.handle_fetch(html("/index.html"))
    assert response.body == b"content of /index.html"


async def test_new_version_waits_while_clients_are_open(storage, fetcher):
    registration = WorkerRegistration(storage, fetcher)
    v1 = await registration.register(
        WorkerConfig(origin=ORIGIN, version="1", skip_waiting_on_install=False)
    )
    registration.add_client("tab-1")
    assert registration.clients == {"tab-1": v1}

    v2 = await registration.register(
        WorkerConfig(origin=ORIGIN, version="2", skip_waiting_on_install=False)
    )
    assert v2.state is WorkerState.INSTALLED
    assert registration.waiting is v2
    assert registration.active is v1
    assert "static-v1" in await storage.keys()

    await registration.remove_client("tab-1")
    assert registration.active is v2
    assert v2.state is WorkerState.ACTIVATED
    assert v1.state is WorkerState.REDUNDANT


async def test_skip_waiting_message_activates_waiting_worker(storage, fetcher):
    registration = WorkerRegistration(storage, fetcher)
    await registration.register(
        WorkerConfig(origin=ORIGIN, version="1", skip_waiting_on_install=False)
    )
    registration.add_client("tab-1")
    v2 = await registration.register(
        WorkerConfig(origin=ORIGIN, version="2", skip_waiting_on_install=False)
    )

    await registration.post_message({"type": "SKIP_WAITING"}, target="waiting")

    assert registration.active is v2
    assert registration.clients == {"tab-1": v2}


async def test_newer_waiting_version_replaces_older_one(storage, fetcher):
    registration = WorkerRegistration(storage, fetcher)
    await registration.register(
        WorkerConfig(origin=ORIGIN, version="1", skip_waiting_on_install=False)
    )
    registration.add_client("tab-1")
    v2 = await registration.register(
        WorkerConfig(origin=ORIGIN, version="2", skip_waiting_on_install=False)
    )
    v3 = await registration.register(
        WorkerConfig(origin=ORIGIN, version="3", skip_waiting_on_install=False)
    )

    assert v2.state is WorkerState.REDUNDANT
    assert registration.waiting is v3


async def test_activation_claims_existing_clients(registration, config):
    registration.add_client("tab-1")
    assert registration.clients == {"tab-1": None}

    worker = await registration.register(config)
    assert registration.clients == {"tab-1": worker}


async def test_cache_size_through_message_channel(registration, config):
    await registration.register(config)
    channel = MessageChannel()
    await registration.post_message({"type": "GET_CACHE_SIZE"}, [channel.port2])

    reply = await channel.port1.receive(timeout=1)
    expected = sum(len(f"content of {a}") for a in config.static_assets)
    assert reply == {"cacheSize": expected}


async def test_post_message_rejects_unknown_target(registration):
    with pytest.raises(ValueError):
        await registration.post_message({"type": "SKIP_WAITING"}, target="everyone")


async def test_no_active_worker_means_no_interception(registration):
    assert await registration.handle_fetch(html("/")) is None


async def test_resume_restores_active_version(storage, fetcher, config):
    first = WorkerRegistration(storage, fetcher)
    await first.register(config)
    await first.close()

    second = WorkerRegistration(storage, fetcher)
    worker = await second.resume(config)

    assert worker is not None
    assert worker.state is WorkerState.ACTIVATED
    assert second.active is worker
    response = await second.handle_fetch(html("/"))
    assert response.body == b"content of /"


async def test_resume_ignores_changed_configuration(storage, fetcher, config):
    first = WorkerRegistration(storage, fetcher)
    await first.register(config)

    changed = config.model_copy(update={"version": "2"})
    assert await WorkerRegistration(storage, fetcher).resume(changed) is None


async def test_resume_without_saved_state(registration, config):
    assert await registration.resume(config) is None
