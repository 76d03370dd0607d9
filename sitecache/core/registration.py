"""
Drives worker versions through their lifecycle for one scope: installs new
versions, holds them while waiting, activates them and retires the old ones.
"""

import asyncio
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import aiofiles

from sitecache.exceptions import InstallError
from sitecache.models.config import WorkerConfig
from sitecache.models.http import Request, Response
from sitecache.network.fetcher import Fetcher
from sitecache.storage.cache_storage import CacheStorage
from sitecache.utils.structured_logger import WorkerEventLogger

from .lifecycle import WorkerState
from .messaging import MessagePort
from .worker import OfflineCacheWorker

log = logging.getLogger(__name__)

STATE_FILE = "registration.json"


class WorkerRegistration:
    """
    Holds the installing, waiting and active worker for a scope, plus the
    clients (open pages) and which worker controls each of them.

    A waiting worker activates once it has asked to skip waiting, or once no
    client is controlled by the active worker any more.
    """

    def __init__(
        self,
        storage: CacheStorage,
        fetcher: Fetcher,
        scope: str = "/",
        events: WorkerEventLogger | None = None,
    ):
        self.storage = storage
        self.fetcher = fetcher
        self.scope = scope
        self.events = events

        self.installing: OfflineCacheWorker | None = None
        self.waiting: OfflineCacheWorker | None = None
        self.active: OfflineCacheWorker | None = None
        self._clients: dict[str, OfflineCacheWorker | None] = {}
        self._job_lock = asyncio.Lock()

    @property
    def state_path(self) -> Path:
        return self.storage.root_dir / STATE_FILE

    @property
    def clients(self) -> dict[str, OfflineCacheWorker | None]:
        """Maps each client id to the worker controlling it, if any."""
        return dict(self._clients)

    def _known_workers(self) -> list[OfflineCacheWorker]:
        return [w for w in (self.installing, self.waiting, self.active) if w]

    async def register(
        self, config: WorkerConfig, **worker_options: Any
    ) -> OfflineCacheWorker:
        """
        Registers a worker version. A configuration identical to a known
        version is not installed again. A version that fails to install is
        returned in the FAILED state and the active version keeps serving.
        """
        async with self._job_lock:
            fingerprint = config.fingerprint()
            for known in self._known_workers():
                if known.fingerprint == fingerprint:
                    log.debug(f"Worker {config.version} is unchanged, not updating.")
                    return known

            worker = OfflineCacheWorker(
                config,
                self.storage,
                self.fetcher,
                events=self.events,
                **worker_options,
            )
            worker.attach(self._on_skip_waiting, self._claim)
            self.installing = worker
            try:
                await worker.install()
            except InstallError as e:
                log.error(f"[red]✗ Worker {config.version} was discarded: {e}[/red]")
                return worker
            finally:
                self.installing = None

            if self.waiting is not None:
                self.waiting.lifecycle.transition(WorkerState.REDUNDANT)
            self.waiting = worker

            if worker.skip_waiting_requested or not self._active_has_clients():
                await self._activate_waiting()
            else:
                log.info(
                    f"Worker {config.version} is waiting for "
                    f"{self._controlled_count()} client(s) to close."
                )
            return worker

    def _controlled_count(self) -> int:
        if self.active is None:
            return 0
        return sum(1 for w in self._clients.values() if w is self.active)

    def _active_has_clients(self) -> bool:
        return self._controlled_count() > 0

    async def _activate_waiting(self) -> None:
        worker = self.waiting
        if worker is None:
            return
        self.waiting = None
        previous = self.active
        self.active = worker
        if previous is not None:
            await previous.drain()
            previous.lifecycle.transition(WorkerState.REDUNDANT)
        await worker.activate()
        await self._save_state(worker)

    async def _save_state(self, worker: OfflineCacheWorker) -> None:
        """Records the active version so a later process can resume it."""
        state = {
            "scope": self.scope,
            "version": worker.config.version,
            "fingerprint": worker.fingerprint,
        }
        try:
            async with aiofiles.open(self.state_path, "w", encoding="utf-8") as f:
                await f.write(json.dumps(state))
        except OSError as e:
            log.warning(f"Could not save registration state: {e}")

    async def _load_state(self) -> dict[str, Any] | None:
        try:
            async with aiofiles.open(self.state_path, encoding="utf-8") as f:
                return json.loads(await f.read())
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as e:
            log.debug(f"Ignoring unreadable registration state: {e}")
            return None

    async def resume(
        self, config: WorkerConfig, **worker_options: Any
    ) -> OfflineCacheWorker | None:
        """
        Restores the active worker recorded by an earlier process, provided it
        was activated with this exact configuration. Returns None otherwise.
        """
        async with self._job_lock:
            if self.active is not None:
                if self.active.fingerprint == config.fingerprint():
                    return self.active
                return None
            state = await self._load_state()
            if not state or state.get("fingerprint") != config.fingerprint():
                return None
            if not await self.storage.has(config.static_cache_name):
                return None

            worker = OfflineCacheWorker(
                config,
                self.storage,
                self.fetcher,
                events=self.events,
                **worker_options,
            )
            worker.attach(self._on_skip_waiting, self._claim)
            worker.lifecycle.resume_activated()
            self.active = worker
            log.debug(f"Resumed active worker {config.version}.")
            return worker

    async def _on_skip_waiting(self, worker: OfflineCacheWorker) -> None:
        if worker is not self.waiting:
            return
        async with self._job_lock:
            if worker is self.waiting:
                await self._activate_waiting()

    async def _claim(self, worker: OfflineCacheWorker) -> None:
        """Makes the worker the controller of every client."""
        for client_id in self._clients:
            self._clients[client_id] = worker
        log.debug(
            f"Worker {worker.config.version} claimed {len(self._clients)} client(s)."
        )

    def add_client(self, client_id: str) -> None:
        """Opens a client. It is controlled by the active worker, if there is one."""
        active = self.active
        if active is not None and active.state is not WorkerState.ACTIVATED:
            active = None
        self._clients[client_id] = active

    async def remove_client(self, client_id: str) -> None:
        """Closes a client; a waiting worker activates when the last one goes."""
        self._clients.pop(client_id, None)
        if self.waiting is not None and not self._active_has_clients():
            async with self._job_lock:
                if self.waiting is not None and not self._active_has_clients():
                    await self._activate_waiting()

    async def handle_fetch(self, request: Request) -> Response | None:
        """Routes a request to the active worker. None means not intercepted."""
        if self.active is None:
            return None
        return await self.active.handle_fetch(request)

    async def post_message(
        self,
        message: Any,
        ports: Sequence[MessagePort] = (),
        target: str = "active",
    ) -> None:
        """Delivers a message to the 'active', 'waiting' or 'installing' worker."""
        if target not in ("active", "waiting", "installing"):
            raise ValueError(f"Unknown message target: {target!r}")
        worker = getattr(self, target)
        if worker is None:
            log.debug(f"No {target} worker to receive message {message!r}.")
            return
        await worker.handle_message(message, ports)

    async def close(self) -> None:
        """Waits for the active worker's pending cache writes and closes the event log."""
        if self.active is not None:
            await self.active.drain()
        if self.events is not None:
            self.events.close()
