"""
The offline cache worker: populates the static partition at install, sweeps
stale partitions at activation, and answers intercepted GET requests
cache-first with network fallback.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Sequence
from typing import Any

from sitecache.exceptions import (
    InstallError,
    NetworkError,
    SiteCacheError,
    StorageError,
)
from sitecache.models.config import WorkerConfig
from sitecache.models.http import Request, Response
from sitecache.models.stats import CacheStats
from sitecache.network.fetcher import Fetcher
from sitecache.storage.cache_storage import CacheStorage
from sitecache.utils.structured_logger import WorkerEventLogger
from sitecache.utils.url import is_allowed_origin, is_static_asset, resolve_url

from .hooks import (
    CONTACT_ENDPOINT,
    CONTACT_FORM_TAG,
    InMemorySyncQueue,
    Notification,
    Notifier,
    SyncQueue,
    build_notification,
    log_notification,
    notification_click_target,
)
from .lifecycle import Lifecycle, WorkerState
from .messaging import MessagePort

log = logging.getLogger(__name__)

SKIP_WAITING = "SKIP_WAITING"
GET_CACHE_SIZE = "GET_CACHE_SIZE"

WorkerHook = Callable[["OfflineCacheWorker"], Awaitable[None]]


class OfflineCacheWorker:
    """
    One version of the offline cache manager.

    The worker owns two partitions named after its version: 'static' is filled
    all-or-nothing from the asset manifest at install, 'dynamic' is filled one
    entry at a time as requests miss the cache.
    """

    def __init__(
        self,
        config: WorkerConfig,
        storage: CacheStorage,
        fetcher: Fetcher,
        events: WorkerEventLogger | None = None,
        sync_queue: SyncQueue | None = None,
        notifier: Notifier | None = None,
    ):
        self.config = config
        self.storage = storage
        self.fetcher = fetcher
        self.events = events
        self.sync_queue = sync_queue or InMemorySyncQueue()
        self.notifier = notifier or log_notification
        self.stats = CacheStats()
        self.fingerprint = config.fingerprint()
        self.lifecycle = Lifecycle(config.version, on_change=self._on_state_change)
        self.skip_waiting_requested = False

        self._skip_waiting_hook: WorkerHook | None = None
        self._claim_hook: WorkerHook | None = None
        self._background_tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return (
            f"OfflineCacheWorker(version={self.config.version!r}, "
            f"state={self.state.value})"
        )

    @property
    def state(self) -> WorkerState:
        return self.lifecycle.state

    def attach(
        self,
        skip_waiting_hook: WorkerHook,
        claim_hook: WorkerHook,
    ) -> None:
        """Connects the worker to the registration that drives its lifecycle."""
        self._skip_waiting_hook = skip_waiting_hook
        self._claim_hook = claim_hook

    def _on_state_change(self, old_state: WorkerState, new_state: WorkerState) -> None:
        if self.events:
            self.events.state_changed(
                self.config.version, old_state.value, new_state.value
            )

    # Install

    async def install(self) -> None:
        """
        Fetches every manifest URL and stores all responses in the static
        partition, or stores nothing.

        Raises:
            InstallError: If any asset could not be fetched, was not a 200,
            or could not be stored. The worker is left in the FAILED state.
        """
        self.lifecycle.transition(WorkerState.INSTALLING)
        log.info(f"Installing worker {self.config.version}...")
        partition_name = self.config.static_cache_name

        try:
            partition = await self.storage.open(partition_name)
            requests = [
                Request(resolve_url(self.config.origin, asset))
                for asset in self.config.static_assets
            ]
            log.debug(f"Caching {len(requests)} static assets into '{partition_name}'")
            results = await asyncio.gather(
                *(self._fetch_for_install(request) for request in requests),
                return_exceptions=True,
            )
            for result in results:
                if isinstance(result, BaseException):
                    raise result
            await partition.put_all(list(zip(requests, results)))
        except SiteCacheError as e:
            self.lifecycle.transition(WorkerState.FAILED)
            log.error(f"[red]✗ Failed to cache static assets: {e}[/red]")
            if self.events:
                self.events.install_failed(self.config.version, str(e))
            if isinstance(e, InstallError):
                raise
            raise InstallError(
                f"Install of version {self.config.version} failed: {e}"
            ) from e

        self.lifecycle.transition(WorkerState.INSTALLED)
        log.info(f"[green]✓ Static assets cached ({len(requests)} entries).[/green]")
        if self.events:
            self.events.install_completed(
                self.config.version, partition_name, len(requests)
            )
        if self.config.skip_waiting_on_install:
            await self.skip_waiting()

    async def _fetch_for_install(self, request: Request) -> Response:
        response = await self.fetcher.fetch(request)
        if response.status != 200:
            raise InstallError(
                f"Static asset {request.url} returned status {response.status}."
            )
        return response

    async def skip_waiting(self) -> None:
        """Asks to be activated without waiting for the previous version's clients."""
        self.skip_waiting_requested = True
        if self._skip_waiting_hook:
            await self._skip_waiting_hook(self)

    # Activate

    async def activate(self) -> list[str]:
        """
        Deletes every partition outside the current whitelist and claims all
        clients. Returns the names of the deleted partitions.
        """
        self.lifecycle.transition(WorkerState.ACTIVATING)
        log.info(f"Activating worker {self.config.version}...")

        deleted, _ = await asyncio.gather(
            self.cleanup_old_caches(), self._claim_clients()
        )
        await self.storage.open(self.config.dynamic_cache_name)

        self.lifecycle.transition(WorkerState.ACTIVATED)
        log.info(f"[green]✓ Worker {self.config.version} activated.[/green]")
        if self.events:
            self.events.activated(self.config.version, deleted)
        return deleted

    async def _claim_clients(self) -> None:
        if self._claim_hook:
            await self._claim_hook(self)

    async def cleanup_old_caches(self) -> list[str]:
        """
        Deletes partitions not in the whitelist. Each deletion is independent;
        a failed one is logged and the others proceed.
        """
        whitelist = self.config.cache_whitelist
        stale = [name for name in await self.storage.keys() if name not in whitelist]
        if not stale:
            return []

        results = await asyncio.gather(
            *(self.storage.delete(name) for name in stale), return_exceptions=True
        )
        deleted = []
        for name, result in zip(stale, results):
            if isinstance(result, BaseException):
                log.warning(
                    f"[yellow]Could not delete old cache '{name}': {result}[/yellow]"
                )
                if self.events:
                    self.events.partition_delete_failed(name, str(result))
            else:
                log.info(f"Deleted old cache: [dim]{name}[/dim]")
                deleted.append(name)
        return deleted

    # Fetch

    def should_intercept(self, request: Request) -> bool:
        if request.method != "GET":
            return False
        return is_allowed_origin(
            request.url, self.config.origin, self.config.allowed_origins
        )

    async def handle_fetch(self, request: Request) -> Response | None:
        """
        Answers a request cache-first. Returns None when the request is not
        intercepted; the caller should then go to the network itself.
        """
        if self.state is not WorkerState.ACTIVATED:
            return None
        if not self.should_intercept(request):
            self.stats.bypassed += 1
            return None

        cached = await self.storage.match(request)
        if cached is not None:
            self.stats.cache_hits += 1
            log.debug(f"Serving from cache: {request.url}")
            if self.events:
                self.events.cache_hit(request.url)
            return cached

        try:
            response = await self.fetcher.fetch(request)
        except NetworkError as e:
            self.stats.network_failures += 1
            log.warning(f"[yellow]Network request failed: {e}[/yellow]")
            return await self._offline_response(request)

        self.stats.network_fetches += 1
        cacheable = response.status == 200 and response.type == "basic"
        if self.events:
            self.events.network_fetch(
                request.url, response.status, response.type, cacheable
            )
        if not cacheable:
            return response

        partition_name = self.partition_for(request)
        self._spawn(self._cache_response(partition_name, request, response.clone()))
        return response

    def partition_for(self, request: Request) -> str:
        """Stylesheets, scripts, images and fonts go to static; the rest to dynamic."""
        if is_static_asset(request.url, self.config.static_extensions):
            return self.config.static_cache_name
        return self.config.dynamic_cache_name

    async def _offline_response(self, request: Request) -> Response:
        if request.accepts_html():
            offline_url = resolve_url(self.config.origin, self.config.offline_document)
            document = await self.storage.match(Request(offline_url))
            if document is not None:
                self.stats.offline_fallbacks += 1
                if self.events:
                    self.events.offline_fallback(request.url, document.status)
                return document

        self.stats.timeouts_served += 1
        if self.events:
            self.events.offline_fallback(request.url, 408)
        return Response.request_timeout()

    async def _cache_response(
        self, partition_name: str, request: Request, response: Response
    ) -> None:
        try:
            partition = await self.storage.open(partition_name)
            await partition.put(request, response)
            self.stats.cache_writes += 1
            log.debug(f"Cached new resource: {request.url} -> {partition_name}")
        except StorageError as e:
            self.stats.write_failures += 1
            log.warning(f"[yellow]Could not cache {request.url}: {e}[/yellow]")
            if self.events:
                self.events.cache_write_failed(request.url, partition_name, str(e))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        """Runs a cache write in the background; the response does not wait for it."""
        task = asyncio.create_task(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    async def drain(self) -> None:
        """Waits for all pending background cache writes."""
        while self._background_tasks:
            await asyncio.gather(*list(self._background_tasks))

    # Messages

    async def handle_message(
        self, message: Any, ports: Sequence[MessagePort] = ()
    ) -> None:
        """
        Handles a message from the page.

        SKIP_WAITING activates a waiting worker now. GET_CACHE_SIZE replies on
        the first port with {"cacheSize": <bytes>}; if the size cannot be
        computed the error propagates and no reply is posted.
        """
        if not isinstance(message, dict):
            log.debug(f"Ignoring malformed message: {message!r}")
            return

        message_type = message.get("type")
        if message_type == SKIP_WAITING:
            await self.skip_waiting()
        elif message_type == GET_CACHE_SIZE:
            size = await self.get_cache_size()
            if ports:
                ports[0].post_message({"cacheSize": size})
            else:
                log.debug("GET_CACHE_SIZE received without a reply port.")
        else:
            log.debug(f"Ignoring unknown message type: {message_type!r}")

    async def get_cache_size(self) -> int:
        return await self.storage.total_size()

    # Background sync and push

    async def handle_sync(self, tag: str) -> int:
        """Replays deferred submissions for a sync tag. Returns how many were sent."""
        log.info(f"Background sync triggered: {tag}")
        if tag != CONTACT_FORM_TAG:
            return 0

        synced = 0
        for submission in await self.sync_queue.pending():
            request = Request(
                resolve_url(self.config.origin, CONTACT_ENDPOINT),
                method="POST",
                headers={"Content-Type": submission.content_type},
                body=submission.body,
            )
            try:
                response = await self.fetcher.fetch(request)
            except NetworkError as e:
                log.error(f"[red]Failed to sync contact form: {e}[/red]")
                break
            if response.ok:
                await self.sync_queue.remove(submission)
                synced += 1
            else:
                log.warning(f"Contact form sync rejected with status {response.status}")
        if synced:
            log.info(f"[green]✓ Synced {synced} contact form submission(s).[/green]")
        return synced

    async def handle_push(self, payload: bytes | str | None = None) -> Notification:
        notification = build_notification(self.config.site_name, payload)
        await self.notifier(notification)
        return notification

    def handle_notification_click(self, action: str | None) -> str | None:
        target = notification_click_target(action)
        if target:
            return resolve_url(self.config.origin, target)
        return None
