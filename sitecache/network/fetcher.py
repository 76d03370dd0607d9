"""
Performs live network fetches over HTTP with a shared aiohttp connection pool
and turns the results into Response objects.
"""

import asyncio
import logging
from typing import Protocol

import aiohttp

from sitecache import __version__
from sitecache.exceptions import NetworkError
from sitecache.models.http import Request, Response
from sitecache.utils.url import get_origin

log = logging.getLogger(__name__)


class Fetcher(Protocol):
    """Anything that can turn a request into a network response."""

    async def fetch(self, request: Request) -> Response: ...


class NetworkFetcher:
    """
    Fetches requests from the network for one site origin.

    Responses from the site's own origin are 'basic'; cross-origin responses
    are 'cors' when the server allows it and 'opaque' otherwise, with the
    status and body hidden.
    """

    def __init__(
        self,
        origin: str,
        timeout_seconds: float | None = None,
        max_connections: int = 16,
    ):
        self.origin = origin
        self.timeout_seconds = timeout_seconds
        self.max_connections = max_connections
        self._session: aiohttp.ClientSession | None = None
        self._session_lock = asyncio.Lock()

    async def _get_session(self) -> aiohttp.ClientSession:
        """Ensures an active aiohttp session is available."""
        async with self._session_lock:
            if self._session is None or self._session.closed:
                connector = aiohttp.TCPConnector(
                    limit=self.max_connections,
                    ttl_dns_cache=300,
                    enable_cleanup_closed=True,
                )
                self._session = aiohttp.ClientSession(
                    connector=connector,
                    headers={"User-Agent": f"sitecache/{__version__}"},
                    timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
                )
                log.debug(f"Created fetch pool with limit={self.max_connections}")
            return self._session

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        async with self._session_lock:
            if self._session and not self._session.closed:
                await self._session.close()
                self._session = None

    def _response_type(self, url: str, headers) -> str:
        if get_origin(url) == self.origin:
            return "basic"
        if "Access-Control-Allow-Origin" in headers:
            return "cors"
        return "opaque"

    async def fetch(self, request: Request) -> Response:
        """
        Fetches a request from the network.

        Raises:
            NetworkError: If no response could be received at all. HTTP error
            statuses are returned as responses, not raised.
        """
        session = await self._get_session()
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                data=request.body,
                allow_redirects=True,
            ) as r:
                body = await r.read()
                response_type = self._response_type(str(r.url), r.headers)
                if response_type == "opaque":
                    return Response(status=0, url=str(r.url), type="opaque")
                return Response(
                    status=r.status,
                    status_text=r.reason or "",
                    headers=r.headers.copy(),
                    body=body,
                    url=str(r.url),
                    type=response_type,
                )
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
            log.debug(f"Network fetch for {request.url} failed: {e}")
            raise NetworkError(f"Network request for {request.url} failed: {e}") from e
