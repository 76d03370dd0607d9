import pytest

from sitecache.core.registration import WorkerRegistration
from sitecache.core.worker import OfflineCacheWorker
from sitecache.exceptions import NetworkError
from sitecache.models.config import WorkerConfig
from sitecache.models.http import Request, Response
from sitecache.storage.cache_storage import CacheStorage

ORIGIN = "https://example.com"


class StubFetcher:
    """Serves canned responses by URL and records every request it sees."""

    def __init__(self, routes: dict[str, Response] | None = None):
        self.routes = dict(routes or {})
        self.calls: list[Request] = []
        self.offline = False
        self.failing: set[str] = set()
        self.closed = False

    def add(self, path: str, body: bytes, status: int = 200, **kwargs) -> None:
        url = path if path.startswith("http") else ORIGIN + path
        self.routes[url] = Response(status=status, body=body, url=url, **kwargs)

    async def fetch(self, request: Request) -> Response:
        self.calls.append(request)
        if self.offline or request.url in self.failing:
            raise NetworkError(f"Network request for {request.url} failed: offline")
        response = self.routes.get(request.url)
        if response is None:
            return Response(status=404, status_text="Not Found", url=request.url)
        return response.clone()

    async def close(self) -> None:
        self.closed = True

    def urls(self) -> list[str]:
        return [request.url for request in self.calls]


def make_site(fetcher: StubFetcher, config: WorkerConfig) -> None:
    """Registers a 200 response for every static asset of the config."""
    for asset in config.static_assets:
        content_type = "text/css" if asset.endswith(".css") else "text/html"
        if asset.endswith(".js"):
            content_type = "application/javascript"
        fetcher.add(
            asset,
            f"content of {asset}".encode(),
            headers={"Content-Type": content_type},
        )


@pytest.fixture
def config() -> WorkerConfig:
    return WorkerConfig(origin=ORIGIN, site_name="Example", version="1")


@pytest.fixture
def fetcher(config) -> StubFetcher:
    stub = StubFetcher()
    make_site(stub, config)
    return stub


@pytest.fixture
def storage(tmp_path) -> CacheStorage:
    return CacheStorage(tmp_path / "caches")


@pytest.fixture
def registration(storage, fetcher) -> WorkerRegistration:
    return WorkerRegistration(storage, fetcher)


@pytest.fixture
async def worker(registration, config) -> OfflineCacheWorker:
    """An installed and activated worker."""
    active = await registration.register(config)
    yield active
    await active.drain()
