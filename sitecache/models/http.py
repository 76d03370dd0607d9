"""
Request and response value types passed between the worker, the cache
partitions and the network fetcher.
"""

from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urldefrag

from multidict import CIMultiDict

# Response types, as seen by the worker after a fetch
RESPONSE_TYPES = ("basic", "cors", "opaque", "error", "default")


@dataclass
class Request:
    """An outgoing request. Header names are case-insensitive."""

    url: str
    method: str = "GET"
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes | None = None

    def __post_init__(self):
        self.method = self.method.upper()
        self.url = urldefrag(self.url)[0]
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers or {})

    @property
    def cache_key(self) -> str:
        """The key a partition stores this request under."""
        return f"{self.method} {self.url}"

    def accepts_html(self) -> bool:
        return "text/html" in self.headers.get("Accept", "")

    def to_dict(self) -> dict[str, Any]:
        return {
            "url": self.url,
            "method": self.method,
            "headers": list(self.headers.items()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Request":
        return cls(
            url=data["url"],
            method=data.get("method", "GET"),
            headers=CIMultiDict(data.get("headers", [])),
        )


@dataclass
class Response:
    """A response as delivered to the page or stored in a partition."""

    status: int = 200
    status_text: str = ""
    headers: CIMultiDict = field(default_factory=CIMultiDict)
    body: bytes = b""
    url: str = ""
    type: str = "basic"

    def __post_init__(self):
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers or {})
        if self.type not in RESPONSE_TYPES:
            raise ValueError(f"Unknown response type: {self.type!r}")

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def size(self) -> int:
        return len(self.body)

    def clone(self) -> "Response":
        """Returns an independent copy that can be stored while this one is returned."""
        return Response(
            status=self.status,
            status_text=self.status_text,
            headers=CIMultiDict(self.headers),
            body=bytes(self.body),
            url=self.url,
            type=self.type,
        )

    def to_metadata(self) -> dict[str, Any]:
        """Everything but the body, in a JSON-serialisable form."""
        return {
            "status": self.status,
            "status_text": self.status_text,
            "headers": list(self.headers.items()),
            "url": self.url,
            "type": self.type,
        }

    @classmethod
    def from_metadata(cls, data: dict[str, Any], body: bytes) -> "Response":
        return cls(
            status=data.get("status", 200),
            status_text=data.get("status_text", ""),
            headers=CIMultiDict(data.get("headers", [])),
            body=body,
            url=data.get("url", ""),
            type=data.get("type", "basic"),
        )

    @classmethod
    def request_timeout(cls) -> "Response":
        """The synthetic empty response served when the network is unreachable."""
        return cls(status=408, status_text="Request Timeout", type="default")
