"""
Helper functions for classifying and resolving request URLs.
"""

from collections.abc import Iterable
from urllib.parse import urljoin, urlsplit


def get_origin(url: str) -> str:
    """Returns 'scheme://host[:port]' for an absolute URL, or '' if it has none."""
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return ""
    return f"{parts.scheme}://{parts.netloc.lower()}"


def resolve_url(origin: str, url: str) -> str:
    """Resolves a root-relative URL against the site origin."""
    return urljoin(origin + "/", url)


def is_static_asset(url: str, extensions: Iterable[str]) -> bool:
    """Classifies a URL as a stylesheet, script, image or font by its path extension."""
    path = urlsplit(url).path.lower()
    return any(path.endswith(ext) for ext in extensions)


def is_allowed_origin(url: str, site_origin: str, allowed_origins: Iterable[str]) -> bool:
    """Whether the worker may intercept a request for this URL."""
    origin = get_origin(url)
    return origin == site_origin or origin in allowed_origins
