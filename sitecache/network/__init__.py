"""
Network Layer.

This package performs live HTTP fetches on behalf of the worker.
"""

from .fetcher import Fetcher, NetworkFetcher

__all__ = ["Fetcher", "NetworkFetcher"]
