"""
Data Models Layer.

This package contains the Pydantic configuration model and the plain value
types used throughout the application, such as requests, responses and
statistics.
"""

from .config import WorkerConfig
from .http import Request, Response
from .stats import CacheStats

__all__ = ["CacheStats", "Request", "Response", "WorkerConfig"]
