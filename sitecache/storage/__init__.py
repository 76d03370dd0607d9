"""
Storage Layer.

This package handles all data persistence: the configuration file and the
durable cache partitions the worker reads and writes.
"""

from .cache_storage import CacheStorage
from .config_manager import ConfigManager
from .partition import CachePartition

__all__ = ["CachePartition", "CacheStorage", "ConfigManager"]
