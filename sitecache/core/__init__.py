"""
Core worker engine.

The `WorkerRegistration` drives worker versions through install, waiting and
activation, and routes fetches and messages to the active version. Each
`OfflineCacheWorker` owns the cache policy for its version.
"""

from .lifecycle import WorkerState
from .messaging import MessageChannel, MessagePort
from .registration import WorkerRegistration
from .worker import OfflineCacheWorker

__all__ = [
    "MessageChannel",
    "MessagePort",
    "OfflineCacheWorker",
    "WorkerRegistration",
    "WorkerState",
]
