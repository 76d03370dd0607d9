"""
A minimal message channel for replies from the worker to its caller.
"""

import asyncio
from typing import Any


class MessagePort:
    """One end of a MessageChannel. Messages posted here arrive at the other end."""

    def __init__(self):
        self._peer: "MessagePort | None" = None
        self._inbox: asyncio.Queue = asyncio.Queue()

    def post_message(self, message: Any) -> None:
        if self._peer is None:
            raise RuntimeError("Port is not entangled with another port.")
        self._peer._inbox.put_nowait(message)

    async def receive(self, timeout: float | None = None) -> Any:
        """Waits for the next message. Raises asyncio.TimeoutError on timeout."""
        return await asyncio.wait_for(self._inbox.get(), timeout)

    def pending(self) -> int:
        return self._inbox.qsize()


class MessageChannel:
    """Two entangled ports: keep port1, hand port2 to the worker."""

    def __init__(self):
        self.port1 = MessagePort()
        self.port2 = MessagePort()
        self.port1._peer = self.port2
        self.port2._peer = self.port1
