"""
Bounded event bus between edge producers and the uplink.

The device poller and the command executor publish wire messages here; the
edge uplink is the single consumer. The queue is bounded and drops the OLDEST
event when full, so producers never block on a slow or disconnected uplink.
"""

import asyncio
import logging
from typing import Any


class AsyncEventBus:
    """Single-consumer FIFO with drop-oldest back-pressure."""

    def __init__(self, max_queue_size: int = 256):
        if max_queue_size < 1:
            raise ValueError("max_queue_size must be at least 1")
        self._event_queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._logger = logging.getLogger(self.__class__.__name__)
        self.dropped = 0

    def publish(self, event: Any) -> None:
        """Enqueue an event; evicts the oldest queued event when full."""
        while True:
            try:
                self._event_queue.put_nowait(event)
                self._logger.debug(f"Published event: {type(event).__name__}")
                return
            except asyncio.QueueFull:
                evicted = self._event_queue.get_nowait()
                self.dropped += 1
                self._logger.warning(
                    f"Event queue full, dropping oldest event: {type(evicted).__name__}"
                )

    async def next_event(self) -> Any:
        """Wait for the next event in publish order."""
        return await self._event_queue.get()

    def get_queue_size(self) -> int:
        """Get current event queue size."""
        return self._event_queue.qsize()
