"""
Lifecycle events published by the execute loop.

Consumers either pull from a queue (subscribe) or register callbacks (on).
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from ..core import GardenError, SwapAction
from ..orderbook.models import MatchedOrder

log = logging.getLogger(__name__)

SUCCESS = "success"
ERROR = "error"


@dataclass
class SwapEvent:
    """success(order, action, tx_hash) or error(order, error)."""
    kind: str
    order: MatchedOrder
    action: SwapAction
    tx_hash: str = ""
    error: Optional[GardenError] = None

    @property
    def create_id(self) -> str:
        return self.order.create_id


class EventChannel:
    """Fan-out of SwapEvents to queues and handlers."""

    def __init__(self):
        self._queues: List[asyncio.Queue] = []
        self._handlers: Dict[str, List[Callable]] = {
            SUCCESS: [],
            ERROR: [],
        }

    def subscribe(self, maxsize: int = 0) -> asyncio.Queue:
        """Queue receiving every event published from now on."""
        queue = asyncio.Queue(maxsize=maxsize)
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._queues:
            self._queues.remove(queue)

    def on(self, kind: str, handler: Callable):
        """Register event handler (plain function or coroutine function)."""
        if kind not in self._handlers:
            raise ValueError(f"Unknown event kind: {kind}")
        self._handlers[kind].append(handler)

    def off(self, kind: str, handler: Callable):
        """Remove event handler."""
        if kind in self._handlers and handler in self._handlers[kind]:
            self._handlers[kind].remove(handler)

    async def publish(self, event: SwapEvent):
        for queue in self._queues:
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                log.warning(f"Event queue full, dropping {event.kind} for {event.create_id}")

        for handler in list(self._handlers.get(event.kind, [])):
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(f"Handler error for {event.kind}: {e}")
