"""Publish/subscribe transport for invalidation messages.

The cache synchronization layer only needs three things from a transport:
publish a text payload to a named channel, deliver every payload published
on a channel to the subscribed handlers, and shut down. ``MessageBroker``
captures that contract; ``InMemoryBroker`` fans out within one process and
``RedisBroker`` (see ``redis_broker``) spans processes.
"""

import asyncio
import inspect
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from loguru import logger

type MessageHandler = Callable[[str], Awaitable[None] | None]


@runtime_checkable
class MessageBroker(Protocol):
    """Minimal pub/sub contract used by listeners and publishers."""

    async def publish(self, channel: str, payload: str) -> int:
        """Publish a payload and return the number of receivers reached."""
        ...

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        """Deliver every later payload on ``channel`` to ``handler``."""
        ...

    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        """Stop delivering payloads on ``channel`` to ``handler``."""
        ...

    async def close(self) -> None:
        """Release the transport. Publishing afterwards is an error."""
        ...


async def deliver(handler: MessageHandler, payload: str, channel: str) -> None:
    """Invoke one handler, logging instead of propagating its failure.

    A failing handler must not stop delivery to the other subscribers or
    kill the broker's reader.
    """
    try:
        returned = handler(payload)
        if inspect.isawaitable(returned):
            await returned
    except Exception:
        logger.exception("Message handler failed on channel {}", channel)


class InMemoryBroker:
    """In-process broker delivering each payload to the current subscribers.

    Suitable for a single process hosting several ``DataAccess`` instances,
    and for tests. Delivery happens inside ``publish``, in subscription
    order.
    """

    def __init__(self) -> None:
        self._handlers: defaultdict[str, list[MessageHandler]] = defaultdict(list)
        self._closed = False
        self._lock = asyncio.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def subscriber_count(self, channel: str) -> int:
        return len(self._handlers.get(channel, ()))

    async def publish(self, channel: str, payload: str) -> int:
        if self._closed:
            msg = "Cannot publish on a closed broker"
            raise RuntimeError(msg)

        async with self._lock:
            handlers = list(self._handlers.get(channel, ()))

        for handler in handlers:
            await deliver(handler, payload, channel)
        return len(handlers)

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        async with self._lock:
            self._handlers[channel].append(handler)

    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        async with self._lock:
            handlers = self._handlers.get(channel)
            if handlers and handler in handlers:
                handlers.remove(handler)

    async def close(self) -> None:
        async with self._lock:
            self._handlers.clear()
        self._closed = True
