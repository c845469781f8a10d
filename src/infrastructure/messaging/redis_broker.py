"""Redis pub/sub transport for invalidation messages.

One ``PubSub`` connection carries every subscribed channel. A background
reader task polls it and dispatches payloads to the handlers registered for
the message's channel.
"""

import asyncio
from collections import defaultdict
from contextlib import suppress
from typing import Any, Final

from loguru import logger
from redis.asyncio import Redis
from redis.exceptions import RedisError

from src.infrastructure.messaging.broker import MessageHandler, deliver

POLL_TIMEOUT_SECONDS: Final[float] = 1.0
RECONNECT_BACKOFF_SECONDS: Final[float] = 1.0


def _as_text(value: str | bytes) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


class RedisBroker:
    """Broker backed by Redis ``PUBLISH`` / ``SUBSCRIBE``.

    Args:
        client: An asyncio Redis client. The broker takes ownership and
            closes it on ``close()``.

    Example:
        broker = RedisBroker.from_url("redis://localhost:6379/0")
        await broker.subscribe("hikari-update", print)
    """

    def __init__(self, client: Redis) -> None:
        self._client = client
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._handlers: defaultdict[str, list[MessageHandler]] = defaultdict(list)
        self._reader: asyncio.Task[None] | None = None
        self._closed = False

    @classmethod
    def from_url(cls, url: str) -> "RedisBroker":
        """Create a broker for a ``redis://`` or ``rediss://`` URL."""
        return cls(Redis.from_url(url))

    async def publish(self, channel: str, payload: str) -> int:
        if self._closed:
            msg = "Cannot publish on a closed broker"
            raise RuntimeError(msg)
        return int(await self._client.publish(channel, payload))

    async def subscribe(self, channel: str, handler: MessageHandler) -> None:
        first = not self._handlers.get(channel)
        self._handlers[channel].append(handler)
        if first:
            await self._pubsub.subscribe(channel)
            logger.debug("Subscribed to Redis channel {}", channel)

        if self._reader is None or self._reader.done():
            self._reader = asyncio.get_running_loop().create_task(self._read())

    async def unsubscribe(self, channel: str, handler: MessageHandler) -> None:
        handlers = self._handlers.get(channel)
        if not handlers or handler not in handlers:
            return
        handlers.remove(handler)
        if not handlers:
            del self._handlers[channel]
            await self._pubsub.unsubscribe(channel)

    async def _read(self) -> None:
        while True:
            try:
                message = await self._pubsub.get_message(
                    ignore_subscribe_messages=True, timeout=POLL_TIMEOUT_SECONDS
                )
                if message is not None:
                    await self._dispatch(message)
            except RedisError as e:
                logger.warning("Redis subscription read failed: {}", e)
                await asyncio.sleep(RECONNECT_BACKOFF_SECONDS)
            except Exception:
                logger.exception("Unexpected error in Redis subscription reader")
                await asyncio.sleep(RECONNECT_BACKOFF_SECONDS)

    async def _dispatch(self, message: dict[str, Any]) -> None:
        if message.get("type") != "message":
            return
        channel = _as_text(message["channel"])
        payload = _as_text(message["data"])
        for handler in list(self._handlers.get(channel, ())):
            await deliver(handler, payload, channel)

    async def close(self) -> None:
        self._closed = True
        if self._reader is not None:
            self._reader.cancel()
            with suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None

        self._handlers.clear()
        await self._pubsub.aclose()
        await self._client.aclose()
        logger.info("Redis broker closed")
