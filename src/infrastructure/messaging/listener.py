"""Keeps one table's cache coherent with writes made by other processes.

Reconciliation rules for a decoded message:

- SAVE: the cached object, if any, is evicted at once so readers stop seeing
  stale state. After the reload delay the object is loaded from the store
  and cached again if it still exists.
- DELETE: if the object is cached, that instance is evicted after the
  reload delay. Nothing is reloaded. A cache miss is a no-op.

The delay gives the writer's commit time to become visible to this
process's store connection. Messages for the same id are not ordered
against each other; a DELETE eviction only removes the exact instance seen
when the message arrived.
"""

from typing import Any

from loguru import logger

from src.core.exceptions import MessageFormatError
from src.core.types import ObjectId
from src.infrastructure.constants import INVALIDATION_CHANNEL, RELOAD_DELAY_SECONDS
from src.infrastructure.messaging.broker import MessageBroker
from src.infrastructure.messaging.message import InvalidationMessage, UpdateType
from src.infrastructure.messaging.scheduler import DelayedTaskScheduler
from src.infrastructure.tables.base import Table


class CacheInvalidationListener:
    """Applies invalidation messages from a channel to one table's cache.

    Args:
        table: The table whose cache is reconciled.
        scheduler: Shared scheduler running the delayed reloads and evictions.
        channel: Channel carrying the invalidation messages.
        reload_delay: Seconds to wait before reloading or evicting.
    """

    def __init__(
        self,
        table: Table[Any],
        scheduler: DelayedTaskScheduler,
        *,
        channel: str = INVALIDATION_CHANNEL,
        reload_delay: float = RELOAD_DELAY_SECONDS,
    ) -> None:
        self.table = table
        self.scheduler = scheduler
        self.channel = channel
        self.reload_delay = reload_delay
        self._broker: MessageBroker | None = None

    @property
    def started(self) -> bool:
        return self._broker is not None

    async def start(self, broker: MessageBroker) -> None:
        """Subscribe to the channel on ``broker``."""
        if self._broker is not None:
            return
        await broker.subscribe(self.channel, self.on_message)
        self._broker = broker
        logger.info(
            "Cache sync enabled for table {} on channel {}",
            self.table.name,
            self.channel,
            table=self.table.name,
        )

    async def stop(self) -> None:
        """Unsubscribe from the channel. Already scheduled actions still run."""
        if self._broker is None:
            return
        await self._broker.unsubscribe(self.channel, self.on_message)
        self._broker = None

    def on_message(self, payload: str) -> None:
        """Handle one raw payload from the channel."""
        try:
            message = InvalidationMessage.decode(payload)
        except MessageFormatError as e:
            logger.warning(
                "Dropping malformed invalidation message: {}",
                e,
                channel=self.channel,
                table=self.table.name,
            )
            return

        if not message.targets(self.table.name):
            return
        self.handle(message)

    def handle(self, message: InvalidationMessage) -> None:
        """Reconcile the cache for one decoded message."""
        object_id = message.object_id
        cached = self.table.get_by_id(object_id)

        logger.debug(
            "Invalidation received",
            table=self.table.name,
            update_type=message.update_type.value,
            object_id=object_id,
            cached=cached is not None,
        )

        if message.update_type is UpdateType.SAVE:
            if cached is not None:
                self.table.remove_from_cache(cached)
            self.scheduler.schedule(self.reload_delay, lambda: self._reload(object_id))
        elif cached is not None:
            self.scheduler.schedule(
                self.reload_delay, lambda: self.table.remove_from_cache(cached)
            )

    async def _reload(self, object_id: ObjectId) -> None:
        await self.table.load_by_id(object_id, self._store)

    def _store(self, obj: Any) -> None:
        if obj is not None:
            self.table.add_to_cache(obj)
