"""Writer-side helper announcing committed changes to other processes."""

from loguru import logger

from src.core.types import ObjectId
from src.infrastructure.constants import INVALIDATION_CHANNEL
from src.infrastructure.messaging.broker import MessageBroker
from src.infrastructure.messaging.message import InvalidationMessage, UpdateType


class InvalidationPublisher:
    """Publishes invalidation messages on one channel.

    Publish only after the change has been committed; readers reload from
    the store when the message arrives.

    Example:
        executor.execute_statement(
            "UPDATE players SET coins = ? WHERE id = ?", 10, "steve"
        )
        await publisher.publish_save("steve", table="players")
    """

    def __init__(
        self, broker: MessageBroker, channel: str = INVALIDATION_CHANNEL
    ) -> None:
        self.broker = broker
        self.channel = channel

    async def publish(self, message: InvalidationMessage) -> int:
        """Publish a message and return the number of receivers reached."""
        receivers = await self.broker.publish(self.channel, message.encode())
        logger.debug(
            "Published invalidation to {} receiver(s)",
            receivers,
            update_type=message.update_type.value,
            object_id=message.object_id,
            table=message.table,
        )
        return receivers

    async def publish_save(self, object_id: ObjectId, table: str | None = None) -> int:
        return await self.publish(
            InvalidationMessage(
                update_type=UpdateType.SAVE, object_id=object_id, table=table
            )
        )

    async def publish_delete(
        self, object_id: ObjectId, table: str | None = None
    ) -> int:
        return await self.publish(
            InvalidationMessage(
                update_type=UpdateType.DELETE, object_id=object_id, table=table
            )
        )
