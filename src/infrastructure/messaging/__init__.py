"""Cross-process cache invalidation over a pub/sub channel."""

from src.infrastructure.messaging.broker import (
    InMemoryBroker,
    MessageBroker,
    MessageHandler,
)
from src.infrastructure.messaging.listener import CacheInvalidationListener
from src.infrastructure.messaging.message import InvalidationMessage, UpdateType
from src.infrastructure.messaging.publisher import InvalidationPublisher
from src.infrastructure.messaging.redis_broker import RedisBroker
from src.infrastructure.messaging.scheduler import DelayedTaskScheduler

__all__ = [
    "CacheInvalidationListener",
    "DelayedTaskScheduler",
    "InMemoryBroker",
    "InvalidationMessage",
    "InvalidationPublisher",
    "MessageBroker",
    "MessageHandler",
    "RedisBroker",
    "UpdateType",
]
