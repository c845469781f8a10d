"""Thread-safe in-memory cache backing each table.

A table's cache is touched from the host's ordinary read/write paths, from
executor callbacks and from the invalidation listener's delayed actions, on
the event loop or on other threads. Every read and mutation therefore goes
through one re-entrant lock held by the cache. Table implementations must
only mutate cached state through these methods.
"""

import threading
from collections.abc import Iterator
from typing import Protocol, runtime_checkable

from src.core.types import ObjectId


@runtime_checkable
class CachedObject(Protocol):
    """A domain entity that can be cached by its unique identifier."""

    @property
    def id(self) -> ObjectId:
        """Unique identifier of the entity."""
        ...


class TableCache[T: CachedObject]:
    """Identifier-keyed collection of cached objects guarded by a lock."""

    def __init__(self) -> None:
        self._entries: dict[ObjectId, T] = {}
        self._lock = threading.RLock()

    def get(self, object_id: ObjectId) -> T | None:
        """Return the cached object with this identifier, if any."""
        with self._lock:
            return self._entries.get(object_id)

    def add(self, obj: T) -> None:
        """Insert an object, replacing any cached object with the same id."""
        with self._lock:
            self._entries[obj.id] = obj

    def remove(self, obj: T) -> bool:
        """Remove this exact object from the cache.

        Nothing is removed if the identifier now maps to a different
        instance, so a stale eviction cannot drop a freshly loaded object.

        Returns:
            bool: True if the object was cached and has been removed.
        """
        with self._lock:
            if self._entries.get(obj.id) is obj:
                del self._entries[obj.id]
                return True
            return False

    def discard(self, object_id: ObjectId) -> T | None:
        """Remove whatever is cached under this identifier and return it."""
        with self._lock:
            return self._entries.pop(object_id, None)

    def values(self) -> list[T]:
        """Snapshot of the cached objects."""
        with self._lock:
            return list(self._entries.values())

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __contains__(self, object_id: object) -> bool:
        with self._lock:
            return object_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __iter__(self) -> Iterator[T]:
        return iter(self.values())
