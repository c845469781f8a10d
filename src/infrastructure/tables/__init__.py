"""Table repositories, their caches and the registry that owns them."""

from src.infrastructure.tables.base import SqlTable, Table
from src.infrastructure.tables.cache import CachedObject, TableCache
from src.infrastructure.tables.registry import TableRegistration, TableRegistry

__all__ = [
    "CachedObject",
    "SqlTable",
    "Table",
    "TableCache",
    "TableRegistration",
    "TableRegistry",
]
