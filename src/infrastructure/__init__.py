"""Infrastructure layer for data persistence and cross-process messaging.

This package implements the moving parts of the library on top of the core
layer:

Key responsibilities:
- **Database access**: Async PostgreSQL or SQLite with SQLAlchemy 2.0+
- **Connection management**: Pooling, health checks, and lifecycle
- **Async execution**: Fire-and-forget statements and queries
- **Tables**: Registration of typed, cached repositories
- **Messaging**: Pub/sub invalidation keeping caches coherent

The ``DataAccess`` facade in ``data_access`` wires these pieces together
around a single connection pool.
"""
