"""TableSync - async data access with cross-process cache coherence.

TableSync is a data-access library built with Python 3.13+ and SQLAlchemy's
async engine, designed to be embedded in long-running host processes that
share one relational store.

Architecture Overview:
- **Core Layer**: Configuration, logging, tracing, and the exception hierarchy
- **Infrastructure Layer**: Connection pooling, async execution, table
  registration, and pub/sub cache invalidation

Key Features:
- **Pooling**: Bounded connection pools for PostgreSQL or a local SQLite file
- **Non-blocking execution**: Statements and queries run as background tasks
- **Coherent caches**: SAVE/DELETE messages keep per-process caches in sync
- **Observability**: Structured logging and optional distributed tracing
"""
