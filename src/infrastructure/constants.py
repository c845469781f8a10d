"""Infrastructure-related constants for pooling and cache invalidation."""

# Pool constants
POOL_SIZE = 10
ACQUIRE_TIMEOUT_SECONDS = 30.0
PREPARED_STATEMENT_CACHE_SIZE = 250
PREPARED_STATEMENT_SQL_LIMIT = 2048
POOL_RECYCLE_SECONDS = 3600  # 1 hour
COMMAND_TIMEOUT_SECONDS = 60

# Cache invalidation
INVALIDATION_CHANNEL = "hikari-update"
RELOAD_DELAY_SECONDS = 1.0
