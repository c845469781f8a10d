"""Type aliases shared across the library."""

# Identifier of a cached object, as carried by invalidation messages
type ObjectId = str

# A value bound to a positional SQL placeholder
type SqlArgument = str | int | float | bool | bytes | None | object
