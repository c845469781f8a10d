"""Core library constants."""

# Security and redaction
REDACTED = "[REDACTED]"

# Prefix for generated operation identifiers
OPERATION_ID_PREFIX = "op-"
