"""Core package for shared library functionality.

This package provides the foundational components used across all layers
of the TableSync library:

- **config**: Centralized configuration management with environment support
- **context**: Operation context and operation ID management
- **exceptions**: Structured exception hierarchy with error codes
- **error_context**: Sensitive data sanitization for safe logging
- **logging**: Structured logging with Loguru
- **observability**: Distributed tracing with OpenTelemetry
- **types**: Type aliases for better code clarity

These modules implement cross-cutting concerns that ensure consistency,
security, and observability throughout the library.
"""
