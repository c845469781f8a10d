"""Structured exception hierarchy for consistent error handling.

This module defines the complete exception system for the TableSync library,
providing a rich error model that supports debugging and monitoring.

Key components:
- **ErrorCode enum**: Standardized error identifiers for programmatic handling
- **Severity enum**: Error classification for monitoring and alerting
- **TableSyncError**: Base exception with rich context and fingerprinting
- **Specialized exceptions**: Registration, connection, execution and
  messaging failures

Propagation policy:
- Registration errors are reported to the registering caller as an absent
  result plus a log entry.
- Connection errors are raised to the initiating call.
- Execution errors never reach the caller of a fire-and-forget operation;
  they are handed to the executor's failure handler instead.
"""

import hashlib
import traceback
from enum import Enum
from typing import Any


class ErrorCode(Enum):
    """Standardized error codes for the TableSync library."""

    # System errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    """An unexpected internal error occurred."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """A required collaborator or setting is missing."""

    # Registration errors
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    """The table type has already been registered."""

    CONSTRUCTION_FAILED = "CONSTRUCTION_FAILED"
    """The table factory raised or produced an unusable table."""

    # Connection errors
    POOL_UNAVAILABLE = "POOL_UNAVAILABLE"
    """The connection pool failed to initialize."""

    ACQUIRE_TIMEOUT = "ACQUIRE_TIMEOUT"
    """No pooled connection became free within the acquire timeout."""

    # Execution errors
    EXECUTION_FAILED = "EXECUTION_FAILED"
    """A statement or query failed while executing."""

    BINDING_FAILED = "BINDING_FAILED"
    """Positional arguments did not match the statement placeholders."""

    # Messaging errors
    INVALID_MESSAGE = "INVALID_MESSAGE"
    """An invalidation payload could not be decoded."""


class Severity(Enum):
    """Severity levels for errors in the TableSync library."""

    LOW = "LOW"
    """Low severity errors that don't significantly impact functionality."""

    MEDIUM = "MEDIUM"
    """Medium severity errors that may affect some features but not critical ops."""

    HIGH = "HIGH"
    """High severity errors impacting critical functionality or data integrity."""

    CRITICAL = "CRITICAL"
    """Critical errors requiring immediate attention, may cause system failures."""


class TableSyncError(Exception):
    """Base exception class for all TableSync exceptions.

    Args:
        error_code: Unique identifier for the error type (string or ErrorCode enum)
        message: Human-readable error message
        severity: Severity level of the error (defaults to MEDIUM)
        context: Additional context information about the error
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        error_code: str | ErrorCode,
        message: str,
        severity: Severity = Severity.MEDIUM,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        self.error_code = (
            error_code.value if isinstance(error_code, ErrorCode) else error_code
        )
        self.message = message
        self.severity = severity
        self.context = context or {}
        self.cause = cause

        # Capture stack trace at creation time
        self.stack_trace = traceback.format_stack()[:-1]  # Exclude this frame

        self.fingerprint = self._generate_fingerprint()

        super().__init__(message)
        if cause:
            self.__cause__ = cause

    def _generate_fingerprint(self) -> str:
        """Generate a fingerprint for error grouping.

        Creates a hash based on the error type and the location where it was raised,
        allowing similar errors to be grouped together in monitoring systems.

        Returns:
            str: A hash string for error grouping
        """
        max_frames = 5
        relevant_frames = (
            self.stack_trace[-max_frames:]
            if len(self.stack_trace) > max_frames
            else self.stack_trace
        )

        fingerprint_data = f"{self.__class__.__name__}:{self.error_code}"

        for frame in relevant_frames:
            if "site-packages" not in frame and "src/" in frame:
                lines = frame.strip().split("\n")
                if lines:
                    fingerprint_data += f":{lines[0]}"

        return hashlib.sha256(fingerprint_data.encode()).hexdigest()[:16]

    def __str__(self) -> str:
        """Return a string representation of the exception.

        Returns:
            str: A formatted string containing the error code and message
        """
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return a detailed representation of the exception.

        Returns:
            str: A string showing the class name, error code, message, severity,
                and context
        """
        class_name = self.__class__.__name__
        context_str = f", context={self.context}" if self.context else ""
        return (
            f"{class_name}(error_code='{self.error_code}', "
            f"message='{self.message}', severity={self.severity.value}{context_str})"
        )


class ConfigurationError(TableSyncError):
    """Raised when an operation needs a collaborator that was not supplied."""

    def __init__(
        self,
        message: str,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            ErrorCode.CONFIGURATION_ERROR, message, Severity.MEDIUM, context, cause
        )


class RegistrationError(TableSyncError):
    """Base class for table registration failures.

    Registration errors are recoverable: ``TableRegistry.register`` logs them
    and returns ``None`` to the caller.
    """

    def __init__(
        self,
        message: str,
        error_code: str | ErrorCode,
        table_type: type | None = None,
        cause: Exception | None = None,
    ) -> None:
        context = {"table_type": table_type.__name__} if table_type else None
        super().__init__(error_code, message, Severity.LOW, context, cause)
        self.table_type = table_type


class AlreadyRegisteredError(RegistrationError):
    """Raised when a table type is registered a second time."""

    def __init__(self, table_type: type) -> None:
        super().__init__(
            f"Table {table_type.__name__} is already registered",
            ErrorCode.ALREADY_REGISTERED,
            table_type,
        )


class TableConstructionError(RegistrationError):
    """Raised when a table factory fails or returns a table with no name.

    Args:
        table_type: The table type being registered
        reason: Why construction was rejected
        cause: The exception raised by the factory, if any
    """

    def __init__(
        self,
        table_type: type,
        reason: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            f"Couldn't create instance of table {table_type.__name__}: {reason}",
            ErrorCode.CONSTRUCTION_FAILED,
            table_type,
            cause,
        )
        self.reason = reason


class DatabaseConnectionError(TableSyncError):
    """Base class for connection pool failures."""


class PoolUnavailableError(DatabaseConnectionError):
    """Raised for every operation attempted against a pool that failed to start.

    Args:
        reason: Why the pool could not be initialized
        cause: The original exception, if any
    """

    def __init__(self, reason: str, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.POOL_UNAVAILABLE,
            f"Connection pool is unavailable: {reason}",
            Severity.HIGH,
            {"reason": reason},
            cause,
        )
        self.reason = reason


class AcquireTimeoutError(DatabaseConnectionError):
    """Raised when no connection could be checked out within the pool timeout."""

    def __init__(self, timeout: float, cause: Exception | None = None) -> None:
        super().__init__(
            ErrorCode.ACQUIRE_TIMEOUT,
            f"Timed out after {timeout}s waiting for a pooled connection",
            Severity.MEDIUM,
            {"timeout_seconds": timeout},
            cause,
        )
        self.timeout = timeout


class ExecutionError(TableSyncError):
    """Raised when a statement or query fails during execution.

    The SQL text is always kept so that failures can be logged with the
    offending statement.

    Args:
        sql: The SQL text that failed
        message: Description of the failure
        error_code: Error code (defaults to EXECUTION_FAILED)
        cause: The original exception that caused this error
    """

    def __init__(
        self,
        sql: str,
        message: str,
        error_code: str | ErrorCode = ErrorCode.EXECUTION_FAILED,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(error_code, message, Severity.MEDIUM, {"sql": sql}, cause)
        self.sql = sql


class StatementBindingError(ExecutionError):
    """Raised when positional arguments don't match the statement placeholders."""

    def __init__(self, sql: str, placeholders: int, arguments: int) -> None:
        super().__init__(
            sql,
            f"Statement has {placeholders} placeholder(s) "
            f"but {arguments} argument(s) were supplied",
            ErrorCode.BINDING_FAILED,
        )
        self.placeholders = placeholders
        self.arguments = arguments


class MessageFormatError(TableSyncError):
    """Raised when an invalidation payload cannot be decoded."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(ErrorCode.INVALID_MESSAGE, message, Severity.LOW, None, cause)
