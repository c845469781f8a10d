"""Operation context utilities for correlating logs and spans.

Each executor operation runs in its own asyncio task, which copies the
current context on creation. Setting the operation ID inside the task keeps
it isolated from the caller and from sibling operations.
"""

import uuid
from contextvars import ContextVar

from src.core.constants import OPERATION_ID_PREFIX

_operation_id_var: ContextVar[str | None] = ContextVar("operation_id", default=None)


class OperationContext:
    """Manages operation context using contextvars for async-safe storage."""

    @staticmethod
    def set_operation_id(operation_id: str) -> None:
        """Set the operation ID for the current context.

        Args:
            operation_id: The operation ID to store in the context.
        """
        _operation_id_var.set(operation_id)

    @staticmethod
    def get_operation_id() -> str | None:
        """Get the operation ID from the current context.

        Returns:
            str | None: The operation ID if set, None otherwise.
        """
        return _operation_id_var.get()

    @staticmethod
    def clear() -> None:
        """Clear all context variables."""
        _operation_id_var.set(None)


def generate_operation_id() -> str:
    """Generate a unique operation ID for tracking one statement or query.

    Returns:
        str: A prefixed UUID4 string in format 'op-<uuid4>'.

    Examples:
        >>> operation_id = generate_operation_id()
        >>> operation_id.startswith('op-')
        True
        >>> len(operation_id)
        39
    """
    return f"{OPERATION_ID_PREFIX}{uuid.uuid4()}"
