"""Wire format of cache invalidation messages.

A writer publishes one message after committing a change to an object::

    {"updateType": "SAVE", "objectId": "steve"}

An optional ``table`` field narrows the message to the listener of one
table; without it every listener on the channel handles the message.
"""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from src.core.exceptions import MessageFormatError


class UpdateType(StrEnum):
    """Kind of change a writer made to an object."""

    SAVE = "SAVE"
    """The object was created or modified."""

    DELETE = "DELETE"
    """The object was removed from the store."""


class InvalidationMessage(BaseModel):
    """A notification that an object changed in the shared store."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    update_type: UpdateType = Field(alias="updateType")
    object_id: str = Field(alias="objectId", min_length=1)
    table: str | None = Field(
        default=None, description="Registered name of the table the object lives in"
    )

    def encode(self) -> str:
        """Serialize to the JSON payload sent over the channel."""
        return self.model_dump_json(by_alias=True, exclude_none=True)

    @classmethod
    def decode(cls, payload: str | bytes) -> "InvalidationMessage":
        """Parse a channel payload.

        Raises:
            MessageFormatError: If the payload is not valid JSON or lacks a
                known ``updateType`` or a non-empty ``objectId``.
        """
        try:
            return cls.model_validate_json(payload)
        except ValidationError as e:
            msg = f"Invalid invalidation message: {e.error_count()} error(s)"
            raise MessageFormatError(msg, cause=e) from e

    def targets(self, table_name: str | None) -> bool:
        """Whether a listener for ``table_name`` should handle this message."""
        if self.table is None or table_name is None:
            return True
        return self.table.casefold() == table_name.casefold()
