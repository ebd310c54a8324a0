"""Base Pydantic model configuration for MCP Relay models.

All relay models inherit from RelayBaseModel to ensure consistent behavior:
- Immutability (frozen=True) so snapshots can be shared across tasks
- Strict validation (extra="forbid") to reject unknown fields
- Flexible field naming (populate_by_name=True) for alias support
"""

from pydantic import BaseModel, ConfigDict


class RelayBaseModel(BaseModel):
    """Base model for all relay data objects.

    Example:
        >>> class Point(RelayBaseModel):
        ...     x: int
        >>> p = Point(x=1)
        >>> p.x = 2  # Raises ValidationError (frozen)
        Traceback (most recent call last):
        ...
        pydantic_core._pydantic_core.ValidationError: ...
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        use_enum_values=False,
        validate_default=True,
        validate_assignment=True,
        json_schema_extra={
            "additionalProperties": False,
        },
    )
