"""Base pydantic model for the canvas wire format.

Python attributes are snake_case; JSON keys are camelCase. Always serialize
through ``to_wire`` so the aliases are used.
"""

from typing import Any, Dict

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CanvasModel(BaseModel):
    """Model whose JSON keys are the camelCase canvas keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> Dict[str, Any]:
        """Dump to a JSON-compatible dict with camelCase keys, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class Position(CanvasModel):
    """Canvas coordinates of a node."""
    x: float = 0
    y: float = 0

    model_config = ConfigDict(extra="ignore")
