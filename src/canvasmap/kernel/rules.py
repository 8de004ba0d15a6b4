"""Execution rules: the flat, engine-consumable side of a mapping."""

from typing import Any, Dict, List, Literal, Optional

from pydantic import ConfigDict, Field, SerializationInfo, SerializerFunctionWrapHandler, model_serializer, model_validator

from .models import CanvasModel
from .schema import ArrayConfig

RuleType = Literal["direct", "static", "ifThen", "map", "skip"]


class Condition(CanvasModel):
    """The ``if`` part of a conditional rule."""
    operator: str = "="
    value: Any = ""

    model_config = ConfigDict(extra="ignore")


class TransformInfo(CanvasModel):
    """Pre-transform applied to the source value before a table lookup.

    ``substring`` carries ``start``/``end``; ``split`` carries
    ``delimiter``/``index``; anything else carries ``operation`` and
    ``parameters``.
    """
    type: str
    start: Optional[int] = None
    end: Optional[int] = None
    delimiter: Optional[str] = None
    index: Optional[int] = None
    operation: Optional[str] = None
    parameters: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(extra="ignore")


class ExecutionMapping(CanvasModel):
    """One resolved rule for one target field."""
    from_: Optional[str] = Field(default=None, alias="from")
    to: str
    type: RuleType
    value: Any = None
    if_: Optional[Condition] = Field(default=None, alias="if")
    then: Any = None
    else_: Any = Field(default=None, alias="else")
    map: Optional[Dict[str, Any]] = None
    transform: Optional[TransformInfo] = None

    model_config = ConfigDict(extra="ignore")

    @model_validator(mode="after")
    def validate_rule_shape(self) -> "ExecutionMapping":
        """``from`` is null only for static rules; ``map`` only appears on map rules."""
        if self.type == "static":
            if self.from_ is not None:
                raise ValueError(f"Static rule for '{self.to}' must not have a source field")
        elif self.from_ is None:
            raise ValueError(f"Rule of type '{self.type}' for '{self.to}' needs a source field")
        if self.map is not None and self.type != "map":
            raise ValueError(f"Only map rules carry a lookup table, '{self.to}' is '{self.type}'")
        return self

    @model_serializer(mode="wrap")
    def serialize_rule(self, handler: SerializerFunctionWrapHandler, info: SerializationInfo) -> Dict[str, Any]:
        data = handler(self)
        # Static rules still emit "from": null
        key = "from" if info.by_alias else "from_"
        data.setdefault(key, self.from_)
        return data


class ExecutionMetadata(CanvasModel):
    description: str = "Simplified execution mapping configuration for integration tools"
    tags: List[str] = Field(default_factory=lambda: ["execution", "integration", "data-transformation"])
    author: str = "canvasmap"


class ExecutionMappingConfig(CanvasModel):
    """Flat list of field-level rules, independent of the visual layout."""
    name: str
    version: str = "1.0.0"
    category: Optional[str] = None
    mappings: List[ExecutionMapping] = Field(default_factory=list)
    arrays: List[ArrayConfig] = Field(default_factory=list)
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

    def rules_for(self, target_field: str) -> List[ExecutionMapping]:
        """All rules writing to ``target_field``, in order."""
        return [m for m in self.mappings if m.to == target_field]
