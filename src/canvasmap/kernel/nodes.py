"""Canvas node variants.

Nodes arrive as React Flow style dicts ``{id, type, position, data}``. The
``type`` string (and, for generic ``transform`` nodes, ``data.transformType``)
selects one of a closed set of variants. Anything unrecognized becomes a
``GenericNode`` so it survives a round trip, but the exporter never
resolves execution rules through it.
"""

from typing import Annotated, Any, Callable, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import Discriminator, Field, Tag, TypeAdapter, model_validator

from .legacy import (
    migrate_coalesce,
    migrate_concat,
    migrate_conversion_mapping,
    migrate_date_conversion,
    migrate_if_then,
    migrate_splitter,
    migrate_static,
)
from .models import CanvasModel, Position
from .schema import SchemaField

# Canvas type strings
SOURCE = "source"
TARGET = "target"
STATIC_VALUE = "staticValue"
IF_THEN = "ifThen"
CONVERSION_MAPPING = "conversionMapping"
MAPPING = "mapping"  # legacy alias of conversionMapping written by older importers
SPLITTER = "splitterTransform"
CONCAT = "concatTransform"
COALESCE = "coalesceTransform"
TRANSFORM = "transform"

# Structural types; every other node type is a transform
RESERVED_TYPES = frozenset({SOURCE, TARGET, CONVERSION_MAPPING, MAPPING})


def _alias_keys(model: type, data: Dict[str, Any]) -> Dict[str, Any]:
    """Rename snake_case attribute keys to their camelCase aliases."""
    out = dict(data)
    for name, info in model.model_fields.items():
        alias = info.alias or name
        if alias != name and name in out and alias not in out:
            out[alias] = out.pop(name)
    return out


class NodeData(CanvasModel):
    """Common node data: every node carries a label."""
    label: str = ""

    legacy_migration: ClassVar[Optional[Callable[[Any], Any]]] = None

    @model_validator(mode="before")
    @classmethod
    def migrate_legacy_shape(cls, data: Any) -> Any:
        """Run the variant's legacy migration once, at the parse boundary."""
        if not isinstance(data, dict):
            return data
        data = _alias_keys(cls, data)
        migration = cls.__dict__.get("legacy_migration")
        if isinstance(migration, staticmethod):
            migration = migration.__func__
        if migration is not None:
            data = migration(data)
        return data


class SourceData(NodeData):
    fields: List[SchemaField] = Field(default_factory=list)
    data: List[Dict[str, Any]] = Field(default_factory=list)  # sample records
    initial_expanded_fields: Optional[List[str]] = None


class TargetData(NodeData):
    fields: List[SchemaField] = Field(default_factory=list)
    data: List[Dict[str, Any]] = Field(default_factory=list)  # output records
    field_values: Dict[str, Any] = Field(default_factory=dict)


class StaticValueEntry(CanvasModel):
    id: str
    value: Any = ""


class StaticValueData(NodeData):
    values: List[StaticValueEntry] = Field(default_factory=list)

    legacy_migration = staticmethod(migrate_static)


class IfThenData(NodeData):
    operator: str = "="
    compare_value: Any = ""
    then_value: Any = ""
    else_value: Any = ""
    conditions: Optional[List[Dict[str, Any]]] = None  # AI-proposed free-text conditions

    legacy_migration = staticmethod(migrate_if_then)


class ValueMapping(CanvasModel):
    """One row of a lookup table."""
    from_: Any = Field(alias="from")
    to: Any = None


class ConversionMappingData(NodeData):
    mappings: List[ValueMapping] = Field(default_factory=list)
    source_field: Optional[str] = None

    legacy_migration = staticmethod(migrate_conversion_mapping)

    def table(self) -> Dict[str, Any]:
        """Lookup table as a dict (later rows win on duplicate keys)."""
        return {str(m.from_): m.to for m in self.mappings}


class SplitterData(NodeData):
    delimiter: str = ","
    split_index: int = 0
    source_field: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)

    legacy_migration = staticmethod(migrate_splitter)


class ConcatData(NodeData):
    source_fields: List[str] = Field(default_factory=list)
    separator: str = " "

    legacy_migration = staticmethod(migrate_concat)


class CoalesceData(NodeData):
    transform_type: Optional[str] = None
    rules: List[Any] = Field(default_factory=list)
    default_value: Any = ""
    output_type: str = "value"
    input_values: Dict[str, Any] = Field(default_factory=dict)

    legacy_migration = staticmethod(migrate_coalesce)


class DateConversionData(NodeData):
    transform_type: str = "dateFormat"
    format: str = ""
    source_field: Optional[str] = None
    auto_detect: bool = True

    legacy_migration = staticmethod(migrate_date_conversion)


class TransformData(NodeData):
    transform_type: Optional[str] = None
    config: Dict[str, Any] = Field(default_factory=dict)


class NodeBase(CanvasModel):
    """Fields shared by every canvas node."""
    id: str
    position: Position = Field(default_factory=Position)

    kind: ClassVar[str] = "generic"
    operation: ClassVar[str] = "transform"

    @property
    def label(self) -> str:
        return getattr(self.data, "label", "") or ""

    def parameters(self) -> Dict[str, Any]:
        """Stable ``config.parameters`` shape used by the UI export."""
        return {}

    def transform_type(self) -> str:
        return getattr(self.data, "transform_type", None) or self.type

    @property
    def is_transform(self) -> bool:
        return self.type not in RESERVED_TYPES


class SourceNode(NodeBase):
    type: Literal["source"] = SOURCE
    data: SourceData = Field(default_factory=SourceData)

    kind: ClassVar[str] = "source"


class TargetNode(NodeBase):
    type: Literal["target"] = TARGET
    data: TargetData = Field(default_factory=TargetData)

    kind: ClassVar[str] = "target"


class StaticValueNode(NodeBase):
    type: Literal["staticValue"] = STATIC_VALUE
    data: StaticValueData = Field(default_factory=StaticValueData)

    kind: ClassVar[str] = "static"
    operation: ClassVar[str] = "static"

    def parameters(self) -> Dict[str, Any]:
        return {"values": [v.to_wire() for v in self.data.values]}

    def value_for(self, handle: Optional[str]) -> Any:
        for entry in self.data.values:
            if entry.id == handle:
                return entry.value
        return None


class IfThenNode(NodeBase):
    type: Literal["ifThen"] = IF_THEN
    data: IfThenData = Field(default_factory=IfThenData)

    kind: ClassVar[str] = "conditional"
    operation: ClassVar[str] = "conditional"

    def parameters(self) -> Dict[str, Any]:
        return {
            "operator": self.data.operator,
            "compareValue": self.data.compare_value,
            "thenValue": self.data.then_value,
            "elseValue": self.data.else_value,
        }


class ConversionMappingNode(NodeBase):
    type: Literal["conversionMapping", "mapping"] = CONVERSION_MAPPING
    data: ConversionMappingData = Field(default_factory=ConversionMappingData)

    kind: ClassVar[str] = "table"
    operation: ClassVar[str] = "map"


class SplitterNode(NodeBase):
    type: Literal["splitterTransform"] = SPLITTER
    data: SplitterData = Field(default_factory=SplitterData)

    kind: ClassVar[str] = "split"
    operation: ClassVar[str] = "split"

    def parameters(self) -> Dict[str, Any]:
        return {
            "delimiter": self.data.delimiter,
            "splitIndex": self.data.split_index,
            **self.data.config,
        }


class ConcatNode(NodeBase):
    type: Literal["concatTransform"] = CONCAT
    data: ConcatData = Field(default_factory=ConcatData)

    kind: ClassVar[str] = "concat"
    operation: ClassVar[str] = "concat"

    def parameters(self) -> Dict[str, Any]:
        return {"sourceFields": list(self.data.source_fields), "separator": self.data.separator}


class CoalesceNode(NodeBase):
    type: Literal["coalesceTransform", "transform"] = COALESCE
    data: CoalesceData = Field(default_factory=CoalesceData)

    kind: ClassVar[str] = "coalesce"
    operation: ClassVar[str] = "coalesce"

    def parameters(self) -> Dict[str, Any]:
        return {
            "rules": list(self.data.rules),
            "defaultValue": self.data.default_value,
            "outputType": self.data.output_type,
        }

    def transform_type(self) -> str:
        return "coalesce"


class DateConversionNode(NodeBase):
    type: Literal["transform"] = TRANSFORM
    data: DateConversionData = Field(default_factory=DateConversionData)

    kind: ClassVar[str] = "dateConversion"
    operation: ClassVar[str] = "dateConversion"

    def parameters(self) -> Dict[str, Any]:
        return {"format": self.data.format, "autoDetect": self.data.auto_detect}


class TransformNode(NodeBase):
    """A string/number transform configured through ``data.config``."""
    type: Literal["transform"] = TRANSFORM
    data: TransformData = Field(default_factory=TransformData)

    kind: ClassVar[str] = "transform"

    def parameters(self) -> Dict[str, Any]:
        return dict(self.data.config)

    def operation_name(self) -> str:
        config = self.data.config
        return config.get("stringOperation") or config.get("operation") or "unknown"


class GenericNode(NodeBase):
    """Any node type this version does not know about; data kept verbatim."""
    type: str
    data: Dict[str, Any] = Field(default_factory=dict)

    kind: ClassVar[str] = "generic"

    @property
    def label(self) -> str:
        return str(self.data.get("label") or "")

    def parameters(self) -> Dict[str, Any]:
        config = self.data.get("config")
        if isinstance(config, dict) and config:
            return dict(config)
        return {k: v for k, v in self.data.items() if k != "label"}

    def transform_type(self) -> str:
        return str(self.data.get("transformType") or self.type)


def node_kind(value: Any) -> str:
    """Discriminator: map a raw node (or a node model) onto its variant tag."""
    if isinstance(value, NodeBase):
        return value.kind
    if not isinstance(value, dict):
        return "generic"
    node_type = value.get("type")
    data = value.get("data")
    transform_type = None
    if isinstance(data, dict):
        transform_type = data.get("transformType") or data.get("transform_type")
    elif isinstance(data, TransformData):
        transform_type = data.transform_type

    if node_type == SOURCE:
        return "source"
    if node_type == TARGET:
        return "target"
    if node_type == STATIC_VALUE:
        return "static"
    if node_type == IF_THEN:
        return "conditional"
    if node_type in (CONVERSION_MAPPING, MAPPING):
        return "table"
    if node_type == SPLITTER:
        return "split"
    if node_type == CONCAT:
        return "concat"
    if node_type == COALESCE:
        return "coalesce"
    if node_type == TRANSFORM:
        if transform_type == "coalesce":
            return "coalesce"
        if transform_type == "dateFormat":
            return "dateConversion"
        return "transform"
    return "generic"


CanvasNode = Annotated[
    Union[
        Annotated[SourceNode, Tag("source")],
        Annotated[TargetNode, Tag("target")],
        Annotated[StaticValueNode, Tag("static")],
        Annotated[IfThenNode, Tag("conditional")],
        Annotated[ConversionMappingNode, Tag("table")],
        Annotated[SplitterNode, Tag("split")],
        Annotated[ConcatNode, Tag("concat")],
        Annotated[CoalesceNode, Tag("coalesce")],
        Annotated[DateConversionNode, Tag("dateConversion")],
        Annotated[TransformNode, Tag("transform")],
        Annotated[GenericNode, Tag("generic")],
    ],
    Discriminator(node_kind),
]

_node_adapter: TypeAdapter = TypeAdapter(CanvasNode)


def parse_node(raw: Any) -> NodeBase:
    """Parse a raw canvas node dict into its typed variant."""
    return _node_adapter.validate_python(raw)
