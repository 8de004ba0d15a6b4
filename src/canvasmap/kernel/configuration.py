"""UI configuration: the restorable canvas snapshot written next to the execution rules."""

from typing import Any, Dict, List, Literal, Optional, Set

from pydantic import ConfigDict, Field

from .models import CanvasModel, Position
from .nodes import ValueMapping
from .schema import SchemaField


class SchemaSpec(CanvasModel):
    fields: List[SchemaField] = Field(default_factory=list)


class SourceNodeConfig(CanvasModel):
    id: str
    type: Literal["source"] = "source"
    label: str = "Source Node"
    position: Position = Field(default_factory=Position)
    schema_: SchemaSpec = Field(default_factory=SchemaSpec, alias="schema")
    sample_data: List[Dict[str, Any]] = Field(default_factory=list)


class TargetNodeConfig(CanvasModel):
    id: str
    type: Literal["target"] = "target"
    label: str = "Target Node"
    position: Position = Field(default_factory=Position)
    schema_: SchemaSpec = Field(default_factory=SchemaSpec, alias="schema")
    output_data: List[Dict[str, Any]] = Field(default_factory=list)
    field_values: Optional[Dict[str, Any]] = None


class TransformNodeConfig(CanvasModel):
    """A transform node. ``config`` is ``{operation, parameters}`` for known kinds.

    Documents written by older builds may hold the raw node config here, so it
    stays a free-form dict.
    """
    id: str
    type: str
    label: str = "Transform Node"
    position: Position = Field(default_factory=Position)
    transform_type: str = "unknown"
    config: Dict[str, Any] = Field(default_factory=dict)
    node_data: Optional[Dict[str, Any]] = None


class MappingNodeConfig(CanvasModel):
    id: str
    type: str = "mapping"
    label: str = "Mapping Node"
    position: Position = Field(default_factory=Position)
    mappings: List[ValueMapping] = Field(default_factory=list)
    source_field: Optional[str] = None


class NodeGroups(CanvasModel):
    sources: List[SourceNodeConfig] = Field(default_factory=list)
    targets: List[TargetNodeConfig] = Field(default_factory=list)
    transforms: List[TransformNodeConfig] = Field(default_factory=list)
    mappings: List[MappingNodeConfig] = Field(default_factory=list)


ConnectionType = Literal["direct", "transform", "mapping"]


class Connection(CanvasModel):
    id: str
    source_node_id: str
    target_node_id: str
    source_handle: str = ""
    target_handle: str = ""
    type: ConnectionType = "direct"

    model_config = ConfigDict(extra="ignore")


class ExecutionStep(CanvasModel):
    """One node in dependency order; ``inputs`` are the upstream node ids."""
    order: int
    node_id: str
    node_type: str
    inputs: List[str] = Field(default_factory=list)


class ExecutionPlan(CanvasModel):
    steps: List[ExecutionStep] = Field(default_factory=list)


class ConfigMetadata(CanvasModel):
    description: str = "UI mapping configuration for canvas restoration"
    tags: List[str] = Field(default_factory=lambda: ["ui-state", "canvas-layout", "visual-mapping"])
    author: str = "canvasmap"


class MappingConfiguration(CanvasModel):
    """Full UI-restorable snapshot of a canvas."""
    id: str
    name: str
    version: str = "1.0.0"
    created_at: str
    nodes: NodeGroups = Field(default_factory=NodeGroups)
    connections: List[Connection] = Field(default_factory=list)
    execution: ExecutionPlan = Field(default_factory=ExecutionPlan)
    metadata: ConfigMetadata = Field(default_factory=ConfigMetadata)

    def node_ids(self) -> Set[str]:
        """Ids of every node across all four categories."""
        ids: Set[str] = set()
        for group in (self.nodes.sources, self.nodes.targets, self.nodes.transforms, self.nodes.mappings):
            ids.update(n.id for n in group)
        return ids

    def duplicate_node_ids(self) -> List[str]:
        """Ids that appear more than once across the categories (sorted)."""
        seen: Set[str] = set()
        duplicates: Set[str] = set()
        for group in (self.nodes.sources, self.nodes.targets, self.nodes.transforms, self.nodes.mappings):
            for node in group:
                if node.id in seen:
                    duplicates.add(node.id)
                seen.add(node.id)
        return sorted(duplicates)

    def dangling_connections(self) -> List[Connection]:
        """Connections whose endpoints are not present in ``nodes``."""
        ids = self.node_ids()
        return [
            c for c in self.connections
            if c.source_node_id not in ids or c.target_node_id not in ids
        ]
