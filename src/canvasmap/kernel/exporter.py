"""Graph-to-config export: UI snapshot and flat execution rules."""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue, record_issue

from .configuration import (
    Connection,
    ExecutionPlan,
    ExecutionStep,
    MappingConfiguration,
    MappingNodeConfig,
    NodeGroups,
    SchemaSpec,
    SourceNodeConfig,
    TargetNodeConfig,
    TransformNodeConfig,
)
from .graph import CanvasEdge, CanvasGraph
from .nodes import (
    SPLITTER,
    TRANSFORM,
    ConversionMappingNode,
    GenericNode,
    IfThenNode,
    NodeBase,
    SourceNode,
    SplitterNode,
    StaticValueNode,
    TargetNode,
    TransformNode,
)
from .resolver import OriginResolver, ResolutionDepthError
from .rules import Condition, ExecutionMapping, ExecutionMappingConfig, TransformInfo
from .schema import ArrayConfig, collect_array_configs, iter_fields

logger = logging.getLogger(__name__)

DEFAULT_NAME = "Untitled Mapping"


class ExportResult(BaseModel):
    """Both exported documents plus the soft failures met on the way."""
    ui_config: MappingConfiguration
    execution_config: ExecutionMappingConfig
    warnings: List[MappingIssue] = Field(default_factory=list)


def _as_graph(graph: Union[CanvasGraph, Dict[str, Any]]) -> CanvasGraph:
    return graph if isinstance(graph, CanvasGraph) else CanvasGraph.from_dict(graph)


def _node_data_wire(node: NodeBase) -> Dict[str, Any]:
    if isinstance(node, GenericNode):
        return dict(node.data)
    return node.data.to_wire()


def _operation_for(node: NodeBase) -> str:
    if isinstance(node, TransformNode):
        return node.operation_name()
    if isinstance(node, GenericNode):
        config = node.data.get("config")
        if isinstance(config, dict) and config.get("operation"):
            return str(config["operation"])
        return node.type
    return node.operation


def export_ui_configuration(
    graph: Union[CanvasGraph, Dict[str, Any]],
    name: str = DEFAULT_NAME,
    warnings: Optional[List[MappingIssue]] = None,
    mapping_id: Optional[str] = None,
    created_at: Optional[str] = None,
) -> MappingConfiguration:
    """Snapshot the canvas into a MappingConfiguration.

    Nodes are partitioned into sources, targets, transforms and mappings. Every
    node whose type is not ``source``, ``target``, ``conversionMapping`` or
    ``mapping`` is exported as a transform, including types this version does
    not recognize.
    """
    graph = _as_graph(graph)
    logger.debug("Exporting UI configuration '%s': %d nodes, %d edges", name, len(graph.nodes), len(graph.edges))

    groups = NodeGroups()
    for node in graph.nodes:
        if isinstance(node, SourceNode):
            groups.sources.append(SourceNodeConfig(
                id=node.id,
                label=node.label or "Source Node",
                position=node.position,
                schema=SchemaSpec(fields=node.data.fields),
                sample_data=node.data.data,
            ))
        elif isinstance(node, TargetNode):
            groups.targets.append(TargetNodeConfig(
                id=node.id,
                label=node.label or "Target Node",
                position=node.position,
                schema=SchemaSpec(fields=node.data.fields),
                output_data=node.data.data,
                field_values=node.data.field_values or None,
            ))
        elif isinstance(node, ConversionMappingNode):
            groups.mappings.append(MappingNodeConfig(
                id=node.id,
                label=node.label or "Mapping Node",
                position=node.position,
                mappings=node.data.mappings,
                source_field=node.data.source_field,
            ))
        elif node.is_transform:
            groups.transforms.append(TransformNodeConfig(
                id=node.id,
                type=node.type,
                label=node.label or "Transform Node",
                position=node.position,
                transform_type=node.transform_type() or "unknown",
                config={"operation": _operation_for(node), "parameters": node.parameters()},
                node_data=_node_data_wire(node),
            ))
        else:
            # Reserved types are all handled above
            record_issue(warnings, logger, IssueCode.UNKNOWN_NODE,
                         f"Node '{node.id}' of type '{node.type}' has no UI category", node.id)

    connections: List[Connection] = []
    dangling = {id(edge) for edge in graph.dangling_edges()}
    for edge in graph.edges:
        if id(edge) in dangling:
            record_issue(warnings, logger, IssueCode.DANGLING_CONNECTION,
                         f"Edge '{edge.id}' references a missing node ({edge.source} -> {edge.target})", edge.id)
            continue
        connections.append(Connection(
            id=edge.id,
            source_node_id=edge.source,
            target_node_id=edge.target,
            source_handle=edge.source_handle or "",
            target_handle=edge.target_handle or "",
            type=_connection_type(graph.get_node(edge.source)),
        ))

    return MappingConfiguration(
        id=mapping_id or f"mapping_{int(time.time() * 1000)}",
        name=name,
        created_at=created_at or datetime.now(timezone.utc).isoformat(),
        nodes=groups,
        connections=connections,
        execution=ExecutionPlan(steps=build_execution_steps(graph, warnings)),
    )


def _connection_type(source_node: NodeBase) -> str:
    if isinstance(source_node, ConversionMappingNode):
        return "mapping"
    if source_node.is_transform:
        return "transform"
    return "direct"


def build_execution_steps(
    graph: Union[CanvasGraph, Dict[str, Any]],
    warnings: Optional[List[MappingIssue]] = None,
) -> List[ExecutionStep]:
    """Order the graph's nodes so every node follows its inputs.

    Nodes on or downstream of a cycle are omitted and reported.
    """
    graph = _as_graph(graph)
    cycles = graph.detect_cycles()
    if cycles:
        cycle = cycles[0]
        record_issue(warnings, logger, IssueCode.CYCLE_DETECTED,
                     "Cycle detected, affected nodes are left out of the execution steps: "
                     + " -> ".join(cycle), cycle[0])

    steps = []
    for i, node_id in enumerate(graph.topological_order(), start=1):
        node = graph.get_node(node_id)
        inputs: List[str] = []
        for edge in graph.incoming(node_id):
            if graph.has_node(edge.source) and edge.source not in inputs:
                inputs.append(edge.source)
        steps.append(ExecutionStep(order=i, node_id=node_id, node_type=node.type, inputs=inputs))
    return steps


class _RuleBuilder:
    """Resolves each edge into a target field to one execution rule."""

    def __init__(self, graph: CanvasGraph, warnings: Optional[List[MappingIssue]]):
        self.graph = graph
        self.warnings = warnings
        self.resolver = OriginResolver(graph)

    def _warn(self, code: IssueCode, message: str, element_id: Optional[str] = None) -> None:
        record_issue(self.warnings, logger, code, message, element_id)

    def build(self, edge: CanvasEdge, target_path: str) -> Optional[ExecutionMapping]:
        origin = self.graph.get_node(edge.source)
        if origin is None:
            self._warn(IssueCode.UNKNOWN_NODE,
                       f"Edge '{edge.id}' into '{target_path}' comes from unknown node '{edge.source}'", edge.id)
            return None
        try:
            if isinstance(origin, SourceNode):
                return self._direct(origin, edge, target_path)
            elif isinstance(origin, StaticValueNode):
                return self._static(origin, edge, target_path)
            elif isinstance(origin, IfThenNode):
                return self._conditional(origin, target_path)
            elif isinstance(origin, ConversionMappingNode):
                return self._table(origin, target_path)
            else:
                self._warn(IssueCode.UNSUPPORTED_ORIGIN,
                           f"Edge '{edge.id}' into '{target_path}' comes from a '{origin.type}' node, "
                           f"which has no execution rule; skipped", edge.id)
                return None
        except ResolutionDepthError as e:
            self._warn(IssueCode.RESOLUTION_DEPTH_EXCEEDED, f"{e}; rule for '{target_path}' skipped", edge.id)
            return None

    def _direct(self, origin: SourceNode, edge: CanvasEdge, target_path: str) -> ExecutionMapping:
        field = self.resolver.field_origin(origin, edge.source_handle)
        if not field.found:
            self._warn(IssueCode.UNRESOLVED_SOURCE_FIELD,
                       f"Handle '{edge.source_handle}' is not a field of source '{origin.id}'; using it verbatim",
                       edge.id)
        return ExecutionMapping(from_=field.path, to=target_path, type="direct")

    def _static(self, origin: StaticValueNode, edge: CanvasEdge, target_path: str) -> ExecutionMapping:
        value = origin.value_for(edge.source_handle)
        return ExecutionMapping(from_=None, to=target_path, type="static", value="" if value is None else value)

    def _conditional(self, origin: IfThenNode, target_path: str) -> ExecutionMapping:
        field = self.resolver.resolve_input(origin.id)
        if field is None:
            self._warn(IssueCode.UNRESOLVED_SOURCE_FIELD,
                       f"Conditional node '{origin.id}' has no source field input", origin.id)
        return ExecutionMapping(
            from_=field.path if field else "",
            to=target_path,
            type="ifThen",
            if_=Condition(operator=origin.data.operator, value=origin.data.compare_value),
            then=origin.data.then_value,
            else_=origin.data.else_value,
        )

    def _table(self, origin: ConversionMappingNode, target_path: str) -> ExecutionMapping:
        source_path = ""
        transform: Optional[TransformInfo] = None

        in_edge, upstream = self.resolver.upstream(origin.id)
        if isinstance(upstream, SourceNode):
            source_path = self.resolver.field_origin(upstream, in_edge.source_handle).path
        elif upstream is not None and upstream.type in (TRANSFORM, SPLITTER):
            # One more hop through the pre-transform to the real source field
            t_edge, t_source = self.resolver.upstream(upstream.id)
            if isinstance(t_source, SourceNode):
                source_path = self.resolver.field_origin(t_source, t_edge.source_handle).path
                transform = _transform_info(upstream)

        if not source_path:
            self._warn(IssueCode.UNRESOLVED_SOURCE_FIELD,
                       f"Mapping node '{origin.id}' is not fed by a source field", origin.id)

        return ExecutionMapping(
            from_=source_path,
            to=target_path,
            type="map",
            map=origin.data.table(),
            transform=transform,
        )


def _transform_info(node: NodeBase) -> TransformInfo:
    """Describe the transform sitting between a source field and a mapping node."""
    if isinstance(node, SplitterNode):
        return TransformInfo(type="split", delimiter=node.data.delimiter, index=node.data.split_index)
    parameters = node.parameters()
    if parameters.get("stringOperation") == "substring":
        return TransformInfo(
            type="substring",
            start=parameters.get("substringStart") or 0,
            end=parameters.get("substringEnd"),
        )
    operation = parameters.get("stringOperation") or parameters.get("operation") or "unknown"
    return TransformInfo(
        type=node.transform_type() or "transform",
        operation=operation,
        parameters=parameters,
    )


def export_execution_mapping(
    graph: Union[CanvasGraph, Dict[str, Any]],
    name: str = DEFAULT_NAME,
    category: Optional[str] = None,
    warnings: Optional[List[MappingIssue]] = None,
) -> ExecutionMappingConfig:
    """Flatten the canvas into one rule per incoming edge of each target field.

    Order: target nodes in node order, then fields in pre-order, then incoming
    edges in edge order. Edges from nodes that have no execution rule are
    skipped and reported.
    """
    graph = _as_graph(graph)
    builder = _RuleBuilder(graph, warnings)
    mappings: List[ExecutionMapping] = []
    arrays: List[ArrayConfig] = []
    seen_arrays = set()

    for target in graph.target_nodes():
        for path, field in iter_fields(target.data.fields):
            for edge in graph.incoming_to_handle(target.id, field.id):
                rule = builder.build(edge, path)
                if rule is not None:
                    mappings.append(rule)
        for array in collect_array_configs(target.data.fields, warnings):
            if array.target not in seen_arrays:
                seen_arrays.add(array.target)
                arrays.append(array)

    logger.info("Exported %d execution rules for '%s'", len(mappings), name)
    return ExecutionMappingConfig(name=name, category=category, mappings=mappings, arrays=arrays)


def export_mapping(
    graph: Union[CanvasGraph, Dict[str, Any]],
    name: str = DEFAULT_NAME,
    category: Optional[str] = None,
) -> ExportResult:
    """Export both the UI snapshot and the execution rules of a canvas."""
    graph = _as_graph(graph)
    warnings: List[MappingIssue] = []
    ui_config = export_ui_configuration(graph, name, warnings)
    execution_config = export_execution_mapping(graph, name, category, warnings)
    return ExportResult(ui_config=ui_config, execution_config=execution_config, warnings=warnings)
