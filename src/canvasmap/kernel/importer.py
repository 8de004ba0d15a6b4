"""Config-to-graph import.

``import_configuration`` inverts the UI export. ``StagedImport`` adds the
auto-expansion hints an interactive canvas needs and hands nodes and edges
over in two phases. ``import_execution_config`` rebuilds a canvas from the
flat execution rules alone, with computed positions.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Set, Union

from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue, record_issue
from canvasmap.errors import ImportSequenceError

from .configuration import (
    MappingConfiguration,
    MappingNodeConfig,
    SourceNodeConfig,
    TargetNodeConfig,
    TransformNodeConfig,
)
from .graph import CanvasEdge, CanvasGraph
from .layout import column_layout
from .nodes import (
    CONVERSION_MAPPING,
    IF_THEN,
    SOURCE,
    SPLITTER,
    STATIC_VALUE,
    TARGET,
    TRANSFORM,
    ConversionMappingData,
    ConversionMappingNode,
    NodeBase,
    SourceData,
    SourceNode,
    TargetData,
    TargetNode,
    parse_node,
)
from .rules import ExecutionMapping, ExecutionMappingConfig
from .schema import ArrayConfig, fields_from_paths, reconstruct_fields, strip_indices

logger = logging.getLogger(__name__)


def import_source_node(config: SourceNodeConfig) -> SourceNode:
    return SourceNode(
        id=config.id,
        position=config.position,
        data=SourceData(label=config.label, fields=config.schema_.fields, data=config.sample_data),
    )


def import_target_node(
    config: TargetNodeConfig,
    array_configs: Optional[Iterable[ArrayConfig]] = None,
    warnings: Optional[List[MappingIssue]] = None,
) -> TargetNode:
    """Rebuild a target node, restoring groupBy from the array configuration."""
    return TargetNode(
        id=config.id,
        position=config.position,
        data=TargetData(
            label=config.label,
            fields=reconstruct_fields(config.schema_.fields, array_configs, warnings),
            data=config.output_data,
            field_values=config.field_values or {},
        ),
    )


def import_transform_node(config: TransformNodeConfig) -> NodeBase:
    """Rebuild a transform node from its canonical ``nodeData``.

    Documents without ``nodeData`` fall back to ``config``; the node data
    models pull parameters out of ``config.parameters`` while parsing.
    """
    if config.node_data:
        data: Dict[str, Any] = dict(config.node_data)
    else:
        data = {"config": dict(config.config)}
        if config.type == TRANSFORM or config.transform_type not in ("unknown", config.type):
            data["transformType"] = config.transform_type
    data.setdefault("label", config.label)
    return parse_node({
        "id": config.id,
        "type": config.type,
        "position": config.position,
        "data": data,
    })


def import_mapping_node(config: MappingNodeConfig) -> ConversionMappingNode:
    return ConversionMappingNode(
        id=config.id,
        type=CONVERSION_MAPPING,
        position=config.position,
        data=ConversionMappingData(label=config.label, mappings=config.mappings, source_field=config.source_field),
    )


def import_configuration(
    config: Union[MappingConfiguration, Dict[str, Any]],
    array_configs: Optional[Iterable[Union[ArrayConfig, Dict[str, Any]]]] = None,
    warnings: Optional[List[MappingIssue]] = None,
) -> CanvasGraph:
    """Rebuild a canvas graph from a UI configuration.

    Positions are taken verbatim. Connections are replayed as edges in order;
    empty handles become ``None``.
    """
    if not isinstance(config, MappingConfiguration):
        config = MappingConfiguration.model_validate(config)
    arrays = [a if isinstance(a, ArrayConfig) else ArrayConfig.model_validate(a) for a in array_configs or []]

    nodes: List[NodeBase] = []
    nodes.extend(import_source_node(c) for c in config.nodes.sources)
    nodes.extend(import_target_node(c, arrays, warnings) for c in config.nodes.targets)
    nodes.extend(import_transform_node(c) for c in config.nodes.transforms)
    nodes.extend(import_mapping_node(c) for c in config.nodes.mappings)

    for duplicate in config.duplicate_node_ids():
        record_issue(warnings, logger, IssueCode.UNKNOWN_NODE,
                     f"Node id '{duplicate}' appears in more than one category; the first one is used", duplicate)
    for connection in config.dangling_connections():
        record_issue(warnings, logger, IssueCode.DANGLING_CONNECTION,
                     f"Connection '{connection.id}' references a missing node "
                     f"({connection.source_node_id} -> {connection.target_node_id})", connection.id)

    edges = [
        CanvasEdge(
            id=c.id,
            source=c.source_node_id,
            target=c.target_node_id,
            source_handle=c.source_handle or None,
            target_handle=c.target_handle or None,
        )
        for c in config.connections
    ]
    logger.info("Imported '%s': %d nodes, %d edges", config.name, len(nodes), len(edges))
    return CanvasGraph(nodes=nodes, edges=edges)


def expansion_paths(handle: str) -> List[str]:
    """Ancestor paths of a dotted handle, with array indices stripped.

    ``items[2].address.city`` -> ``["items", "items.address"]``.
    """
    parts = handle.split(".")
    paths = []
    for i in range(len(parts) - 1):
        clean = strip_indices(".".join(parts[: i + 1]))
        if clean and clean not in paths:
            paths.append(clean)
    return paths


def compute_expansions(
    edges: Sequence[CanvasEdge],
    warnings: Optional[List[MappingIssue]] = None,
) -> Dict[str, List[str]]:
    """Map source node id -> field paths that must be expanded to show each edge's handle."""
    expansions: Dict[str, List[str]] = {}
    for edge in edges:
        if not edge.source_handle:
            record_issue(warnings, logger, IssueCode.MISSING_SOURCE_HANDLE,
                         f"Edge '{edge.id}' has no source handle; nothing to expand", edge.id)
            continue
        paths = expansions.setdefault(edge.source, [])
        for path in expansion_paths(edge.source_handle):
            if path not in paths:
                paths.append(path)
    return expansions


def attach_expansions(nodes: Sequence[NodeBase], expansions: Dict[str, List[str]]) -> List[NodeBase]:
    """Copy of ``nodes`` with ``initialExpandedFields`` set on source nodes that need it."""
    result: List[NodeBase] = []
    for node in nodes:
        paths = expansions.get(node.id)
        if isinstance(node, SourceNode) and paths:
            data = node.data.model_copy(update={"initial_expanded_fields": list(paths)})
            node = node.model_copy(update={"data": data})
        result.append(node)
    return result


class ImportPhase(str, Enum):
    PENDING = "pending"
    NODES_MATERIALIZED = "nodes_materialized"
    RENDERED = "rendered"
    EDGES_RELEASED = "edges_released"


class StagedImport:
    """Two-phase hand-over of an imported graph to an interactive canvas.

    Expanding a field creates the handles its children's edges attach to, so
    edges may only be applied after the canvas has rendered the expanded
    nodes. Phase 1 materializes nodes with expansion hints; phase 2 releases
    the edges once ``acknowledge_render`` has been called.
    """

    def __init__(self, graph: CanvasGraph, warnings: Optional[List[MappingIssue]] = None):
        self.graph = graph
        self.warnings = warnings if warnings is not None else []
        self.expansions = compute_expansions(graph.edges, self.warnings)
        self.phase = ImportPhase.PENDING

    @classmethod
    def from_configuration(
        cls,
        config: Union[MappingConfiguration, Dict[str, Any]],
        array_configs: Optional[Iterable[Union[ArrayConfig, Dict[str, Any]]]] = None,
    ) -> "StagedImport":
        warnings: List[MappingIssue] = []
        graph = import_configuration(config, array_configs, warnings)
        return cls(graph, warnings)

    def materialize_nodes(self) -> List[NodeBase]:
        """Phase 1: nodes with expansion hints attached."""
        if self.phase != ImportPhase.PENDING:
            raise ImportSequenceError(f"Nodes were already materialized (phase: {self.phase.value})")
        nodes = attach_expansions(self.graph.nodes, self.expansions)
        self.phase = ImportPhase.NODES_MATERIALIZED
        return nodes

    def acknowledge_render(self) -> None:
        """Completion signal: the canvas has rendered the materialized nodes."""
        if self.phase != ImportPhase.NODES_MATERIALIZED:
            raise ImportSequenceError(
                f"Render acknowledged before nodes were materialized (phase: {self.phase.value})"
            )
        self.phase = ImportPhase.RENDERED

    def release_edges(self) -> List[CanvasEdge]:
        """Phase 2: the edges, only once the render was acknowledged."""
        if self.phase != ImportPhase.RENDERED:
            raise ImportSequenceError(
                f"Edges requested before the imported nodes were rendered (phase: {self.phase.value})"
            )
        self.phase = ImportPhase.EDGES_RELEASED
        return list(self.graph.edges)

    def run(
        self,
        apply_nodes: Callable[[List[NodeBase], Callable[[], None]], None],
        apply_edges: Callable[[List[CanvasEdge]], None],
    ) -> None:
        """Drive both phases through the canvas callbacks.

        Existing edges are cleared, nodes are applied, and the edges follow
        when the canvas calls the completion callback passed to ``apply_nodes``.
        """
        def on_rendered() -> None:
            self.acknowledge_render()
            apply_edges(self.release_edges())

        apply_edges([])
        apply_nodes(self.materialize_nodes(), on_rendered)


class _GraphBuilder:
    """Accumulates nodes and edges with unique, readable ids."""

    def __init__(self):
        self.nodes: List[Dict[str, Any]] = []
        self.edges: List[Dict[str, Any]] = []
        self._ids: Set[str] = set()

    def add_node(self, base_id: str, node_type: str, data: Dict[str, Any]) -> str:
        node_id = base_id
        n = 2
        while node_id in self._ids:
            node_id = f"{base_id}_{n}"
            n += 1
        self._ids.add(node_id)
        self.nodes.append({"id": node_id, "type": node_type, "data": data})
        return node_id

    def connect(self, source: str, target: str, source_handle: Optional[str] = None,
                target_handle: Optional[str] = None) -> None:
        self.edges.append({
            "id": f"{source}-{target}-{len(self.edges)}",
            "source": source,
            "target": target,
            "sourceHandle": source_handle,
            "targetHandle": target_handle,
        })


def import_execution_config(
    config: Union[ExecutionMappingConfig, Dict[str, Any]],
    warnings: Optional[List[MappingIssue]] = None,
) -> CanvasGraph:
    """Rebuild a canvas from execution rules alone.

    One source node holds every ``from`` path and one target node every
    ``to`` path, both as nested trees whose field ids are the dotted paths.
    Each rule becomes a chain of transform nodes between them. Positions come
    from the column layout.
    """
    if not isinstance(config, ExecutionMappingConfig):
        config = ExecutionMappingConfig.model_validate(config)

    source_paths = [m.from_ for m in config.mappings if m.type != "static" and m.from_]
    target_paths = [m.to for m in config.mappings]
    array_names = [a.target for a in config.arrays]

    builder = _GraphBuilder()
    source_id = builder.add_node("source", SOURCE, {
        "label": "Source",
        "fields": fields_from_paths(source_paths),
    })
    target_fields = reconstruct_fields(fields_from_paths(target_paths, array_names), config.arrays, warnings)
    target_id = builder.add_node("target", TARGET, {
        "label": config.name,
        "fields": target_fields,
    })

    for rule in config.mappings:
        _add_rule(builder, rule, source_id, target_id, warnings)

    positions = column_layout((n["id"], n["type"]) for n in builder.nodes)
    for node in builder.nodes:
        node["position"] = positions[node["id"]]
    logger.info("Rebuilt canvas for '%s' from %d execution rules", config.name, len(config.mappings))
    return CanvasGraph(nodes=builder.nodes, edges=builder.edges)


def _add_rule(
    builder: _GraphBuilder,
    rule: ExecutionMapping,
    source_id: str,
    target_id: str,
    warnings: Optional[List[MappingIssue]],
) -> None:
    to = strip_indices(rule.to)
    source_handle = strip_indices(rule.from_) if rule.from_ else None

    if rule.type == "direct":
        builder.connect(source_id, target_id, source_handle, to)
    elif rule.type == "static":
        value_id = f"value_{to}"
        node_id = builder.add_node(f"static_{to}", STATIC_VALUE, {
            "label": f"Static: {rule.value}",
            "values": [{"id": value_id, "value": rule.value}],
        })
        builder.connect(node_id, target_id, value_id, to)
    elif rule.type == "ifThen":
        condition = rule.if_
        node_id = builder.add_node(f"if_{to}", IF_THEN, {
            "label": "Conditional",
            "operator": condition.operator if condition else "=",
            "compareValue": condition.value if condition else "",
            "thenValue": rule.then if rule.then is not None else "",
            "elseValue": rule.else_ if rule.else_ is not None else "",
        })
        if source_handle:
            builder.connect(source_id, node_id, source_handle)
        builder.connect(node_id, target_id, None, to)
    elif rule.type == "map":
        upstream_id, upstream_handle = source_id, source_handle
        if rule.transform is not None:
            upstream_id = _add_pre_transform(builder, rule, to)
            if source_handle:
                builder.connect(source_id, upstream_id, source_handle)
            upstream_handle = None
        node_id = builder.add_node(f"convert_{to}", CONVERSION_MAPPING, {
            "label": f"Convert: {rule.from_}",
            "mappings": [{"from": k, "to": v} for k, v in (rule.map or {}).items()],
            "sourceField": rule.from_,
        })
        if upstream_handle or upstream_id != source_id:
            builder.connect(upstream_id, node_id, upstream_handle)
        builder.connect(node_id, target_id, None, to)
    elif rule.type == "skip":
        logger.debug("Rule for '%s' is a skip; no nodes created", rule.to)
    else:
        record_issue(warnings, logger, IssueCode.UNSUPPORTED_ORIGIN,
                     f"Rule type '{rule.type}' for '{rule.to}' cannot be drawn", rule.to)


def _add_pre_transform(builder: _GraphBuilder, rule: ExecutionMapping, to: str) -> str:
    transform = rule.transform
    if transform.type == "split":
        return builder.add_node(f"split_{to}", SPLITTER, {
            "label": f"Split: {rule.from_}[{transform.index or 0}]",
            "delimiter": transform.delimiter if transform.delimiter is not None else ",",
            "splitIndex": transform.index or 0,
            "sourceField": rule.from_,
        })
    if transform.type == "substring":
        config = {"stringOperation": "substring", "substringStart": transform.start or 0}
        if transform.end is not None:
            config["substringEnd"] = transform.end
        return builder.add_node(f"transform_{to}", TRANSFORM, {
            "label": "Substring",
            "transformType": "stringOperation",
            "config": config,
        })
    config = dict(transform.parameters or {})
    if transform.operation and "operation" not in config and "stringOperation" not in config:
        config["operation"] = transform.operation
    return builder.add_node(f"transform_{to}", TRANSFORM, {
        "label": transform.type,
        "transformType": transform.type,
        "config": config,
    })
