"""Turn AI mapping suggestions into an initial canvas graph.

This is a restricted, one-way exporter used only to bootstrap a canvas: every
distinct target and source field becomes one node, and every suggestion
becomes one edge chain ``source(s) -> [transform] -> target``.
"""

import logging
from typing import Any, List, Optional, Sequence, Set

from pydantic import BaseModel, Field

from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue, record_issue
from canvasmap.kernel.graph import CanvasEdge, CanvasGraph
from canvasmap.kernel.layout import column_layout
from canvasmap.kernel.nodes import (
    CanvasNode,
    ConcatData,
    ConcatNode,
    ConversionMappingData,
    ConversionMappingNode,
    DateConversionData,
    DateConversionNode,
    IfThenData,
    IfThenNode,
    NodeBase,
    SourceData,
    SourceNode,
    SplitterData,
    SplitterNode,
    StaticValueData,
    StaticValueNode,
    TargetData,
    TargetNode,
)
from canvasmap.kernel.schema import SchemaField

from .suggestions import (
    ConcatSuggestion,
    ConditionalSuggestion,
    DateConversionSuggestion,
    DirectSuggestion,
    SkipSuggestion,
    SplitSuggestion,
    StaticSuggestion,
    SuggestionBase,
    TableSuggestion,
    parse_suggestions,
)

logger = logging.getLogger(__name__)

EDGE_TYPE = "smoothstep"


class SuggestionLink(BaseModel):
    """An edge before it has been given an id."""
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None


class SuggestionCanvas(BaseModel):
    """Un-positioned nodes and links produced from a suggestion list."""
    nodes: List[CanvasNode] = Field(default_factory=list)
    edges: List[SuggestionLink] = Field(default_factory=list)
    warnings: List[MappingIssue] = Field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]


class _CanvasBuilder:
    def __init__(self, warnings: List[MappingIssue]):
        self.nodes: List[NodeBase] = []
        self.edges: List[SuggestionLink] = []
        self.warnings = warnings
        self._ids: Set[str] = set()

    def add(self, node: NodeBase) -> str:
        """Add ``node`` unless a node with the same id exists; return the id."""
        if node.id not in self._ids:
            self.nodes.append(node)
            self._ids.add(node.id)
        return node.id

    def link(self, source: str, target: str, source_handle: Optional[str] = None,
             target_handle: Optional[str] = None) -> None:
        self.edges.append(SuggestionLink(
            source=source, target=target, source_handle=source_handle, target_handle=target_handle,
        ))

    def target(self, field: str) -> str:
        return self.add(TargetNode(
            id=f"target_{field}",
            data=TargetData(label=field, fields=[SchemaField(id=field, name=field)]),
        ))

    def source(self, field: str) -> str:
        return self.add(SourceNode(
            id=f"source_{field}",
            data=SourceData(label=field, fields=[SchemaField(id=field, name=field)]),
        ))

    def add_suggestion(self, suggestion: SuggestionBase) -> None:
        field = suggestion.target_field
        if isinstance(suggestion, SkipSuggestion):
            logger.debug("Skipping '%s' as suggested", field)
            return
        if not isinstance(suggestion, (DirectSuggestion, StaticSuggestion, ConditionalSuggestion,
                                       TableSuggestion, DateConversionSuggestion, ConcatSuggestion,
                                       SplitSuggestion)):
            record_issue(self.warnings, logger, IssueCode.UNKNOWN_MAPPING_TYPE,
                         f"Unknown mapping type '{getattr(suggestion, 'mapping_type', None)}' "
                         f"for '{field}'; skipped", field or None)
            return

        target_id = self.target(field)

        if isinstance(suggestion, DirectSuggestion):
            source_id = self.source(suggestion.source_field)
            self.link(source_id, target_id, suggestion.source_field, field)
            return

        if isinstance(suggestion, StaticSuggestion):
            value_id = f"value_{field}"
            node_id = self.add(StaticValueNode(
                id=f"static_{field}",
                data=StaticValueData(
                    label=f"Static: {suggestion.value}",
                    values=[{"id": value_id, "value": suggestion.value}],
                ),
            ))
            self.link(node_id, target_id, value_id, field)
            return

        if isinstance(suggestion, ConditionalSuggestion):
            node = IfThenNode(
                id=f"if_{field}",
                data=IfThenData(
                    label="Conditional",
                    conditions=[c.model_dump() for c in suggestion.conditions],
                ),
            )
            inputs = [suggestion.source_field] if suggestion.source_field else []
        elif isinstance(suggestion, TableSuggestion):
            node = ConversionMappingNode(
                id=f"convert_{field}",
                data=ConversionMappingData(
                    label=f"Convert: {suggestion.source_field}",
                    source_field=suggestion.source_field,
                    mappings=[{"from": k, "to": v} for k, v in suggestion.table.items()],
                ),
            )
            inputs = [suggestion.source_field]
        elif isinstance(suggestion, DateConversionSuggestion):
            node = DateConversionNode(
                id=f"date_{field}",
                data=DateConversionData(
                    label=f"Date: {suggestion.format}",
                    source_field=suggestion.source_field,
                    format=suggestion.format,
                    auto_detect=True,
                ),
            )
            inputs = [suggestion.source_field]
        elif isinstance(suggestion, ConcatSuggestion):
            node = ConcatNode(
                id=f"concat_{field}",
                data=ConcatData(
                    label=f"Concat: {' + '.join(suggestion.source_fields)}",
                    source_fields=suggestion.source_fields,
                    separator=" " if suggestion.separator is None else suggestion.separator,
                ),
            )
            inputs = list(suggestion.source_fields)
        else:
            node = SplitterNode(
                id=f"split_{field}",
                data=SplitterData(
                    label=f"Split: {suggestion.source_field}[{suggestion.index}]",
                    source_field=suggestion.source_field,
                    delimiter=suggestion.delimiter,
                    split_index=suggestion.index,
                ),
            )
            inputs = [suggestion.source_field]

        # sources land on the canvas before the transform they feed
        for source_field in inputs:
            self.link(self.source(source_field), node.id, source_field)
        node_id = self.add(node)
        self.link(node_id, target_id, None, field)


def convert_mappings_to_canvas(suggestions: Sequence[Any]) -> SuggestionCanvas:
    """Build un-positioned canvas nodes and links from oracle suggestions.

    Accepts parsed suggestions or raw dicts. Node ids are derived from the
    field name and its role (``target_<f>``, ``source_<f>``, ``concat_<f>``,
    ...), so the same list always yields the same ids. ``skip`` entries and
    unknown mapping types contribute nothing.
    """
    warnings: List[MappingIssue] = []
    ordered = parse_suggestions(list(suggestions), warnings)

    builder = _CanvasBuilder(warnings)
    for suggestion in ordered:
        builder.add_suggestion(suggestion)
    logger.info("Converted %d suggestions into %d nodes and %d edges",
                len(ordered), len(builder.nodes), len(builder.edges))
    return SuggestionCanvas(nodes=builder.nodes, edges=builder.edges, warnings=warnings)


def apply_template(canvas: SuggestionCanvas) -> CanvasGraph:
    """Position nodes in columns and give every link an edge id.

    Sources on the left, transforms in the middle and targets on the right;
    edge ids are ``<source>-<target>-<index>``.
    """
    positions = column_layout((n.id, n.type) for n in canvas.nodes)
    nodes = [n.model_copy(update={"position": positions[n.id]}) for n in canvas.nodes]
    edges = [
        CanvasEdge(
            id=f"{link.source}-{link.target}-{i}",
            source=link.source,
            target=link.target,
            source_handle=link.source_handle,
            target_handle=link.target_handle,
            type=EDGE_TYPE,
        )
        for i, link in enumerate(canvas.edges)
    ]
    return CanvasGraph(nodes=nodes, edges=edges)
