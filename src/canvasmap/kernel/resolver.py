"""Backward walk from a node to the source field that ultimately feeds it."""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from canvasmap.errors import CanvasMapError

from .graph import CanvasEdge, CanvasGraph
from .nodes import NodeBase, SourceNode
from .schema import field_path_index

MAX_RESOLUTION_DEPTH = 32


class ResolutionDepthError(CanvasMapError):
    """Raised when a backward walk exceeds the depth guard (cyclic or pathological graph)."""
    def __init__(self, node_id: str, max_depth: int):
        self.node_id = node_id
        self.max_depth = max_depth
        super().__init__(
            f"Resolution from node '{node_id}' exceeded {max_depth} hops; the graph is cyclic or too deep"
        )


@dataclass(frozen=True)
class FieldOrigin:
    """A resolved source field."""
    node_id: str
    path: str  # dotted field path, or the raw handle when the field is unknown
    found: bool  # False when the handle did not match a field in the source schema


class OriginResolver:
    """Resolves handles on source nodes to field paths, walking back through single-input nodes."""

    def __init__(self, graph: CanvasGraph, max_depth: int = MAX_RESOLUTION_DEPTH):
        self.graph = graph
        self.max_depth = max_depth
        self._path_cache: Dict[str, Dict[str, str]] = {}

    def field_origin(self, node: SourceNode, handle: Optional[str]) -> FieldOrigin:
        """Look up the field a source-node handle points at."""
        paths = self._path_cache.get(node.id)
        if paths is None:
            paths = field_path_index(node.data.fields)
            self._path_cache[node.id] = paths
        if handle is not None and handle in paths:
            return FieldOrigin(node_id=node.id, path=paths[handle], found=True)
        return FieldOrigin(node_id=node.id, path=handle or "", found=False)

    def upstream(self, node_id: str) -> Tuple[Optional[CanvasEdge], Optional[NodeBase]]:
        """The single input edge of ``node_id`` and the node it comes from."""
        edge = self.graph.first_input(node_id)
        if edge is None:
            return None, None
        return edge, self.graph.get_node(edge.source)

    def resolve(self, node_id: str, handle: Optional[str] = None, _depth: int = 0) -> Optional[FieldOrigin]:
        """Walk backward from ``(node_id, handle)`` to a source field.

        Non-source nodes are followed through their first input edge.

        Returns:
            FieldOrigin, or None when the chain ends without reaching a source node.

        Raises:
            ResolutionDepthError: if the walk exceeds ``max_depth`` hops.
        """
        if _depth > self.max_depth:
            raise ResolutionDepthError(node_id, self.max_depth)
        node = self.graph.get_node(node_id)
        if node is None:
            return None
        if isinstance(node, SourceNode):
            return self.field_origin(node, handle)
        edge = self.graph.first_input(node_id)
        if edge is None:
            return None
        return self.resolve(edge.source, edge.source_handle, _depth + 1)

    def resolve_input(self, node_id: str) -> Optional[FieldOrigin]:
        """Resolve the source field feeding the single input of ``node_id``."""
        edge = self.graph.first_input(node_id)
        if edge is None:
            return None
        return self.resolve(edge.source, edge.source_handle, 1)
