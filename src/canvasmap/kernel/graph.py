"""The canvas graph aggregate: nodes, edges and the indices derived from them."""

from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Set, Union

from pydantic import ConfigDict

from .models import CanvasModel
from .nodes import NodeBase, SourceNode, TargetNode, parse_node


class CanvasEdge(CanvasModel):
    """A connection between two node handles."""
    id: str
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None

    model_config = ConfigDict(extra="allow")


class CanvasGraph:
    """Owned aggregate of canvas nodes and edges.

    Indices (node lookup, incoming/outgoing adjacency) are built once on
    construction. Node and edge order is preserved: the exporter's output
    order depends on it.
    """

    def __init__(
        self,
        nodes: Iterable[Union[NodeBase, Dict[str, Any]]] = (),
        edges: Iterable[Union[CanvasEdge, Dict[str, Any]]] = (),
    ):
        self.nodes: List[NodeBase] = [n if isinstance(n, NodeBase) else parse_node(n) for n in nodes]
        self.edges: List[CanvasEdge] = [
            e if isinstance(e, CanvasEdge) else CanvasEdge.model_validate(e) for e in edges
        ]
        self._nodes_by_id: Dict[str, NodeBase] = {}
        self._incoming: Dict[str, List[CanvasEdge]] = defaultdict(list)  # node -> edges ending there
        self._outgoing: Dict[str, List[CanvasEdge]] = defaultdict(list)  # node -> edges starting there
        self._build()

    def _build(self) -> None:
        for node in self.nodes:
            # First node wins on duplicate ids, matching a find-first lookup
            self._nodes_by_id.setdefault(node.id, node)
        for edge in self.edges:
            self._incoming[edge.target].append(edge)
            self._outgoing[edge.source].append(edge)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CanvasGraph":
        """Build from ``{"nodes": [...], "edges": [...]}``."""
        return cls(nodes=data.get("nodes") or [], edges=data.get("edges") or [])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_wire() for n in self.nodes],
            "edges": [e.to_wire() for e in self.edges],
        }

    def get_node(self, node_id: str) -> Optional[NodeBase]:
        return self._nodes_by_id.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes_by_id

    def source_nodes(self) -> List[SourceNode]:
        return [n for n in self.nodes if isinstance(n, SourceNode)]

    def target_nodes(self) -> List[TargetNode]:
        return [n for n in self.nodes if isinstance(n, TargetNode)]

    def incoming(self, node_id: str) -> List[CanvasEdge]:
        """Edges ending at ``node_id``, in edge order."""
        return list(self._incoming.get(node_id, []))

    def incoming_to_handle(self, node_id: str, handle: Optional[str]) -> List[CanvasEdge]:
        """Edges ending at a specific handle of ``node_id``."""
        return [e for e in self._incoming.get(node_id, []) if e.target_handle == handle]

    def first_input(self, node_id: str) -> Optional[CanvasEdge]:
        """The single input edge of a one-input node (first one wins)."""
        edges = self._incoming.get(node_id)
        return edges[0] if edges else None

    def outgoing(self, node_id: str) -> List[CanvasEdge]:
        return list(self._outgoing.get(node_id, []))

    def get_dependencies(self, node_id: str) -> Set[str]:
        """Upstream node ids feeding ``node_id`` directly."""
        return {e.source for e in self._incoming.get(node_id, []) if e.source in self._nodes_by_id}

    def get_dependents(self, node_id: str) -> Set[str]:
        """Downstream node ids fed directly by ``node_id``."""
        return {e.target for e in self._outgoing.get(node_id, []) if e.target in self._nodes_by_id}

    def dangling_edges(self) -> List[CanvasEdge]:
        """Edges that reference a node id not present in the graph."""
        return [e for e in self.edges if e.source not in self._nodes_by_id or e.target not in self._nodes_by_id]

    def detect_cycles(self) -> List[List[str]]:
        """Detect cycles using DFS.

        Returns:
            List with the first cycle found (node ids, start node repeated at
            the end), or an empty list if the graph is acyclic.
        """
        cycles: List[List[str]] = []
        WHITE = 0  # Unvisited
        GRAY = 1   # On the recursion stack
        BLACK = 2  # Fully visited

        color = {node_id: WHITE for node_id in self._nodes_by_id}

        def dfs(node_id: str, path: List[str]) -> None:
            color[node_id] = GRAY
            path.append(node_id)
            for dependent in sorted(self.get_dependents(node_id)):  # Sort for deterministic order
                if color[dependent] == WHITE:
                    dfs(dependent, path)
                    if cycles:
                        return
                elif color[dependent] == GRAY:
                    cycle_start = path.index(dependent)
                    cycles.append(path[cycle_start:] + [dependent])
                    return
            color[node_id] = BLACK
            path.pop()

        for node_id in sorted(self._nodes_by_id):
            if color[node_id] == WHITE:
                dfs(node_id, [])
                if cycles:
                    break
        return cycles

    def topological_order(self) -> List[str]:
        """Node ids in dependency order (Kahn's algorithm, ties broken by node order).

        Nodes on or downstream of a cycle are left out.
        """
        position: Dict[str, int] = {}
        for i, node in enumerate(self.nodes):
            position.setdefault(node.id, i)
        in_degree = {node_id: len(self.get_dependencies(node_id)) for node_id in self._nodes_by_id}
        ready = sorted((nid for nid, deg in in_degree.items() if deg == 0), key=position.__getitem__)
        order: List[str] = []
        while ready:
            current = ready.pop(0)
            order.append(current)
            released = []
            for dependent in self.get_dependents(current):
                in_degree[dependent] -= 1
                if in_degree[dependent] == 0:
                    released.append(dependent)
            ready = sorted(ready + released, key=position.__getitem__)
        return order
