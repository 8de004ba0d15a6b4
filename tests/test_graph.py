"""Tests for graph.py."""

from canvasmap.kernel.graph import CanvasGraph


def _chain(*ids):
    """Linear graph ``ids[0] -> ids[1] -> ...`` of ifThen nodes."""
    nodes = [{"id": i, "type": "ifThen", "data": {}} for i in ids]
    edges = [
        {"id": f"{a}-{b}", "source": a, "target": b}
        for a, b in zip(ids, ids[1:])
    ]
    return nodes, edges


def test_build_graph(contacts_canvas):
    """Test building the canvas graph and its adjacency."""
    graph = CanvasGraph.from_dict(contacts_canvas)

    assert graph.has_node("src")
    assert graph.get_node("lookup").type == "conversionMapping"
    assert [n.id for n in graph.source_nodes()] == ["src"]
    assert [n.id for n in graph.target_nodes()] == ["tgt"]

    assert graph.get_dependencies("regions") == {"split"}
    assert graph.get_dependents("src") == {"tgt", "lookup", "split", "cond"}
    assert [e.id for e in graph.incoming_to_handle("tgt", "t_region")] == ["e7"]
    assert graph.first_input("lookup").source_handle == "f_country"


def test_to_dict_round_trip(contacts_canvas):
    """Serializing and re-reading preserves nodes, edges and their order."""
    graph = CanvasGraph.from_dict(contacts_canvas)
    again = CanvasGraph.from_dict(graph.to_dict())

    assert [n.id for n in again.nodes] == [n.id for n in graph.nodes]
    assert [e.id for e in again.edges] == [e.id for e in graph.edges]
    assert again.to_dict() == graph.to_dict()


def test_topological_order(contacts_canvas):
    """Every node follows its inputs; ties keep node order."""
    graph = CanvasGraph.from_dict(contacts_canvas)
    assert graph.topological_order() == ["src", "static1", "lookup", "split", "regions", "cond", "tgt"]


def test_dangling_edges_ignored_by_adjacency():
    """Edges to missing nodes are reported, not followed."""
    graph = CanvasGraph(
        nodes=[{"id": "a", "type": "ifThen", "data": {}}],
        edges=[{"id": "e", "source": "a", "target": "ghost"}],
    )
    assert [e.id for e in graph.dangling_edges()] == ["e"]
    assert graph.get_dependents("a") == set()
    assert graph.topological_order() == ["a"]


def test_cycle_detection():
    """Test cycle detection."""
    nodes, edges = _chain("a", "b", "c")
    edges.append({"id": "c-a", "source": "c", "target": "a"})
    graph = CanvasGraph(nodes, edges)

    cycles = graph.detect_cycles()
    assert cycles == [["a", "b", "c", "a"]]


def test_cycle_members_left_out_of_order():
    """Nodes on or downstream of a cycle never reach in-degree zero."""
    nodes, edges = _chain("root", "a", "b", "after")
    edges.append({"id": "b-a", "source": "b", "target": "a"})
    graph = CanvasGraph(nodes, edges)

    assert graph.topological_order() == ["root"]


def test_acyclic_graph_passes():
    nodes, edges = _chain("a", "b")
    graph = CanvasGraph(nodes, edges)
    assert graph.detect_cycles() == []
    assert graph.topological_order() == ["a", "b"]


def test_duplicate_node_ids_first_wins():
    graph = CanvasGraph(nodes=[
        {"id": "x", "type": "ifThen", "data": {"label": "first"}},
        {"id": "x", "type": "ifThen", "data": {"label": "second"}},
    ])
    assert graph.get_node("x").label == "first"
