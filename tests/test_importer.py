"""Tests for rebuilding canvases from UI and execution configs."""

from canvasmap.codes import IssueCode
from canvasmap.kernel.exporter import export_execution_mapping, export_ui_configuration
from canvasmap.kernel.importer import import_configuration, import_execution_config
from canvasmap.kernel.layout import ROW_PITCH, SOURCE_COLUMN_X, TARGET_COLUMN_X, TOP_Y, TRANSFORM_COLUMN_X
from canvasmap.kernel.nodes import ConversionMappingNode, SplitterNode, StaticValueNode, TransformNode
from canvasmap.kernel.schema import iter_fields


def test_ui_round_trip(contacts_canvas, contacts_rules):
    """Export then import gives an isomorphic graph that compiles to the same rules."""
    config = export_ui_configuration(contacts_canvas, name="Contacts")
    graph = import_configuration(config.to_wire())

    assert {n.id for n in graph.nodes} == {n["id"] for n in contacts_canvas["nodes"]}
    assert [(e.id, e.source, e.target) for e in graph.edges] == [
        (e["id"], e["source"], e["target"]) for e in contacts_canvas["edges"]
    ]
    assert [m.to_wire() for m in export_execution_mapping(graph).mappings] == contacts_rules


def test_import_node_order_and_positions(contacts_canvas):
    """Nodes come back as sources, targets, transforms, mappings with positions verbatim."""
    graph = import_configuration(export_ui_configuration(contacts_canvas))

    assert [n.id for n in graph.nodes] == ["src", "tgt", "static1", "split", "cond", "lookup", "regions"]
    assert graph.get_node("split").position.x == 300
    assert isinstance(graph.get_node("split"), SplitterNode)
    assert isinstance(graph.get_node("static1"), StaticValueNode)


def test_empty_handles_become_none(contacts_canvas):
    graph = import_configuration(export_ui_configuration(contacts_canvas))
    edge = next(e for e in graph.edges if e.id == "e3")
    assert edge.source_handle == "f_country"
    assert edge.target_handle is None


def test_mapping_nodes_imported_as_conversion_mapping():
    """Mapping entries come back as conversionMapping nodes whatever their stored type."""
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"mappings": [{"id": "t", "type": "mapping", "mappings": [{"from": "a", "to": "b"}]}]},
    }
    node = import_configuration(config).get_node("t")

    assert isinstance(node, ConversionMappingNode)
    assert node.type == "conversionMapping"
    assert node.data.table() == {"a": "b"}


def test_transform_without_node_data():
    """Older documents without nodeData are read from config.parameters."""
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"transforms": [{
            "id": "p",
            "type": "splitterTransform",
            "label": "Split",
            "transformType": "splitterTransform",
            "config": {"operation": "split", "parameters": {"delimiter": "|", "splitIndex": 2}},
        }]},
    }
    node = import_configuration(config).get_node("p")

    assert isinstance(node, SplitterNode)
    assert node.label == "Split"
    assert node.data.delimiter == "|"
    assert node.data.split_index == 2


def test_generic_transform_without_node_data():
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"transforms": [{
            "id": "u",
            "type": "transform",
            "transformType": "stringOperation",
            "config": {"stringOperation": "uppercase"},
        }]},
    }
    node = import_configuration(config).get_node("u")

    assert isinstance(node, TransformNode)
    assert node.data.transform_type == "stringOperation"
    assert node.operation_name() == "uppercase"


def test_group_by_restored_from_arrays():
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"targets": [{
            "id": "tgt",
            "schema": {"fields": [{
                "id": "lines", "name": "lines", "type": "array",
                "children": [{"id": "sku", "name": "sku"}],
            }]},
        }]},
    }
    graph = import_configuration(config, [{"target": "lines", "groupBy": "sku"}])
    assert graph.get_node("tgt").data.fields[0].group_by == "sku"


def test_stale_group_by_cleared_with_warning():
    """A groupBy naming a child that no longer exists is cleared, not fatal."""
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"targets": [{
            "id": "tgt",
            "schema": {"fields": [{
                "id": "lines", "name": "lines", "type": "array", "groupBy": "sku",
                "children": [{"id": "code", "name": "code", "type": "string"}],
            }]},
        }]},
    }
    warnings = []
    graph = import_configuration(config, [], warnings)

    assert graph.get_node("tgt").data.fields[0].group_by is None
    assert [w.code for w in warnings] == [IssueCode.INVALID_GROUP_BY]
    assert warnings[0].element_id == "lines"


def test_dangling_connection_replayed_with_warning():
    """Connections to missing nodes are kept as edges and reported."""
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"sources": [{"id": "s"}]},
        "connections": [{"id": "c", "sourceNodeId": "s", "targetNodeId": "ghost"}],
    }
    warnings = []
    graph = import_configuration(config, warnings=warnings)

    assert [e.id for e in graph.edges] == ["c"]
    assert [w.code for w in warnings] == [IssueCode.DANGLING_CONNECTION]


def test_duplicate_ids_reported():
    config = {
        "id": "m", "name": "M", "createdAt": "2024-01-01",
        "nodes": {"sources": [{"id": "x"}], "targets": [{"id": "x"}]},
    }
    warnings = []
    graph = import_configuration(config, warnings=warnings)

    assert graph.get_node("x").type == "source"
    assert warnings[0].code == IssueCode.UNKNOWN_NODE


EXECUTION_CONFIG = {
    "name": "Contacts",
    "mappings": [
        {"from": "firstName", "to": "name", "type": "direct"},
        {"from": None, "to": "source", "type": "static", "value": "crm"},
        {"from": "country", "to": "countryName", "type": "map", "map": {"NL": "Netherlands"}},
        {
            "from": "code", "to": "region", "type": "map", "map": {"AB": "North"},
            "transform": {"type": "split", "delimiter": "-", "index": 0},
        },
        {
            "from": "code", "to": "prefix", "type": "map", "map": {"AB": "A"},
            "transform": {"type": "substring", "start": 0, "end": 2},
        },
        {
            "from": "country", "to": "isDutch", "type": "ifThen",
            "if": {"operator": "=", "value": "NL"}, "then": "yes", "else": "no",
        },
        {"from": "address.city", "to": "contact.city", "type": "direct"},
        {"from": "ignored", "to": "skipped", "type": "skip"},
    ],
}


def test_execution_import_reproduces_rules():
    """Rules drawn from an execution config compile back to the same rules."""
    graph = import_execution_config(EXECUTION_CONFIG)
    config = export_execution_mapping(graph, name="Contacts")

    drawn = [m for m in EXECUTION_CONFIG["mappings"] if m["type"] != "skip"]
    assert [m.to_wire() for m in config.mappings] == drawn


def test_execution_import_nodes():
    graph = import_execution_config(EXECUTION_CONFIG)
    ids = [n.id for n in graph.nodes]

    assert ids == [
        "source", "target", "static_source", "convert_countryName",
        "split_region", "convert_region", "transform_prefix", "convert_prefix", "if_isDutch",
    ]
    assert graph.get_node("target").label == "Contacts"
    target_paths = [p for p, _ in iter_fields(graph.get_node("target").data.fields)]
    assert "contact.city" in target_paths
    assert "skipped" in target_paths


def test_execution_import_layout():
    """Sources left, targets right, the rest stacked in the middle column."""
    graph = import_execution_config(EXECUTION_CONFIG)

    source = graph.get_node("source").position
    target = graph.get_node("target").position
    assert (source.x, source.y) == (SOURCE_COLUMN_X, TOP_Y)
    assert (target.x, target.y) == (TARGET_COLUMN_X, TOP_Y)
    middle = [n.position for n in graph.nodes if n.type not in ("source", "target")]
    assert [p.x for p in middle] == [TRANSFORM_COLUMN_X] * len(middle)
    assert [p.y for p in middle] == [TOP_Y + i * ROW_PITCH for i in range(len(middle))]


def test_execution_import_arrays():
    """Array configs become array target fields with their groupBy."""
    config = {
        "name": "Orders",
        "mappings": [
            {"from": "lines[0].sku", "to": "items.sku", "type": "direct"},
            {"from": "lines[0].qty", "to": "items.qty", "type": "direct"},
        ],
        "arrays": [{"target": "items", "groupBy": "sku"}],
    }
    graph = import_execution_config(config)
    items = graph.get_node("target").data.fields[0]

    assert items.type == "array"
    assert items.group_by == "sku"
    assert graph.get_node("source").data.fields[0].type == "array"
    assert [e.source_handle for e in graph.edges] == ["lines.sku", "lines.qty"]


def test_execution_import_unique_ids():
    """Two rules for the same target field get distinct node ids."""
    config = {
        "name": "Twice",
        "mappings": [
            {"from": None, "to": "x", "type": "static", "value": 1},
            {"from": None, "to": "x", "type": "static", "value": 2},
        ],
    }
    graph = import_execution_config(config)
    assert [n.id for n in graph.nodes] == ["source", "target", "static_x", "static_x_2"]
