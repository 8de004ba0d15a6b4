"""Tests for turning AI mapping suggestions into a canvas."""

from canvasmap.codes import IssueCode
from canvasmap.kernel.exporter import export_execution_mapping
from canvasmap.kernel.layout import SOURCE_COLUMN_X, TARGET_COLUMN_X, TRANSFORM_COLUMN_X
from canvasmap.suggest.canvas import apply_template, convert_mappings_to_canvas
from canvasmap.suggest.suggestions import (
    ConcatSuggestion,
    UnknownSuggestion,
    parse_suggestions,
)

CONCAT = {
    "target_field": "fullname",
    "mapping_type": "concat",
    "source_fields": ["Roepnaam", "Achternaam"],
    "separator": " ",
}


def test_concat_suggestion():
    """A concat suggestion wires every source field into one concat node."""
    canvas = convert_mappings_to_canvas([CONCAT])

    assert canvas.node_ids() == ["target_fullname", "source_Roepnaam", "source_Achternaam", "concat_fullname"]
    assert [(e.source, e.target, e.source_handle, e.target_handle) for e in canvas.edges] == [
        ("source_Roepnaam", "concat_fullname", "Roepnaam", None),
        ("source_Achternaam", "concat_fullname", "Achternaam", None),
        ("concat_fullname", "target_fullname", None, "fullname"),
    ]
    concat = canvas.nodes[-1]
    assert concat.data.source_fields == ["Roepnaam", "Achternaam"]
    assert concat.data.separator == " "


def test_direct_and_static_suggestions():
    canvas = convert_mappings_to_canvas([
        {"target_field": "name", "mapping_type": "direct", "source_field": "naam"},
        {"target_field": "country", "mapping_type": "static", "value": "NL"},
    ])

    assert canvas.node_ids() == ["target_name", "source_naam", "target_country", "static_country"]
    assert [(e.source, e.target, e.source_handle, e.target_handle) for e in canvas.edges] == [
        ("source_naam", "target_name", "naam", "name"),
        ("static_country", "target_country", "value_country", "country"),
    ]


def test_shared_fields_are_one_node():
    """Each distinct source field becomes exactly one node."""
    canvas = convert_mappings_to_canvas([
        {"target_field": "a", "mapping_type": "direct", "source_field": "x"},
        {"target_field": "b", "mapping_type": "split", "source_field": "x", "delimiter": "-", "index": 1},
    ])
    assert canvas.node_ids().count("source_x") == 1
    split = next(n for n in canvas.nodes if n.id == "split_b")
    assert split.data.delimiter == "-"
    assert split.data.split_index == 1


def test_table_date_and_conditional():
    canvas = convert_mappings_to_canvas([
        {"target_field": "land", "mapping_type": "table", "source_field": "code", "table": {"NL": "Nederland"}},
        {"target_field": "born", "mapping_type": "date_conversion", "source_field": "dob", "format": "YYYY-MM-DD"},
        {"target_field": "adult", "mapping_type": "conditional",
         "conditions": [{"condition": "age >= 18", "value": "yes"}]},
    ])
    nodes = {n.id: n for n in canvas.nodes}

    assert nodes["convert_land"].data.table() == {"NL": "Nederland"}
    assert nodes["date_born"].data.format == "YYYY-MM-DD"
    assert nodes["date_born"].data.auto_detect is True
    assert nodes["if_adult"].data.conditions == [{"condition": "age >= 18", "value": "yes"}]
    # No source field: only the edge into the target
    assert [(e.source, e.target) for e in canvas.edges if e.target == "target_adult"] == [
        ("if_adult", "target_adult"),
    ]
    assert not any(e.target == "if_adult" for e in canvas.edges)


def test_skip_and_unknown_contribute_nothing():
    canvas = convert_mappings_to_canvas([
        {"target_field": "a", "mapping_type": "skip"},
        {"target_field": "b", "mapping_type": "telepathy"},
    ])

    assert canvas.nodes == []
    assert canvas.edges == []
    assert [w.code for w in canvas.warnings] == [IssueCode.UNKNOWN_MAPPING_TYPE]


def test_malformed_suggestions_skipped():
    """Entries that are not objects or miss required fields are dropped with a warning."""
    warnings = []
    parsed = parse_suggestions(
        ["oops", {"target_field": "a", "mapping_type": "direct"}, CONCAT, {"mapping_type": "weird"}],
        warnings,
    )

    assert [type(s) for s in parsed] == [ConcatSuggestion, UnknownSuggestion]
    assert [w.code for w in warnings] == [IssueCode.INVALID_SUGGESTION, IssueCode.INVALID_SUGGESTION]


def test_deterministic():
    suggestions = [CONCAT, {"target_field": "x", "mapping_type": "direct", "source_field": "y"}]
    first = apply_template(convert_mappings_to_canvas(suggestions)).to_dict()
    second = apply_template(convert_mappings_to_canvas(suggestions)).to_dict()
    assert first == second


def test_template_positions_and_edge_ids():
    """Sources left, transforms middle, targets right; edges numbered in order."""
    graph = apply_template(convert_mappings_to_canvas([CONCAT]))
    positions = {n.id: (n.position.x, n.position.y) for n in graph.nodes}

    assert positions["source_Roepnaam"] == (SOURCE_COLUMN_X, 100)
    assert positions["source_Achternaam"] == (SOURCE_COLUMN_X, 220)
    assert positions["concat_fullname"] == (TRANSFORM_COLUMN_X, 100)
    assert positions["target_fullname"] == (TARGET_COLUMN_X, 100)
    assert [e.id for e in graph.edges] == [
        "source_Roepnaam-concat_fullname-0",
        "source_Achternaam-concat_fullname-1",
        "concat_fullname-target_fullname-2",
    ]
    assert graph.to_dict()["edges"][0]["type"] == "smoothstep"


def test_bootstrapped_canvas_compiles():
    """Direct suggestions survive into execution rules."""
    graph = apply_template(convert_mappings_to_canvas([
        {"target_field": "name", "mapping_type": "direct", "source_field": "naam"},
    ]))
    rules = export_execution_mapping(graph).mappings
    assert [m.to_wire() for m in rules] == [{"from": "naam", "to": "name", "type": "direct"}]
