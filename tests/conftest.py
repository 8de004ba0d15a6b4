"""Pytest configuration and shared canvas fixtures.

No sys.path hacks - tests import from the installed canvasmap package.
"""

import copy

import pytest

from canvasmap.config import get_settings


CONTACTS_CANVAS = {
    "nodes": [
        {
            "id": "src",
            "type": "source",
            "position": {"x": 0, "y": 0},
            "data": {
                "label": "Customers",
                "fields": [
                    {"id": "f_first", "name": "firstName", "type": "string"},
                    {"id": "f_country", "name": "country", "type": "string"},
                    {"id": "f_code", "name": "code", "type": "string"},
                    {
                        "id": "f_address",
                        "name": "address",
                        "type": "object",
                        "children": [{"id": "f_city", "name": "city", "type": "string"}],
                    },
                ],
                "data": [
                    {"firstName": "Jan", "country": "NL", "code": "AB-12", "address": {"city": "Utrecht"}}
                ],
            },
        },
        {
            "id": "tgt",
            "type": "target",
            "position": {"x": 900, "y": 0},
            "data": {
                "label": "Contacts",
                "fields": [
                    {"id": "t_name", "name": "name", "type": "string"},
                    {"id": "t_source", "name": "source", "type": "string"},
                    {"id": "t_country", "name": "countryName", "type": "string"},
                    {"id": "t_region", "name": "region", "type": "string"},
                    {"id": "t_dutch", "name": "isDutch", "type": "string"},
                    {
                        "id": "t_contact",
                        "name": "contact",
                        "type": "object",
                        "children": [{"id": "t_city", "name": "city", "type": "string"}],
                    },
                ],
            },
        },
        {
            "id": "static1",
            "type": "staticValue",
            "position": {"x": 400, "y": 0},
            "data": {"label": "Static", "values": [{"id": "v1", "value": "crm"}]},
        },
        {
            "id": "lookup",
            "type": "conversionMapping",
            "position": {"x": 400, "y": 100},
            "data": {
                "label": "Country",
                "mappings": [{"from": "NL", "to": "Netherlands"}, {"from": "BE", "to": "Belgium"}],
            },
        },
        {
            "id": "split",
            "type": "splitterTransform",
            "position": {"x": 300, "y": 200},
            "data": {"label": "Split", "delimiter": "-", "splitIndex": 0},
        },
        {
            "id": "regions",
            "type": "conversionMapping",
            "position": {"x": 500, "y": 200},
            "data": {"label": "Regions", "mappings": [{"from": "AB", "to": "North"}]},
        },
        {
            "id": "cond",
            "type": "ifThen",
            "position": {"x": 400, "y": 300},
            "data": {
                "label": "Dutch?",
                "operator": "=",
                "compareValue": "NL",
                "thenValue": "yes",
                "elseValue": "no",
            },
        },
    ],
    "edges": [
        {"id": "e1", "source": "src", "sourceHandle": "f_first", "target": "tgt", "targetHandle": "t_name"},
        {"id": "e2", "source": "static1", "sourceHandle": "v1", "target": "tgt", "targetHandle": "t_source"},
        {"id": "e3", "source": "src", "sourceHandle": "f_country", "target": "lookup"},
        {"id": "e4", "source": "lookup", "target": "tgt", "targetHandle": "t_country"},
        {"id": "e5", "source": "src", "sourceHandle": "f_code", "target": "split"},
        {"id": "e6", "source": "split", "target": "regions"},
        {"id": "e7", "source": "regions", "target": "tgt", "targetHandle": "t_region"},
        {"id": "e8", "source": "src", "sourceHandle": "f_country", "target": "cond"},
        {"id": "e9", "source": "cond", "target": "tgt", "targetHandle": "t_dutch"},
        {"id": "e10", "source": "src", "sourceHandle": "f_city", "target": "tgt", "targetHandle": "t_city"},
    ],
}

# Execution rules CONTACTS_CANVAS compiles to, in target-field pre-order
CONTACTS_RULES = [
    {"from": "firstName", "to": "name", "type": "direct"},
    {"from": None, "to": "source", "type": "static", "value": "crm"},
    {"from": "country", "to": "countryName", "type": "map", "map": {"NL": "Netherlands", "BE": "Belgium"}},
    {
        "from": "code",
        "to": "region",
        "type": "map",
        "map": {"AB": "North"},
        "transform": {"type": "split", "delimiter": "-", "index": 0},
    },
    {
        "from": "country",
        "to": "isDutch",
        "type": "ifThen",
        "if": {"operator": "=", "value": "NL"},
        "then": "yes",
        "else": "no",
    },
    {"from": "address.city", "to": "contact.city", "type": "direct"},
]


@pytest.fixture
def contacts_canvas():
    """A canvas using every rule-producing node type."""
    return copy.deepcopy(CONTACTS_CANVAS)


@pytest.fixture
def contacts_rules():
    return copy.deepcopy(CONTACTS_RULES)


@pytest.fixture(autouse=True)
def fresh_settings():
    """Settings are cached per process; tests that set env vars need a fresh read."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
