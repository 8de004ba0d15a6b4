"""One-shot migrations from historical node data shapes to the canonical shape.

Canvas documents saved by older builds keep transform parameters in several
places: directly on ``data``, under ``data.config``, or under
``data.config.parameters``. Each node data model runs the matching migration
in a ``mode="before"`` validator, so downstream code only ever sees the
canonical attributes.

Lookup order is always ``data`` -> ``data.config`` -> ``data.config.parameters``.
Collections and strings take the first non-empty candidate; scalars take the
first candidate that is present (``0`` is a valid split index).
"""

from typing import Any, Dict, List, Tuple


def _layers(data: Dict[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    config = data.get("config")
    if not isinstance(config, dict):
        config = {}
    parameters = config.get("parameters")
    if not isinstance(parameters, dict):
        parameters = {}
    return config, parameters


def _first_non_empty(*candidates: Any) -> Any:
    for value in candidates:
        if value is None:
            continue
        if isinstance(value, (str, list, dict, tuple)) and len(value) == 0:
            continue
        return value
    return None


def _first_present(*candidates: Any) -> Any:
    for value in candidates:
        if value is not None:
            return value
    return None


def _lookup(data: Dict[str, Any], keys: Tuple[str, ...], scalar: bool = False) -> Any:
    """Find the first value for any of ``keys`` across the three legacy layers."""
    config, parameters = _layers(data)
    candidates = []
    for layer in (data, config, parameters):
        for key in keys:
            candidates.append(layer.get(key))
    return _first_present(*candidates) if scalar else _first_non_empty(*candidates)


def migrate_coalesce(data: Any) -> Any:
    """Canonical coalesce data: ``rules``, ``defaultValue``, ``outputType``, ``inputValues``."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    out["rules"] = _lookup(data, ("rules",)) or []
    out["defaultValue"] = _lookup(data, ("defaultValue",)) or ""
    out["outputType"] = _lookup(data, ("outputType",)) or "value"
    out["inputValues"] = data.get("inputValues") or {}
    return out


def migrate_splitter(data: Any) -> Any:
    """Canonical splitter data: ``delimiter``, ``splitIndex`` and extra ``config``."""
    if not isinstance(data, dict):
        return data
    out = dict(data)
    delimiter = _lookup(data, ("delimiter",))
    out["delimiter"] = delimiter if delimiter is not None else ","
    split_index = _lookup(data, ("splitIndex", "index"), scalar=True)
    out["splitIndex"] = split_index if split_index is not None else 0
    out.pop("index", None)
    config, _ = _layers(data)
    extra = {k: v for k, v in config.items() if k not in ("parameters", "operation", "delimiter", "splitIndex", "index")}
    out["config"] = extra
    return out


def migrate_if_then(data: Any) -> Any:
    """Canonical conditional data: ``operator``, ``compareValue``, ``thenValue``, ``elseValue``."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    out["operator"] = _lookup(data, ("operator",)) or "="
    for key in ("compareValue", "thenValue", "elseValue"):
        value = _lookup(data, (key,), scalar=True)
        out[key] = "" if value is None else value
    return out


def migrate_static(data: Any) -> Any:
    """Canonical static data: ``values`` as a list of ``{id, value}`` entries."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    values = _lookup(data, ("values",))
    if values is None and "value" in data:
        values = [{"id": "value", "value": data["value"]}]
        out.pop("value", None)
    out["values"] = values or []
    return out


def migrate_conversion_mapping(data: Any) -> Any:
    """Canonical table data: ``mappings`` as a list of ``{from, to}`` entries."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    mappings = _lookup(data, ("mappings",))
    if mappings is None:
        table = _lookup(data, ("mappingTable", "table"))
        if isinstance(table, dict):
            mappings = [{"from": k, "to": v} for k, v in table.items()]
    out.pop("mappingTable", None)
    out.pop("table", None)
    out["mappings"] = _as_pairs(mappings)
    return out


def _as_pairs(mappings: Any) -> List[Dict[str, Any]]:
    if isinstance(mappings, dict):
        return [{"from": k, "to": v} for k, v in mappings.items()]
    return list(mappings or [])


def migrate_concat(data: Any) -> Any:
    """Canonical concat data: ``sourceFields`` and ``separator``."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    out["sourceFields"] = _lookup(data, ("sourceFields",)) or []
    separator = _lookup(data, ("separator",), scalar=True)
    out["separator"] = " " if separator is None else separator
    return out


def migrate_date_conversion(data: Any) -> Any:
    """Canonical date conversion data: ``format`` and ``autoDetect``."""
    if not isinstance(data, dict):
        return data
    out = {k: v for k, v in data.items() if k != "config"}
    out["format"] = _lookup(data, ("format",)) or ""
    auto_detect = _lookup(data, ("autoDetect",), scalar=True)
    out["autoDetect"] = True if auto_detect is None else auto_detect
    return out
