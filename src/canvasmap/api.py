"""Public API for canvasmap.

File-level entry points over the kernel: load documents from paths or dicts,
compile a canvas, and write the results as JSON.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from canvasmap._internal.canonical_json import canonical_dumps
from canvasmap.contracts import MappingIssue
from canvasmap.kernel.configuration import MappingConfiguration
from canvasmap.kernel.exporter import DEFAULT_NAME, ExportResult, export_mapping
from canvasmap.kernel.graph import CanvasGraph
from canvasmap.kernel.importer import import_configuration, import_execution_config
from canvasmap.kernel.preview import preview_records
from canvasmap.kernel.rules import ExecutionMappingConfig
from canvasmap.kernel.schema import ArrayConfig

PathLike = Union[str, os.PathLike, Path]

UI_CONFIG_FILENAME = "ui_config.json"
EXECUTION_CONFIG_FILENAME = "execution_config.json"


def _normalize_path(path: PathLike) -> Path:
    """Normalize path input to Path object."""
    return Path(path) if not isinstance(path, Path) else path


def _read_json(path: PathLike) -> Any:
    with open(_normalize_path(path), "r", encoding="utf-8") as f:
        return json.load(f)


def _write_json(path: PathLike, data: Any) -> Path:
    path = _normalize_path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(canonical_dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def load_graph(source: Union[PathLike, Dict[str, Any]]) -> CanvasGraph:
    """Load a canvas ``{"nodes": [...], "edges": [...]}`` from a path or dict."""
    data = source if isinstance(source, dict) else _read_json(source)
    return CanvasGraph.from_dict(data)


def load_configuration(source: Union[PathLike, Dict[str, Any]]) -> MappingConfiguration:
    data = source if isinstance(source, dict) else _read_json(source)
    return MappingConfiguration.model_validate(data)


def load_execution_config(source: Union[PathLike, Dict[str, Any]]) -> ExecutionMappingConfig:
    data = source if isinstance(source, dict) else _read_json(source)
    return ExecutionMappingConfig.model_validate(data)


def load_records(source: Union[PathLike, List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
    """Sample records: a JSON list, or an object with a ``data`` list."""
    data = source if isinstance(source, list) else _read_json(source)
    if isinstance(data, dict):
        data = data.get("data") or []
    if not isinstance(data, list):
        raise ValueError("Sample records must be a JSON list of objects")
    return data


def write_graph(graph: CanvasGraph, path: PathLike) -> Path:
    return _write_json(path, graph.to_dict())


def write_configuration(config: MappingConfiguration, path: PathLike) -> Path:
    return _write_json(path, config.to_wire())


def write_execution_config(config: ExecutionMappingConfig, path: PathLike) -> Path:
    return _write_json(path, config.to_wire())


def export_to_dir(
    graph: Union[CanvasGraph, Dict[str, Any], PathLike],
    out_dir: PathLike,
    name: str = DEFAULT_NAME,
    category: Optional[str] = None,
) -> ExportResult:
    """Export a canvas and write ``ui_config.json`` and ``execution_config.json`` to ``out_dir``."""
    if not isinstance(graph, CanvasGraph):
        graph = load_graph(graph)
    result = export_mapping(graph, name=name, category=category)
    out_dir = _normalize_path(out_dir)
    write_configuration(result.ui_config, out_dir / UI_CONFIG_FILENAME)
    write_execution_config(result.execution_config, out_dir / EXECUTION_CONFIG_FILENAME)
    return result


def import_to_graph(
    config: Union[MappingConfiguration, Dict[str, Any], PathLike],
    arrays: Optional[Union[Iterable[Union[ArrayConfig, Dict[str, Any]]], PathLike]] = None,
    warnings: Optional[List[MappingIssue]] = None,
) -> CanvasGraph:
    """Rebuild a canvas from a UI configuration (path, dict or model).

    ``arrays`` may be a list of array configs or a path to an execution
    config whose ``arrays`` are used.
    """
    if not isinstance(config, MappingConfiguration):
        config = load_configuration(config)
    if isinstance(arrays, (str, os.PathLike)):
        arrays = load_execution_config(arrays).arrays
    return import_configuration(config, arrays, warnings)


def execution_to_graph(
    config: Union[ExecutionMappingConfig, Dict[str, Any], PathLike],
    warnings: Optional[List[MappingIssue]] = None,
) -> CanvasGraph:
    """Rebuild a canvas from execution rules alone."""
    if not isinstance(config, ExecutionMappingConfig):
        config = load_execution_config(config)
    return import_execution_config(config, warnings)


def preview(
    config: Union[ExecutionMappingConfig, Dict[str, Any], PathLike],
    records: Union[PathLike, List[Dict[str, Any]]],
    limit: int = 10,
) -> List[Dict[str, Any]]:
    """Run sample records through execution rules."""
    if not isinstance(config, ExecutionMappingConfig):
        config = load_execution_config(config)
    return preview_records(config, load_records(records), limit=limit)
