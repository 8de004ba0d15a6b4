"""canvasmap: compile visual data-mapping canvases into versioned execution configs."""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("canvasmap")
except PackageNotFoundError:
    __version__ = "dev"

# Public API exports
# Note: store and suggest are imported from their subpackages, not from root,
# so importing canvasmap does not pull in the supabase or openai clients
from canvasmap.codes import IssueCode
from canvasmap.contracts import MappingIssue
from canvasmap.errors import CanvasMapError
from canvasmap.kernel.exporter import (
    ExportResult,
    export_execution_mapping,
    export_mapping,
    export_ui_configuration,
)
from canvasmap.kernel.graph import CanvasEdge, CanvasGraph
from canvasmap.kernel.importer import StagedImport, import_configuration, import_execution_config
from canvasmap.kernel.preview import preview_records

__all__ = [
    "__version__",
    "CanvasEdge",
    "CanvasGraph",
    "CanvasMapError",
    "ExportResult",
    "IssueCode",
    "MappingIssue",
    "StagedImport",
    "export_execution_mapping",
    "export_mapping",
    "export_ui_configuration",
    "import_configuration",
    "import_execution_config",
    "preview_records",
]
