"""Issue code constants for soft failures raised while compiling mappings.

These constants prevent stringly-typed warning codes and ensure
client code matches on the correct values.
"""

from enum import Enum


class IssueCode(str, Enum):
    """Warning codes recorded by the exporter, importer and AI adapter."""

    # Graph resolution (entry skipped, processing continues)
    UNKNOWN_NODE = "UNKNOWN_NODE"
    UNSUPPORTED_ORIGIN = "UNSUPPORTED_ORIGIN"
    UNRESOLVED_SOURCE_FIELD = "UNRESOLVED_SOURCE_FIELD"
    RESOLUTION_DEPTH_EXCEEDED = "RESOLUTION_DEPTH_EXCEEDED"
    CYCLE_DETECTED = "CYCLE_DETECTED"
    DANGLING_CONNECTION = "DANGLING_CONNECTION"

    # Import
    MISSING_SOURCE_HANDLE = "MISSING_SOURCE_HANDLE"
    INVALID_GROUP_BY = "INVALID_GROUP_BY"

    # AI suggestions
    UNKNOWN_MAPPING_TYPE = "UNKNOWN_MAPPING_TYPE"
    INVALID_SUGGESTION = "INVALID_SUGGESTION"
