"""Stable JSON serialization for written documents.

Every JSON document canvasmap writes goes through here, so the same graph
always produces the same bytes.
"""

import json
from typing import Any, Optional


def canonical_dumps(obj: Any, indent: Optional[int] = None) -> str:
    """
    Serialize with sorted keys and UTF-8 text.

    Lists keep their order: node, edge and rule order is meaningful.

    Args:
        obj: JSON-compatible Python object
        indent: pretty-print indent; compact separators when None

    Returns:
        JSON string
    """
    return json.dumps(
        obj,
        sort_keys=True,
        indent=indent,
        separators=(",", ":") if indent is None else (",", ": "),
        ensure_ascii=False
    )
